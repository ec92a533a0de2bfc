"""Time-series KPIs: period totals, growth rates, moving averages.

Quick Start
-----------
>>> from transaction_audit.analyses.timeseries import SeriesMeasure, period_series, moving_average
>>> from transaction_audit.foundation.aggregation import PeriodGranularity
>>> monthly = period_series(transactions, PeriodGranularity.MONTH, SeriesMeasure.REVENUE)  # doctest: +SKIP
>>> ma_3m = moving_average(monthly, 3)  # doctest: +SKIP

Every period between the first and last observed period is present in a
series, so a month without transactions shows up with a zero (or ``None``)
value and the following month's ``pct_change`` is undefined rather than
computed against a skipped month.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Sequence

from transaction_audit.errors import InvalidWindowSize
from transaction_audit.foundation.aggregation import (
    MONEY_PRECISION,
    PeriodGranularity,
    aggregate,
    avg_amount,
    count_distinct,
    count_rows,
    count_where,
    is_fraudulent,
    pct_change,
    period_range,
    quantize_money,
    sum_amount,
    sum_amount_where,
    truncate_date,
)
from transaction_audit.foundation.records import Transaction

__all__ = [
    "SeriesMeasure",
    "TimeSeriesPoint",
    "cumulative_sum",
    "moving_average",
    "pct_change",
    "period_series",
    "period_to_date",
    "to_series",
]


class SeriesMeasure(str, Enum):
    """Per-period measures available to :func:`period_series`."""

    REVENUE = "revenue"
    TRANSACTION_COUNT = "transaction_count"
    AVG_ORDER_VALUE = "avg_order_value"
    FRAUD_COUNT = "fraud_count"
    FRAUD_LOSS = "fraud_loss"
    ACTIVE_CUSTOMERS = "active_customers"


@dataclass(frozen=True)
class TimeSeriesPoint:
    """A single period of a series.

    Attributes
    ----------
    period:
        Start date of the period (or the day itself for daily series).
    metric_value:
        Measure value for the period; ``None`` when undefined.
    prior_period_value:
        Value of the preceding period in the series, ``None`` for the first.
    pct_change:
        ``100 * (metric_value - prior) / prior`` (2 dp), ``None`` when the
        prior value is zero or missing.
    """

    period: date
    metric_value: Decimal | int | None
    prior_period_value: Decimal | int | None = None
    pct_change: Decimal | None = None


def to_series(
    periods: Sequence[date], values: Sequence[Decimal | int | None]
) -> list[TimeSeriesPoint]:
    points: list[TimeSeriesPoint] = []
    previous: Decimal | int | None = None
    for period, value in zip(periods, values):
        points.append(
            TimeSeriesPoint(
                period=period,
                metric_value=value,
                prior_period_value=previous,
                pct_change=pct_change(value, previous),
            )
        )
        previous = value
    return points


def period_series(
    transactions: Sequence[Transaction],
    period_granularity: PeriodGranularity | str,
    measure: SeriesMeasure | str,
) -> list[TimeSeriesPoint]:
    """Measure per period with period-over-period change.

    Parameters
    ----------
    transactions:
        Ledger to bucket.
    period_granularity:
        ``day``, ``week`` (Monday start), ``month``, ``quarter`` or ``year``.
    measure:
        Which :class:`SeriesMeasure` to compute.

    Returns
    -------
    list[TimeSeriesPoint]
        Chronological points covering every period from the first to the
        last transaction. Periods without transactions carry ``0`` for
        revenue and counts and ``None`` for averages and fraud loss. Empty
        input yields an empty list.

    Examples
    --------
    >>> from datetime import time
    >>> txns = [
    ...     Transaction(1, 1, 1, 1, date(2019, 1, 5), time(9), Decimal("100.00"), False),
    ...     Transaction(2, 1, 1, 1, date(2019, 3, 5), time(9), Decimal("50.00"), False),
    ... ]
    >>> [(p.period.month, p.metric_value, p.pct_change)
    ...  for p in period_series(txns, "month", "revenue")]
    [(1, Decimal('100.00'), None), (2, Decimal('0'), Decimal('-100.00')), (3, Decimal('50.00'), None)]
    """
    granularity = PeriodGranularity(period_granularity)
    measure = SeriesMeasure(measure)
    if not transactions:
        return []

    dates = [t.transaction_date for t in transactions]
    periods = period_range(min(dates), max(dates), granularity)
    grouped = aggregate(
        transactions,
        [granularity.value],
        [
            sum_amount("revenue"),
            count_rows("transaction_count"),
            avg_amount("avg_order_value"),
            count_where("fraud_count", is_fraudulent),
            sum_amount_where("fraud_loss", is_fraudulent),
            count_distinct("active_customers", "customer_id"),
        ],
        coverage=[(period,) for period in periods],
    )

    values: list[Decimal | int | None] = []
    for period in periods:
        value = grouped[(period,)][measure.value]
        if measure is SeriesMeasure.REVENUE and value is None:
            value = Decimal("0")
        elif measure is SeriesMeasure.AVG_ORDER_VALUE:
            value = quantize_money(value)
        values.append(value)
    return to_series(periods, values)


def moving_average(
    points: Sequence[TimeSeriesPoint], window: int
) -> list[TimeSeriesPoint]:
    """Trailing simple moving average over ``window`` periods.

    The average for each point covers that point and up to ``window - 1``
    preceding points; the first points use the partial window available.
    ``None`` values are ignored (like SQL ``AVG``); a window with only
    ``None`` values averages to ``None``. Averages are rounded to cents.
    Points keep their chronological order; a window of 1 reproduces the
    input values.

    Raises
    ------
    InvalidWindowSize
        If ``window <= 0``.
    """
    if window <= 0:
        raise InvalidWindowSize(window)

    averages: list[Decimal | None] = []
    for idx in range(len(points)):
        trailing = [
            Decimal(p.metric_value)
            for p in points[max(0, idx - window + 1) : idx + 1]
            if p.metric_value is not None
        ]
        if not trailing:
            averages.append(None)
            continue
        averages.append(
            (sum(trailing) / len(trailing)).quantize(
                MONEY_PRECISION, rounding=ROUND_HALF_UP
            )
        )
    return to_series([p.period for p in points], averages)


def cumulative_sum(points: Sequence[TimeSeriesPoint]) -> list[TimeSeriesPoint]:
    """Running total of a series; ``None`` values contribute nothing."""
    running = Decimal("0")
    totals: list[Decimal] = []
    for point in points:
        if point.metric_value is not None:
            running += Decimal(point.metric_value)
        totals.append(running)
    return to_series([p.period for p in points], totals)


def period_to_date(
    transactions: Sequence[Transaction],
    as_of_date: date,
    granularity: PeriodGranularity | str = PeriodGranularity.YEAR,
) -> Decimal | None:
    """Revenue from the start of the period containing ``as_of_date`` up to it.

    ``YEAR`` gives year-to-date and ``QUARTER`` quarter-to-date revenue.
    Returns ``None`` when no transaction falls in the window.
    """
    granularity = PeriodGranularity(granularity)
    period_start = truncate_date(as_of_date, granularity)
    in_window = [
        t for t in transactions if period_start <= t.transaction_date <= as_of_date
    ]
    if not in_window:
        return None
    return sum((t.amount for t in in_window), Decimal("0"))
