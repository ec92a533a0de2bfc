"""Grouped aggregation over the transaction ledger.

This is the shared engine behind every KPI in the package: group the fact
rows by one or more dimensions and compute a set of measures per group.
All money arithmetic is done with :class:`~decimal.Decimal`; ratios never
raise and never produce NaN.

Zero-row convention
-------------------
Groups requested through ``coverage`` that have no rows follow SQL
semantics: counting measures are ``0`` and every other measure (sums,
averages, min/max, first/last date) is ``None``. The same convention is
used by the summary reports.

Quick Start
-----------
>>> from transaction_audit.foundation.aggregation import aggregate, count_rows, sum_amount
>>> result = aggregate(transactions, ["category_id"], [count_rows(), sum_amount()])  # doctest: +SKIP
>>> result[(2,)]  # doctest: +SKIP
{'txn_count': 3, 'total_amount': Decimal('120.50')}
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from operator import attrgetter
from typing import Any, Callable, Hashable, Iterable, Mapping, Sequence

from transaction_audit.errors import InvalidGroupKey
from transaction_audit.foundation.records import Transaction

# Money and percentages are reported with 2 decimal places, rounded half
# away from zero (Decimal's ROUND_HALF_UP).
MONEY_PRECISION = Decimal("0.01")
PERCENTAGE_PRECISION = Decimal("0.01")

COUNTING_KINDS = frozenset({"count", "count_where", "count_distinct"})

#: Transaction attributes a ``count_distinct`` measure can read.
DISTINCT_ATTRIBUTES = tuple(f.name for f in fields(Transaction)) + ("hour",)


class PeriodGranularity(str, Enum):
    """Calendar granularities for date truncation."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


def truncate_date(day: date, granularity: PeriodGranularity) -> date:
    """Return the first day of the period containing ``day``.

    Weeks start on Monday (ISO weeks).
    """
    if granularity is PeriodGranularity.DAY:
        return day
    if granularity is PeriodGranularity.WEEK:
        return day - timedelta(days=day.weekday())
    if granularity is PeriodGranularity.MONTH:
        return day.replace(day=1)
    if granularity is PeriodGranularity.QUARTER:
        return day.replace(month=(day.month - 1) // 3 * 3 + 1, day=1)
    if granularity is PeriodGranularity.YEAR:
        return day.replace(month=1, day=1)
    raise ValueError(f"Unsupported granularity: {granularity}")  # pragma: no cover


def next_period(period_start: date, granularity: PeriodGranularity) -> date:
    """Return the start of the period following ``period_start``."""
    if granularity is PeriodGranularity.DAY:
        return period_start + timedelta(days=1)
    if granularity is PeriodGranularity.WEEK:
        return period_start + timedelta(days=7)
    if granularity is PeriodGranularity.YEAR:
        return period_start.replace(year=period_start.year + 1)

    step = 1 if granularity is PeriodGranularity.MONTH else 3
    month_index = period_start.month - 1 + step
    return period_start.replace(
        year=period_start.year + month_index // 12, month=month_index % 12 + 1
    )


def period_range(
    start: date, end: date, granularity: PeriodGranularity
) -> list[date]:
    """Return every period start from the period of ``start`` to that of ``end``."""
    current = truncate_date(start, granularity)
    last = truncate_date(end, granularity)
    if current > last:
        return []
    periods = [current]
    # Never step past ``last``: the period after 9999-12 does not exist.
    while current < last:
        current = next_period(current, granularity)
        periods.append(current)
    return periods


def quantize_money(value: Decimal | None) -> Decimal | None:
    """Round a money amount to cents; ``None`` passes through."""
    if value is None:
        return None
    return value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def safe_ratio(
    numerator: Decimal | int | None, denominator: Decimal | int | None
) -> Decimal | None:
    """Exact ``numerator / denominator``, or ``None`` if either side is missing
    or the denominator is zero."""
    if numerator is None or denominator is None or denominator == 0:
        return None
    return Decimal(numerator) / Decimal(denominator)


def percentage(
    numerator: Decimal | int | None, denominator: Decimal | int | None
) -> Decimal | None:
    """``100 * numerator / denominator`` rounded to 2 places, ``None`` on zero."""
    ratio = safe_ratio(numerator, denominator)
    if ratio is None:
        return None
    return (ratio * 100).quantize(PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP)


def pct_change(
    current: Decimal | int | None, previous: Decimal | int | None
) -> Decimal | None:
    """Period-over-period change ``100 * (current - previous) / previous``.

    ``None`` when ``previous`` is zero or missing, or ``current`` is missing.

    >>> pct_change(Decimal("110"), Decimal("100"))
    Decimal('10.00')
    >>> pct_change(5, 0) is None
    True
    """
    if current is None or previous is None:
        return None
    return percentage(Decimal(current) - Decimal(previous), previous)


def _period_key(granularity: PeriodGranularity) -> Callable[[Transaction], date]:
    return lambda txn: truncate_date(txn.transaction_date, granularity)


#: Grouping dimensions available on :class:`Transaction`.
GROUP_KEYS: Mapping[str, Callable[[Transaction], Hashable]] = {
    "transaction_id": attrgetter("transaction_id"),
    "customer_id": attrgetter("customer_id"),
    "merchant_id": attrgetter("merchant_id"),
    "category_id": attrgetter("category_id"),
    "is_fraud": attrgetter("is_fraud"),
    "transaction_date": attrgetter("transaction_date"),
    "hour": attrgetter("hour"),
    **{granularity.value: _period_key(granularity) for granularity in PeriodGranularity},
}


def resolve_group_key(
    key: str,
    derived_keys: Mapping[str, Callable[[Transaction], Hashable]] | None = None,
) -> Callable[[Transaction], Hashable]:
    """Return the key extractor for a grouping dimension name.

    ``derived_keys`` extends the built-in dimensions with caller-defined
    ones (amount buckets, joined customer attributes, ...).
    """
    available = {**GROUP_KEYS, **(derived_keys or {})}
    try:
        return available[key]
    except (KeyError, TypeError):
        raise InvalidGroupKey(key, available.keys()) from None


@dataclass(frozen=True)
class Measure:
    """A named aggregate computed per group.

    Use the factory functions (:func:`sum_amount`, :func:`count_rows`, ...)
    rather than building measures by hand.

    Attributes
    ----------
    name:
        Output column name.
    kind:
        One of ``sum``, ``count``, ``avg``, ``min``, ``max``,
        ``count_where``, ``sum_where``, ``count_distinct``, ``first_date``,
        ``last_date``.
    predicate:
        Row filter for the ``*_where`` kinds.
    attribute:
        Transaction attribute for ``count_distinct``.
    """

    name: str
    kind: str
    predicate: Callable[[Transaction], bool] | None = None
    attribute: str | None = None

    def __post_init__(self) -> None:
        valid = {
            "sum",
            "count",
            "avg",
            "min",
            "max",
            "count_where",
            "sum_where",
            "count_distinct",
            "first_date",
            "last_date",
        }
        if self.kind not in valid:
            raise ValueError(f"Unknown measure kind: {self.kind} (measure={self.name})")
        if self.kind in ("count_where", "sum_where") and self.predicate is None:
            raise ValueError(f"Measure {self.name} requires a predicate")
        if self.kind == "count_distinct" and self.attribute is None:
            raise ValueError(f"Measure {self.name} requires an attribute")
        if self.kind == "count_distinct" and self.attribute not in DISTINCT_ATTRIBUTES:
            raise InvalidGroupKey(self.attribute, DISTINCT_ATTRIBUTES)


def sum_amount(name: str = "total_amount") -> Measure:
    return Measure(name, "sum")


def count_rows(name: str = "txn_count") -> Measure:
    return Measure(name, "count")


def avg_amount(name: str = "avg_amount") -> Measure:
    return Measure(name, "avg")


def min_amount(name: str = "min_amount") -> Measure:
    return Measure(name, "min")


def max_amount(name: str = "max_amount") -> Measure:
    return Measure(name, "max")


def count_where(name: str, predicate: Callable[[Transaction], bool]) -> Measure:
    return Measure(name, "count_where", predicate=predicate)


def sum_amount_where(name: str, predicate: Callable[[Transaction], bool]) -> Measure:
    return Measure(name, "sum_where", predicate=predicate)


def count_distinct(name: str, attribute: str) -> Measure:
    return Measure(name, "count_distinct", attribute=attribute)


def first_date(name: str = "first_txn") -> Measure:
    return Measure(name, "first_date")


def last_date(name: str = "last_txn") -> Measure:
    return Measure(name, "last_date")


def is_fraudulent(txn: Transaction) -> bool:
    return txn.is_fraud


class _GroupState:
    """Running totals for one group."""

    __slots__ = (
        "rows",
        "total",
        "matched",
        "matched_total",
        "low",
        "high",
        "distinct",
        "first",
        "last",
    )

    def __init__(self, n_measures: int) -> None:
        self.rows = 0
        self.total = Decimal("0")
        self.matched = [0] * n_measures
        self.matched_total: list[Decimal | None] = [None] * n_measures
        self.low: Decimal | None = None
        self.high: Decimal | None = None
        self.distinct: list[set[Any]] = [set() for _ in range(n_measures)]
        self.first: date | None = None
        self.last: date | None = None

    def add(self, txn: Transaction, measures: Sequence[Measure]) -> None:
        self.rows += 1
        self.total += txn.amount
        if self.low is None or txn.amount < self.low:
            self.low = txn.amount
        if self.high is None or txn.amount > self.high:
            self.high = txn.amount
        if self.first is None or txn.transaction_date < self.first:
            self.first = txn.transaction_date
        if self.last is None or txn.transaction_date > self.last:
            self.last = txn.transaction_date

        for idx, measure in enumerate(measures):
            if measure.kind == "count_where" and measure.predicate(txn):
                self.matched[idx] += 1
            elif measure.kind == "sum_where" and measure.predicate(txn):
                current = self.matched_total[idx]
                self.matched_total[idx] = (
                    txn.amount if current is None else current + txn.amount
                )
            elif measure.kind == "count_distinct":
                self.distinct[idx].add(getattr(txn, measure.attribute))

    def result(self, measures: Sequence[Measure]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for idx, measure in enumerate(measures):
            if self.rows == 0:
                values[measure.name] = 0 if measure.kind in COUNTING_KINDS else None
                continue
            kind = measure.kind
            if kind == "count":
                values[measure.name] = self.rows
            elif kind == "sum":
                values[measure.name] = self.total
            elif kind == "avg":
                values[measure.name] = self.total / self.rows
            elif kind == "min":
                values[measure.name] = self.low
            elif kind == "max":
                values[measure.name] = self.high
            elif kind == "count_where":
                values[measure.name] = self.matched[idx]
            elif kind == "sum_where":
                values[measure.name] = self.matched_total[idx]
            elif kind == "count_distinct":
                values[measure.name] = len(self.distinct[idx])
            elif kind == "first_date":
                values[measure.name] = self.first
            else:
                values[measure.name] = self.last
        return values


def aggregate(
    transactions: Iterable[Transaction],
    group_keys: Sequence[str],
    measures: Sequence[Measure],
    *,
    coverage: Iterable[tuple[Hashable, ...]] | None = None,
    derived_keys: Mapping[str, Callable[[Transaction], Hashable]] | None = None,
) -> dict[tuple[Hashable, ...], dict[str, Any]]:
    """Group transactions and compute measures per group.

    Parameters
    ----------
    transactions:
        Fact rows to aggregate. May be empty.
    group_keys:
        Non-empty sequence of dimension names from :data:`GROUP_KEYS`.
    measures:
        Measures to compute; names must be unique.
    coverage:
        Optional key tuples (a dimension cross join) that must appear in the
        result even without rows. They are emitted first, in the given
        order, followed by any other groups present in the data.
    derived_keys:
        Extra named dimensions computed from each transaction, usable in
        ``group_keys`` alongside the built-in ones.

    Returns
    -------
    dict[tuple, dict[str, Any]]
        Mapping of group-key tuple to ``{measure name: value}``. Without
        coverage, groups appear in order of first occurrence.

    Raises
    ------
    InvalidGroupKey
        If ``group_keys`` is empty or a grouping dimension is unknown.
    ValueError
        If ``measures`` is empty or measure names repeat.
    """
    if isinstance(group_keys, str):
        raise ValueError("group_keys must be a sequence of dimension names, not a string")
    if not group_keys:
        raise InvalidGroupKey(None, GROUP_KEYS.keys())
    if not measures:
        raise ValueError("At least one measure is required")
    names = [m.name for m in measures]
    if len(set(names)) != len(names):
        raise ValueError(f"Measure names must be unique: {names}")

    extractors = [resolve_group_key(key, derived_keys) for key in group_keys]

    groups: dict[tuple[Hashable, ...], _GroupState] = {}
    if coverage is not None:
        for key in coverage:
            if len(key) != len(extractors):
                raise ValueError(
                    f"Coverage key {key!r} does not match group_keys {list(group_keys)}"
                )
            groups.setdefault(tuple(key), _GroupState(len(measures)))

    for txn in transactions:
        key = tuple(extract(txn) for extract in extractors)
        state = groups.get(key)
        if state is None:
            state = groups[key] = _GroupState(len(measures))
        state.add(txn, measures)

    return {key: state.result(measures) for key, state in groups.items()}
