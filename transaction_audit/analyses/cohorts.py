"""Acquisition cohorts and monthly retention.

A customer's cohort is the calendar month of their first transaction.
Retention counts, for each cohort and each activity month of the observed
range, the distinct cohort members who transacted in that month.

Quick Start
-----------
>>> from transaction_audit.analyses.cohorts import cohort_retention
>>> cells = cohort_retention(transactions)  # doctest: +SKIP
>>> [(c.cohort_month, c.activity_month, c.active_customers) for c in cells]  # doctest: +SKIP
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence

from transaction_audit.analyses.timeseries import TimeSeriesPoint, to_series
from transaction_audit.foundation.aggregation import (
    PeriodGranularity,
    aggregate,
    count_distinct,
    first_date,
    percentage,
    period_range,
    truncate_date,
)
from transaction_audit.foundation.records import Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CohortRetentionCell:
    """Activity of one acquisition cohort in one calendar month.

    Attributes
    ----------
    cohort_month:
        First day of the month of the cohort's first transactions.
    activity_month:
        First day of the month being measured.
    active_customers:
        Distinct cohort members with at least one transaction in
        ``activity_month``. Always 0 for months before ``cohort_month``.
    cohort_size:
        Number of customers acquired in ``cohort_month``.
    retention_pct:
        ``100 * active_customers / cohort_size`` (2 dp).
    """

    cohort_month: date
    activity_month: date
    active_customers: int
    cohort_size: int
    retention_pct: Decimal | None

    def __post_init__(self) -> None:
        """Validate cohort cell constraints."""
        if self.active_customers < 0:
            raise ValueError(
                f"active_customers must be >= 0, got {self.active_customers}"
            )
        if self.active_customers > self.cohort_size:
            raise ValueError(
                f"active_customers ({self.active_customers}) cannot exceed "
                f"cohort_size ({self.cohort_size}) for cohort {self.cohort_month}"
            )
        if self.activity_month < self.cohort_month and self.active_customers:
            raise ValueError(
                f"Cohort {self.cohort_month} cannot be active before acquisition "
                f"(activity_month={self.activity_month})"
            )

    @property
    def months_since_acquisition(self) -> int:
        """Whole months between the cohort month and the activity month."""
        return (self.activity_month.year - self.cohort_month.year) * 12 + (
            self.activity_month.month - self.cohort_month.month
        )


def first_transaction_months(transactions: Sequence[Transaction]) -> dict[int, date]:
    """Map each customer to the month of their first transaction."""
    first = aggregate(transactions, ["customer_id"], [first_date("first_txn")])
    return {
        customer_id: truncate_date(values["first_txn"], PeriodGranularity.MONTH)
        for (customer_id,), values in first.items()
    }


def cohort_retention(transactions: Sequence[Transaction]) -> list[CohortRetentionCell]:
    """Cohort × activity-month retention grid.

    Every cohort is paired with every month of the observed date range, so
    months before a cohort was acquired appear explicitly with zero active
    customers.

    Returns
    -------
    list[CohortRetentionCell]
        Cells ordered by ``(cohort_month, activity_month)``; empty input
        yields an empty list.
    """
    if not transactions:
        return []

    cohort_of = first_transaction_months(transactions)
    cohort_sizes: dict[date, int] = {}
    for cohort_month in cohort_of.values():
        cohort_sizes[cohort_month] = cohort_sizes.get(cohort_month, 0) + 1

    dates = [t.transaction_date for t in transactions]
    months = period_range(min(dates), max(dates), PeriodGranularity.MONTH)
    cohorts = sorted(cohort_sizes)

    grid = aggregate(
        transactions,
        ["cohort_month", "month"],
        [count_distinct("active_customers", "customer_id")],
        coverage=[(cohort, month) for cohort in cohorts for month in months],
        derived_keys={"cohort_month": lambda txn: cohort_of[txn.customer_id]},
    )
    logger.debug(
        f"Cohort retention over {len(cohorts)} cohorts and {len(months)} months"
    )

    return [
        CohortRetentionCell(
            cohort_month=cohort,
            activity_month=month,
            active_customers=grid[(cohort, month)]["active_customers"],
            cohort_size=cohort_sizes[cohort],
            retention_pct=percentage(
                grid[(cohort, month)]["active_customers"], cohort_sizes[cohort]
            ),
        )
        for cohort in cohorts
        for month in months
    ]


def new_customers_by_month(
    transactions: Sequence[Transaction],
) -> list[TimeSeriesPoint]:
    """Newly acquired customers per month, with month-over-month change."""
    if not transactions:
        return []
    cohort_of = first_transaction_months(transactions)
    dates = [t.transaction_date for t in transactions]
    months = period_range(min(dates), max(dates), PeriodGranularity.MONTH)
    counts = {month: 0 for month in months}
    for cohort_month in cohort_of.values():
        counts[cohort_month] += 1
    return to_series(months, [counts[month] for month in months])
