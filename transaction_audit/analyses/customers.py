"""Customer KPIs: activity and churn risk, spend rankings, loyalty.

Customers are the left side of every join here: a customer without any
transaction still appears in :func:`customer_activity`, with
``last_txn=None``, rather than silently disappearing.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Sequence

from transaction_audit.errors import EmptyDataset
from transaction_audit.foundation.aggregation import (
    aggregate,
    count_rows,
    last_date,
    percentage,
    quantize_money,
    sum_amount,
)
from transaction_audit.foundation.dataset import TransactionDataset
from transaction_audit.foundation.records import Customer, Transaction

logger = logging.getLogger(__name__)

DEFAULT_INACTIVITY_DAYS = 90
DEFAULT_TOP_CUSTOMER_PCT = 20


@dataclass(frozen=True)
class CustomerActivity:
    """Recency of a single customer relative to an as-of date.

    Attributes
    ----------
    customer_id:
        Customer identifier.
    full_name:
        Display name from the customer dimension.
    last_txn:
        Date of the latest transaction, ``None`` for never-active customers.
    days_since_last_txn:
        Whole days between ``last_txn`` and the as-of date, ``None`` when
        there is no activity.
    is_churn_risk:
        True when the last transaction is older than the inactivity
        threshold, or when there is no activity at all.
    """

    customer_id: int
    full_name: str
    last_txn: date | None
    days_since_last_txn: int | None
    is_churn_risk: bool

    @property
    def has_activity(self) -> bool:
        return self.last_txn is not None


def customer_activity(
    customers: Sequence[Customer],
    transactions: Sequence[Transaction],
    as_of_date: date,
    inactivity_days: int = DEFAULT_INACTIVITY_DAYS,
) -> list[CustomerActivity]:
    """Last transaction and churn flag for every customer.

    A customer is a churn risk when ``last_txn < as_of_date - inactivity_days``
    or when they never transacted.

    Parameters
    ----------
    customers:
        Customer dimension; every row yields one result.
    transactions:
        Ledger used to find each customer's latest activity.
    as_of_date:
        Reference "today". Must not precede any transaction.
    inactivity_days:
        Churn threshold in days.

    Returns
    -------
    list[CustomerActivity]
        One entry per customer, in customer order.

    Raises
    ------
    ValueError
        If ``inactivity_days`` is negative or a transaction is dated after
        ``as_of_date``.
    """
    if inactivity_days < 0:
        raise ValueError(f"inactivity_days cannot be negative: {inactivity_days}")

    coverage = [(c.customer_id,) for c in customers]
    latest = aggregate(
        transactions, ["customer_id"], [last_date("last_txn")], coverage=coverage
    )
    activity: list[CustomerActivity] = []
    for customer in customers:
        last_txn = latest[(customer.customer_id,)]["last_txn"]
        if last_txn is not None and last_txn > as_of_date:
            raise ValueError(
                f"Transaction date ({last_txn}) cannot be after as_of_date "
                f"({as_of_date}) for customer {customer.customer_id}"
            )
        activity.append(
            CustomerActivity(
                customer_id=customer.customer_id,
                full_name=customer.full_name,
                last_txn=last_txn,
                days_since_last_txn=(
                    (as_of_date - last_txn).days if last_txn is not None else None
                ),
                is_churn_risk=(
                    last_txn is None or (as_of_date - last_txn).days > inactivity_days
                ),
            )
        )

    never_active = sum(1 for a in activity if not a.has_activity)
    if never_active:
        logger.info(f"{never_active} customers have no transactions")
    return activity


def churn_risk_customers(
    customers: Sequence[Customer],
    transactions: Sequence[Transaction],
    as_of_date: date,
    inactivity_days: int = DEFAULT_INACTIVITY_DAYS,
) -> list[CustomerActivity]:
    """Churn-risk customers, longest inactive first, never-active last."""
    at_risk = [
        a
        for a in customer_activity(customers, transactions, as_of_date, inactivity_days)
        if a.is_churn_risk
    ]
    at_risk.sort(
        key=lambda a: (
            a.days_since_last_txn is None,
            -(a.days_since_last_txn or 0),
            a.customer_id,
        )
    )
    return at_risk


def active_customer_count(
    customers: Sequence[Customer],
    transactions: Sequence[Transaction],
    as_of_date: date,
    inactivity_days: int = DEFAULT_INACTIVITY_DAYS,
) -> int:
    """Number of customers that are not a churn risk on ``as_of_date``."""
    return sum(
        1
        for a in customer_activity(customers, transactions, as_of_date, inactivity_days)
        if not a.is_churn_risk
    )


@dataclass(frozen=True)
class CustomerCategoryPreference:
    """A customer's highest-spend category."""

    customer_id: int
    category_id: int
    spend: Decimal


def top_category_per_customer(
    transactions: Sequence[Transaction],
) -> list[CustomerCategoryPreference]:
    """Category with the largest spend per customer.

    Ties on spend go to the lowest ``category_id``. Results are sorted by
    customer id.
    """
    spend = aggregate(
        transactions, ["customer_id", "category_id"], [sum_amount("spend")]
    )
    best: dict[int, CustomerCategoryPreference] = {}
    for (customer_id, category_id), values in spend.items():
        current = best.get(customer_id)
        candidate = CustomerCategoryPreference(
            customer_id=customer_id, category_id=category_id, spend=values["spend"]
        )
        if (
            current is None
            or candidate.spend > current.spend
            or (
                candidate.spend == current.spend
                and candidate.category_id < current.category_id
            )
        ):
            best[customer_id] = candidate
    return [best[cid] for cid in sorted(best)]


def repeat_purchase_rate(transactions: Sequence[Transaction]) -> Decimal | None:
    """Share (%) of transacting customers with more than one transaction.

    ``None`` when there are no transactions.

    >>> repeat_purchase_rate([]) is None
    True
    """
    counts = aggregate(transactions, ["customer_id"], [count_rows("txn_count")])
    repeaters = sum(1 for values in counts.values() if values["txn_count"] > 1)
    return percentage(repeaters, len(counts))


def average_lifetime_value(transactions: Sequence[Transaction]) -> Decimal | None:
    """Mean total spend per transacting customer, rounded to cents.

    This is a simple historical LTV proxy; ``None`` without transactions.
    """
    spend = aggregate(transactions, ["customer_id"], [sum_amount("total_spend")])
    if not spend:
        return None
    total = sum((values["total_spend"] for values in spend.values()), Decimal("0"))
    return quantize_money(total / len(spend))


def revenue_concentration(
    transactions: Sequence[Transaction],
    top_pct: int = DEFAULT_TOP_CUSTOMER_PCT,
) -> Decimal | None:
    """Share (%) of revenue generated by the top ``top_pct`` percent of customers.

    Customers are ranked by total spend (ties by customer id). The number
    of top customers is ``ceil(top_pct / 100 * n)``, so at least one
    customer is always included.

    Parameters
    ----------
    transactions:
        Ledger to analyze.
    top_pct:
        Percentile of customers, between 1 and 100.

    Returns
    -------
    Decimal or None
        Percentage of total revenue (2 dp); ``None`` when there is no
        revenue to share.

    Examples
    --------
    >>> from datetime import time
    >>> txns = [
    ...     Transaction(1, 1, 1, 1, date(2019, 1, 1), time(9), Decimal("100"), False),
    ...     Transaction(2, 2, 1, 1, date(2019, 1, 1), time(9), Decimal("200"), False),
    ...     Transaction(3, 3, 1, 1, date(2019, 1, 1), time(9), Decimal("700"), False),
    ... ]
    >>> revenue_concentration(txns, top_pct=33)
    Decimal('70.00')
    """
    if not 0 < top_pct <= 100:
        raise ValueError(f"top_pct must be between 1 and 100: {top_pct}")

    spend = aggregate(transactions, ["customer_id"], [sum_amount("total_spend")])
    ranked = sorted(
        ((cid, values["total_spend"]) for (cid,), values in spend.items()),
        key=lambda item: (-item[1], item[0]),
    )
    top_count = math.ceil(len(ranked) * top_pct / 100)
    total_revenue = sum((amount for _, amount in ranked), Decimal("0"))
    top_revenue = sum((amount for _, amount in ranked[:top_count]), Decimal("0"))
    return percentage(top_revenue, total_revenue)


@dataclass(frozen=True)
class CustomerSpendRank:
    """Customer spend with competition (``rank``) and dense ranks."""

    customer_id: int
    total_spend: Decimal
    rank: int
    dense_rank: int


def rank_customers_by_spend(
    transactions: Sequence[Transaction],
) -> list[CustomerSpendRank]:
    """Rank customers by total spend, highest first.

    ``rank`` leaves gaps after ties (SQL ``RANK``); ``dense_rank`` does not
    (SQL ``DENSE_RANK``). Tied customers are listed by customer id.

    Raises
    ------
    EmptyDataset
        If there are no transactions to rank.
    """
    if not transactions:
        raise EmptyDataset("Cannot rank customers without transactions")

    spend = aggregate(transactions, ["customer_id"], [sum_amount("total_spend")])
    ordered = sorted(
        ((cid, values["total_spend"]) for (cid,), values in spend.items()),
        key=lambda item: (-item[1], item[0]),
    )

    ranks: list[CustomerSpendRank] = []
    previous: Decimal | None = None
    rank = dense_rank = 0
    for position, (customer_id, total_spend) in enumerate(ordered, start=1):
        if total_spend != previous:
            rank = position
            dense_rank += 1
            previous = total_spend
        ranks.append(
            CustomerSpendRank(
                customer_id=customer_id,
                total_spend=total_spend,
                rank=rank,
                dense_rank=dense_rank,
            )
        )
    return ranks


@dataclass(frozen=True)
class LocationRevenue:
    """Revenue from customers living in one city and state."""

    city: str | None
    state: str | None
    revenue: Decimal
    txn_count: int


def revenue_by_customer_location(
    dataset: TransactionDataset, *, limit: int | None = None
) -> list[LocationRevenue]:
    """Revenue per customer (city, state), highest revenue first.

    Transactions whose customer has no dimension row are skipped with a
    warning. Ties are ordered by state, then city, with unknown values last.
    """
    if limit is not None and limit < 0:
        raise ValueError(f"limit cannot be negative: {limit}")

    joined = [t for t in dataset.transactions if dataset.customer(t.customer_id)]
    skipped = len(dataset.transactions) - len(joined)
    if skipped:
        logger.warning(
            f"{skipped} transactions have no customer row and are excluded "
            f"from the location breakdown"
        )

    grouped = aggregate(
        joined,
        ["location"],
        [sum_amount("revenue"), count_rows("txn_count")],
        derived_keys={
            "location": lambda txn: (
                dataset.customer(txn.customer_id).city,
                dataset.customer(txn.customer_id).state,
            )
        },
    )
    locations = [
        LocationRevenue(city, state, values["revenue"], values["txn_count"])
        for ((city, state),), values in grouped.items()
    ]
    locations.sort(
        key=lambda loc: (
            -loc.revenue,
            loc.state is None,
            loc.state or "",
            loc.city is None,
            loc.city or "",
        )
    )
    return locations if limit is None else locations[:limit]


@dataclass(frozen=True)
class TransactionGap:
    """A transaction with its customer's neighbouring transactions.

    Attributes
    ----------
    prev_txn, next_txn:
        Dates of the customer's previous and next transactions, ``None``
        at either end of the customer's history.
    days_since_prev:
        Calendar days since the previous transaction.
    hours_since_prev:
        Hours since the previous transaction's timestamp, 2 dp.
    """

    customer_id: int
    transaction_id: int
    transaction_date: date
    prev_txn: date | None
    next_txn: date | None
    days_since_prev: int | None
    hours_since_prev: Decimal | None


def _timestamp(txn: Transaction) -> datetime:
    return datetime.combine(txn.transaction_date, txn.transaction_time)


def transaction_gaps(transactions: Sequence[Transaction]) -> list[TransactionGap]:
    """Time between consecutive transactions of each customer.

    Each customer's transactions are ordered by timestamp, then transaction
    id. The output follows the same order, grouped by customer id.
    """
    ordered = sorted(
        transactions,
        key=lambda t: (t.customer_id, _timestamp(t), t.transaction_id),
    )
    gaps: list[TransactionGap] = []
    for index, txn in enumerate(ordered):
        prev = ordered[index - 1] if index > 0 else None
        if prev is not None and prev.customer_id != txn.customer_id:
            prev = None
        following = ordered[index + 1] if index + 1 < len(ordered) else None
        if following is not None and following.customer_id != txn.customer_id:
            following = None

        hours = None
        if prev is not None:
            seconds = (_timestamp(txn) - _timestamp(prev)).total_seconds()
            hours = quantize_money(Decimal(str(seconds)) / Decimal(3600))
        gaps.append(
            TransactionGap(
                customer_id=txn.customer_id,
                transaction_id=txn.transaction_id,
                transaction_date=txn.transaction_date,
                prev_txn=prev.transaction_date if prev else None,
                next_txn=following.transaction_date if following else None,
                days_since_prev=(
                    (txn.transaction_date - prev.transaction_date).days
                    if prev
                    else None
                ),
                hours_since_prev=hours,
            )
        )
    return gaps
