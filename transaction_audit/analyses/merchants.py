"""Merchant and category performance KPIs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence

from transaction_audit.foundation.aggregation import (
    aggregate,
    count_rows,
    count_where,
    is_fraudulent,
    last_date,
    percentage,
    sum_amount,
)
from transaction_audit.foundation.dataset import TransactionDataset
from transaction_audit.foundation.records import Category, Merchant, Transaction

logger = logging.getLogger(__name__)

DEFAULT_INACTIVITY_DAYS = 90


@dataclass(frozen=True)
class MerchantActivity:
    """Latest activity of a merchant; ``last_txn`` is ``None`` if it never sold."""

    merchant_id: int
    merchant_name: str
    last_txn: date | None


def inactive_merchants(
    merchants: Sequence[Merchant],
    transactions: Sequence[Transaction],
    as_of_date: date | None = None,
    inactivity_days: int = DEFAULT_INACTIVITY_DAYS,
) -> list[MerchantActivity]:
    """Merchants with no transaction in the last ``inactivity_days`` days.

    Parameters
    ----------
    merchants:
        Merchant dimension; each row is checked.
    transactions:
        Ledger of merchant activity.
    as_of_date:
        Reference date. Defaults to the latest transaction date in the
        ledger (not the wall clock), so historical data is judged against
        its own horizon.
    inactivity_days:
        A merchant is inactive when ``last_txn < as_of_date - inactivity_days``
        or it has no transactions at all.

    Returns
    -------
    list[MerchantActivity]
        Inactive merchants in merchant order.
    """
    if inactivity_days < 0:
        raise ValueError(f"inactivity_days cannot be negative: {inactivity_days}")
    if as_of_date is None and transactions:
        as_of_date = max(t.transaction_date for t in transactions)

    latest = aggregate(
        transactions,
        ["merchant_id"],
        [last_date("last_txn")],
        coverage=[(m.merchant_id,) for m in merchants],
    )

    inactive: list[MerchantActivity] = []
    for merchant in merchants:
        last_txn = latest[(merchant.merchant_id,)]["last_txn"]
        if last_txn is None or (as_of_date - last_txn).days > inactivity_days:
            inactive.append(
                MerchantActivity(merchant.merchant_id, merchant.merchant_name, last_txn)
            )

    logger.debug(f"{len(inactive)}/{len(merchants)} merchants inactive as of {as_of_date}")
    return inactive


@dataclass(frozen=True)
class MerchantMonthRank:
    """Merchant revenue in one month and its rank among that month's merchants."""

    month: date
    merchant_id: int
    merchant_name: str | None
    revenue: Decimal
    month_rank: int


def merchant_monthly_rank(
    merchants: Sequence[Merchant],
    transactions: Sequence[Transaction],
) -> list[MerchantMonthRank]:
    """Rank merchants by revenue within each calendar month.

    Ranks follow SQL ``RANK`` (ties share a rank, the next rank skips).
    Results are ordered by month, rank and merchant id.
    """
    names = {m.merchant_id: m.merchant_name for m in merchants}
    monthly = aggregate(transactions, ["month", "merchant_id"], [sum_amount("revenue")])

    by_month: dict[date, list[tuple[int, Decimal]]] = {}
    for (month, merchant_id), values in monthly.items():
        by_month.setdefault(month, []).append((merchant_id, values["revenue"]))

    ranked: list[MerchantMonthRank] = []
    for month in sorted(by_month):
        entries = sorted(by_month[month], key=lambda item: (-item[1], item[0]))
        previous: Decimal | None = None
        rank = 0
        for position, (merchant_id, revenue) in enumerate(entries, start=1):
            if revenue != previous:
                rank = position
                previous = revenue
            ranked.append(
                MerchantMonthRank(
                    month=month,
                    merchant_id=merchant_id,
                    merchant_name=names.get(merchant_id),
                    revenue=revenue,
                    month_rank=rank,
                )
            )
    return ranked


@dataclass(frozen=True)
class MerchantCategoryShare:
    """Revenue of one category at one merchant, as a share of the merchant total."""

    merchant_id: int
    category_id: int
    category_name: str | None
    revenue: Decimal
    pct_of_merchant: Decimal | None


def merchant_category_mix(
    categories: Sequence[Category],
    transactions: Sequence[Transaction],
) -> list[MerchantCategoryShare]:
    """Category contribution to each merchant's revenue.

    Shares of a merchant sum to roughly 100 (up to per-row rounding).
    Ordered by merchant id, then revenue descending.
    """
    names = {c.category_id: c.category_name for c in categories}
    mix = aggregate(
        transactions, ["merchant_id", "category_id"], [sum_amount("revenue")]
    )
    merchant_totals: dict[int, Decimal] = {}
    for (merchant_id, _), values in mix.items():
        merchant_totals[merchant_id] = (
            merchant_totals.get(merchant_id, Decimal("0")) + values["revenue"]
        )

    shares = [
        MerchantCategoryShare(
            merchant_id=merchant_id,
            category_id=category_id,
            category_name=names.get(category_id),
            revenue=values["revenue"],
            pct_of_merchant=percentage(values["revenue"], merchant_totals[merchant_id]),
        )
        for (merchant_id, category_id), values in mix.items()
    ]
    shares.sort(key=lambda s: (s.merchant_id, -s.revenue, s.category_id))
    return shares


@dataclass(frozen=True)
class CategoryShare:
    """Category revenue and its share of total revenue."""

    category_id: int
    category_name: str | None
    revenue: Decimal
    pct_of_total: Decimal | None


def category_share(
    categories: Sequence[Category],
    transactions: Sequence[Transaction],
) -> list[CategoryShare]:
    """Revenue per category as a percentage of all revenue, largest first."""
    names = {c.category_id: c.category_name for c in categories}
    revenue = aggregate(transactions, ["category_id"], [sum_amount("revenue")])
    total = sum((values["revenue"] for values in revenue.values()), Decimal("0"))
    shares = [
        CategoryShare(
            category_id=category_id,
            category_name=names.get(category_id),
            revenue=values["revenue"],
            pct_of_total=percentage(values["revenue"], total),
        )
        for (category_id,), values in revenue.items()
    ]
    shares.sort(key=lambda s: (-s.revenue, s.category_id))
    return shares


WEEKDAY = "Weekday"
WEEKEND = "Weekend"


@dataclass(frozen=True)
class DayTypeRevenue:
    """Revenue and volume on weekdays or weekends."""

    day_type: str
    revenue: Decimal
    txn_count: int


def revenue_by_day_type(dataset: TransactionDataset) -> list[DayTypeRevenue]:
    """Weekday vs weekend revenue, classified through the date dimension.

    Transactions whose date has no calendar row are excluded with a
    warning. Only day types with transactions are returned, weekday first.
    """
    joined = [
        t for t in dataset.transactions if dataset.calendar_day(t.transaction_date)
    ]
    skipped = len(dataset.transactions) - len(joined)
    if skipped:
        logger.warning(
            f"{skipped} transactions have no date_table row and are excluded "
            f"from the weekday/weekend breakdown"
        )

    grouped = aggregate(
        joined,
        ["day_type"],
        [sum_amount("revenue"), count_rows("txn_count")],
        derived_keys={
            "day_type": lambda txn: (
                WEEKEND
                if dataset.calendar_day(txn.transaction_date).is_weekend
                else WEEKDAY
            )
        },
    )
    return [
        DayTypeRevenue(day_type, values["revenue"], values["txn_count"])
        for (day_type,), values in sorted(grouped.items())
    ]


@dataclass(frozen=True)
class CustomerMerchantPair:
    """Spend and fraud between one customer and one merchant."""

    customer_id: int
    merchant_id: int
    revenue: Decimal
    txn_count: int
    fraud_count: int
    fraud_rate_pct: Decimal | None


def customer_merchant_pairs(
    transactions: Sequence[Transaction],
    *,
    fraud_only: bool = False,
    limit: int | None = None,
) -> list[CustomerMerchantPair]:
    """Revenue and fraud for every (customer, merchant) pair in the ledger.

    Parameters
    ----------
    transactions:
        Ledger to group.
    fraud_only:
        Keep only pairs with at least one fraudulent transaction and order
        them by fraud count instead of revenue.
    limit:
        Return at most this many pairs.

    Returns
    -------
    list[CustomerMerchantPair]
        Highest revenue first (or highest fraud count with ``fraud_only``);
        ties by customer id, then merchant id.
    """
    if limit is not None and limit < 0:
        raise ValueError(f"limit cannot be negative: {limit}")

    grouped = aggregate(
        transactions,
        ["customer_id", "merchant_id"],
        [
            sum_amount("revenue"),
            count_rows("txn_count"),
            count_where("fraud_count", is_fraudulent),
        ],
    )
    pairs = [
        CustomerMerchantPair(
            customer_id=customer_id,
            merchant_id=merchant_id,
            revenue=values["revenue"],
            txn_count=values["txn_count"],
            fraud_count=values["fraud_count"],
            fraud_rate_pct=percentage(values["fraud_count"], values["txn_count"]),
        )
        for (customer_id, merchant_id), values in grouped.items()
    ]
    if fraud_only:
        pairs = [p for p in pairs if p.fraud_count > 0]
        pairs.sort(key=lambda p: (-p.fraud_count, p.customer_id, p.merchant_id))
    else:
        pairs.sort(key=lambda p: (-p.revenue, p.customer_id, p.merchant_id))
    return pairs if limit is None else pairs[:limit]
