"""RFM (Recency-Frequency-Monetary) scoring of card holders.

RFM analysis segments customers on three dimensions:
- Recency: days since the customer's last transaction
- Frequency: number of transactions
- Monetary: total amount spent

Each dimension is bucketed into quintiles with SQL ``NTILE`` semantics.
Bucket 1 is always the "best" bucket: most recent, most frequent and
highest spend, so ``rfm_code == "111"`` marks the top customers.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Hashable, Sequence

from transaction_audit.errors import EmptyDataset
from transaction_audit.foundation.aggregation import (
    aggregate,
    count_rows,
    last_date,
    sum_amount,
)
from transaction_audit.foundation.records import Transaction

QUINTILES = 5


@dataclass(frozen=True)
class CustomerRFM:
    """RFM values and quintiles for a single customer.

    Attributes
    ----------
    customer_id:
        Customer identifier
    recency_days:
        Whole days between the last transaction and the as-of date
    frequency:
        Number of transactions
    monetary:
        Total spend
    r_quintile:
        Recency bucket (1 = most recent)
    f_quintile:
        Frequency bucket (1 = most frequent)
    m_quintile:
        Monetary bucket (1 = highest spend)
    """

    customer_id: int
    recency_days: int
    frequency: int
    monetary: Decimal
    r_quintile: int
    f_quintile: int
    m_quintile: int

    def __post_init__(self) -> None:
        """Validate RFM values."""
        if self.recency_days < 0:
            raise ValueError(
                f"Recency cannot be negative: {self.recency_days} (customer_id={self.customer_id})"
            )
        if self.frequency <= 0:
            raise ValueError(
                f"Frequency must be positive: {self.frequency} (customer_id={self.customer_id})"
            )
        if self.monetary < 0:
            raise ValueError(
                f"Monetary value cannot be negative: {self.monetary} (customer_id={self.customer_id})"
            )
        for name, value in (
            ("r_quintile", self.r_quintile),
            ("f_quintile", self.f_quintile),
            ("m_quintile", self.m_quintile),
        ):
            if not 1 <= value <= QUINTILES:
                raise ValueError(
                    f"{name} must be between 1 and {QUINTILES}: {value} (customer_id={self.customer_id})"
                )

    @property
    def rfm_code(self) -> str:
        """Combined score string, e.g. ``"111"`` for the best customers."""
        return f"{self.r_quintile}{self.f_quintile}{self.m_quintile}"


def ntile(ordered_keys: Sequence[Hashable], buckets: int) -> dict[Hashable, int]:
    """Assign 1-based buckets to already-ordered keys like SQL ``NTILE``.

    The first ``len(keys) % buckets`` buckets receive one extra member, so
    bucket sizes differ by at most one. With fewer keys than buckets, only
    buckets ``1..len(keys)`` are used.

    >>> ntile(["a", "b", "c", "d", "e", "f", "g"], 5)
    {'a': 1, 'b': 1, 'c': 2, 'd': 2, 'e': 3, 'f': 4, 'g': 5}
    """
    if buckets <= 0:
        raise ValueError(f"buckets must be positive: {buckets}")
    size, remainder = divmod(len(ordered_keys), buckets)
    assignments: dict[Hashable, int] = {}
    position = 0
    for bucket in range(1, buckets + 1):
        bucket_size = size + (1 if bucket <= remainder else 0)
        for key in ordered_keys[position : position + bucket_size]:
            assignments[key] = bucket
        position += bucket_size
    return assignments


def default_as_of_date(transactions: Sequence[Transaction]) -> date:
    """Day after the latest transaction date."""
    if not transactions:
        raise EmptyDataset("Cannot derive an as-of date from an empty transaction set")
    return max(t.transaction_date for t in transactions) + timedelta(days=1)


def compute_rfm(
    transactions: Sequence[Transaction],
    as_of_date: date | None = None,
) -> list[CustomerRFM]:
    """Compute recency, frequency, monetary and quintiles per customer.

    Only customers present in ``transactions`` are scored. Customers with no
    activity have no defined recency and must be handled by the caller (see
    :func:`transaction_audit.analyses.customers.customer_activity`).

    Parameters
    ----------
    transactions:
        Ledger to score.
    as_of_date:
        Reference "today" for recency. Defaults to the day after the latest
        transaction date.

    Returns
    -------
    list[CustomerRFM]
        One record per customer, sorted by customer_id.

    Raises
    ------
    EmptyDataset
        If ``transactions`` is empty.
    ValueError
        If a transaction is dated after ``as_of_date``.

    Notes
    -----
    Quintile orderings are recency ascending, frequency descending and
    monetary descending. Ties are broken by customer_id ascending so bucket
    assignment is reproducible across runs.

    Examples
    --------
    >>> from datetime import date, time
    >>> txns = [
    ...     Transaction(1, 7, 1, 1, date(2019, 1, 1), time(9), Decimal("10.00"), False),
    ...     Transaction(2, 7, 1, 1, date(2019, 1, 2), time(9), Decimal("5.00"), False),
    ... ]
    >>> rfm = compute_rfm(txns, as_of_date=date(2019, 1, 3))
    >>> rfm[0].recency_days, rfm[0].frequency, rfm[0].monetary
    (1, 2, Decimal('15.00'))
    """
    if not transactions:
        raise EmptyDataset("RFM quintiles are undefined for an empty transaction set")

    if as_of_date is None:
        as_of_date = default_as_of_date(transactions)

    per_customer = aggregate(
        transactions,
        ["customer_id"],
        [count_rows("frequency"), sum_amount("monetary"), last_date("last_txn")],
    )

    recency: dict[int, int] = {}
    for (customer_id,), values in per_customer.items():
        last_txn = values["last_txn"]
        if last_txn > as_of_date:
            raise ValueError(
                f"Transaction date ({last_txn}) cannot be after as_of_date "
                f"({as_of_date}) for customer {customer_id}"
            )
        recency[customer_id] = (as_of_date - last_txn).days

    customer_ids = sorted(recency)
    r_buckets = ntile(
        sorted(customer_ids, key=lambda cid: (recency[cid], cid)), QUINTILES
    )
    f_buckets = ntile(
        sorted(
            customer_ids,
            key=lambda cid: (-per_customer[(cid,)]["frequency"], cid),
        ),
        QUINTILES,
    )
    m_buckets = ntile(
        sorted(
            customer_ids,
            key=lambda cid: (-per_customer[(cid,)]["monetary"], cid),
        ),
        QUINTILES,
    )

    return [
        CustomerRFM(
            customer_id=cid,
            recency_days=recency[cid],
            frequency=per_customer[(cid,)]["frequency"],
            monetary=per_customer[(cid,)]["monetary"],
            r_quintile=r_buckets[cid],
            f_quintile=f_buckets[cid],
            m_quintile=m_buckets[cid],
        )
        for cid in customer_ids
    ]


@dataclass(frozen=True)
class RFMSummary:
    """Average quintile per dimension across all scored customers."""

    customer_count: int
    avg_r_quintile: Decimal
    avg_f_quintile: Decimal
    avg_m_quintile: Decimal


def summarize_rfm(rfm: Sequence[CustomerRFM]) -> RFMSummary:
    """Average the quintiles (2 dp). Balanced NTILE buckets average to ~3."""
    if not rfm:
        raise EmptyDataset("Cannot summarise an empty RFM table")

    def _avg(values: list[int]) -> Decimal:
        return (Decimal(sum(values)) / len(values)).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )

    return RFMSummary(
        customer_count=len(rfm),
        avg_r_quintile=_avg([r.r_quintile for r in rfm]),
        avg_f_quintile=_avg([r.f_quintile for r in rfm]),
        avg_m_quintile=_avg([r.m_quintile for r in rfm]),
    )


def recency_distribution(rfm: Sequence[CustomerRFM]) -> dict[int, int]:
    """Count customers per recency day, ordered by recency."""
    counts = Counter(r.recency_days for r in rfm)
    return {days: counts[days] for days in sorted(counts)}


def rfm_segment_counts(rfm: Sequence[CustomerRFM]) -> dict[str, int]:
    """Count customers per ``rfm_code``, ordered by code."""
    counts = Counter(r.rfm_code for r in rfm)
    return {code: counts[code] for code in sorted(counts)}
