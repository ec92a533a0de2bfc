"""Fraud-rate analysis sliced by dimension and over rolling windows.

Fraud rate is ``100 * fraud_count / total_count`` rounded to 2 decimal
places, and ``None`` when a slice has no transactions. Slices over a
complete partition of the ledger (every transaction in exactly one slice)
always sum back to the overall fraud count.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Hashable, Sequence

from transaction_audit.errors import InvalidGroupKey, InvalidWindowSize
from transaction_audit.foundation.aggregation import (
    aggregate,
    count_rows,
    count_where,
    is_fraudulent,
    max_amount,
    min_amount,
    pct_change,
    percentage,
    sum_amount_where,
)
from transaction_audit.foundation.dataset import TransactionDataset
from transaction_audit.foundation.records import Transaction
from transaction_audit.analyses.timeseries import TimeSeriesPoint

logger = logging.getLogger(__name__)

DEFAULT_BUCKET_COUNT = 10


class FraudDimension(str, Enum):
    """Dimensions a fraud rate can be sliced by."""

    CUSTOMER = "customer_id"
    MERCHANT = "merchant_id"
    CATEGORY = "category_id"
    HOUR = "hour"
    DAY = "day"
    MONTH = "month"
    AMOUNT_BUCKET = "amount_bucket"


class CustomerSegment(str, Enum):
    """Customer attributes available for joined fraud slicing."""

    STATE = "state"
    AGE_GROUP = "age_group"


@dataclass(frozen=True)
class FraudSlice:
    """Fraud counts and rate for one slice of the ledger.

    Attributes
    ----------
    dimension_key:
        Value of the slicing dimension (merchant id, hour, bucket index, ...).
    fraud_count:
        Fraudulent transactions in the slice.
    total_count:
        All transactions in the slice.
    fraud_rate_pct:
        ``100 * fraud_count / total_count`` (2 dp), ``None`` if the slice
        is empty.
    fraud_amount:
        Total amount of fraudulent transactions, ``None`` without fraud.
    """

    dimension_key: Hashable
    fraud_count: int
    total_count: int
    fraud_rate_pct: Decimal | None
    fraud_amount: Decimal | None = None

    def __post_init__(self) -> None:
        """Validate slice counts."""
        if self.total_count < 0 or self.fraud_count < 0:
            raise ValueError(
                f"Counts cannot be negative (dimension_key={self.dimension_key})"
            )
        if self.fraud_count > self.total_count:
            raise ValueError(
                f"fraud_count ({self.fraud_count}) cannot exceed total_count "
                f"({self.total_count}) (dimension_key={self.dimension_key})"
            )


@dataclass(frozen=True)
class AmountBucketSlice(FraudSlice):
    """Fraud slice for an amount bucket, with the observed amount range."""

    bucket_min: Decimal | None = None
    bucket_max: Decimal | None = None


_FRAUD_MEASURES = (
    count_rows("total_count"),
    count_where("fraud_count", is_fraudulent),
    sum_amount_where("fraud_amount", is_fraudulent),
)


def _to_slice(key: Hashable, values: dict[str, Any]) -> FraudSlice:
    return FraudSlice(
        dimension_key=key,
        fraud_count=values["fraud_count"],
        total_count=values["total_count"],
        fraud_rate_pct=percentage(values["fraud_count"], values["total_count"]),
        fraud_amount=values["fraud_amount"],
    )


def _sort_key(key: Hashable) -> tuple[int, Any]:
    # None keys (unknown joined attributes) sort last.
    return (1, "") if key is None else (0, key)


def amount_bucket(amount: Decimal, upper: Decimal, bucket_count: int) -> int:
    """Index (0-based) of the equal-width bucket of ``[0, upper]`` holding ``amount``.

    The index is clamped to ``[0, bucket_count - 1]`` so ``amount == upper``
    falls into the last bucket.

    >>> amount_bucket(Decimal("0"), Decimal("100"), 10)
    0
    >>> amount_bucket(Decimal("55"), Decimal("100"), 10)
    5
    >>> amount_bucket(Decimal("100"), Decimal("100"), 10)
    9
    """
    if bucket_count <= 0:
        raise ValueError(f"bucket_count must be positive: {bucket_count}")
    if upper <= 0:
        return 0
    index = int((amount * bucket_count) // upper)
    return min(max(index, 0), bucket_count - 1)


def overall_fraud_rate(transactions: Sequence[Transaction]) -> FraudSlice:
    """Fraud counts over the whole ledger; ``dimension_key`` is ``"all"``."""
    grouped = aggregate(
        transactions,
        ["all"],
        _FRAUD_MEASURES,
        coverage=[("all",)],
        derived_keys={"all": lambda txn: "all"},
    )
    return _to_slice("all", grouped[("all",)])


def compute_fraud_rate(
    transactions: Sequence[Transaction],
    slice_dimension: FraudDimension | str,
    *,
    bucket_count: int = DEFAULT_BUCKET_COUNT,
) -> list[FraudSlice]:
    """Fraud count and rate per value of ``slice_dimension``.

    Parameters
    ----------
    transactions:
        Ledger to slice.
    slice_dimension:
        A :class:`FraudDimension` or its string value.
    bucket_count:
        Number of equal-width buckets for ``AMOUNT_BUCKET`` slicing.

    Returns
    -------
    list[FraudSlice]
        One slice per dimension value present, sorted by dimension key.
        Amount-bucket slicing returns :class:`AmountBucketSlice` values.

    Raises
    ------
    InvalidGroupKey
        If ``slice_dimension`` is not a known dimension.

    Examples
    --------
    >>> from datetime import date, time
    >>> txns = [
    ...     Transaction(1, 1, 1, 1, date(2019, 1, 1), time(1), Decimal("100"), False),
    ...     Transaction(2, 1, 1, 1, date(2019, 1, 1), time(2), Decimal("50"), True),
    ... ]
    >>> [(s.fraud_count, s.total_count, s.fraud_rate_pct)
    ...  for s in compute_fraud_rate(txns, FraudDimension.CUSTOMER)]
    [(1, 2, Decimal('50.00'))]
    """
    try:
        dimension = FraudDimension(slice_dimension)
    except ValueError:
        raise InvalidGroupKey(
            slice_dimension, [d.value for d in FraudDimension]
        ) from None

    if dimension is FraudDimension.AMOUNT_BUCKET:
        return list(
            fraud_rate_by_amount_bucket(transactions, bucket_count=bucket_count)
        )

    grouped = aggregate(transactions, [dimension.value], _FRAUD_MEASURES)
    slices = [_to_slice(key, values) for (key,), values in grouped.items()]
    slices.sort(key=lambda s: _sort_key(s.dimension_key))
    return slices


def fraud_rate_by_amount_bucket(
    transactions: Sequence[Transaction],
    *,
    bucket_count: int = DEFAULT_BUCKET_COUNT,
) -> list[AmountBucketSlice]:
    """Fraud rate per equal-width amount bucket over ``[0, max(amount)]``.

    Only buckets that contain transactions are returned, ordered by index.
    """
    if bucket_count <= 0:
        raise ValueError(f"bucket_count must be positive: {bucket_count}")
    if not transactions:
        return []

    upper = max(t.amount for t in transactions)
    grouped = aggregate(
        transactions,
        ["amount_bucket"],
        [*_FRAUD_MEASURES, min_amount("bucket_min"), max_amount("bucket_max")],
        derived_keys={
            "amount_bucket": lambda txn: amount_bucket(txn.amount, upper, bucket_count)
        },
    )
    return [
        AmountBucketSlice(
            dimension_key=bucket,
            fraud_count=values["fraud_count"],
            total_count=values["total_count"],
            fraud_rate_pct=percentage(values["fraud_count"], values["total_count"]),
            fraud_amount=values["fraud_amount"],
            bucket_min=values["bucket_min"],
            bucket_max=values["bucket_max"],
        )
        for (bucket,), values in sorted(grouped.items())
    ]


def age_group(age: int | None) -> str | None:
    """Bucket a precomputed age into the reporting age groups."""
    if age is None:
        return None
    if age < 25:
        return "Under 25"
    if age <= 40:
        return "25-40"
    if age <= 60:
        return "41-60"
    return "60+"


def fraud_rate_by_customer_segment(
    dataset: TransactionDataset,
    segment: CustomerSegment | str,
) -> list[FraudSlice]:
    """Fraud rate per customer ``state`` or ``age_group``.

    Transactions whose customer is missing from the dimension (kept under
    the ``INCLUDE`` referential policy) are not attributed to any segment
    and are skipped with a warning.
    """
    try:
        segment = CustomerSegment(segment)
    except ValueError:
        raise InvalidGroupKey(segment, [s.value for s in CustomerSegment]) from None

    def segment_of(txn: Transaction) -> Hashable:
        customer = dataset.customer(txn.customer_id)
        if segment is CustomerSegment.STATE:
            return customer.state
        return age_group(customer.age)

    joined = [t for t in dataset.transactions if dataset.customer(t.customer_id)]
    skipped = len(dataset.transactions) - len(joined)
    if skipped:
        logger.warning(
            f"{skipped} transactions have no customer row and are excluded "
            f"from the {segment.value} fraud breakdown"
        )

    grouped = aggregate(
        joined,
        ["segment"],
        _FRAUD_MEASURES,
        derived_keys={"segment": segment_of},
    )
    slices = [_to_slice(key, values) for (key,), values in grouped.items()]
    slices.sort(key=lambda s: _sort_key(s.dimension_key))
    return slices


def top_fraud_slices(slices: Sequence[FraudSlice], n: int = 10) -> list[FraudSlice]:
    """Highest fraud rates first; ties by fraud count, then key."""
    ranked = sorted(
        slices,
        key=lambda s: (
            s.fraud_rate_pct is None,
            -(s.fraud_rate_pct or 0),
            -s.fraud_count,
            _sort_key(s.dimension_key),
        ),
    )
    return ranked[:n]


def rolling_fraud_rate(
    transactions: Sequence[Transaction], window_size_days: int
) -> list[TimeSeriesPoint]:
    """Trailing-window fraud rate for every calendar day with transactions.

    For each day ``d`` present in the ledger, fraud and total counts are
    summed over the calendar days ``[d - window_size_days + 1, d]``. Days
    without transactions inside the window count as zero rather than being
    skipped, so the window always spans ``window_size_days`` calendar days.

    Returns
    -------
    list[TimeSeriesPoint]
        One point per day, in date order. ``metric_value`` is the window
        fraud rate, ``prior_period_value`` the previous point's rate.

    Raises
    ------
    InvalidWindowSize
        If ``window_size_days <= 0``.
    """
    if window_size_days <= 0:
        raise InvalidWindowSize(window_size_days)

    daily = aggregate(
        transactions,
        ["transaction_date"],
        [count_rows("total_count"), count_where("fraud_count", is_fraudulent)],
    )
    days = sorted(key for (key,) in daily)

    points: list[TimeSeriesPoint] = []
    previous: Decimal | None = None
    fraud_count = 0
    total_count = 0
    oldest = 0
    for day in days:
        fraud_count += daily[(day,)]["fraud_count"]
        total_count += daily[(day,)]["total_count"]
        # Days more than window_size_days - 1 before ``day`` leave the window.
        while (day - days[oldest]).days >= window_size_days:
            fraud_count -= daily[(days[oldest],)]["fraud_count"]
            total_count -= daily[(days[oldest],)]["total_count"]
            oldest += 1
        rate = percentage(fraud_count, total_count)
        points.append(
            TimeSeriesPoint(
                period=day,
                metric_value=rate,
                prior_period_value=previous,
                pct_change=pct_change(rate, previous),
            )
        )
        previous = rate
    return points
