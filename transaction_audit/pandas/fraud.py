"""Pandas DataFrame adapters for fraud-rate slices."""

from __future__ import annotations

from typing import Sequence

import pandas as pd  # type: ignore

from transaction_audit.analyses.fraud import (
    AmountBucketSlice,
    FraudDimension,
    FraudSlice,
    compute_fraud_rate,
)
from ._utils import decimal_to_float
from .loader import dataframe_to_transactions

FRAUD_SLICE_COLUMNS = [
    "dimension_key",
    "fraud_count",
    "total_count",
    "fraud_rate_pct",
    "fraud_amount",
]


def fraud_slices_to_dataframe(slices: Sequence[FraudSlice]) -> pd.DataFrame:
    """Convert fraud slices to a DataFrame.

    Amount-bucket slices get two extra columns, ``bucket_min`` and
    ``bucket_max``. Undefined rates and amounts become NaN.
    """
    columns = list(FRAUD_SLICE_COLUMNS)
    if slices and all(isinstance(s, AmountBucketSlice) for s in slices):
        columns += ["bucket_min", "bucket_max"]
    if not slices:
        return pd.DataFrame(columns=columns)

    rows = []
    for s in slices:
        row = {
            "dimension_key": s.dimension_key,
            "fraud_count": s.fraud_count,
            "total_count": s.total_count,
            "fraud_rate_pct": decimal_to_float(s.fraud_rate_pct),
            "fraud_amount": decimal_to_float(s.fraud_amount),
        }
        if isinstance(s, AmountBucketSlice):
            row["bucket_min"] = decimal_to_float(s.bucket_min)
            row["bucket_max"] = decimal_to_float(s.bucket_max)
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)


def compute_fraud_rate_df(
    transactions_df: pd.DataFrame,
    slice_dimension: FraudDimension | str,
    bucket_count: int = 10,
) -> pd.DataFrame:
    """Slice a transactions DataFrame by ``slice_dimension``.

    Example:
        >>> compute_fraud_rate_df(txns_df, "hour").nlargest(5, "fraud_rate_pct")
    """
    return fraud_slices_to_dataframe(
        compute_fraud_rate(
            dataframe_to_transactions(transactions_df),
            slice_dimension,
            bucket_count=bucket_count,
        )
    )
