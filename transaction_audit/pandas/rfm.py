"""Pandas DataFrame adapters for RFM scoring."""

from datetime import date
from typing import Optional, Sequence

import pandas as pd  # type: ignore

from transaction_audit.foundation.rfm import CustomerRFM, compute_rfm
from ._utils import decimal_to_float
from .loader import dataframe_to_transactions

RFM_COLUMNS = [
    "customer_id",
    "recency_days",
    "frequency",
    "monetary",
    "r_quintile",
    "f_quintile",
    "m_quintile",
    "rfm_code",
]


def rfm_to_dataframe(rfm: Sequence[CustomerRFM]) -> pd.DataFrame:
    """Convert RFM records to a pandas DataFrame.

    Args:
        rfm: Sequence of CustomerRFM objects

    Returns:
        DataFrame with columns: customer_id, recency_days, frequency,
        monetary, r_quintile, f_quintile, m_quintile, rfm_code

    Example:
        >>> rfm_df = rfm_to_dataframe(compute_rfm(transactions))
        >>> rfm_df.groupby("rfm_code").size()
    """
    if not rfm:
        return pd.DataFrame(columns=RFM_COLUMNS)

    rows = [
        {
            "customer_id": r.customer_id,
            "recency_days": r.recency_days,
            "frequency": r.frequency,
            "monetary": decimal_to_float(r.monetary),
            "r_quintile": r.r_quintile,
            "f_quintile": r.f_quintile,
            "m_quintile": r.m_quintile,
            "rfm_code": r.rfm_code,
        }
        for r in rfm
    ]
    return pd.DataFrame(rows).sort_values("customer_id").reset_index(drop=True)


def compute_rfm_df(
    transactions_df: pd.DataFrame, as_of_date: Optional[date] = None
) -> pd.DataFrame:
    """Score a transactions DataFrame and return the RFM table."""
    return rfm_to_dataframe(
        compute_rfm(dataframe_to_transactions(transactions_df), as_of_date)
    )
