"""Foundational building blocks for transaction analytics.

This package exposes the star-schema record types, the validated dataset
container, the grouped aggregation engine and RFM scoring.
"""

from .aggregation import (
    GROUP_KEYS,
    Measure,
    PeriodGranularity,
    aggregate,
    pct_change,
    percentage,
    period_range,
    safe_ratio,
    truncate_date,
)
from .dataset import ReferentialPolicy, TransactionDataset
from .records import (
    Category,
    Customer,
    DateDimension,
    Merchant,
    Transaction,
    build_date_dimension,
)
from .rfm import CustomerRFM, RFMSummary, compute_rfm, ntile, summarize_rfm

__all__ = [
    "Category",
    "Customer",
    "DateDimension",
    "Merchant",
    "Transaction",
    "build_date_dimension",
    "ReferentialPolicy",
    "TransactionDataset",
    "GROUP_KEYS",
    "Measure",
    "PeriodGranularity",
    "aggregate",
    "pct_change",
    "percentage",
    "period_range",
    "safe_ratio",
    "truncate_date",
    "CustomerRFM",
    "RFMSummary",
    "compute_rfm",
    "ntile",
    "summarize_rfm",
]
