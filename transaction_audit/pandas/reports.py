"""Pandas DataFrame adapters for the summary reports."""

from __future__ import annotations

from dataclasses import fields, is_dataclass
from decimal import Decimal
from typing import Any, Dict, Sequence

import pandas as pd  # type: ignore

from transaction_audit.reports import AnalyticsReport
from ._utils import decimal_to_float
from .fraud import fraud_slices_to_dataframe
from .rfm import rfm_to_dataframe
from .timeseries import series_to_dataframe


def records_to_dataframe(records: Sequence[Any]) -> pd.DataFrame:
    """Convert a sequence of record dataclasses to a DataFrame.

    Column order follows the dataclass fields. Decimals become floats and
    ``None`` values become NaN/None.

    Raises:
        TypeError: If the records are not dataclass instances
    """
    if not records:
        return pd.DataFrame()
    first = records[0]
    if not is_dataclass(first) or isinstance(first, type):
        raise TypeError(f"Expected dataclass records, got {type(first)}")

    columns = [f.name for f in fields(first)]
    rows = [
        {
            name: (
                decimal_to_float(value) if isinstance(value, Decimal) else value
            )
            for name, value in ((name, getattr(record, name)) for name in columns)
        }
        for record in records
    ]
    return pd.DataFrame(rows, columns=columns)


def report_to_dataframes(report: AnalyticsReport) -> Dict[str, pd.DataFrame]:
    """Flatten a report into named DataFrames (one per table-shaped section).

    Example:
        >>> frames = report_to_dataframes(build_report(dataset))
        >>> frames["merchant_summary"].sort_values("fraud_count").tail()
    """
    frames: Dict[str, pd.DataFrame] = {
        "customer_summary": records_to_dataframe(report.customer_summary),
        "merchant_summary": records_to_dataframe(report.merchant_summary),
        "category_summary": records_to_dataframe(report.category_summary),
        "fraud_summary": records_to_dataframe(report.fraud_summary),
        "business_kpis": records_to_dataframe([report.business_kpis]),
        "rfm": rfm_to_dataframe(report.rfm),
        "rolling_fraud_rate": series_to_dataframe(report.rolling_fraud_rate),
        "monthly_revenue": series_to_dataframe(report.monthly_revenue),
        "cohort_retention": records_to_dataframe(report.cohort_retention),
        "churn_risk": records_to_dataframe(report.churn_risk),
    }
    for dimension, slices in report.fraud_slices.items():
        frames[f"fraud_by_{dimension}"] = fraud_slices_to_dataframe(slices)
    for window, points in report.revenue_moving_averages.items():
        frames[f"revenue_ma_{window}"] = series_to_dataframe(points)
    return frames
