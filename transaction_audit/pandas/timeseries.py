"""Pandas DataFrame adapters for time series."""

from decimal import Decimal
from typing import Sequence

import pandas as pd  # type: ignore

from transaction_audit.analyses.timeseries import TimeSeriesPoint
from ._utils import decimal_to_float

SERIES_COLUMNS = ["period", "metric_value", "prior_period_value", "pct_change"]


def _as_float(value):
    if isinstance(value, Decimal):
        return decimal_to_float(value)
    return None if value is None else float(value)


def series_to_dataframe(points: Sequence[TimeSeriesPoint]) -> pd.DataFrame:
    """Convert a series to a DataFrame with one row per period.

    ``period`` is a datetime64 column so the frame can be resampled or
    plotted directly.
    """
    if not points:
        return pd.DataFrame(columns=SERIES_COLUMNS)
    df = pd.DataFrame(
        [
            {
                "period": p.period,
                "metric_value": _as_float(p.metric_value),
                "prior_period_value": _as_float(p.prior_period_value),
                "pct_change": _as_float(p.pct_change),
            }
            for p in points
        ],
        columns=SERIES_COLUMNS,
    )
    df["period"] = pd.to_datetime(df["period"])
    return df
