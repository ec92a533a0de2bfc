"""Pandas DataFrame adapters for transaction audit components."""

from .loader import (
    dataframes_to_dataset,
    dataframe_to_categories,
    dataframe_to_customers,
    dataframe_to_date_dimension,
    dataframe_to_merchants,
    dataframe_to_transactions,
    load_dataset_from_csv,
)
from .rfm import rfm_to_dataframe, compute_rfm_df
from .fraud import fraud_slices_to_dataframe, compute_fraud_rate_df
from .timeseries import series_to_dataframe
from .reports import records_to_dataframe, report_to_dataframes

__all__ = [
    # Loaders
    "dataframes_to_dataset",
    "dataframe_to_categories",
    "dataframe_to_customers",
    "dataframe_to_date_dimension",
    "dataframe_to_merchants",
    "dataframe_to_transactions",
    "load_dataset_from_csv",
    # RFM adapters
    "rfm_to_dataframe",
    "compute_rfm_df",
    # Fraud adapters
    "fraud_slices_to_dataframe",
    "compute_fraud_rate_df",
    # Series and report adapters
    "series_to_dataframe",
    "records_to_dataframe",
    "report_to_dataframes",
]
