"""Pandas adapters that turn raw tables into a validated dataset.

Column names follow the relational schema of the source tables
(``customers``, ``merchants``, ``categories``, ``transactions`` and the
optional ``date_table``).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd  # type: ignore

from transaction_audit.foundation.dataset import ReferentialPolicy, TransactionDataset
from transaction_audit.foundation.records import (
    Category,
    Customer,
    DateDimension,
    Merchant,
    Transaction,
)
from ._utils import (
    to_bool,
    to_date,
    to_decimal,
    to_optional_date,
    to_optional_decimal,
    to_optional_int,
    to_optional_str,
    to_time,
)

logger = logging.getLogger(__name__)

CATEGORY_COLUMNS = ["category_id", "category_name"]
CUSTOMER_COLUMNS = [
    "customer_id",
    "full_name",
    "first_name",
    "last_name",
    "gender",
    "street",
    "city",
    "state",
    "zipcode",
    "latitude",
    "longitude",
    "city_population",
    "job",
    "dob",
    "age",
]
MERCHANT_COLUMNS = [
    "merchant_id",
    "merchant_name",
    "category_id",
    "merchant_lat",
    "merchant_long",
    "merchant_zipcode",
]
TRANSACTION_COLUMNS = [
    "transaction_id",
    "customer_id",
    "merchant_id",
    "category_id",
    "transaction_date",
    "transaction_time",
    "amount",
    "is_fraud",
]
DATE_COLUMNS = [
    "date_id",
    "year",
    "quarter",
    "month_number",
    "month_name",
    "week_number",
    "day_of_week",
    "is_weekend",
]

CSV_FILES = {
    "customers": "customers.csv",
    "merchants": "merchants.csv",
    "categories": "categories.csv",
    "transactions": "transactions.csv",
}
DATE_TABLE_FILE = "date_table.csv"

# Text columns kept as strings so zip codes keep leading zeros and money
# keeps every digit.
_STRING_DTYPES = {
    "zipcode": str,
    "merchant_zipcode": str,
    "amount": str,
    "latitude": str,
    "longitude": str,
    "merchant_lat": str,
    "merchant_long": str,
}


def _validate_columns(
    df: pd.DataFrame,
    required: Sequence[str],
    relation: str,
    not_null: Sequence[str] = (),
) -> None:
    missing_cols = set(required) - set(df.columns)
    if missing_cols:
        raise ValueError(
            f"{relation} DataFrame missing required columns: {sorted(missing_cols)}"
        )
    if df.empty or not not_null:
        return
    null_cols = df[list(not_null)].isnull().any()
    if null_cols.any():
        null_col_names = null_cols[null_cols].index.tolist()
        raise ValueError(
            f"Null/NaN values found in {relation} columns: {null_col_names}"
        )


def dataframe_to_categories(df: pd.DataFrame) -> List[Category]:
    """Convert a ``categories`` DataFrame to records."""
    _validate_columns(df, CATEGORY_COLUMNS, "categories", not_null=CATEGORY_COLUMNS)
    return [
        Category(category_id=int(row["category_id"]), category_name=str(row["category_name"]))
        for row in df.to_dict("records")
    ]


def dataframe_to_customers(df: pd.DataFrame) -> List[Customer]:
    """Convert a ``customers`` DataFrame to records.

    Only ``customer_id`` and ``full_name`` are required; the demographic
    columns may be absent or contain nulls.
    """
    _validate_columns(
        df,
        ["customer_id", "full_name"],
        "customers",
        not_null=["customer_id", "full_name"],
    )
    customers = []
    for row in df.to_dict("records"):
        customers.append(
            Customer(
                customer_id=int(row["customer_id"]),
                full_name=str(row["full_name"]),
                first_name=to_optional_str(row.get("first_name")),
                last_name=to_optional_str(row.get("last_name")),
                gender=to_optional_str(row.get("gender")),
                street=to_optional_str(row.get("street")),
                city=to_optional_str(row.get("city")),
                state=to_optional_str(row.get("state")),
                zipcode=to_optional_str(row.get("zipcode")),
                latitude=to_optional_decimal(row.get("latitude")),
                longitude=to_optional_decimal(row.get("longitude")),
                city_population=to_optional_int(row.get("city_population")),
                job=to_optional_str(row.get("job")),
                dob=to_optional_date(row.get("dob")),
                age=to_optional_int(row.get("age")),
            )
        )
    return customers


def dataframe_to_merchants(df: pd.DataFrame) -> List[Merchant]:
    """Convert a ``merchants`` DataFrame to records."""
    required = ["merchant_id", "merchant_name", "category_id"]
    _validate_columns(df, required, "merchants", not_null=required)
    return [
        Merchant(
            merchant_id=int(row["merchant_id"]),
            merchant_name=str(row["merchant_name"]),
            category_id=int(row["category_id"]),
            merchant_lat=to_optional_decimal(row.get("merchant_lat")),
            merchant_long=to_optional_decimal(row.get("merchant_long")),
            merchant_zipcode=to_optional_str(row.get("merchant_zipcode")),
        )
        for row in df.to_dict("records")
    ]


def dataframe_to_transactions(df: pd.DataFrame) -> List[Transaction]:
    """Convert a ``transactions`` DataFrame to records.

    Args:
        df: DataFrame with every column of the transactions table

    Returns:
        List of validated Transaction objects. ``amount`` is parsed to
        Decimal, ``transaction_date`` to date, ``transaction_time`` to time
        and ``is_fraud`` to bool.

    Raises:
        ValueError: If columns are missing, contain nulls, or hold values
            that cannot be parsed (including negative amounts)
    """
    _validate_columns(
        df, TRANSACTION_COLUMNS, "transactions", not_null=TRANSACTION_COLUMNS
    )
    return [
        Transaction(
            transaction_id=int(row["transaction_id"]),
            customer_id=int(row["customer_id"]),
            merchant_id=int(row["merchant_id"]),
            category_id=int(row["category_id"]),
            transaction_date=to_date(row["transaction_date"]),
            transaction_time=to_time(row["transaction_time"]),
            amount=to_decimal(row["amount"]),
            is_fraud=to_bool(row["is_fraud"]),
        )
        for row in df.to_dict("records")
    ]


def dataframe_to_date_dimension(df: pd.DataFrame) -> List[DateDimension]:
    """Convert a ``date_table`` DataFrame to calendar rows."""
    _validate_columns(df, DATE_COLUMNS, "date_table", not_null=["date_id"])
    return [
        DateDimension(
            date_id=to_date(row["date_id"]),
            year=int(row["year"]),
            quarter=str(row["quarter"]),
            month_number=int(row["month_number"]),
            month_name=str(row["month_name"]).strip(),
            week_number=int(row["week_number"]),
            day_of_week=str(row["day_of_week"]).strip(),
            is_weekend=to_bool(row["is_weekend"]),
        )
        for row in df.to_dict("records")
    ]


def dataframes_to_dataset(
    customers_df: pd.DataFrame,
    merchants_df: pd.DataFrame,
    categories_df: pd.DataFrame,
    transactions_df: pd.DataFrame,
    date_df: Optional[pd.DataFrame] = None,
    referential_policy: ReferentialPolicy = ReferentialPolicy.SKIP,
) -> TransactionDataset:
    """Build a validated :class:`TransactionDataset` from DataFrames.

    Example:
        >>> dataset = dataframes_to_dataset(customers, merchants, categories, txns)
        >>> dataset.date_range
    """
    dataset = TransactionDataset.from_records(
        customers=dataframe_to_customers(customers_df),
        merchants=dataframe_to_merchants(merchants_df),
        categories=dataframe_to_categories(categories_df),
        transactions=dataframe_to_transactions(transactions_df),
        date_dimension=(
            dataframe_to_date_dimension(date_df) if date_df is not None else None
        ),
        referential_policy=referential_policy,
    )
    logger.info(
        f"Loaded {len(dataset.customers)} customers, {len(dataset.merchants)} "
        f"merchants, {len(dataset.categories)} categories and "
        f"{len(dataset.transactions)} transactions"
    )
    return dataset


def load_dataset_from_csv(
    directory: Path | str,
    referential_policy: ReferentialPolicy = ReferentialPolicy.SKIP,
) -> TransactionDataset:
    """Read ``customers.csv``, ``merchants.csv``, ``categories.csv`` and
    ``transactions.csv`` (plus ``date_table.csv`` when present) from a
    directory.

    Raises:
        FileNotFoundError: If one of the four required files is missing
        ValueError: If a file fails column or value validation
    """
    directory = Path(directory)
    frames = {}
    for relation, filename in CSV_FILES.items():
        path = directory / filename
        if not path.is_file():
            raise FileNotFoundError(f"Missing {relation} file: {path}")
        frames[relation] = pd.read_csv(path, dtype=_STRING_DTYPES)

    date_path = directory / DATE_TABLE_FILE
    date_df = pd.read_csv(date_path) if date_path.is_file() else None

    return dataframes_to_dataset(
        frames["customers"],
        frames["merchants"],
        frames["categories"],
        frames["transactions"],
        date_df=date_df,
        referential_policy=referential_policy,
    )
