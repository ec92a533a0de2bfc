"""Record types for the credit-card transaction star schema.

The schema has four relations (customers, merchants, categories and
transactions) plus a precomputed calendar lookup. Records are immutable
once loaded; analyzers only ever read them.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, time, timedelta
from decimal import Decimal


@dataclass(frozen=True)
class Category:
    """Spending category (``grocery_pos``, ``travel``, ...)."""

    category_id: int
    category_name: str

    def __post_init__(self) -> None:
        if not self.category_name:
            raise ValueError(
                f"Category name cannot be empty (category_id={self.category_id})"
            )


@dataclass(frozen=True)
class Customer:
    """Card holder with demographic attributes.

    Attributes
    ----------
    customer_id:
        Unique customer identifier.
    full_name:
        Display name used by the summary reports.
    dob, age:
        Date of birth and age. Age is precomputed by the upstream load and
        is never re-derived from ``dob``.
    """

    customer_id: int
    full_name: str
    first_name: str | None = None
    last_name: str | None = None
    gender: str | None = None
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zipcode: str | None = None
    latitude: Decimal | None = None
    longitude: Decimal | None = None
    city_population: int | None = None
    job: str | None = None
    dob: date | None = None
    age: int | None = None

    def __post_init__(self) -> None:
        if self.age is not None and self.age < 0:
            raise ValueError(
                f"Age cannot be negative: {self.age} (customer_id={self.customer_id})"
            )


@dataclass(frozen=True)
class Merchant:
    """Merchant with its primary category and location."""

    merchant_id: int
    merchant_name: str
    category_id: int
    merchant_lat: Decimal | None = None
    merchant_long: Decimal | None = None
    merchant_zipcode: str | None = None


@dataclass(frozen=True)
class Transaction:
    """A single card transaction (the fact table row).

    Attributes
    ----------
    transaction_id:
        Unique transaction identifier.
    customer_id, merchant_id, category_id:
        Foreign keys into the dimension relations.
    transaction_date:
        Calendar date of the transaction.
    transaction_time:
        Local time of day of the transaction.
    amount:
        Non-negative transaction amount.
    is_fraud:
        Fraud label of the transaction.
    """

    transaction_id: int
    customer_id: int
    merchant_id: int
    category_id: int
    transaction_date: date
    transaction_time: time
    amount: Decimal
    is_fraud: bool

    def __post_init__(self) -> None:
        """Validate transaction fields."""
        if not isinstance(self.amount, Decimal):
            raise TypeError(
                f"amount must be a Decimal, got {type(self.amount).__name__} "
                f"(transaction_id={self.transaction_id})"
            )
        if self.amount < 0:
            raise ValueError(
                f"Amount cannot be negative: {self.amount} "
                f"(transaction_id={self.transaction_id})"
            )

    @property
    def hour(self) -> int:
        """Hour of day (0-23) of the transaction."""
        return self.transaction_time.hour


@dataclass(frozen=True)
class DateDimension:
    """Calendar attributes for a single date."""

    date_id: date
    year: int
    quarter: str
    month_number: int
    month_name: str
    week_number: int
    day_of_week: str
    is_weekend: bool

    @classmethod
    def for_date(cls, day: date) -> "DateDimension":
        return cls(
            date_id=day,
            year=day.year,
            quarter=f"Q{(day.month - 1) // 3 + 1}",
            month_number=day.month,
            month_name=calendar.month_name[day.month],
            week_number=day.isocalendar()[1],
            day_of_week=calendar.day_name[day.weekday()],
            is_weekend=day.weekday() >= 5,
        )


def build_date_dimension(start: date, end: date) -> list[DateDimension]:
    """Return one :class:`DateDimension` per day in ``[start, end]``."""
    if start > end:
        raise ValueError(
            f"start must be on or before end: start={start.isoformat()}, "
            f"end={end.isoformat()}"
        )
    days = (end - start).days
    return [DateDimension.for_date(start + timedelta(days=i)) for i in range(days + 1)]
