"""Shared utilities for pandas conversion operations."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

import numpy as np
import pandas as pd  # type: ignore


def is_missing(value: Any) -> bool:
    """True for ``None``, ``NaN`` and ``NaT`` cells."""
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def decimal_to_float(value: Decimal | None) -> float | None:
    """Convert Decimal to float for pandas compatibility; ``None`` passes through."""
    if value is None:
        return None
    return float(value)


def to_decimal(value: Any) -> Decimal:
    """Convert a CSV or DataFrame cell to Decimal without binary rounding noise.

    Strings are parsed as-is, so reading money columns with ``dtype=str``
    keeps every digit. Floats go through ``str`` first.

    Raises:
        TypeError: If value is not numeric or a numeric string
        ValueError: If a string cannot be parsed as a number

    Example:
        >>> to_decimal("123.45")
        Decimal('123.45')
        >>> to_decimal(123.45)
        Decimal('123.45')
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (bool, np.bool_)):
        raise TypeError(f"Expected numeric type, got {type(value)}")
    if isinstance(value, (int, np.integer)):
        return Decimal(int(value))
    if isinstance(value, (float, np.floating)):
        return Decimal(str(float(value)))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Cannot parse {value!r} as a decimal number") from None
    raise TypeError(f"Expected numeric type, got {type(value)}")


def to_optional_decimal(value: Any) -> Decimal | None:
    return None if is_missing(value) else to_decimal(value)


def to_optional_int(value: Any) -> int | None:
    return None if is_missing(value) else int(value)


def to_optional_str(value: Any) -> str | None:
    return None if is_missing(value) else str(value)


def to_date(value: Any) -> date:
    """Parse a date cell (``date``, ``Timestamp`` or ISO string)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return pd.Timestamp(value).date()


def to_optional_date(value: Any) -> date | None:
    return None if is_missing(value) else to_date(value)


def to_time(value: Any) -> time:
    """Parse a time-of-day cell (``time``, ``Timestamp`` or ``HH:MM[:SS]`` string)."""
    if isinstance(value, time):
        return value
    if isinstance(value, datetime):
        return value.time()
    return time.fromisoformat(str(value).strip())


_TRUE_VALUES = frozenset({"1", "t", "true", "y", "yes"})
_FALSE_VALUES = frozenset({"0", "f", "false", "n", "no"})


def to_bool(value: Any) -> bool:
    """Parse boolean cells the way PostgreSQL ``COPY`` accepts them.

    Raises:
        ValueError: If value is not a recognised boolean literal
    """
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)) and value in (0, 1):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot parse {value!r} as a boolean")
