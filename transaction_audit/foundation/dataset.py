"""Validated, immutable view over the four input relations.

The dataset is the only entry point analyzers need: it enforces primary
key uniqueness, checks referential integrity of the fact table against
the dimensions and exposes id lookups used by the joined reports.

Quick Start
-----------
>>> from datetime import date, time
>>> from decimal import Decimal
>>> from transaction_audit.foundation.records import Category, Customer, Merchant, Transaction
>>> dataset = TransactionDataset.from_records(
...     customers=[Customer(1, "Ada Lovelace")],
...     merchants=[Merchant(10, "fraud_Kozey-Boehm", 1)],
...     categories=[Category(1, "grocery_pos")],
...     transactions=[
...         Transaction(100, 1, 10, 1, date(2019, 1, 1), time(12, 0), Decimal("9.99"), False),
...     ],
... )
>>> dataset.date_range
(datetime.date(2019, 1, 1), datetime.date(2019, 1, 1))
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, Sequence

from transaction_audit.errors import ReferentialMismatch
from transaction_audit.foundation.records import (
    Category,
    Customer,
    DateDimension,
    Merchant,
    Transaction,
    build_date_dimension,
)

logger = logging.getLogger(__name__)


class ReferentialPolicy(str, Enum):
    """How transactions with dangling dimension keys are handled."""

    SKIP = "skip"
    RAISE = "raise"
    INCLUDE = "include"


def _check_unique(ids: Sequence[object], relation: str) -> None:
    counts = Counter(ids)
    duplicates = [key for key, count in counts.items() if count > 1]
    if duplicates:
        raise ValueError(
            f"Duplicate {relation} ids detected: {duplicates[:5]}. "
            f"Each {relation} row must appear exactly once."
        )


@dataclass(frozen=True)
class TransactionDataset:
    """Immutable container for the star-schema relations.

    Use :meth:`from_records` to build a dataset; it performs the integrity
    checks. Direct construction assumes the caller already validated the
    rows.

    Attributes
    ----------
    customers, merchants, categories:
        Dimension rows in load order.
    transactions:
        Fact rows in load order, after the referential policy was applied.
    date_dimension:
        Calendar lookup covering at least every transaction date.
    mismatches:
        Referential problems found while loading (empty when clean).
    """

    customers: tuple[Customer, ...]
    merchants: tuple[Merchant, ...]
    categories: tuple[Category, ...]
    transactions: tuple[Transaction, ...]
    date_dimension: tuple[DateDimension, ...] = ()
    mismatches: tuple[ReferentialMismatch, ...] = ()
    _customers_by_id: dict[int, Customer] = field(
        init=False, repr=False, compare=False
    )
    _merchants_by_id: dict[int, Merchant] = field(
        init=False, repr=False, compare=False
    )
    _categories_by_id: dict[int, Category] = field(
        init=False, repr=False, compare=False
    )
    _dates_by_id: dict[date, DateDimension] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_customers_by_id", {c.customer_id: c for c in self.customers}
        )
        object.__setattr__(
            self, "_merchants_by_id", {m.merchant_id: m for m in self.merchants}
        )
        object.__setattr__(
            self, "_categories_by_id", {c.category_id: c for c in self.categories}
        )
        object.__setattr__(
            self, "_dates_by_id", {d.date_id: d for d in self.date_dimension}
        )

    @classmethod
    def from_records(
        cls,
        customers: Iterable[Customer],
        merchants: Iterable[Merchant],
        categories: Iterable[Category],
        transactions: Iterable[Transaction],
        date_dimension: Iterable[DateDimension] | None = None,
        referential_policy: ReferentialPolicy = ReferentialPolicy.SKIP,
    ) -> "TransactionDataset":
        """Validate the relations and build a dataset.

        Parameters
        ----------
        customers, merchants, categories, transactions:
            Already parsed records.
        date_dimension:
            Optional calendar lookup. When omitted, one is generated over the
            observed transaction date range. When given, transaction dates
            must be present in it.
        referential_policy:
            ``SKIP`` (default) drops and logs offending transactions,
            ``RAISE`` fails on the first one, ``INCLUDE`` keeps them as an
            explicit outer-join request. Mismatches are recorded in every
            case.

        Raises
        ------
        ValueError
            If any relation contains duplicate ids.
        ReferentialMismatch
            If ``referential_policy`` is ``RAISE`` and a transaction
            references a missing dimension row.
        """
        customers = tuple(customers)
        merchants = tuple(merchants)
        categories = tuple(categories)
        transactions = tuple(transactions)

        _check_unique([c.customer_id for c in customers], "customer")
        _check_unique([m.merchant_id for m in merchants], "merchant")
        _check_unique([c.category_id for c in categories], "category")
        _check_unique([t.transaction_id for t in transactions], "transaction")

        customer_ids = {c.customer_id for c in customers}
        merchant_ids = {m.merchant_id for m in merchants}
        category_ids = {c.category_id for c in categories}

        orphan_merchants = [
            m.merchant_id for m in merchants if m.category_id not in category_ids
        ]
        if orphan_merchants:
            logger.warning(
                f"{len(orphan_merchants)} merchants reference unknown categories. "
                f"First 5: {orphan_merchants[:5]}"
            )

        calendar_rows: tuple[DateDimension, ...] | None = (
            tuple(date_dimension) if date_dimension is not None else None
        )
        known_dates = (
            {d.date_id for d in calendar_rows} if calendar_rows is not None else None
        )
        if calendar_rows is not None:
            _check_unique([d.date_id for d in calendar_rows], "date")

        kept: list[Transaction] = []
        mismatches: list[ReferentialMismatch] = []
        for txn in transactions:
            problems = []
            if txn.customer_id not in customer_ids:
                problems.append(("customers", txn.customer_id))
            if txn.merchant_id not in merchant_ids:
                problems.append(("merchants", txn.merchant_id))
            if txn.category_id not in category_ids:
                problems.append(("categories", txn.category_id))
            if known_dates is not None and txn.transaction_date not in known_dates:
                problems.append(("date_table", txn.transaction_date))

            if not problems:
                kept.append(txn)
                continue

            row_mismatches = [
                ReferentialMismatch(txn.transaction_id, relation, key)
                for relation, key in problems
            ]
            if referential_policy is ReferentialPolicy.RAISE:
                raise row_mismatches[0]
            mismatches.extend(row_mismatches)
            if referential_policy is ReferentialPolicy.INCLUDE:
                kept.append(txn)

        if mismatches:
            action = (
                "kept as outer-join rows"
                if referential_policy is ReferentialPolicy.INCLUDE
                else "skipped"
            )
            affected = len({m.transaction_id for m in mismatches})
            logger.warning(
                f"Referential integrity: {affected}/{len(transactions)} transactions "
                f"reference missing dimension rows and were {action}. "
                f"First mismatch: {mismatches[0]}"
            )

        if calendar_rows is None:
            if kept:
                dates = [t.transaction_date for t in kept]
                calendar_rows = tuple(build_date_dimension(min(dates), max(dates)))
            else:
                calendar_rows = ()

        return cls(
            customers=customers,
            merchants=merchants,
            categories=categories,
            transactions=tuple(kept),
            date_dimension=calendar_rows,
            mismatches=tuple(mismatches),
        )

    @property
    def date_range(self) -> tuple[date, date] | None:
        """First and last transaction date, or ``None`` for an empty ledger."""
        if not self.transactions:
            return None
        dates = [t.transaction_date for t in self.transactions]
        return min(dates), max(dates)

    def customer(self, customer_id: int) -> Customer | None:
        return self._customers_by_id.get(customer_id)

    def merchant(self, merchant_id: int) -> Merchant | None:
        return self._merchants_by_id.get(merchant_id)

    def category(self, category_id: int) -> Category | None:
        return self._categories_by_id.get(category_id)

    def calendar_day(self, day: date) -> DateDimension | None:
        return self._dates_by_id.get(day)
