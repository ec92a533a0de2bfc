"""Tests for record validation and the dataset loader."""

import logging
from datetime import date, time
from decimal import Decimal

import pytest

from transaction_audit.errors import ReferentialMismatch
from transaction_audit.foundation.dataset import ReferentialPolicy, TransactionDataset
from transaction_audit.foundation.records import (
    Category,
    Customer,
    DateDimension,
    Merchant,
    Transaction,
    build_date_dimension,
)


class TestTransaction:
    """Test Transaction dataclass validation."""

    def test_valid_transaction(self):
        """Valid transactions expose the hour of day."""
        txn = Transaction(
            1, 1, 10, 1, date(2019, 1, 1), time(23, 15), Decimal("9.99"), True
        )
        assert txn.hour == 23
        assert txn.amount == Decimal("9.99")

    def test_negative_amount_raises_error(self):
        """Negative amounts should raise ValueError."""
        with pytest.raises(ValueError, match="Amount cannot be negative"):
            Transaction(1, 1, 10, 1, date(2019, 1, 1), time(9), Decimal("-1"), False)

    def test_float_amount_raises_error(self):
        """Money must be Decimal, never float."""
        with pytest.raises(TypeError, match="amount must be a Decimal"):
            Transaction(1, 1, 10, 1, date(2019, 1, 1), time(9), 9.99, False)

    def test_zero_amount_allowed(self):
        txn = Transaction(1, 1, 10, 1, date(2019, 1, 1), time(9), Decimal("0"), False)
        assert txn.amount == 0


class TestDimensions:
    """Test dimension records and the calendar."""

    def test_empty_category_name_raises_error(self):
        with pytest.raises(ValueError, match="Category name cannot be empty"):
            Category(1, "")

    def test_negative_age_raises_error(self):
        with pytest.raises(ValueError, match="Age cannot be negative"):
            Customer(1, "Ada Lovelace", age=-3)

    def test_date_dimension_attributes(self):
        """Calendar attributes follow ISO weeks and Q1-Q4 quarters."""
        day = DateDimension.for_date(date(2019, 12, 29))
        assert day.year == 2019
        assert day.quarter == "Q4"
        assert day.month_name == "December"
        assert day.day_of_week == "Sunday"
        assert day.is_weekend is True
        assert day.week_number == 52

    def test_build_date_dimension_is_inclusive(self):
        days = build_date_dimension(date(2019, 2, 27), date(2019, 3, 1))
        assert [d.date_id for d in days] == [
            date(2019, 2, 27),
            date(2019, 2, 28),
            date(2019, 3, 1),
        ]

    def test_build_date_dimension_rejects_reversed_range(self):
        with pytest.raises(ValueError, match="start must be on or before end"):
            build_date_dimension(date(2019, 3, 1), date(2019, 2, 1))


class TestTransactionDataset:
    """Test dataset construction and integrity checks."""

    def test_from_records_builds_lookups(self, sample_dataset):
        assert sample_dataset.customer(1).full_name == "Ada Lovelace"
        assert sample_dataset.merchant(20).merchant_name == "fraud_Jast Ltd"
        assert sample_dataset.category(3).category_name == "misc_net"
        assert sample_dataset.customer(999) is None
        assert sample_dataset.date_range == (date(2019, 1, 5), date(2019, 3, 20))
        assert sample_dataset.mismatches == ()

    def test_date_dimension_generated_over_range(self, sample_dataset):
        """Without an explicit calendar one is built over the observed range."""
        assert len(sample_dataset.date_dimension) == 75
        assert sample_dataset.calendar_day(date(2019, 2, 14)).month_name == "February"

    def test_duplicate_customer_ids_raise_error(
        self, sample_merchants, sample_categories
    ):
        with pytest.raises(ValueError, match="Duplicate customer ids"):
            TransactionDataset.from_records(
                customers=[Customer(1, "A"), Customer(1, "B")],
                merchants=sample_merchants,
                categories=sample_categories,
                transactions=[],
            )

    def test_duplicate_transaction_ids_raise_error(
        self, sample_customers, sample_merchants, sample_categories, make_txn
    ):
        with pytest.raises(ValueError, match="Duplicate transaction ids"):
            TransactionDataset.from_records(
                customers=sample_customers,
                merchants=sample_merchants,
                categories=sample_categories,
                transactions=[
                    make_txn(1, 1, date(2019, 1, 1), "1"),
                    make_txn(1, 2, date(2019, 1, 2), "2"),
                ],
            )

    def test_skip_policy_drops_orphans(
        self, sample_customers, sample_merchants, sample_categories, make_txn, caplog
    ):
        """Transactions with dangling keys are dropped, logged and recorded."""
        with caplog.at_level(logging.WARNING):
            dataset = TransactionDataset.from_records(
                customers=sample_customers,
                merchants=sample_merchants,
                categories=sample_categories,
                transactions=[
                    make_txn(1, 1, date(2019, 1, 1), "10"),
                    make_txn(2, 99, date(2019, 1, 2), "20"),
                ],
            )
        assert [t.transaction_id for t in dataset.transactions] == [1]
        assert len(dataset.mismatches) == 1
        mismatch = dataset.mismatches[0]
        assert (mismatch.transaction_id, mismatch.relation, mismatch.key) == (
            2,
            "customers",
            99,
        )
        assert "Referential integrity" in caplog.text

    def test_raise_policy_raises_first_mismatch(
        self, sample_customers, sample_merchants, sample_categories, make_txn
    ):
        with pytest.raises(ReferentialMismatch) as excinfo:
            TransactionDataset.from_records(
                customers=sample_customers,
                merchants=sample_merchants,
                categories=sample_categories,
                transactions=[make_txn(7, 1, date(2019, 1, 1), "10", merchant_id=77)],
                referential_policy=ReferentialPolicy.RAISE,
            )
        assert excinfo.value.transaction_id == 7
        assert excinfo.value.relation == "merchants"
        assert excinfo.value.key == 77

    def test_include_policy_keeps_orphans(
        self, sample_customers, sample_merchants, sample_categories, make_txn
    ):
        dataset = TransactionDataset.from_records(
            customers=sample_customers,
            merchants=sample_merchants,
            categories=sample_categories,
            transactions=[make_txn(1, 1, date(2019, 1, 1), "10", category_id=9)],
            referential_policy=ReferentialPolicy.INCLUDE,
        )
        assert len(dataset.transactions) == 1
        assert dataset.mismatches[0].relation == "categories"

    def test_dates_checked_against_given_calendar(
        self, sample_customers, sample_merchants, sample_categories, make_txn
    ):
        dataset = TransactionDataset.from_records(
            customers=sample_customers,
            merchants=sample_merchants,
            categories=sample_categories,
            transactions=[
                make_txn(1, 1, date(2019, 1, 1), "10"),
                make_txn(2, 1, date(2019, 1, 5), "10"),
            ],
            date_dimension=build_date_dimension(date(2019, 1, 1), date(2019, 1, 3)),
        )
        assert [t.transaction_id for t in dataset.transactions] == [1]
        assert dataset.mismatches[0].relation == "date_table"

    def test_empty_ledger(self, sample_customers, sample_merchants, sample_categories):
        dataset = TransactionDataset.from_records(
            customers=sample_customers,
            merchants=sample_merchants,
            categories=sample_categories,
            transactions=[],
        )
        assert dataset.date_range is None
        assert dataset.date_dimension == ()
