"""Tests for acquisition cohorts and monthly retention."""

from datetime import date
from decimal import Decimal

import pytest

from transaction_audit.analyses.cohorts import (
    CohortRetentionCell,
    cohort_retention,
    first_transaction_months,
    new_customers_by_month,
)


class TestCohortRetentionCell:
    """Test CohortRetentionCell validation."""

    def test_months_since_acquisition(self):
        cell = CohortRetentionCell(
            date(2019, 11, 1), date(2020, 2, 1), 1, 2, Decimal("50.00")
        )
        assert cell.months_since_acquisition == 3

    def test_activity_before_cohort_raises(self):
        with pytest.raises(ValueError, match="cannot be active before acquisition"):
            CohortRetentionCell(date(2019, 3, 1), date(2019, 1, 1), 1, 1, None)

    def test_active_cannot_exceed_cohort_size(self):
        with pytest.raises(ValueError, match="cannot exceed cohort_size"):
            CohortRetentionCell(date(2019, 3, 1), date(2019, 3, 1), 3, 2, None)


class TestCohortRetention:
    """Test the cohort x month grid."""

    def test_first_transaction_months(self, sample_transactions):
        assert first_transaction_months(sample_transactions) == {
            1: date(2019, 1, 1),
            2: date(2019, 2, 1),
            3: date(2019, 3, 1),
        }

    def test_full_grid(self, sample_transactions):
        cells = cohort_retention(sample_transactions)
        grid = {(c.cohort_month, c.activity_month): c for c in cells}
        assert len(cells) == 9

        jan, feb, mar = date(2019, 1, 1), date(2019, 2, 1), date(2019, 3, 1)
        assert [grid[(jan, m)].active_customers for m in (jan, feb, mar)] == [1, 0, 1]
        assert [grid[(feb, m)].active_customers for m in (jan, feb, mar)] == [0, 1, 1]
        assert [grid[(mar, m)].active_customers for m in (jan, feb, mar)] == [0, 0, 1]
        assert grid[(jan, feb)].retention_pct == Decimal("0.00")
        assert grid[(jan, mar)].retention_pct == Decimal("100.00")

    def test_months_before_cohort_are_zero(self, sample_transactions):
        for cell in cohort_retention(sample_transactions):
            if cell.activity_month < cell.cohort_month:
                assert cell.active_customers == 0
            if cell.activity_month == cell.cohort_month:
                assert cell.active_customers == cell.cohort_size

    def test_ordering(self, sample_transactions):
        cells = cohort_retention(sample_transactions)
        keys = [(c.cohort_month, c.activity_month) for c in cells]
        assert keys == sorted(keys)

    def test_cohort_sizes(self, make_txn):
        txns = [
            make_txn(1, 1, date(2020, 1, 3), "5"),
            make_txn(2, 2, date(2020, 1, 9), "5"),
            make_txn(3, 1, date(2020, 2, 3), "5"),
        ]
        cells = cohort_retention(txns)
        assert {c.cohort_size for c in cells} == {2}
        feb = [c for c in cells if c.activity_month == date(2020, 2, 1)][0]
        assert feb.retention_pct == Decimal("50.00")

    def test_empty_input(self):
        assert cohort_retention([]) == []


class TestNewCustomersByMonth:
    def test_acquisition_trend(self, sample_transactions):
        points = new_customers_by_month(sample_transactions)
        assert [p.metric_value for p in points] == [1, 1, 1]
        assert points[1].pct_change == Decimal("0.00")

    def test_months_without_new_customers(self, make_txn):
        txns = [
            make_txn(1, 1, date(2020, 1, 3), "5"),
            make_txn(2, 1, date(2020, 3, 3), "5"),
        ]
        points = new_customers_by_month(txns)
        assert [p.metric_value for p in points] == [1, 0, 0]
        assert points[2].pct_change is None
