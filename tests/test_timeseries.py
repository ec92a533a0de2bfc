"""Tests for period series, moving averages and period-to-date totals."""

from datetime import date
from decimal import Decimal

import pytest

from transaction_audit.analyses.timeseries import (
    SeriesMeasure,
    TimeSeriesPoint,
    cumulative_sum,
    moving_average,
    period_series,
    period_to_date,
    to_series,
)
from transaction_audit.errors import InvalidWindowSize
from transaction_audit.foundation.aggregation import PeriodGranularity


class TestPeriodSeries:
    """Test per-period measures."""

    def test_monthly_revenue(self, sample_transactions):
        points = period_series(
            sample_transactions, PeriodGranularity.MONTH, SeriesMeasure.REVENUE
        )
        assert [(p.period, p.metric_value, p.pct_change) for p in points] == [
            (date(2019, 1, 1), Decimal("150.00"), None),
            (date(2019, 2, 1), Decimal("300.00"), Decimal("100.00")),
            (date(2019, 3, 1), Decimal("140.00"), Decimal("-53.33")),
        ]
        assert points[2].prior_period_value == Decimal("300.00")

    def test_gaps_are_filled(self, make_txn):
        """A month without transactions appears with revenue 0 and no average."""
        txns = [
            make_txn(1, 1, date(2019, 1, 10), "100.00"),
            make_txn(2, 1, date(2019, 3, 10), "50.00"),
        ]
        revenue = period_series(txns, "month", "revenue")
        assert [p.metric_value for p in revenue] == [
            Decimal("100.00"),
            Decimal("0"),
            Decimal("50.00"),
        ]
        # Growth from an empty month is undefined.
        assert revenue[2].pct_change is None

        aov = period_series(txns, "month", "avg_order_value")
        assert [p.metric_value for p in aov] == [Decimal("100.00"), None, Decimal("50.00")]
        counts = period_series(txns, "month", "transaction_count")
        assert [p.metric_value for p in counts] == [1, 0, 1]

    def test_other_measures(self, sample_transactions):
        fraud = period_series(sample_transactions, "month", SeriesMeasure.FRAUD_COUNT)
        assert [p.metric_value for p in fraud] == [1, 0, 1]
        loss = period_series(sample_transactions, "month", SeriesMeasure.FRAUD_LOSS)
        assert [p.metric_value for p in loss] == [Decimal("50.00"), None, Decimal("80.00")]
        active = period_series(
            sample_transactions, "month", SeriesMeasure.ACTIVE_CUSTOMERS
        )
        assert [p.metric_value for p in active] == [1, 1, 3]
        aov = period_series(sample_transactions, "month", SeriesMeasure.AVG_ORDER_VALUE)
        assert aov[2].metric_value == Decimal("46.67")

    def test_weekly_periods_start_on_monday(self, sample_transactions):
        points = period_series(sample_transactions, "week", "transaction_count")
        assert points[0].period == date(2018, 12, 31)
        assert all(p.period.weekday() == 0 for p in points)
        assert sum(p.metric_value for p in points) == 6

    def test_quarterly_and_yearly(self, sample_transactions):
        quarterly = period_series(sample_transactions, "quarter", "revenue")
        assert [(p.period, p.metric_value) for p in quarterly] == [
            (date(2019, 1, 1), Decimal("590.00"))
        ]
        yearly = period_series(sample_transactions, "year", "revenue")
        assert yearly[0].pct_change is None

    @pytest.mark.parametrize("granularity", ["month", "quarter", "year"])
    def test_last_representable_period(self, make_txn, granularity):
        txns = [
            make_txn(1, 1, date(9999, 11, 30), "10.00"),
            make_txn(2, 1, date(9999, 12, 31), "5.00"),
        ]
        points = period_series(txns, granularity, "revenue")
        assert sum(p.metric_value for p in points) == Decimal("15.00")
        assert points[-1].period.year == 9999

    def test_empty_input(self):
        assert period_series([], "month", "revenue") == []

    def test_unknown_measure_raises(self, sample_transactions):
        with pytest.raises(ValueError):
            period_series(sample_transactions, "month", "profit")


class TestMovingAverage:
    """Test trailing moving averages."""

    def _points(self, values):
        periods = [date(2019, month, 1) for month in range(1, len(values) + 1)]
        return to_series(periods, values)

    def test_partial_windows_at_start(self):
        points = self._points([Decimal("150"), Decimal("300"), Decimal("140")])
        assert [p.metric_value for p in moving_average(points, 2)] == [
            Decimal("150.00"),
            Decimal("225.00"),
            Decimal("220.00"),
        ]

    def test_window_of_one_reproduces_values(self, sample_transactions):
        series = period_series(sample_transactions, "month", "revenue")
        averaged = moving_average(series, 1)
        assert [p.metric_value for p in averaged] == [p.metric_value for p in series]
        assert [p.period for p in averaged] == [p.period for p in series]

    def test_none_values_ignored(self):
        points = self._points([Decimal("10"), None, Decimal("20")])
        assert [p.metric_value for p in moving_average(points, 3)] == [
            Decimal("10.00"),
            Decimal("10.00"),
            Decimal("15.00"),
        ]
        assert moving_average(self._points([None]), 2)[0].metric_value is None

    def test_rounds_to_cents(self):
        points = self._points([Decimal("1"), Decimal("1"), Decimal("2")])
        assert moving_average(points, 3)[-1].metric_value == Decimal("1.33")

    @pytest.mark.parametrize("window", [0, -1])
    def test_invalid_window_raises(self, window):
        with pytest.raises(InvalidWindowSize, match="Window size must be positive"):
            moving_average(self._points([Decimal("1")]), window)


class TestCumulativeAndPeriodToDate:
    def test_cumulative_sum(self, sample_transactions):
        series = period_series(sample_transactions, "month", "revenue")
        assert [p.metric_value for p in cumulative_sum(series)] == [
            Decimal("150.00"),
            Decimal("450.00"),
            Decimal("590.00"),
        ]

    def test_cumulative_sum_skips_none(self):
        points = [
            TimeSeriesPoint(date(2019, 1, 1), None),
            TimeSeriesPoint(date(2019, 2, 1), Decimal("5")),
        ]
        assert [p.metric_value for p in cumulative_sum(points)] == [
            Decimal("0"),
            Decimal("5"),
        ]

    def test_year_to_date(self, sample_transactions):
        assert period_to_date(sample_transactions, date(2019, 2, 28)) == Decimal(
            "450.00"
        )

    def test_quarter_to_date(self, sample_transactions, make_txn):
        txns = sample_transactions + [make_txn(99, 1, date(2019, 4, 2), "7.00")]
        assert period_to_date(txns, date(2019, 4, 30), "quarter") == Decimal("7.00")

    def test_period_to_date_without_rows(self, sample_transactions):
        assert period_to_date(sample_transactions, date(2018, 12, 31)) is None
