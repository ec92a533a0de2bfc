"""Tests for the summary reports and report assembly."""

import json
import threading
from datetime import date
from decimal import Decimal

import pytest

from transaction_audit.config import AnalyticsConfig
from transaction_audit.errors import ReportCancelled
from transaction_audit.foundation.dataset import TransactionDataset
from transaction_audit import reports
from transaction_audit.reports import (
    build_report,
    business_kpis,
    category_summary,
    customer_summary,
    fraud_summary,
    merchant_summary,
)


class TestSummaries:
    """Test the five fixed-shape summaries."""

    def test_customer_summary(self, sample_dataset):
        rows = {r.customer_id: r for r in customer_summary(sample_dataset)}
        assert list(rows) == [1, 2, 3, 4]
        ada = rows[1]
        assert ada.full_name == "Ada Lovelace"
        assert ada.txn_count == 3
        assert ada.total_spend == Decimal("170.00")
        assert ada.avg_txn == Decimal("56.67")
        assert (ada.first_txn, ada.last_txn) == (date(2019, 1, 5), date(2019, 3, 1))

    def test_customer_without_transactions(self, sample_dataset):
        """Left-outer row: txn_count 0, spend and dates null."""
        dee = customer_summary(sample_dataset)[3]
        assert dee.customer_id == 4
        assert dee.txn_count == 0
        assert dee.total_spend is None
        assert dee.avg_txn is None
        assert dee.first_txn is None and dee.last_txn is None

    def test_merchant_summary(self, sample_dataset):
        rows = {r.merchant_id: r for r in merchant_summary(sample_dataset)}
        assert (rows[10].txn_count, rows[10].total_spend, rows[10].avg_txn) == (
            4,
            Decimal("270.00"),
            Decimal("67.50"),
        )
        assert rows[10].fraud_count == 2
        assert (rows[30].txn_count, rows[30].total_spend, rows[30].fraud_count) == (
            0,
            None,
            0,
        )

    def test_category_summary(self, sample_dataset):
        rows = {r.category_id: r for r in category_summary(sample_dataset)}
        assert rows[2].category_name == "travel"
        assert rows[2].total_revenue == Decimal("320.00")
        assert rows[2].avg_txn == Decimal("160.00")
        assert rows[3].txn_count == 0
        assert rows[3].total_revenue is None

    def test_fraud_summary(self, sample_dataset):
        rows = fraud_summary(sample_dataset)
        assert [
            (r.month, r.fraud_count, r.fraud_loss, r.total_txn, r.fraud_rate_pct)
            for r in rows
        ] == [
            (date(2019, 1, 1), 1, Decimal("50.00"), 2, Decimal("50.00")),
            (date(2019, 2, 1), 0, None, 1, Decimal("0.00")),
            (date(2019, 3, 1), 1, Decimal("80.00"), 3, Decimal("33.33")),
        ]

    def test_business_kpis(self, sample_dataset):
        kpis = business_kpis(sample_dataset)
        assert kpis.total_txns == 6
        assert kpis.total_revenue == Decimal("590.00")
        assert kpis.distinct_customers == 4
        assert kpis.distinct_merchants == 3
        assert kpis.fraud_rate_pct == Decimal("33.33")
        assert kpis.avg_order_value == Decimal("98.33")
        assert kpis.active_customers == 3
        assert kpis.active_merchants == 2
        assert kpis.best_category == "travel"
        assert kpis.peak_hour == 9

    def test_business_kpis_empty_ledger(
        self, sample_customers, sample_merchants, sample_categories
    ):
        dataset = TransactionDataset.from_records(
            sample_customers, sample_merchants, sample_categories, []
        )
        kpis = business_kpis(dataset)
        assert kpis.total_txns == 0
        assert kpis.total_revenue is None
        assert kpis.fraud_rate_pct is None
        assert kpis.avg_order_value is None
        assert kpis.best_category is None
        assert kpis.peak_hour is None


class TestBuildReport:
    """Test report assembly, fan-out and cancellation."""

    def test_sequential_report(self, sample_dataset):
        report = build_report(sample_dataset, AnalyticsConfig(moving_average_windows=(2,)))
        assert report.as_of_date == date(2019, 3, 21)
        assert len(report.customer_summary) == 4
        assert [r.customer_id for r in report.rfm] == [1, 2, 3]
        assert report.rfm_summary.customer_count == 3
        assert set(report.fraud_slices) == {
            "merchant_id",
            "category_id",
            "hour",
            "amount_bucket",
        }
        assert [p.metric_value for p in report.revenue_moving_averages[2]] == [
            Decimal("150.00"),
            Decimal("225.00"),
            Decimal("220.00"),
        ]
        assert [a.customer_id for a in report.churn_risk] == [4]
        assert report.repeat_purchase_rate == Decimal("66.67")
        assert report.revenue_concentration == Decimal("57.63")
        assert len(report.cohort_retention) == 9

    def test_parallel_matches_sequential(self, sample_dataset):
        sequential = build_report(sample_dataset, parallel=False)
        parallel = build_report(sample_dataset, parallel=True)
        assert parallel == sequential

    def test_explicit_as_of_date(self, sample_dataset):
        report = build_report(
            sample_dataset,
            AnalyticsConfig(inactivity_days=10),
            as_of_date=date(2019, 3, 21),
        )
        assert [a.customer_id for a in report.churn_risk] == [1, 4]

    def test_cancelled_before_start(self, sample_dataset):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ReportCancelled, match="cancelled before customer_summary"):
            build_report(sample_dataset, cancel_event=cancel)

    def test_cancelled_between_analyzers(self, sample_dataset, monkeypatch):
        """Cancellation is honoured at the next analyzer boundary."""
        cancel = threading.Event()
        original = reports.merchant_summary

        def merchant_summary_then_cancel(dataset):
            result = original(dataset)
            cancel.set()
            return result

        monkeypatch.setattr(reports, "merchant_summary", merchant_summary_then_cancel)
        with pytest.raises(ReportCancelled, match="category_summary"):
            build_report(sample_dataset, cancel_event=cancel)

    @pytest.mark.parametrize("parallel", [False, True])
    def test_first_failure_propagates(self, sample_dataset, monkeypatch, parallel):
        def broken(dataset):
            raise RuntimeError("category analyzer failed")

        monkeypatch.setattr(reports, "category_summary", broken)
        with pytest.raises(RuntimeError, match="category analyzer failed"):
            build_report(sample_dataset, parallel=parallel)

    def test_empty_ledger_report(
        self, sample_customers, sample_merchants, sample_categories
    ):
        dataset = TransactionDataset.from_records(
            sample_customers, sample_merchants, sample_categories, []
        )
        report = build_report(dataset)
        assert report.as_of_date is None
        assert [r.txn_count for r in report.customer_summary] == [0, 0, 0, 0]
        assert report.rfm == []
        assert report.rfm_summary is None
        assert report.monthly_revenue == []

    def test_as_dict_is_json_serialisable(self, sample_dataset):
        payload = build_report(sample_dataset).as_dict()
        decoded = json.loads(json.dumps(payload))
        assert decoded["business_kpis"]["total_revenue"] == "590.00"
        assert decoded["as_of_date"] == "2019-03-21"
        assert decoded["customer_summary"][3]["total_spend"] is None
        assert decoded["config"]["referential_policy"] == "skip"
        assert decoded["config"]["moving_average_windows"] == [3, 6]
        assert decoded["fraud_summary"][0]["month"] == "2019-01-01"
        assert set(decoded["revenue_moving_averages"]) == {"3", "6"}
