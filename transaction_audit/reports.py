"""Fixed-shape summary reports and the full analytics report.

The five summaries keep left-outer semantics: every customer, merchant and
category row appears even without transactions. Such rows follow the
zero-row convention of :mod:`transaction_audit.foundation.aggregation`:
``txn_count`` and ``fraud_count`` are ``0`` while ``total_spend``,
``avg_txn`` and the first/last dates are ``None``.

Quick Start
-----------
>>> from transaction_audit.config import AnalyticsConfig
>>> from transaction_audit.reports import build_report
>>> report = build_report(dataset, AnalyticsConfig())  # doctest: +SKIP
>>> report.business_kpis.total_revenue  # doctest: +SKIP
Decimal('4631521.30')
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping

from transaction_audit.analyses.cohorts import CohortRetentionCell, cohort_retention
from transaction_audit.analyses.customers import (
    CustomerActivity,
    churn_risk_customers,
    repeat_purchase_rate,
    revenue_concentration,
)
from transaction_audit.analyses.fraud import (
    FraudDimension,
    FraudSlice,
    compute_fraud_rate,
    rolling_fraud_rate,
)
from transaction_audit.analyses.timeseries import (
    SeriesMeasure,
    TimeSeriesPoint,
    moving_average,
    period_series,
)
from transaction_audit.config import AnalyticsConfig
from transaction_audit.errors import ReportCancelled
from transaction_audit.foundation.aggregation import (
    PeriodGranularity,
    aggregate,
    avg_amount,
    count_distinct,
    count_rows,
    count_where,
    first_date,
    is_fraudulent,
    last_date,
    percentage,
    quantize_money,
    sum_amount,
    sum_amount_where,
)
from transaction_audit.foundation.dataset import TransactionDataset
from transaction_audit.foundation.rfm import (
    CustomerRFM,
    RFMSummary,
    compute_rfm,
    default_as_of_date,
    summarize_rfm,
)

logger = logging.getLogger(__name__)

#: Fraud slices included in every report.
REPORT_FRAUD_DIMENSIONS = (
    FraudDimension.MERCHANT,
    FraudDimension.CATEGORY,
    FraudDimension.HOUR,
    FraudDimension.AMOUNT_BUCKET,
)


@dataclass(frozen=True)
class CustomerSummary:
    customer_id: int
    full_name: str
    txn_count: int
    total_spend: Decimal | None
    avg_txn: Decimal | None
    first_txn: date | None
    last_txn: date | None


@dataclass(frozen=True)
class MerchantSummary:
    merchant_id: int
    merchant_name: str
    txn_count: int
    total_spend: Decimal | None
    avg_txn: Decimal | None
    fraud_count: int


@dataclass(frozen=True)
class CategorySummary:
    category_id: int
    category_name: str
    txn_count: int
    total_revenue: Decimal | None
    avg_txn: Decimal | None
    fraud_count: int


@dataclass(frozen=True)
class FraudSummary:
    """Monthly fraud counts and loss."""

    month: date
    fraud_count: int
    fraud_loss: Decimal | None
    total_txn: int
    fraud_rate_pct: Decimal | None


@dataclass(frozen=True)
class BusinessKPIs:
    """One-row executive snapshot of the whole dataset.

    Attributes
    ----------
    total_txns, total_revenue:
        Ledger size and revenue (``None`` without transactions).
    distinct_customers, distinct_merchants:
        Size of the customer and merchant dimensions.
    fraud_rate_pct:
        Fraudulent share of all transactions (2 dp).
    avg_order_value:
        ``total_revenue / total_txns`` rounded to cents.
    active_customers, active_merchants:
        Customers and merchants with at least one transaction.
    best_category:
        Name of the highest-revenue category (ties by category id).
    peak_hour:
        Hour of day with the most transactions (ties by earliest hour).
    """

    total_txns: int
    total_revenue: Decimal | None
    distinct_customers: int
    distinct_merchants: int
    fraud_rate_pct: Decimal | None
    avg_order_value: Decimal | None
    active_customers: int
    active_merchants: int
    best_category: str | None
    peak_hour: int | None


def customer_summary(dataset: TransactionDataset) -> list[CustomerSummary]:
    """Per-customer totals, one row per customer in dimension order."""
    grouped = aggregate(
        dataset.transactions,
        ["customer_id"],
        [
            count_rows("txn_count"),
            sum_amount("total_spend"),
            avg_amount("avg_txn"),
            first_date("first_txn"),
            last_date("last_txn"),
        ],
        coverage=[(c.customer_id,) for c in dataset.customers],
    )
    return [
        CustomerSummary(
            customer_id=customer.customer_id,
            full_name=customer.full_name,
            txn_count=grouped[(customer.customer_id,)]["txn_count"],
            total_spend=grouped[(customer.customer_id,)]["total_spend"],
            avg_txn=quantize_money(grouped[(customer.customer_id,)]["avg_txn"]),
            first_txn=grouped[(customer.customer_id,)]["first_txn"],
            last_txn=grouped[(customer.customer_id,)]["last_txn"],
        )
        for customer in dataset.customers
    ]


_SPEND_AND_FRAUD = (
    count_rows("txn_count"),
    sum_amount("total_spend"),
    avg_amount("avg_txn"),
    count_where("fraud_count", is_fraudulent),
)


def merchant_summary(dataset: TransactionDataset) -> list[MerchantSummary]:
    """Per-merchant totals and fraud count, one row per merchant."""
    grouped = aggregate(
        dataset.transactions,
        ["merchant_id"],
        _SPEND_AND_FRAUD,
        coverage=[(m.merchant_id,) for m in dataset.merchants],
    )
    summaries = []
    for merchant in dataset.merchants:
        values = grouped[(merchant.merchant_id,)]
        summaries.append(
            MerchantSummary(
                merchant_id=merchant.merchant_id,
                merchant_name=merchant.merchant_name,
                txn_count=values["txn_count"],
                total_spend=values["total_spend"],
                avg_txn=quantize_money(values["avg_txn"]),
                fraud_count=values["fraud_count"],
            )
        )
    return summaries


def category_summary(dataset: TransactionDataset) -> list[CategorySummary]:
    """Per-category revenue and fraud count, one row per category."""
    grouped = aggregate(
        dataset.transactions,
        ["category_id"],
        _SPEND_AND_FRAUD,
        coverage=[(c.category_id,) for c in dataset.categories],
    )
    summaries = []
    for category in dataset.categories:
        values = grouped[(category.category_id,)]
        summaries.append(
            CategorySummary(
                category_id=category.category_id,
                category_name=category.category_name,
                txn_count=values["txn_count"],
                total_revenue=values["total_spend"],
                avg_txn=quantize_money(values["avg_txn"]),
                fraud_count=values["fraud_count"],
            )
        )
    return summaries


def fraud_summary(dataset: TransactionDataset) -> list[FraudSummary]:
    """Fraud count, loss and rate for each month with transactions."""
    grouped = aggregate(
        dataset.transactions,
        ["month"],
        [
            count_where("fraud_count", is_fraudulent),
            sum_amount_where("fraud_loss", is_fraudulent),
            count_rows("total_txn"),
        ],
    )
    return [
        FraudSummary(
            month=month,
            fraud_count=values["fraud_count"],
            fraud_loss=values["fraud_loss"],
            total_txn=values["total_txn"],
            fraud_rate_pct=percentage(values["fraud_count"], values["total_txn"]),
        )
        for (month,), values in sorted(grouped.items())
    ]


def business_kpis(dataset: TransactionDataset) -> BusinessKPIs:
    """Headline KPIs of the dataset."""
    totals = aggregate(
        dataset.transactions,
        ["all"],
        [
            count_rows("total_txns"),
            sum_amount("total_revenue"),
            count_where("fraud_count", is_fraudulent),
            count_distinct("active_customers", "customer_id"),
            count_distinct("active_merchants", "merchant_id"),
        ],
        coverage=[("all",)],
        derived_keys={"all": lambda txn: "all"},
    )[("all",)]

    category_revenue = aggregate(
        dataset.transactions, ["category_id"], [sum_amount("revenue")]
    )
    best_category: str | None = None
    if category_revenue:
        (best_id,), _ = min(
            category_revenue.items(),
            key=lambda item: (-item[1]["revenue"], item[0][0]),
        )
        category = dataset.category(best_id)
        best_category = category.category_name if category else None

    hourly = aggregate(dataset.transactions, ["hour"], [count_rows("txn_count")])
    peak_hour: int | None = None
    if hourly:
        (peak_hour,), _ = min(
            hourly.items(), key=lambda item: (-item[1]["txn_count"], item[0][0])
        )

    return BusinessKPIs(
        total_txns=totals["total_txns"],
        total_revenue=totals["total_revenue"],
        distinct_customers=len(dataset.customers),
        distinct_merchants=len(dataset.merchants),
        fraud_rate_pct=percentage(totals["fraud_count"], totals["total_txns"]),
        avg_order_value=quantize_money(
            totals["total_revenue"] / totals["total_txns"]
            if totals["total_txns"]
            else None
        ),
        active_customers=totals["active_customers"],
        active_merchants=totals["active_merchants"],
        best_category=best_category,
        peak_hour=peak_hour,
    )


def _to_json(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_json(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Mapping):
        return {str(_to_json(key)): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class AnalyticsReport:
    """Everything a single report run computes.

    Ledger-dependent sections (RFM, churn, series, cohorts) are empty when
    the dataset has no transactions; the five summaries are always
    complete.
    """

    as_of_date: date | None
    config: AnalyticsConfig
    customer_summary: list[CustomerSummary]
    merchant_summary: list[MerchantSummary]
    category_summary: list[CategorySummary]
    fraud_summary: list[FraudSummary]
    business_kpis: BusinessKPIs
    rfm: list[CustomerRFM] = field(default_factory=list)
    rfm_summary: RFMSummary | None = None
    fraud_slices: dict[str, list[FraudSlice]] = field(default_factory=dict)
    rolling_fraud_rate: list[TimeSeriesPoint] = field(default_factory=list)
    monthly_revenue: list[TimeSeriesPoint] = field(default_factory=list)
    revenue_moving_averages: dict[int, list[TimeSeriesPoint]] = field(
        default_factory=dict
    )
    cohort_retention: list[CohortRetentionCell] = field(default_factory=list)
    churn_risk: list[CustomerActivity] = field(default_factory=list)
    repeat_purchase_rate: Decimal | None = None
    revenue_concentration: Decimal | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation of the report.

        Decimals are rendered as strings to keep them exact and dates as
        ISO-8601 strings.
        """
        return _to_json(self)


Analyzer = Callable[[], Any]


def _check_cancelled(cancel_event: threading.Event | None, step: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ReportCancelled(f"Report cancelled before {step}")


def _analyzers(
    dataset: TransactionDataset, config: AnalyticsConfig, as_of_date: date | None
) -> dict[str, Analyzer]:
    txns = dataset.transactions
    tasks: dict[str, Analyzer] = {
        "customer_summary": lambda: customer_summary(dataset),
        "merchant_summary": lambda: merchant_summary(dataset),
        "category_summary": lambda: category_summary(dataset),
        "fraud_summary": lambda: fraud_summary(dataset),
        "business_kpis": lambda: business_kpis(dataset),
    }
    if not txns:
        return tasks

    tasks.update(
        {
            "rfm": lambda: compute_rfm(txns, as_of_date),
            "fraud_slices": lambda: {
                dimension.value: compute_fraud_rate(
                    txns, dimension, bucket_count=config.amount_bucket_count
                )
                for dimension in REPORT_FRAUD_DIMENSIONS
            },
            "rolling_fraud_rate": lambda: rolling_fraud_rate(
                txns, config.rolling_window_days
            ),
            "monthly_revenue": lambda: period_series(
                txns, PeriodGranularity.MONTH, SeriesMeasure.REVENUE
            ),
            "cohort_retention": lambda: cohort_retention(txns),
            "churn_risk": lambda: churn_risk_customers(
                dataset.customers, txns, as_of_date, config.inactivity_days
            ),
            "repeat_purchase_rate": lambda: repeat_purchase_rate(txns),
            "revenue_concentration": lambda: revenue_concentration(
                txns, config.top_customer_pct
            ),
        }
    )
    return tasks


def _run_sequential(
    tasks: Mapping[str, Analyzer], cancel_event: threading.Event | None
) -> dict[str, Any]:
    results: dict[str, Any] = {}
    for name, task in tasks.items():
        _check_cancelled(cancel_event, name)
        start_time = time.time()
        results[name] = task()
        logger.debug(
            f"Analyzer {name} finished in {(time.time() - start_time) * 1000:.1f} ms"
        )
    return results


def _run_parallel(
    tasks: Mapping[str, Analyzer], cancel_event: threading.Event | None
) -> dict[str, Any]:
    def guarded(name: str, task: Analyzer) -> Any:
        _check_cancelled(cancel_event, name)
        return task()

    with ThreadPoolExecutor(thread_name_prefix="txn-audit") as executor:
        futures = {
            name: executor.submit(guarded, name, task) for name, task in tasks.items()
        }
        done, pending = wait(futures.values(), return_when=FIRST_EXCEPTION)
        for future in pending:
            future.cancel()
        # Propagate the first failure in submission order.
        for name, future in futures.items():
            if future in done and future.exception() is not None:
                logger.error(f"Analyzer {name} failed: {future.exception()}")
                raise future.exception()
        return {name: future.result() for name, future in futures.items()}


def build_report(
    dataset: TransactionDataset,
    config: AnalyticsConfig | None = None,
    *,
    as_of_date: date | None = None,
    cancel_event: threading.Event | None = None,
    parallel: bool | None = None,
) -> AnalyticsReport:
    """Run every analyzer over ``dataset`` and assemble the report.

    Parameters
    ----------
    dataset:
        Validated input relations.
    config:
        Analyzer parameters; defaults to :class:`AnalyticsConfig`.
    as_of_date:
        Reference date for recency and churn. Defaults to the day after the
        latest transaction.
    cancel_event:
        When set, the run stops at the next analyzer boundary with
        :class:`ReportCancelled`. Analyzers themselves are never
        interrupted.
    parallel:
        Fan analyzers out on a thread pool. Defaults to ``config.parallel``.

    Returns
    -------
    AnalyticsReport
        The complete report. There is no partial result: the first
        analyzer error propagates unchanged.
    """
    config = config or AnalyticsConfig()
    if parallel is None:
        parallel = config.parallel
    if as_of_date is None and dataset.transactions:
        as_of_date = default_as_of_date(dataset.transactions)
    if not dataset.transactions:
        logger.warning(
            "Dataset has no transactions; only the summary reports are populated"
        )

    tasks = _analyzers(dataset, config, as_of_date)
    logger.info(
        f"Building report with {len(tasks)} analyzers "
        f"({'parallel' if parallel else 'sequential'}), as_of_date={as_of_date}"
    )
    start_time = time.time()
    if parallel:
        results = _run_parallel(tasks, cancel_event)
    else:
        results = _run_sequential(tasks, cancel_event)
    _check_cancelled(cancel_event, "assembly")

    monthly_revenue = results.get("monthly_revenue", [])
    rfm = results.get("rfm", [])
    report = AnalyticsReport(
        as_of_date=as_of_date,
        config=config,
        customer_summary=results["customer_summary"],
        merchant_summary=results["merchant_summary"],
        category_summary=results["category_summary"],
        fraud_summary=results["fraud_summary"],
        business_kpis=results["business_kpis"],
        rfm=rfm,
        rfm_summary=summarize_rfm(rfm) if rfm else None,
        fraud_slices=results.get("fraud_slices", {}),
        rolling_fraud_rate=results.get("rolling_fraud_rate", []),
        monthly_revenue=monthly_revenue,
        revenue_moving_averages={
            window: moving_average(monthly_revenue, window)
            for window in config.moving_average_windows
        },
        cohort_retention=results.get("cohort_retention", []),
        churn_risk=results.get("churn_risk", []),
        repeat_purchase_rate=results.get("repeat_purchase_rate"),
        revenue_concentration=results.get("revenue_concentration"),
    )
    logger.info(f"Report built in {(time.time() - start_time) * 1000:.1f} ms")
    return report
