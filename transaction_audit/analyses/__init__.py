"""KPI analyzers over a transaction ledger.

1. Fraud rates - sliced by dimension and over rolling windows
2. Time series - period totals, growth and moving averages
3. Cohorts - acquisition month retention
4. Customers - activity, churn risk, rankings, locations and purchase gaps
5. Merchants - inactivity, monthly ranks, category mix and day types
"""

from .cohorts import CohortRetentionCell, cohort_retention, new_customers_by_month
from .customers import (
    CustomerActivity,
    churn_risk_customers,
    customer_activity,
    rank_customers_by_spend,
    revenue_by_customer_location,
    revenue_concentration,
    transaction_gaps,
)
from .fraud import (
    FraudDimension,
    FraudSlice,
    compute_fraud_rate,
    overall_fraud_rate,
    rolling_fraud_rate,
)
from .merchants import (
    category_share,
    customer_merchant_pairs,
    inactive_merchants,
    merchant_monthly_rank,
    revenue_by_day_type,
)
from .timeseries import (
    SeriesMeasure,
    TimeSeriesPoint,
    cumulative_sum,
    moving_average,
    period_series,
)

__all__ = [
    # Fraud
    "FraudDimension",
    "FraudSlice",
    "compute_fraud_rate",
    "overall_fraud_rate",
    "rolling_fraud_rate",
    # Time series
    "SeriesMeasure",
    "TimeSeriesPoint",
    "cumulative_sum",
    "moving_average",
    "period_series",
    # Cohorts
    "CohortRetentionCell",
    "cohort_retention",
    "new_customers_by_month",
    # Customers
    "CustomerActivity",
    "churn_risk_customers",
    "customer_activity",
    "rank_customers_by_spend",
    "revenue_by_customer_location",
    "revenue_concentration",
    "transaction_gaps",
    # Merchants
    "category_share",
    "customer_merchant_pairs",
    "inactive_merchants",
    "merchant_monthly_rank",
    "revenue_by_day_type",
]
