"""Run-time configuration for report computation.

Defaults mirror the reference KPI pack: ten amount buckets, a seven-day
rolling fraud window, a 90-day inactivity threshold and 3/6-month moving
averages. Values can be overridden from ``TXN_AUDIT_*`` environment
variables via :meth:`AnalyticsConfig.from_env`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from transaction_audit.foundation.dataset import ReferentialPolicy

ENV_PREFIX = "TXN_AUDIT_"


@dataclass(frozen=True)
class AnalyticsConfig:
    """Parameters shared by the analyzers of a single report run.

    Attributes
    ----------
    amount_bucket_count:
        Number of equal-width buckets for amount-based fraud slicing.
    rolling_window_days:
        Trailing window (calendar days, inclusive) for the rolling fraud rate.
    inactivity_days:
        Days without transactions after which a customer is a churn risk and
        a merchant is inactive.
    moving_average_windows:
        Window sizes (in periods) for the revenue moving averages.
    top_customer_pct:
        Percentile used for the revenue concentration (Pareto) KPI.
    referential_policy:
        How the loader treats transactions with dangling dimension keys.
    parallel:
        Fan analyzers out on a thread pool when assembling a report.
    """

    amount_bucket_count: int = 10
    rolling_window_days: int = 7
    inactivity_days: int = 90
    moving_average_windows: tuple[int, ...] = (3, 6)
    top_customer_pct: int = 20
    referential_policy: ReferentialPolicy = ReferentialPolicy.SKIP
    parallel: bool = False

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.amount_bucket_count <= 0:
            raise ValueError(
                f"amount_bucket_count must be positive: {self.amount_bucket_count}"
            )
        if self.rolling_window_days <= 0:
            raise ValueError(
                f"rolling_window_days must be positive: {self.rolling_window_days}"
            )
        if self.inactivity_days < 0:
            raise ValueError(
                f"inactivity_days cannot be negative: {self.inactivity_days}"
            )
        if not self.moving_average_windows or any(
            window <= 0 for window in self.moving_average_windows
        ):
            raise ValueError(
                f"moving_average_windows must be positive: {self.moving_average_windows}"
            )
        if not 0 < self.top_customer_pct <= 100:
            raise ValueError(
                f"top_customer_pct must be between 1 and 100: {self.top_customer_pct}"
            )

    @classmethod
    def from_env(cls) -> "AnalyticsConfig":
        """Build a configuration from ``TXN_AUDIT_*`` environment variables.

        Unset variables keep the dataclass defaults.
        """
        defaults = cls()
        windows = os.getenv(f"{ENV_PREFIX}MOVING_AVERAGE_WINDOWS")
        return cls(
            amount_bucket_count=int(
                os.getenv(
                    f"{ENV_PREFIX}AMOUNT_BUCKETS", str(defaults.amount_bucket_count)
                )
            ),
            rolling_window_days=int(
                os.getenv(
                    f"{ENV_PREFIX}ROLLING_WINDOW_DAYS",
                    str(defaults.rolling_window_days),
                )
            ),
            inactivity_days=int(
                os.getenv(
                    f"{ENV_PREFIX}INACTIVITY_DAYS", str(defaults.inactivity_days)
                )
            ),
            moving_average_windows=(
                tuple(int(item) for item in windows.split(",") if item.strip())
                if windows
                else defaults.moving_average_windows
            ),
            top_customer_pct=int(
                os.getenv(
                    f"{ENV_PREFIX}TOP_CUSTOMER_PCT", str(defaults.top_customer_pct)
                )
            ),
            referential_policy=ReferentialPolicy(
                os.getenv(
                    f"{ENV_PREFIX}REFERENTIAL_POLICY",
                    defaults.referential_policy.value,
                ).lower()
            ),
            parallel=os.getenv(f"{ENV_PREFIX}PARALLEL", "false").lower()
            in ("1", "true", "yes"),
        )
