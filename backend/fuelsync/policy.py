"""
Settlement policy: the named tolerances and thresholds shared by the payment
allocator and the settlement aggregator.

Values come from Flask config (see config.Config) so they are set in one place
and injected into both components instead of being repeated as literals.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Mapping

from flask import current_app, has_app_context

CREDIT_LIMIT_WARN = "WARN"
CREDIT_LIMIT_BLOCK = "BLOCK"


@dataclass(frozen=True)
class VarianceThresholds:
    review_percent: float = 2.0
    investigate_percent: float = 5.0

    def __post_init__(self):
        if not (math.isfinite(self.review_percent) and math.isfinite(self.investigate_percent)):
            raise ValueError("variance thresholds must be finite numbers")
        if self.review_percent < 0 or self.investigate_percent < self.review_percent:
            raise ValueError("variance thresholds must satisfy 0 <= review <= investigate")


@dataclass(frozen=True)
class AgingThresholds:
    current_max_days: int = 30
    overdue_max_days: int = 60

    def __post_init__(self):
        if self.current_max_days < 0 or self.overdue_max_days < self.current_max_days:
            raise ValueError("aging thresholds must satisfy 0 <= current <= overdue")


@dataclass(frozen=True)
class SettlementPolicy:
    tolerance_cents: int = 1
    variance: VarianceThresholds = VarianceThresholds()
    aging: AgingThresholds = AgingThresholds()
    credit_limit_policy: str = CREDIT_LIMIT_WARN
    auto_handover_on_shift_end: bool = True
    enforce_handover_sequence: bool = True
    max_report_days: int = 366

    @property
    def blocks_on_credit_limit(self) -> bool:
        return self.credit_limit_policy == CREDIT_LIMIT_BLOCK

    @classmethod
    def from_config(cls, config: Mapping) -> "SettlementPolicy":
        return cls(
            tolerance_cents=int(config.get("MONETARY_TOLERANCE_CENTS", 1)),
            variance=VarianceThresholds(
                review_percent=float(config.get("VARIANCE_REVIEW_PERCENT", 2.0)),
                investigate_percent=float(config.get("VARIANCE_INVESTIGATE_PERCENT", 5.0)),
            ),
            aging=AgingThresholds(
                current_max_days=int(config.get("AGING_CURRENT_MAX_DAYS", 30)),
                overdue_max_days=int(config.get("AGING_OVERDUE_MAX_DAYS", 60)),
            ),
            credit_limit_policy=str(config.get("CREDIT_LIMIT_POLICY", CREDIT_LIMIT_WARN)).upper(),
            auto_handover_on_shift_end=bool(config.get("AUTO_HANDOVER_ON_SHIFT_END", True)),
            enforce_handover_sequence=bool(config.get("ENFORCE_HANDOVER_SEQUENCE", True)),
            max_report_days=int(config.get("MAX_REPORT_DAYS", 366)),
        )

    def with_variance(self, review_percent: float | None, investigate_percent: float | None) -> "SettlementPolicy":
        if review_percent is None and investigate_percent is None:
            return self
        return replace(
            self,
            variance=VarianceThresholds(
                review_percent=self.variance.review_percent if review_percent is None else review_percent,
                investigate_percent=self.variance.investigate_percent if investigate_percent is None else investigate_percent,
            ),
        )


def current_policy() -> SettlementPolicy:
    """Policy for the running app; defaults when called outside an app context."""
    if has_app_context():
        return SettlementPolicy.from_config(current_app.config)
    return SettlementPolicy()
