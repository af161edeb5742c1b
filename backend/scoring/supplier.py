"""
Supplier Risk Scoring

Weighted sum of five components:
  delay         30%   100 × (1 − on_time_delivery_rate / 100), default 50
  financial     25%   100 − financial_stability.score, default 50
  defect        20%   defect rate percentage, default 0
  dispute       15%   min(dispute_frequency × 5, 50), default 0
  geopolitical  10%   20 when the supplier region is flagged, else 0

Confidence penalties: −20 missing on-time rate, −20 missing financial score,
−20 stale financial data (> 90 days), −10 missing defect rate, −10 missing
dispute frequency, −20 no shipment activity recorded in 90 days.
"""

from datetime import datetime
from typing import Any

from core.clock import is_older_than_days, utcnow
from scoring.tiers import (
    DEFAULT_RISK_THRESHOLDS,
    ConfidenceTracker,
    RiskThresholds,
    ScoreResult,
    build_result,
    clamp,
    read_field,
)

WEIGHTS = {
    "delay_score": 0.30,
    "financial_score": 0.25,
    "defect_score": 0.20,
    "dispute_score": 0.15,
    "geopolitical_score": 0.10,
}

STALE_DATA_DAYS = 90


def score_supplier(
    supplier: Any,
    thresholds: RiskThresholds | None = None,
    now: datetime | None = None,
) -> ScoreResult:
    thresholds = thresholds or DEFAULT_RISK_THRESHOLDS["supplier"]
    now = now or utcnow()
    metrics = read_field(supplier, "performance_metrics", {})
    financial = read_field(supplier, "financial_stability", {})
    tracker = ConfidenceTracker()

    on_time_rate = metrics.get("on_time_delivery_rate")
    if on_time_rate is not None:
        delay_score = clamp((1 - on_time_rate / 100) * 100, 0, 100)
    else:
        delay_score = 50
        tracker.penalize(20, "On-time delivery rate unavailable")

    financial_raw = financial.get("score")
    if financial_raw is not None:
        financial_score = clamp(100 - financial_raw, 0, 100)
        last_updated = financial.get("last_updated")
        if last_updated and is_older_than_days(last_updated, STALE_DATA_DAYS, now):
            tracker.penalize(20, "Financial stability data is older than 90 days")
    else:
        financial_score = 50
        tracker.penalize(20, "Financial stability score unavailable")

    defect_rate = metrics.get("defect_rate")
    if defect_rate is not None:
        defect_score = clamp(defect_rate, 0, 100)
    else:
        defect_score = 0
        tracker.penalize(10, "Defect rate unavailable")

    dispute_frequency = metrics.get("dispute_frequency")
    if dispute_frequency is not None:
        dispute_score = min(dispute_frequency * 5, 50)
    else:
        dispute_score = 0
        tracker.penalize(10, "Dispute frequency unavailable")

    geopolitical_score = 20 if read_field(supplier, "geopolitical_risk_flag", False) else 0

    metrics_updated = metrics.get("last_updated")
    if metrics_updated and is_older_than_days(metrics_updated, STALE_DATA_DAYS, now):
        tracker.penalize(20, "No shipment data in the last 90 days")

    components = {
        "delay_score": delay_score,
        "financial_score": financial_score,
        "defect_score": defect_score,
        "dispute_score": dispute_score,
        "geopolitical_score": geopolitical_score,
    }
    weighted = sum(components[name] * weight for name, weight in WEIGHTS.items())

    return build_result(
        weighted_sum=weighted,
        components=components,
        tracker=tracker,
        thresholds=thresholds,
        score_type="supplierRisk",
    )
