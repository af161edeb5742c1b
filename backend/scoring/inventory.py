"""
Inventory Risk Scoring

Weighted sum of three components:
  stockout_probability      50%
  demand_variance_score     30%
  supplier_risk_adjustment  20%   supplier's current overall score × 0.20

Stockout probability uses tiered overrides before the continuous formula:
  days_of_cover < 1              → 100  (imminent stockout)
  current_stock < safety_stock   →  90
  current_stock < reorder_point  →  60
  otherwise clamp(100 − days_of_cover / (lead_time_days × 1.5) × 100, 0, 100)

Demand variance is the population standard deviation of recorded actual
demand divided by average daily demand, × 50, capped at 30.
"""

import statistics
from typing import Any

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
    "stockout_probability": 0.50,
    "demand_variance_score": 0.30,
    "supplier_risk_adjustment": 0.20,
}

DEFAULT_SUPPLIER_RISK_SCORE = 50
DEFAULT_DEMAND_VARIANCE_SCORE = 10
LEAD_TIME_COVER_FACTOR = 1.5


def stockout_probability(
    current_stock: float,
    average_daily_demand: float,
    lead_time_days: float,
    safety_stock: float,
    reorder_point: float,
) -> float:
    """Assumes average_daily_demand > 0."""
    days_of_cover = current_stock / average_daily_demand
    if days_of_cover < 1:
        return 100
    if current_stock < safety_stock:
        return 90
    if current_stock < reorder_point:
        return 60
    return clamp(100 - (days_of_cover / (lead_time_days * LEAD_TIME_COVER_FACTOR)) * 100, 0, 100)


def actual_demand_samples(history: list[dict]) -> list[float]:
    return [h["actual_demand"] for h in history if h.get("actual_demand") is not None]


def score_inventory(
    item: Any,
    supplier_risk_score: float | None = None,
    thresholds: RiskThresholds | None = None,
) -> ScoreResult:
    thresholds = thresholds or DEFAULT_RISK_THRESHOLDS["inventory"]
    if supplier_risk_score is None:
        supplier_risk_score = DEFAULT_SUPPLIER_RISK_SCORE
    tracker = ConfidenceTracker()

    current_stock = read_field(item, "current_stock", 0)
    average_daily_demand = read_field(item, "average_daily_demand", 0)
    lead_time_days = read_field(item, "lead_time_days", 7)
    safety_stock = read_field(item, "safety_stock", 0)
    reorder_point = read_field(item, "reorder_point", 0)
    history = read_field(item, "demand_history", [])

    # ─── Stockout probability ──────────────────────────────────────────
    if average_daily_demand <= 0:
        stockout = 0
        tracker.penalize(10, "Average daily demand is zero or unavailable")
    else:
        stockout = stockout_probability(
            current_stock, average_daily_demand, lead_time_days, safety_stock, reorder_point
        )

    # ─── Demand variance ───────────────────────────────────────────────
    if len(history) >= 2 and average_daily_demand > 0:
        samples = actual_demand_samples(history)
        if len(samples) >= 2:
            std_dev = statistics.pstdev(samples)
            demand_variance = min((std_dev / average_daily_demand) * 50, 30)
        else:
            demand_variance = DEFAULT_DEMAND_VARIANCE_SCORE
            tracker.penalize(10, "Insufficient historical demand data for variance calculation")
    else:
        demand_variance = DEFAULT_DEMAND_VARIANCE_SCORE
        tracker.penalize(10, "Demand forecast data unavailable")

    # ─── Supplier risk adjustment ──────────────────────────────────────
    supplier_adjustment = supplier_risk_score * 0.20

    components = {
        "stockout_probability": stockout,
        "demand_variance_score": demand_variance,
        "supplier_risk_adjustment": supplier_adjustment,
    }
    weighted = sum(components[name] * weight for name, weight in WEIGHTS.items())

    return build_result(
        weighted_sum=weighted,
        components=components,
        tracker=tracker,
        thresholds=thresholds,
        score_type="inventoryRisk",
    )
