"""
Shipment Risk Scoring

Weighted sum of five components:
  eta_deviation  40%   min(hours_late × 2, 50) once past ETA, else 0; 25 if no ETA
  weather        25%   {low: 0, medium: 15, high: 30, severe: 40}; medium if unset
  route          20%   clamp(route_risk_index × 0.25, 0, 25); 0 if unset
  carrier        10%   clamp((100 − reliability) × 0.20, 0, 20); 4 if unset
  tracking_gap    5%   clamp(hours since last tracking event, 0, 24); 24 if none
"""

from datetime import datetime
from typing import Any

from core.clock import as_naive_utc, hours_between, utcnow
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
    "eta_deviation_score": 0.40,
    "weather_score": 0.25,
    "route_score": 0.20,
    "carrier_score": 0.10,
    "tracking_gap_score": 0.05,
}

WEATHER_RISK_SCORES = {"low": 0, "medium": 15, "high": 30, "severe": 40}

# Reliability assumed when the carrier has no track record (→ score 4)
DEFAULT_CARRIER_RELIABILITY = 80


def hours_past_eta(estimated_arrival: datetime | str, now: datetime) -> float:
    """Positive when the shipment is late, negative when ahead of its ETA."""
    return hours_between(estimated_arrival, now)


def _last_tracking_timestamp(events: list[dict]) -> datetime | None:
    stamps = [as_naive_utc(e.get("timestamp")) for e in events if e.get("timestamp")]
    return max(stamps) if stamps else None


def score_shipment(
    shipment: Any,
    thresholds: RiskThresholds | None = None,
    now: datetime | None = None,
) -> ScoreResult:
    thresholds = thresholds or DEFAULT_RISK_THRESHOLDS["shipment"]
    now = now or utcnow()
    tracker = ConfidenceTracker()

    estimated_arrival = read_field(shipment, "estimated_arrival")
    if estimated_arrival:
        late_hours = hours_past_eta(estimated_arrival, now)
        eta_deviation_score = min(late_hours * 2, 50) if late_hours > 0 else 0
    else:
        eta_deviation_score = 25
        tracker.penalize(20, "Estimated arrival date not set")

    weather_risk = read_field(shipment, "weather_risk")
    if weather_risk in WEATHER_RISK_SCORES:
        weather_score = WEATHER_RISK_SCORES[weather_risk]
    else:
        weather_score = WEATHER_RISK_SCORES["medium"]
        tracker.penalize(10, "Weather risk data unavailable, using medium default")

    route_risk_index = read_field(shipment, "route_risk_index")
    if route_risk_index is not None:
        route_score = clamp(route_risk_index * 0.25, 0, 25)
    else:
        route_score = 0
        tracker.penalize(10, "Route risk index unavailable")

    carrier_reliability = read_field(shipment, "carrier_reliability")
    if carrier_reliability is not None:
        carrier_score = clamp((100 - carrier_reliability) * 0.20, 0, 20)
    else:
        carrier_score = (100 - DEFAULT_CARRIER_RELIABILITY) * 0.20
        tracker.penalize(10, "Carrier reliability data unavailable")

    last_event_at = _last_tracking_timestamp(read_field(shipment, "tracking_events", []))
    if last_event_at is not None:
        tracking_gap_score = clamp(hours_between(last_event_at, now), 0, 24)
    else:
        tracking_gap_score = 24
        tracker.penalize(15, "No tracking events recorded")

    components = {
        "eta_deviation_score": eta_deviation_score,
        "weather_score": weather_score,
        "route_score": route_score,
        "carrier_score": carrier_score,
        "tracking_gap_score": tracking_gap_score,
    }
    weighted = sum(components[name] * weight for name, weight in WEIGHTS.items())

    return build_result(
        weighted_sum=weighted,
        components=components,
        tracker=tracker,
        thresholds=thresholds,
        score_type="shipmentRisk",
    )
