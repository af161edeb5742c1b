"""
Shared building blocks for the risk scoring engines.

  - RiskThresholds: per-entity-type tier band (low < medium < high)
  - classify_risk_tier: score → tier, identical for all engines
  - ConfidenceTracker: start at 100, subtract a fixed penalty per missing or
    stale input, clamp to [0, 100], flag low confidence below 60
  - ScoreResult: what every engine returns
"""

import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

LOW_CONFIDENCE_THRESHOLD = 60


@dataclass(frozen=True)
class RiskThresholds:
    low: float
    medium: float
    high: float

    def __post_init__(self):
        if not (self.low < self.medium < self.high):
            raise ValueError(
                f"Risk thresholds must be ascending (low < medium < high), got "
                f"{self.low}/{self.medium}/{self.high}"
            )

    @classmethod
    def from_mapping(cls, band: Mapping[str, Any] | None, fallback: "RiskThresholds") -> "RiskThresholds":
        if not band:
            return fallback
        return cls(low=band["low"], medium=band["medium"], high=band["high"])

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


# low: 0-30, medium: 31-60, high: 61-80, critical: 81-100
DEFAULT_RISK_THRESHOLDS: dict[str, RiskThresholds] = {
    "supplier": RiskThresholds(low=30, medium=60, high=80),
    "shipment": RiskThresholds(low=30, medium=60, high=80),
    "inventory": RiskThresholds(low=30, medium=60, high=80),
}

TIER_ORDER = {"low": 0, "medium": 1, "high": 2, "critical": 3}


def classify_risk_tier(score: float, thresholds: RiskThresholds) -> str:
    """Classify a 0-100 score into a tier. Bands are exclusive at the top."""
    if score > thresholds.high:
        return "critical"
    if score > thresholds.medium:
        return "high"
    if score > thresholds.low:
        return "medium"
    return "low"


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive scores (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def read_field(entity: Any, name: str, default: Any = None) -> Any:
    """Read a field from an ORM row or a plain mapping snapshot."""
    if entity is None:
        return default
    if isinstance(entity, Mapping):
        value = entity.get(name, default)
    else:
        value = getattr(entity, name, default)
    return default if value is None else value


class ConfidenceTracker:
    def __init__(self):
        self.confidence = 100
        self.warnings: list[str] = []

    def penalize(self, points: int, warning: str) -> None:
        self.confidence -= points
        self.warnings.append(warning)

    @property
    def value(self) -> int:
        return int(clamp(self.confidence, 0, 100))

    @property
    def warning(self) -> str | None:
        return "; ".join(self.warnings) if self.warnings else None


@dataclass
class ScoreResult:
    overall_score: int
    risk_tier: str
    components: dict[str, int]
    confidence: int
    low_confidence: bool
    confidence_warning: str | None
    score_type: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_result(
    *,
    weighted_sum: float,
    components: dict[str, float],
    tracker: ConfidenceTracker,
    thresholds: RiskThresholds,
    score_type: str,
) -> ScoreResult:
    """Round once at the end; components are rounded only for display."""
    overall = int(clamp(round_half_up(weighted_sum), 0, 100))
    confidence = tracker.value
    return ScoreResult(
        overall_score=overall,
        risk_tier=classify_risk_tier(overall, thresholds),
        components={name: round_half_up(value) for name, value in components.items()},
        confidence=confidence,
        low_confidence=confidence < LOW_CONFIDENCE_THRESHOLD,
        confidence_warning=tracker.warning,
        score_type=score_type,
    )
