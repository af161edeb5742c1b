"""
Risk Score Store — one current row per (organization, entity_type, entity_id).

Re-evaluations update the row in place and push the displaced score into a
FIFO-bounded history (365 entries, oldest evicted first) that backs trend
charts and escalation reference points. Rows are never deleted.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utcnow
from db.models import RISK_TIERS, RiskScore
from scoring.tiers import ScoreResult

MAX_SCORE_HISTORY = 365


def push_history(history: list[dict[str, Any]] | None, entry: dict[str, Any]) -> list[dict[str, Any]]:
    """Return a new history list with ``entry`` appended and the oldest evicted."""
    updated = list(history or [])
    updated.append(entry)
    if len(updated) > MAX_SCORE_HISTORY:
        updated = updated[-MAX_SCORE_HISTORY:]
    return updated


async def get_by_entity_id(
    db: AsyncSession,
    organization_id: uuid.UUID,
    entity_type: str,
    entity_id: uuid.UUID,
) -> RiskScore | None:
    result = await db.execute(
        select(RiskScore).where(
            RiskScore.organization_id == organization_id,
            RiskScore.entity_type == entity_type,
            RiskScore.entity_id == entity_id,
        )
    )
    return result.scalar_one_or_none()


async def upsert_score(
    db: AsyncSession,
    organization_id: uuid.UUID,
    entity_id: uuid.UUID,
    entity_type: str,
    result: ScoreResult,
    *,
    evaluated_by: str = "agent",
    now: datetime | None = None,
) -> RiskScore:
    """Create the entity's score row, or update it preserving the displaced score."""
    now = now or utcnow()
    score = await get_by_entity_id(db, organization_id, entity_type, entity_id)

    if score is None:
        score = RiskScore(
            organization_id=organization_id,
            entity_type=entity_type,
            entity_id=entity_id,
            score_history=[],
            created_at=now,
        )
        db.add(score)
    else:
        score.previous_score = score.overall_score
        score.score_history = push_history(
            score.score_history,
            {
                "score": score.overall_score,
                "risk_tier": score.risk_tier,
                "evaluated_at": score.evaluated_at.isoformat() if score.evaluated_at else None,
            },
        )

    score.score_type = result.score_type
    score.overall_score = result.overall_score
    score.risk_tier = result.risk_tier
    score.components = dict(result.components)
    score.confidence = result.confidence
    score.low_confidence = result.low_confidence
    score.confidence_warning = result.confidence_warning
    score.evaluated_at = now
    score.evaluated_by = evaluated_by
    score.updated_at = now

    await db.flush()
    return score


async def get_history(
    db: AsyncSession,
    organization_id: uuid.UUID,
    entity_type: str,
    entity_id: uuid.UUID,
    limit: int = 30,
) -> list[dict[str, Any]]:
    """Current score followed by historical points, newest first."""
    score = await get_by_entity_id(db, organization_id, entity_type, entity_id)
    if score is None:
        return []
    points = [
        {
            "score": score.overall_score,
            "risk_tier": score.risk_tier,
            "evaluated_at": score.evaluated_at.isoformat() if score.evaluated_at else None,
        }
    ]
    points.extend(reversed(score.score_history or []))
    return points[:limit]


async def get_by_risk_tier(
    db: AsyncSession,
    organization_id: uuid.UUID,
    entity_type: str,
    risk_tier: str,
) -> list[RiskScore]:
    result = await db.execute(
        select(RiskScore)
        .where(
            RiskScore.organization_id == organization_id,
            RiskScore.entity_type == entity_type,
            RiskScore.risk_tier == risk_tier,
        )
        .order_by(RiskScore.overall_score.desc())
    )
    return list(result.scalars().all())


async def get_risk_tier_distribution(
    db: AsyncSession,
    organization_id: uuid.UUID,
    entity_type: str,
) -> dict[str, int]:
    """Count of current scores per tier. Every tier is present, zero-filled."""
    result = await db.execute(
        select(RiskScore.risk_tier, func.count())
        .where(
            RiskScore.organization_id == organization_id,
            RiskScore.entity_type == entity_type,
        )
        .group_by(RiskScore.risk_tier)
    )
    distribution = {tier: 0 for tier in RISK_TIERS}
    for tier, count in result.all():
        distribution[tier] = int(count)
    return distribution
