"""
On-demand evaluation of a single entity.

Agents score whole organizations on a schedule; this is the path for an
operator (``manual``) or another subsystem (``system``) asking for a fresh
score of one supplier, shipment, or inventory item right now.
"""

import uuid
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError, ValidationError
from db.models import InventoryItem, RiskScore
from organizations.config import get_or_create_config, thresholds_for
from scoring import store
from scoring.inventory import score_inventory
from scoring.shipment import score_shipment
from scoring.supplier import score_supplier
from scoring.tiers import ScoreResult
from supply_chain.entities import find_by_id, model_for

logger = structlog.get_logger()

ON_DEMAND_EVALUATORS = ("manual", "system")


async def supplier_score_for_item(
    db: AsyncSession,
    organization_id: uuid.UUID,
    item: InventoryItem,
) -> float | None:
    """Current overall score of the item's supplier, or None if unscored."""
    if item.supplier_id is None:
        return None
    current = await store.get_by_entity_id(db, organization_id, "supplier", item.supplier_id)
    return current.overall_score if current is not None else None


async def score_entity(
    db: AsyncSession,
    organization_id: uuid.UUID,
    entity_type: str,
    entity,
    thresholds,
    now: datetime | None = None,
) -> ScoreResult:
    if entity_type == "supplier":
        return score_supplier(entity, thresholds, now=now)
    if entity_type == "shipment":
        return score_shipment(entity, thresholds, now=now)
    supplier_score = await supplier_score_for_item(db, organization_id, entity)
    return score_inventory(entity, supplier_score, thresholds)


async def evaluate_entity(
    db: AsyncSession,
    organization_id: uuid.UUID,
    entity_type: str,
    entity_id: uuid.UUID,
    *,
    evaluated_by: str = "manual",
    now: datetime | None = None,
) -> RiskScore:
    if evaluated_by not in ON_DEMAND_EVALUATORS:
        raise ValidationError(
            f"evaluated_by must be one of {', '.join(ON_DEMAND_EVALUATORS)}",
            details={"evaluated_by": evaluated_by},
        )

    model = model_for(entity_type)
    entity = await find_by_id(db, model, entity_id, organization_id)
    if entity is None:
        raise NotFoundError(
            f"{entity_type} {entity_id} not found",
            details={"entity_type": entity_type, "entity_id": str(entity_id)},
        )

    config = await get_or_create_config(db, organization_id)
    result = await score_entity(
        db, organization_id, entity_type, entity, thresholds_for(config, entity_type), now=now
    )
    score = await store.upsert_score(
        db, organization_id, entity_id, entity_type, result, evaluated_by=evaluated_by, now=now
    )

    logger.info(
        "risk_score.evaluated",
        organization_id=str(organization_id),
        entity_type=entity_type,
        entity_id=str(entity_id),
        overall_score=score.overall_score,
        risk_tier=score.risk_tier,
        evaluated_by=evaluated_by,
    )
    return score
