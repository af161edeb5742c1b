"""
Risk evaluation agents — supplier, shipment, and inventory.

Each run walks the active organizations (or one target organization), scores
every active entity with the org's thresholds, upserts the score, and
dispatches an alert when the tier is high or critical.

Failure isolation:
  - one entity failing is logged, counted, and rolled back to its SAVEPOINT
  - one organization failing (config load, entity query) is counted and the
    next organization is processed
  - failing to enumerate organizations propagates to the scheduler
"""

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alerts.dispatcher import AlertDispatch, dispatch_alert, severity_from_risk_tier
from core.clock import utcnow
from db.models import RiskScore
from organizations.config import get_or_create_config, list_active_organization_ids, thresholds_for
from scoring import store
from scoring.service import score_entity
from scoring.tiers import ScoreResult
from supply_chain.entities import find_active_shipments, find_active_suppliers, find_inventory

logger = structlog.get_logger()

ALERTING_TIERS = ("high", "critical")


def _with_warning(text: str, result: ScoreResult) -> str:
    return f"{text} {result.confidence_warning}" if result.confidence_warning else text


def supplier_alert(supplier, result: ScoreResult) -> tuple[str, str, str]:
    title = f"Supplier Risk Alert: {supplier.name} ({result.risk_tier.upper()})"
    description = (
        f'Supplier "{supplier.name}" ({supplier.supplier_code}) has a risk score of '
        f"{result.overall_score}/100."
    )
    return "supplierRisk", title, _with_warning(description, result)


def shipment_alert(shipment, result: ScoreResult) -> tuple[str, str, str]:
    title = f"Shipment Delay Alert: {shipment.shipment_number} ({result.risk_tier.upper()})"
    description = (
        f'Shipment "{shipment.shipment_number}" has a risk score of {result.overall_score}/100. '
        f"ETA deviation score: {result.components['eta_deviation_score']}."
    )
    return "shipmentDelay", title, _with_warning(description, result)


def inventory_alert(item, result: ScoreResult) -> tuple[str, str, str]:
    alert_type = "inventoryStockout" if (item.current_stock or 0) <= 0 else "inventoryLow"
    title = f"Inventory Risk Alert: {item.product_name} ({result.risk_tier.upper()})"
    description = (
        f'SKU "{item.sku}" ({item.product_name}) has a risk score of {result.overall_score}/100. '
        f"Current stock: {item.current_stock:g}, Days of cover: {(item.days_of_cover or 0):.1f}."
    )
    return alert_type, title, _with_warning(description, result)


@dataclass(frozen=True)
class RiskAgent:
    """How one agent finds, names, and alerts on its entities."""

    name: str
    event_prefix: str
    entity_type: str
    find_entities: Callable[[AsyncSession, uuid.UUID], Awaitable[list[Any]]]
    entity_id: Callable[[Any], uuid.UUID]
    build_alert: Callable[[Any, ScoreResult], tuple[str, str, str]]


SUPPLIER_RISK_AGENT = RiskAgent(
    name="supplierRisk",
    event_prefix="supplier_risk",
    entity_type="supplier",
    find_entities=find_active_suppliers,
    entity_id=lambda supplier: supplier.supplier_id,
    build_alert=supplier_alert,
)

SHIPMENT_RISK_AGENT = RiskAgent(
    name="shipmentRisk",
    event_prefix="shipment_risk",
    entity_type="shipment",
    find_entities=find_active_shipments,
    entity_id=lambda shipment: shipment.shipment_id,
    build_alert=shipment_alert,
)

INVENTORY_RISK_AGENT = RiskAgent(
    name="inventoryRisk",
    event_prefix="inventory_risk",
    entity_type="inventory",
    find_entities=find_inventory,
    entity_id=lambda item: item.item_id,
    build_alert=inventory_alert,
)


async def evaluate_one(
    db: AsyncSession,
    agent: RiskAgent,
    organization_id: uuid.UUID,
    entity,
    thresholds,
    now: datetime,
) -> tuple[RiskScore, bool]:
    """Score, persist, and alert on a single entity. Returns (score, alert_created)."""
    entity_id = agent.entity_id(entity)
    result = await score_entity(db, organization_id, agent.entity_type, entity, thresholds, now=now)
    saved = await store.upsert_score(
        db, organization_id, entity_id, agent.entity_type, result, evaluated_by="agent", now=now
    )

    if result.risk_tier not in ALERTING_TIERS:
        return saved, False

    alert_type, title, description = agent.build_alert(entity, result)
    alert = await dispatch_alert(
        db,
        AlertDispatch(
            organization_id=organization_id,
            alert_type=alert_type,
            severity=severity_from_risk_tier(result.risk_tier),
            title=title,
            description=description,
            related_entity_type=agent.entity_type,
            related_entity_id=entity_id,
            risk_score_id=saved.risk_score_id,
            score_components=result.components,
        ),
        now=now,
    )
    return saved, alert is not None


async def evaluate_organization(
    db: AsyncSession,
    agent: RiskAgent,
    organization_id: uuid.UUID,
    now: datetime,
) -> dict[str, int]:
    config = await get_or_create_config(db, organization_id)
    thresholds = thresholds_for(config, agent.entity_type)
    entities = await agent.find_entities(db, organization_id)

    processed = 0
    alerts_generated = 0
    errors = 0
    for entity in entities:
        entity_id = agent.entity_id(entity)
        try:
            async with db.begin_nested():
                _, alerted = await evaluate_one(db, agent, organization_id, entity, thresholds, now)
            processed += 1
            if alerted:
                alerts_generated += 1
        except Exception as exc:  # noqa: BLE001
            errors += 1
            logger.error(
                f"{agent.event_prefix}.entity_failed",
                organization_id=str(organization_id),
                entity_type=agent.entity_type,
                entity_id=str(entity_id),
                error=str(exc),
                exc_info=True,
            )

    return {"processed": processed, "alerts_generated": alerts_generated, "errors": errors}


async def run_risk_evaluation(
    session_factory: async_sessionmaker,
    agent: RiskAgent,
    target_organization_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> dict[str, int]:
    now = now or utcnow()
    logger.info(f"{agent.event_prefix}.started", target_organization_id=str(target_organization_id or ""))

    if target_organization_id is not None:
        organization_ids = [target_organization_id]
    else:
        async with session_factory() as db:
            organization_ids = await list_active_organization_ids(db)

    totals = {"processed": 0, "alerts_generated": 0, "errors": 0}
    for organization_id in organization_ids:
        try:
            async with session_factory() as db:
                result = await evaluate_organization(db, agent, organization_id, now)
                await db.commit()
            for key in totals:
                totals[key] += result[key]
        except Exception as exc:  # noqa: BLE001
            totals["errors"] += 1
            logger.error(
                f"{agent.event_prefix}.org_failed",
                organization_id=str(organization_id),
                error=str(exc),
                exc_info=True,
            )

    logger.info(f"{agent.event_prefix}.completed", **totals)
    return totals


async def run_supplier_risk_evaluation(session_factory, target_organization_id=None, now=None):
    return await run_risk_evaluation(session_factory, SUPPLIER_RISK_AGENT, target_organization_id, now)


async def run_shipment_risk_evaluation(session_factory, target_organization_id=None, now=None):
    return await run_risk_evaluation(session_factory, SHIPMENT_RISK_AGENT, target_organization_id, now)


async def run_inventory_risk_evaluation(session_factory, target_organization_id=None, now=None):
    return await run_risk_evaluation(session_factory, INVENTORY_RISK_AGENT, target_organization_id, now)
