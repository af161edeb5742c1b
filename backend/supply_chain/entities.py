"""
Entity Stores — suppliers, shipments, and inventory items.

Reads are always scoped to one organization and skip soft-deleted rows.
Writes are compare-and-swap on ``version``: the UPDATE only matches the row
the caller read, and bumps the version in the same statement.
"""

import uuid
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utcnow
from core.errors import ConcurrencyConflictError, NotFoundError, ValidationError
from db.models import InventoryItem, Shipment, Supplier
from supply_chain.derived import apply_inventory_derivations

logger = structlog.get_logger()

ACTIVE_SUPPLIER_STATUSES = ("active", "underWatch", "highRisk")
ACTIVE_SHIPMENT_STATUSES = ("registered", "inTransit", "delayed", "rerouted")

ENTITY_MODELS = {
    "supplier": Supplier,
    "shipment": Shipment,
    "inventory": InventoryItem,
}

_PRIMARY_KEYS = {
    Supplier: "supplier_id",
    Shipment: "shipment_id",
    InventoryItem: "item_id",
}

_IMMUTABLE_FIELDS = {"organization_id", "version", "created_at"}

_INVENTORY_DERIVATION_INPUTS = ("current_stock", "average_daily_demand", "safety_stock", "reorder_point")


def model_for(entity_type: str):
    try:
        return ENTITY_MODELS[entity_type]
    except KeyError:
        raise ValidationError(
            f"Unknown entity type: {entity_type}",
            details={"entity_type": entity_type, "valid": sorted(ENTITY_MODELS)},
        ) from None


def primary_key(model) -> Any:
    return getattr(model, _PRIMARY_KEYS[model])


async def find_active_suppliers(db: AsyncSession, organization_id: uuid.UUID) -> list[Supplier]:
    result = await db.execute(
        select(Supplier)
        .where(
            Supplier.organization_id == organization_id,
            Supplier.status.in_(ACTIVE_SUPPLIER_STATUSES),
            Supplier.deleted_at.is_(None),
        )
        .order_by(Supplier.supplier_code)
    )
    return list(result.scalars().all())


async def find_active_shipments(db: AsyncSession, organization_id: uuid.UUID) -> list[Shipment]:
    result = await db.execute(
        select(Shipment)
        .where(
            Shipment.organization_id == organization_id,
            Shipment.status.in_(ACTIVE_SHIPMENT_STATUSES),
            Shipment.deleted_at.is_(None),
        )
        .order_by(Shipment.shipment_number)
    )
    return list(result.scalars().all())


async def find_inventory(db: AsyncSession, organization_id: uuid.UUID) -> list[InventoryItem]:
    result = await db.execute(
        select(InventoryItem)
        .where(
            InventoryItem.organization_id == organization_id,
            InventoryItem.deleted_at.is_(None),
        )
        .order_by(InventoryItem.sku)
    )
    return list(result.scalars().all())


async def find_by_id(db: AsyncSession, model, entity_id: uuid.UUID, organization_id: uuid.UUID):
    pk = primary_key(model)
    result = await db.execute(
        select(model).where(
            pk == entity_id,
            model.organization_id == organization_id,
            model.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def update_entity(
    db: AsyncSession,
    model,
    entity_id: uuid.UUID,
    organization_id: uuid.UUID,
    fields: dict[str, Any],
    expected_version: int,
):
    """
    Apply ``fields`` if the stored version still equals ``expected_version``.

    Raises ConcurrencyConflictError when the row moved on, NotFoundError when
    it does not exist in this organization.
    """
    blocked = _IMMUTABLE_FIELDS & set(fields)
    if blocked:
        raise ValidationError(
            f"Fields cannot be updated: {', '.join(sorted(blocked))}",
            details={"fields": sorted(blocked)},
        )

    pk = primary_key(model)
    values = dict(fields)

    if model is InventoryItem:
        current = await find_by_id(db, model, entity_id, organization_id)
        if current is None:
            raise NotFoundError(f"inventory item {entity_id} not found", details={"entity_id": str(entity_id)})
        snapshot = {name: getattr(current, name) for name in _INVENTORY_DERIVATION_INPUTS}
        values = apply_inventory_derivations(values, snapshot)

    values["version"] = model.version + 1
    values["updated_at"] = utcnow()

    result = await db.execute(
        update(model)
        .where(
            pk == entity_id,
            model.organization_id == organization_id,
            model.version == expected_version,
            model.deleted_at.is_(None),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        actual_version = await db.scalar(
            select(model.version).where(
                pk == entity_id,
                model.organization_id == organization_id,
                model.deleted_at.is_(None),
            )
        )
        if actual_version is None:
            raise NotFoundError(
                f"{model.__tablename__} row {entity_id} not found",
                details={"entity_id": str(entity_id)},
            )
        logger.warning(
            "entity.version_conflict",
            table=model.__tablename__,
            entity_id=str(entity_id),
            expected_version=expected_version,
            actual_version=actual_version,
        )
        raise ConcurrencyConflictError(
            f"{model.__tablename__} row {entity_id} was modified concurrently",
            details={"expected_version": expected_version, "actual_version": actual_version},
        )

    row = await db.get(model, entity_id, populate_existing=True)
    return row
