"""
Alert Repository — reads and versioned writes for the alerts table.

All queries are organization-scoped and ignore soft-deleted rows. Writes go
through ``update_alert``, a single conditional UPDATE on (id, org, version)
that bumps the version, so two writers holding the same read can never both
succeed.
"""

import uuid
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utcnow
from core.errors import ConcurrencyConflictError, NotFoundError
from db.models import Alert

logger = structlog.get_logger()

CLOSED_STATUSES = ("resolved", "archived")
OPEN_ASSIGNED_STATUSES = ("assigned", "acknowledged", "inReview")
MAX_ESCALATION_LEVEL = 3

# Higher rank sorts first
SEVERITY_RANK = case(
    {"critical": 3, "high": 2, "medium": 1, "low": 0},
    value=Alert.severity,
    else_=0,
)


def _live(organization_id: uuid.UUID):
    return (Alert.organization_id == organization_id, Alert.deleted_at.is_(None))


async def get_alert(db: AsyncSession, alert_id: uuid.UUID, organization_id: uuid.UUID) -> Alert:
    result = await db.execute(select(Alert).where(Alert.alert_id == alert_id, *_live(organization_id)))
    alert = result.scalar_one_or_none()
    if alert is None:
        raise NotFoundError("Alert not found", details={"alert_id": str(alert_id)})
    return alert


async def list_alerts(
    db: AsyncSession,
    organization_id: uuid.UUID,
    *,
    status: str | list[str] | None = None,
    severity: str | list[str] | None = None,
    alert_type: str | None = None,
    assigned_to: uuid.UUID | None = None,
    related_entity_id: uuid.UUID | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Alert], int]:
    """Filtered page of alerts, most severe then newest first, plus the total count."""
    filters: list[Any] = list(_live(organization_id))
    if status:
        filters.append(Alert.status.in_([status] if isinstance(status, str) else status))
    if severity:
        filters.append(Alert.severity.in_([severity] if isinstance(severity, str) else severity))
    if alert_type:
        filters.append(Alert.alert_type == alert_type)
    if assigned_to:
        filters.append(Alert.assigned_to == assigned_to)
    if related_entity_id:
        filters.append(Alert.related_entity_id == related_entity_id)
    if created_from:
        filters.append(Alert.created_at >= created_from)
    if created_to:
        filters.append(Alert.created_at <= created_to)
    if search:
        pattern = f"%{search.lower()}%"
        filters.append(func.lower(Alert.title).like(pattern) | func.lower(Alert.description).like(pattern))

    total = await db.scalar(select(func.count()).select_from(Alert).where(*filters))
    result = await db.execute(
        select(Alert)
        .where(*filters)
        .order_by(SEVERITY_RANK.desc(), Alert.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), int(total or 0)


async def find_assigned(db: AsyncSession, user_id: uuid.UUID, organization_id: uuid.UUID) -> list[Alert]:
    result = await db.execute(
        select(Alert)
        .where(
            *_live(organization_id),
            Alert.assigned_to == user_id,
            Alert.status.in_(OPEN_ASSIGNED_STATUSES),
        )
        .order_by(SEVERITY_RANK.desc(), Alert.created_at.desc())
    )
    return list(result.scalars().all())


async def check_cooldown(
    db: AsyncSession,
    organization_id: uuid.UUID,
    related_entity_id: uuid.UUID,
    alert_type: str,
    now: datetime | None = None,
) -> Alert | None:
    """An open alert for this (entity, type) whose cooldown has not expired, if any."""
    now = now or utcnow()
    result = await db.execute(
        select(Alert)
        .where(
            *_live(organization_id),
            Alert.related_entity_id == related_entity_id,
            Alert.alert_type == alert_type,
            Alert.cooldown_until > now,
            Alert.status.notin_(CLOSED_STATUSES),
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_for_escalation(db: AsyncSession, organization_id: uuid.UUID | None = None) -> list[Alert]:
    filters = [
        Alert.deleted_at.is_(None),
        Alert.status.in_(OPEN_ASSIGNED_STATUSES),
        Alert.escalation_level < MAX_ESCALATION_LEVEL,
    ]
    if organization_id is not None:
        filters.append(Alert.organization_id == organization_id)
    result = await db.execute(select(Alert).where(*filters).order_by(Alert.created_at))
    return list(result.scalars().all())


async def create_alert(db: AsyncSession, **fields: Any) -> Alert:
    now = fields.pop("now", None) or utcnow()
    alert = Alert(
        status="generated",
        escalation_level=0,
        escalation_history=[],
        version=0,
        created_at=now,
        updated_at=now,
        **fields,
    )
    db.add(alert)
    await db.flush()
    return alert


async def update_alert(
    db: AsyncSession,
    alert_id: uuid.UUID,
    organization_id: uuid.UUID,
    changes: dict[str, Any],
    expected_version: int,
) -> Alert:
    """
    Compare-and-swap update.

    Raises ConcurrencyConflictError if the alert exists at a different
    version, NotFoundError if it does not exist in this organization.
    """
    values = {**changes, "version": Alert.version + 1, "updated_at": changes.get("updated_at") or utcnow()}
    result = await db.execute(
        update(Alert)
        .where(
            Alert.alert_id == alert_id,
            *_live(organization_id),
            Alert.version == expected_version,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        actual_version = await db.scalar(
            select(Alert.version).where(Alert.alert_id == alert_id, *_live(organization_id))
        )
        if actual_version is None:
            raise NotFoundError("Alert not found", details={"alert_id": str(alert_id)})
        logger.warning(
            "alert.version_conflict",
            alert_id=str(alert_id),
            expected_version=expected_version,
            actual_version=actual_version,
        )
        raise ConcurrencyConflictError(
            "Alert was modified concurrently, re-read and retry",
            details={"alert_id": str(alert_id), "expected_version": expected_version},
        )

    return await db.get(Alert, alert_id, populate_existing=True)
