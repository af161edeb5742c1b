"""
Alert Lifecycle State Machine.

    generated → assigned → acknowledged → inReview → resolved
                    ↘            ↘            ↘
                               archived

``archived`` is reachable from every non-terminal state (retention path);
``resolved`` and ``archived`` are terminal. Reassignment keeps an alert in
``assigned``. Every action validates the transition, then writes through the
versioned repository update using the version the caller read.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from alerts import repository
from core.clock import utcnow
from core.errors import BusinessRuleViolation, NotFoundError, PermissionDeniedError
from db.audit import record_audit
from db.models import Alert, User

logger = structlog.get_logger()

VALID_ALERT_TRANSITIONS: dict[str, frozenset[str]] = {
    "generated": frozenset({"assigned", "archived"}),
    "assigned": frozenset({"assigned", "acknowledged", "archived"}),
    "acknowledged": frozenset({"inReview", "resolved", "archived"}),
    "inReview": frozenset({"resolved", "archived"}),
    "resolved": frozenset(),
    "archived": frozenset(),
}

ADMIN_ROLES = ("orgAdmin", "superAdmin")


@dataclass(frozen=True)
class Actor:
    """Who is performing a workflow action. ``user_id`` None means the system."""

    user_id: uuid.UUID | None
    role: str = "superAdmin"

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(user_id=user.user_id, role=user.role)


SYSTEM = Actor(user_id=None)


def can_transition(current: str, target: str) -> bool:
    return target in VALID_ALERT_TRANSITIONS.get(current, frozenset())


def ensure_transition(alert: Alert, target: str, verb: str) -> None:
    if not can_transition(alert.status, target):
        raise BusinessRuleViolation(
            f"Cannot {verb} alert in '{alert.status}' status",
            details={"alert_id": str(alert.alert_id), "status": alert.status, "requested": target},
        )


async def _audit(db, alert: Alert, actor: Actor, action: str, **entry) -> None:
    await record_audit(
        db,
        organization_id=alert.organization_id,
        user_id=actor.user_id,
        action=action,
        entity_type="alert",
        entity_id=alert.alert_id,
        **entry,
    )


async def assign_alert(
    db: AsyncSession,
    alert_id: uuid.UUID,
    organization_id: uuid.UUID,
    assignee_id: uuid.UUID,
    expected_version: int,
    actor: Actor = SYSTEM,
    now: datetime | None = None,
) -> Alert:
    now = now or utcnow()
    alert = await repository.get_alert(db, alert_id, organization_id)
    ensure_transition(alert, "assigned", "assign")

    assignee = await db.get(User, assignee_id)
    if assignee is None or assignee.organization_id != organization_id or not assignee.is_active:
        raise NotFoundError("Assignee not found in organization", details={"assignee_id": str(assignee_id)})

    previous_status = alert.status
    updated = await repository.update_alert(
        db,
        alert_id,
        organization_id,
        {"status": "assigned", "assigned_to": assignee_id, "assigned_at": now, "updated_at": now},
        expected_version,
    )
    logger.info("alert.assigned", alert_id=str(alert_id), assignee_id=str(assignee_id))
    await _audit(
        db,
        updated,
        actor,
        "alert.assigned",
        changes={
            "before": {"status": previous_status},
            "after": {"status": "assigned", "assigned_to": str(assignee_id)},
        },
    )
    return updated


async def acknowledge_alert(
    db: AsyncSession,
    alert_id: uuid.UUID,
    organization_id: uuid.UUID,
    expected_version: int,
    actor: Actor,
    now: datetime | None = None,
) -> Alert:
    """Only the assignee, or an org/super admin, may acknowledge."""
    now = now or utcnow()
    alert = await repository.get_alert(db, alert_id, organization_id)

    if actor.role not in ADMIN_ROLES and (actor.user_id is None or alert.assigned_to != actor.user_id):
        raise PermissionDeniedError(
            "Only the assigned user can acknowledge this alert",
            details={"alert_id": str(alert_id)},
        )
    ensure_transition(alert, "acknowledged", "acknowledge")

    updated = await repository.update_alert(
        db,
        alert_id,
        organization_id,
        {"status": "acknowledged", "acknowledged_at": now, "updated_at": now},
        expected_version,
    )
    logger.info("alert.acknowledged", alert_id=str(alert_id))
    await _audit(db, updated, actor, "alert.acknowledged")
    return updated


async def start_review(
    db: AsyncSession,
    alert_id: uuid.UUID,
    organization_id: uuid.UUID,
    expected_version: int,
    actor: Actor = SYSTEM,
    now: datetime | None = None,
) -> Alert:
    now = now or utcnow()
    alert = await repository.get_alert(db, alert_id, organization_id)
    ensure_transition(alert, "inReview", "review")

    updated = await repository.update_alert(
        db, alert_id, organization_id, {"status": "inReview", "updated_at": now}, expected_version
    )
    await _audit(db, updated, actor, "alert.review_started")
    return updated


async def resolve_alert(
    db: AsyncSession,
    alert_id: uuid.UUID,
    organization_id: uuid.UUID,
    expected_version: int,
    actor: Actor = SYSTEM,
    resolution_notes: str | None = None,
    now: datetime | None = None,
) -> Alert:
    now = now or utcnow()
    alert = await repository.get_alert(db, alert_id, organization_id)
    ensure_transition(alert, "resolved", "resolve")

    updated = await repository.update_alert(
        db,
        alert_id,
        organization_id,
        {
            "status": "resolved",
            "resolved_at": now,
            "resolution_notes": resolution_notes or "",
            "updated_at": now,
        },
        expected_version,
    )
    logger.info("alert.resolved", alert_id=str(alert_id))
    await _audit(db, updated, actor, "alert.resolved", metadata={"resolution_notes": resolution_notes})
    return updated


async def archive_alert(
    db: AsyncSession,
    alert_id: uuid.UUID,
    organization_id: uuid.UUID,
    expected_version: int,
    actor: Actor = SYSTEM,
    now: datetime | None = None,
) -> Alert:
    now = now or utcnow()
    alert = await repository.get_alert(db, alert_id, organization_id)
    ensure_transition(alert, "archived", "archive")
    previous_status = alert.status

    updated = await repository.update_alert(
        db, alert_id, organization_id, {"status": "archived", "updated_at": now}, expected_version
    )
    await _audit(db, updated, actor, "alert.archived", changes={"before": {"status": previous_status}})
    return updated


async def soft_delete_alert(
    db: AsyncSession,
    alert_id: uuid.UUID,
    organization_id: uuid.UUID,
    expected_version: int,
    actor: Actor = SYSTEM,
    now: datetime | None = None,
) -> Alert:
    """Hide the alert from every read path. The row stays until retention reaps it."""
    now = now or utcnow()
    updated = await repository.update_alert(
        db, alert_id, organization_id, {"deleted_at": now, "updated_at": now}, expected_version
    )
    await _audit(db, updated, actor, "alert.deleted")
    return updated
