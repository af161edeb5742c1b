"""
Alert Dispatcher — cooldown-deduplicated alert creation.

Pipeline per dispatch:
  1. Take the dispatch lock for (org, entity, alert type)
  2. Cooldown check: an open alert for the same key whose ``cooldown_until``
     is still in the future suppresses the new one
  3. Recommendations from the playbook for (entity type, severity)
  4. Cooldown duration: explicit override → org ``alert_cooldowns`` →
     per-type default → ``default_alert_cooldown_minutes``
  5. Persist with status ``generated`` and ``cooldown_until = now + duration``
  6. Best-effort audit entry and, for high/critical, best-effort notification

The dispatch lock is held until the dispatching session's transaction ends,
so a second session dispatching the same key in this process waits for the
commit and then sees the stored alert. The same session may dispatch a key it
already holds. Across processes the check is not serialized.

Suppression is by cooldown, not by idempotency key: a different alert type
for the same entity, or the same type after expiry, always creates an alert.
"""

import asyncio
import uuid
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

from alerts import notifications, repository
from alerts.recommendations import get_recommendations
from core.clock import utcnow
from core.config import get_settings
from core.errors import ConcurrencyConflictError
from db.audit import record_audit
from db.models import Alert
from organizations.config import cooldown_ms_for, get_config

logger = structlog.get_logger()

DEFAULT_COOLDOWNS = {
    "supplierRisk": timedelta(hours=4),
    "shipmentDelay": timedelta(hours=1),
    "inventoryStockout": timedelta(hours=2),
    "inventoryLow": timedelta(hours=2),
}

_SEVERITY_BY_TIER = {"critical": "critical", "high": "high", "medium": "medium", "low": "low"}

DispatchKey = tuple[uuid.UUID, uuid.UUID, str]

_HELD_KEYS = "riskwatch.dispatch_keys"
_LISTENING = "riskwatch.dispatch_listener"


class DispatchLocks:
    """One lock per dispatch key, owned by a session until its transaction ends."""

    def __init__(self):
        self._locks: dict[DispatchKey, asyncio.Lock] = {}
        self._users: dict[DispatchKey, int] = {}
        self._owners: dict[DispatchKey, Session] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def owner(self, key: DispatchKey) -> Session | None:
        return self._owners.get(key)

    async def acquire(self, session: Session, key: DispatchKey, timeout: float) -> None:
        if self._owners.get(key) is session:
            return

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with asyncio.timeout(timeout):
                await lock.acquire()
        except TimeoutError as exc:
            self._forget(key)
            raise ConcurrencyConflictError(
                "Another dispatch for this alert is still in progress",
                details={"organization_id": str(key[0]), "related_entity_id": str(key[1]), "alert_type": key[2]},
            ) from exc
        except asyncio.CancelledError:
            self._forget(key)
            raise

        self._owners[key] = session
        if not session.info.get(_LISTENING):
            event.listen(session, "after_transaction_end", self._on_transaction_end)
            session.info[_LISTENING] = True
        session.info.setdefault(_HELD_KEYS, set()).add(key)

    def release(self, key: DispatchKey) -> None:
        self._owners.pop(key, None)
        lock = self._locks.get(key)
        if lock is not None and lock.locked():
            lock.release()
        self._forget(key)

    def _forget(self, key: DispatchKey) -> None:
        remaining = self._users.get(key, 0) - 1
        if remaining > 0:
            self._users[key] = remaining
        else:
            self._users.pop(key, None)
            self._locks.pop(key, None)

    def _on_transaction_end(self, session: Session, transaction: SessionTransaction) -> None:
        if transaction.parent is not None:
            return
        for key in session.info.pop(_HELD_KEYS, ()):
            self.release(key)


# One registry per event loop
_dispatch_locks: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()


def dispatch_locks() -> DispatchLocks:
    loop = asyncio.get_running_loop()
    locks = _dispatch_locks.get(loop)
    if locks is None:
        locks = _dispatch_locks[loop] = DispatchLocks()
    return locks


@dataclass
class AlertDispatch:
    organization_id: uuid.UUID
    alert_type: str
    severity: str
    title: str
    description: str
    related_entity_type: str
    related_entity_id: uuid.UUID
    risk_score_id: uuid.UUID | None = None
    score_components: dict[str, Any] = field(default_factory=dict)
    cooldown: timedelta | None = None


def severity_from_risk_tier(risk_tier: str) -> str:
    return _SEVERITY_BY_TIER.get(risk_tier, "medium")


def resolve_cooldown(
    alert_type: str,
    override: timedelta | None = None,
    org_cooldown_ms: int | None = None,
) -> timedelta:
    if override:
        return override
    if org_cooldown_ms:
        return timedelta(milliseconds=org_cooldown_ms)
    if alert_type in DEFAULT_COOLDOWNS:
        return DEFAULT_COOLDOWNS[alert_type]
    return timedelta(minutes=get_settings().default_alert_cooldown_minutes)


async def dispatch_alert(
    db: AsyncSession,
    params: AlertDispatch,
    *,
    now: datetime | None = None,
) -> Alert | None:
    """Create the alert unless an active cooldown suppresses it. Returns None when suppressed."""
    now = now or utcnow()
    key = (params.organization_id, params.related_entity_id, params.alert_type)

    await dispatch_locks().acquire(db.sync_session, key, get_settings().alert_dispatch_lock_timeout_seconds)

    existing = await repository.check_cooldown(
        db, params.organization_id, params.related_entity_id, params.alert_type, now=now
    )
    if existing is not None:
        logger.debug(
            "alert.suppressed_by_cooldown",
            alert_type=params.alert_type,
            related_entity_id=str(params.related_entity_id),
            cooldown_until=existing.cooldown_until.isoformat(),
        )
        return None

    recommendations = get_recommendations(
        params.related_entity_type, params.severity, params.score_components
    )
    config = await get_config(db, params.organization_id)
    duration = resolve_cooldown(
        params.alert_type, params.cooldown, cooldown_ms_for(config, params.alert_type)
    )

    alert = await repository.create_alert(
        db,
        organization_id=params.organization_id,
        alert_type=params.alert_type,
        severity=params.severity,
        title=params.title,
        description=params.description,
        related_entity_type=params.related_entity_type,
        related_entity_id=params.related_entity_id,
        risk_score_id=params.risk_score_id,
        recommendations=recommendations,
        cooldown_until=now + duration,
        now=now,
    )

    logger.info(
        "alert.dispatched",
        alert_id=str(alert.alert_id),
        alert_type=params.alert_type,
        severity=params.severity,
        related_entity_type=params.related_entity_type,
        related_entity_id=str(params.related_entity_id),
        organization_id=str(params.organization_id),
    )

    await record_audit(
        db,
        organization_id=params.organization_id,
        action="alert.generated",
        entity_type="alert",
        entity_id=alert.alert_id,
        metadata={
            "alert_type": params.alert_type,
            "severity": params.severity,
            "related_entity_type": params.related_entity_type,
            "related_entity_id": str(params.related_entity_id),
        },
    )

    if params.severity in notifications.URGENT_SEVERITIES:
        try:
            recipients = await notifications.configured_recipients(db, params.organization_id)
            await notifications.notify_all(
                db, params.organization_id, recipients, params.title, params.description, params.severity
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("alert.notification_failed", alert_id=str(alert.alert_id), error=str(exc))

    return alert
