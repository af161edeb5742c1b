"""
Escalation Engine — time-based escalation of assigned, unresolved alerts.

Default ladder (minutes at current level 0 / 1 / 2):
  critical  15 /  30 /  60
  high      30 /  60 / 120
  medium    60 / 120 / 240
  low      120 / 240 / 480

Organization rules ``{severity, level, timeout_minutes, escalate_to}`` take
precedence over the ladder. The clock starts at the most recent escalation,
else at assignment; alerts never assigned are skipped. Level 3 is terminal.
"""

import uuid
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alerts import notifications, repository
from core.clock import as_naive_utc, minutes_between, utcnow
from core.errors import ConcurrencyConflictError
from db.audit import record_audit
from db.models import Alert
from organizations.config import escalation_rules_for, get_config, list_active_organization_ids

logger = structlog.get_logger()

DEFAULT_ESCALATION_TIMEOUTS = {
    "critical": (15, 30, 60),
    "high": (30, 60, 120),
    "medium": (60, 120, 240),
    "low": (120, 240, 480),
}


def _matching_rule(severity: str, level: int, rules: list[dict[str, Any]]) -> dict[str, Any] | None:
    for rule in rules or []:
        if rule.get("severity") == severity and rule.get("level") == level:
            return rule
    return None


def get_escalation_timeout(severity: str, level: int, rules: list[dict[str, Any]] | None = None) -> int | None:
    """Minutes an alert may sit at ``level`` before escalating. None when undefined."""
    rule = _matching_rule(severity, level, rules or [])
    if rule is not None:
        return rule.get("timeout_minutes")
    ladder = DEFAULT_ESCALATION_TIMEOUTS.get(severity)
    if ladder is None or not 0 <= level < len(ladder):
        return None
    return ladder[level]


def reference_time(alert: Alert) -> datetime | None:
    history = alert.escalation_history or []
    if history:
        return as_naive_utc(history[-1]["escalated_at"])
    return alert.assigned_at


async def _notify_escalation(db: AsyncSession, alert: Alert, rule: dict[str, Any] | None, level: int) -> None:
    if rule is None or not rule.get("escalate_to"):
        return
    recipients = await notifications.users_with_role(db, alert.organization_id, rule["escalate_to"])
    await notifications.notify_all(
        db,
        alert.organization_id,
        recipients,
        f"Escalated (level {level}): {alert.title}",
        alert.description,
        alert.severity,
    )


async def escalate_alert(
    db: AsyncSession,
    alert: Alert,
    rules: list[dict[str, Any]],
    now: datetime,
) -> bool:
    """Escalate one alert if its timeout has elapsed. Returns True when it escalated."""
    level = alert.escalation_level or 0
    if level >= repository.MAX_ESCALATION_LEVEL:
        return False

    timeout = get_escalation_timeout(alert.severity, level, rules)
    if not timeout:
        return False

    started = reference_time(alert)
    if started is None:
        return False

    elapsed = minutes_between(started, now)
    if elapsed < timeout:
        return False

    new_level = level + 1
    entry = {
        "level": new_level,
        "escalated_at": now.isoformat(),
        "reason": f"Auto-escalated after {round(elapsed)} minutes at level {level}",
    }
    await repository.update_alert(
        db,
        alert.alert_id,
        alert.organization_id,
        {
            "escalation_level": new_level,
            "escalation_history": [*(alert.escalation_history or []), entry],
            "updated_at": now,
        },
        alert.version,
    )

    logger.info(
        "alert.escalated",
        alert_id=str(alert.alert_id),
        severity=alert.severity,
        from_level=level,
        to_level=new_level,
        minutes_elapsed=round(elapsed),
    )
    await record_audit(
        db,
        organization_id=alert.organization_id,
        action="alert.escalated",
        entity_type="alert",
        entity_id=alert.alert_id,
        metadata={"from_level": level, "to_level": new_level, "severity": alert.severity},
    )
    try:
        await _notify_escalation(db, alert, _matching_rule(alert.severity, level, rules), new_level)
    except Exception as exc:  # noqa: BLE001
        logger.error("alert.escalation_notify_failed", alert_id=str(alert.alert_id), error=str(exc))
    return True


async def escalate_alerts(
    db: AsyncSession,
    organization_id: uuid.UUID,
    rules: list[dict[str, Any]],
    now: datetime | None = None,
) -> dict[str, int]:
    """Escalate every eligible alert in one organization. One bad alert never stops the rest."""
    now = now or utcnow()
    escalated = 0
    errors = 0

    for alert in await repository.find_for_escalation(db, organization_id):
        alert_id = alert.alert_id
        try:
            async with db.begin_nested():
                if await escalate_alert(db, alert, rules, now):
                    escalated += 1
        except ConcurrencyConflictError:
            errors += 1
            logger.warning("alert.escalation_conflict", alert_id=str(alert_id))
        except Exception as exc:  # noqa: BLE001
            errors += 1
            logger.error("alert.escalation_failed", alert_id=str(alert_id), error=str(exc), exc_info=True)

    return {"escalated": escalated, "errors": errors}


async def run_alert_escalation(
    session_factory: async_sessionmaker,
    target_organization_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> dict[str, int]:
    """
    Escalation pass across all active organizations, or just the target one.

    Failing to enumerate organizations is fatal to the run; a failure inside
    one organization is counted and the next organization is processed.
    """
    now = now or utcnow()
    logger.info("alert_escalation.started", target_organization_id=str(target_organization_id or ""))

    if target_organization_id is not None:
        organization_ids = [target_organization_id]
    else:
        async with session_factory() as db:
            organization_ids = await list_active_organization_ids(db)

    escalated = 0
    errors = 0
    for organization_id in organization_ids:
        try:
            async with session_factory() as db:
                rules = escalation_rules_for(await get_config(db, organization_id))
                result = await escalate_alerts(db, organization_id, rules, now)
                await db.commit()
            escalated += result["escalated"]
            errors += result["errors"]
        except Exception as exc:  # noqa: BLE001
            errors += 1
            logger.error(
                "alert_escalation.org_failed",
                organization_id=str(organization_id),
                error=str(exc),
                exc_info=True,
            )

    summary = {"escalated": escalated, "errors": errors}
    logger.info("alert_escalation.completed", **summary)
    return summary
