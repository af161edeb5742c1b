"""
Audit Sink — best-effort audit trail writes.

Audit entries are written inside a SAVEPOINT so a failed insert rolls back
only the audit row, never the primary effect (alert creation, escalation,
score update) sharing the same session.
"""

import uuid
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import AuditLog

logger = structlog.get_logger()


async def record_audit(
    db: AsyncSession,
    *,
    organization_id: uuid.UUID,
    action: str,
    entity_type: str,
    entity_id: uuid.UUID | None = None,
    user_id: uuid.UUID | None = None,
    changes: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
    status: str = "success",
) -> bool:
    """Write one audit row. Returns False (and logs) instead of raising."""
    try:
        async with db.begin_nested():
            db.add(
                AuditLog(
                    organization_id=organization_id,
                    user_id=user_id,
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    changes=changes,
                    log_metadata=metadata or {},
                    status=status,
                )
            )
        return True
    except Exception as exc:  # noqa: BLE001
        logger.error(
            "audit.write_failed",
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id else None,
            error=str(exc),
        )
        return False
