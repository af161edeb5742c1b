"""
Organization Config — per-tenant risk thresholds, escalation ladder,
alert cooldowns, and notification channels.

One row per organization, created lazily with the documented defaults the
first time it is read. Writes are validated with pydantic before they reach
the database; a threshold band that is not strictly ascending is rejected.
"""

import uuid
from datetime import datetime
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utcnow
from core.errors import ValidationError
from db.models import Organization, OrganizationConfig
from scoring.tiers import DEFAULT_RISK_THRESHOLDS, RiskThresholds

logger = structlog.get_logger()

HOUR_MS = 60 * 60 * 1000

EntityType = Literal["supplier", "shipment", "inventory"]
Severity = Literal["critical", "high", "medium", "low"]


# ─── Schemas ────────────────────────────────────────────────────────────────


class ThresholdBand(BaseModel):
    low: float = Field(ge=0, le=100)
    medium: float = Field(ge=0, le=100)
    high: float = Field(ge=0, le=100)

    @model_validator(mode="after")
    def _ascending(self) -> "ThresholdBand":
        if not (self.low < self.medium < self.high):
            raise ValueError("thresholds must be in ascending order: low < medium < high")
        return self


class EscalationRule(BaseModel):
    severity: Severity
    level: int = Field(ge=0, le=3)
    timeout_minutes: int = Field(ge=1)
    escalate_to: str


class ChannelSettings(BaseModel):
    enabled: bool = False
    recipients: list[str] = Field(default_factory=list)


class NotificationChannels(BaseModel):
    email: ChannelSettings = Field(default_factory=lambda: ChannelSettings(enabled=True))
    sms: ChannelSettings = Field(default_factory=ChannelSettings)


def _default_thresholds() -> dict[str, ThresholdBand]:
    return {name: ThresholdBand(**band.to_dict()) for name, band in DEFAULT_RISK_THRESHOLDS.items()}


def _default_escalation_rules() -> list[EscalationRule]:
    ladder = [
        ("critical", 0, 15, "riskAnalyst"),
        ("critical", 1, 30, "orgAdmin"),
        ("critical", 2, 60, "superAdmin"),
        ("high", 0, 30, "riskAnalyst"),
        ("high", 1, 60, "orgAdmin"),
        ("high", 2, 120, "superAdmin"),
    ]
    return [
        EscalationRule(severity=s, level=lvl, timeout_minutes=t, escalate_to=role) for s, lvl, t, role in ladder
    ]


def _default_cooldowns() -> dict[str, int]:
    return {
        "supplierRisk": 4 * HOUR_MS,
        "shipmentDelay": 1 * HOUR_MS,
        "inventoryStockout": 2 * HOUR_MS,
    }


class OrganizationSettings(BaseModel):
    risk_thresholds: dict[EntityType, ThresholdBand] = Field(default_factory=_default_thresholds)
    alert_escalation_rules: list[EscalationRule] = Field(default_factory=_default_escalation_rules)
    alert_cooldowns: dict[str, int] = Field(default_factory=_default_cooldowns)
    notification_channels: NotificationChannels = Field(default_factory=NotificationChannels)

    @model_validator(mode="after")
    def _positive_cooldowns(self) -> "OrganizationSettings":
        for alert_type, ms in self.alert_cooldowns.items():
            if ms <= 0:
                raise ValueError(f"cooldown for {alert_type} must be positive")
        return self


CONFIG_FIELDS = tuple(OrganizationSettings.model_fields)


# ─── Reads ──────────────────────────────────────────────────────────────────


async def get_config(db: AsyncSession, organization_id: uuid.UUID) -> OrganizationConfig | None:
    result = await db.execute(
        select(OrganizationConfig).where(OrganizationConfig.organization_id == organization_id)
    )
    return result.scalar_one_or_none()


async def get_or_create_config(db: AsyncSession, organization_id: uuid.UUID) -> OrganizationConfig:
    """Return the org's config, creating it with defaults if it does not exist yet."""
    config = await get_config(db, organization_id)
    if config is not None:
        return config

    defaults = OrganizationSettings().model_dump(mode="json")
    config = OrganizationConfig(organization_id=organization_id, last_agent_run={}, **defaults)
    db.add(config)
    await db.flush()
    logger.info("org_config.created_with_defaults", organization_id=str(organization_id))
    return config


def to_settings(config: OrganizationConfig) -> OrganizationSettings:
    return OrganizationSettings.model_validate(
        {name: getattr(config, name) for name in CONFIG_FIELDS if getattr(config, name, None) is not None}
    )


def thresholds_for(config: OrganizationConfig | None, entity_type: str) -> RiskThresholds:
    """Org band for the entity type; the documented default band when unset."""
    fallback = DEFAULT_RISK_THRESHOLDS[entity_type]
    if config is None or not config.risk_thresholds:
        return fallback
    return RiskThresholds.from_mapping(config.risk_thresholds.get(entity_type), fallback)


def escalation_rules_for(config: OrganizationConfig | None) -> list[dict[str, Any]]:
    if config is None:
        return []
    return list(config.alert_escalation_rules or [])


def cooldown_ms_for(config: OrganizationConfig | None, alert_type: str) -> int | None:
    if config is None or not config.alert_cooldowns:
        return None
    return config.alert_cooldowns.get(alert_type)


async def list_active_organization_ids(db: AsyncSession) -> list[uuid.UUID]:
    result = await db.execute(
        select(Organization.organization_id)
        .where(Organization.is_active.is_(True), Organization.deleted_at.is_(None))
        .order_by(Organization.created_at)
    )
    return [row.organization_id for row in result.all()]


# ─── Writes ─────────────────────────────────────────────────────────────────


async def update_config(
    db: AsyncSession,
    organization_id: uuid.UUID,
    changes: dict[str, Any],
) -> OrganizationConfig:
    """
    Merge ``changes`` into the org's config and persist.

    Raises ValidationError for unknown fields or invalid values (including
    non-ascending threshold bands); nothing is written in that case.
    """
    unknown = set(changes) - set(CONFIG_FIELDS)
    if unknown:
        raise ValidationError(
            f"Unknown organization config fields: {', '.join(sorted(unknown))}",
            details={"fields": sorted(unknown)},
        )

    config = await get_or_create_config(db, organization_id)
    merged = to_settings(config).model_dump(mode="json")
    for name, value in changes.items():
        if name == "risk_thresholds" and isinstance(value, dict):
            merged[name] = {**merged[name], **value}
        else:
            merged[name] = value

    try:
        validated = OrganizationSettings.model_validate(merged)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid organization config",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc

    for name, value in validated.model_dump(mode="json").items():
        setattr(config, name, value)
    config.updated_at = utcnow()
    await db.flush()
    logger.info("org_config.updated", organization_id=str(organization_id), fields=sorted(changes))
    return config


async def record_last_agent_run(db: AsyncSession, agent_key: str, ran_at: datetime) -> int:
    """Stamp ``last_agent_run[agent_key]`` on every organization config."""
    result = await db.execute(select(OrganizationConfig))
    configs = result.scalars().all()
    for config in configs:
        config.last_agent_run = {**(config.last_agent_run or {}), agent_key: ran_at.isoformat()}
    await db.flush()
    return len(configs)
