"""
RiskWatch Database Models

Multi-tenant via organization_id on all tables.

Tables:
  Tenancy (1-3):
  1. organizations          - Tenant organizations
  2. users                  - Alert assignees / escalation targets
  3. organization_configs   - Per-org thresholds, escalation ladder, cooldowns

  Supply Chain Entities (4-6):
  4. suppliers              - Supplier master data + performance signals
  5. shipments              - In-flight shipments + tracking events
  6. inventory_items        - Stock positions per SKU

  Risk & Alerting (7-9):
  7. risk_scores            - Latest score per entity + bounded history
  8. alerts                 - Risk alerts with lifecycle + escalation
  9. audit_logs             - Append-only trail of system and user actions

Every mutable entity carries a ``version`` column used for optimistic
concurrency. Versions are bumped by the conditional UPDATE statements in the
repositories, never by ORM events.
"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from core.clock import utcnow
from db.session import Base


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


ENTITY_TYPES = ("supplier", "shipment", "inventory")
RISK_TIERS = ("low", "medium", "high", "critical")
SEVERITIES = ("low", "medium", "high", "critical")
ALERT_TYPES = ("supplierRisk", "shipmentDelay", "inventoryStockout", "inventoryLow")
ALERT_STATUSES = ("generated", "assigned", "acknowledged", "inReview", "resolved", "archived")
USER_ROLES = ("superAdmin", "orgAdmin", "riskAnalyst", "viewer")


def _in(values: tuple[str, ...]) -> str:
    return ", ".join(f"'{v}'" for v in values)


# ─── 1. Organizations ──────────────────────────────────────────────────────


class Organization(Base):
    __tablename__ = "organizations"

    organization_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    deleted_at = Column(DateTime)

    config = relationship("OrganizationConfig", back_populates="organization", uselist=False)


# ─── 2. Users ───────────────────────────────────────────────────────────────


class User(Base):
    __tablename__ = "users"

    user_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    organization_id = Column(GUID(), ForeignKey("organizations.organization_id"), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(50))
    full_name = Column(String(255))
    role = Column(String(20), nullable=False, default="viewer")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_users_org_role", "organization_id", "role"),
        CheckConstraint(f"role IN ({_in(USER_ROLES)})", name="ck_user_role"),
    )


# ─── 3. Organization Config ────────────────────────────────────────────────


class OrganizationConfig(Base):
    __tablename__ = "organization_configs"

    config_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        GUID(), ForeignKey("organizations.organization_id"), nullable=False, unique=True
    )
    risk_thresholds = Column(JSON, nullable=False, default=dict)  # {entity_type: {low, medium, high}}
    alert_escalation_rules = Column(JSON, nullable=False, default=list)
    alert_cooldowns = Column(JSON, nullable=False, default=dict)  # {alert_type: milliseconds}
    notification_channels = Column(JSON, nullable=False, default=dict)
    last_agent_run = Column(JSON, nullable=False, default=dict)  # {agent_key: iso timestamp}
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    organization = relationship("Organization", back_populates="config")


# ─── 4. Suppliers ───────────────────────────────────────────────────────────


class Supplier(Base):
    __tablename__ = "suppliers"

    supplier_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    organization_id = Column(GUID(), ForeignKey("organizations.organization_id"), nullable=False)
    supplier_code = Column(String(20), nullable=False)
    name = Column(String(200), nullable=False)
    country = Column(String(100))
    lead_time_days = Column(Integer, nullable=False, default=7)
    # {on_time_delivery_rate, defect_rate, dispute_frequency, total_shipments, last_updated}
    performance_metrics = Column(JSON, default=dict)
    # {score, rating, last_updated, source}
    financial_stability = Column(JSON, default=dict)
    geopolitical_risk_flag = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="active")
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    deleted_at = Column(DateTime)

    __table_args__ = (
        UniqueConstraint("organization_id", "supplier_code", name="uq_supplier_org_code"),
        Index("ix_suppliers_org_status", "organization_id", "status"),
        CheckConstraint("lead_time_days > 0", name="ck_supplier_lead_time_positive"),
        CheckConstraint(
            "status IN ('active', 'underWatch', 'highRisk', 'inactive', 'blacklisted')",
            name="ck_supplier_status",
        ),
    )


# ─── 5. Shipments ───────────────────────────────────────────────────────────


class Shipment(Base):
    __tablename__ = "shipments"

    shipment_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    organization_id = Column(GUID(), ForeignKey("organizations.organization_id"), nullable=False)
    supplier_id = Column(GUID(), ForeignKey("suppliers.supplier_id"))
    shipment_number = Column(String(50), nullable=False)
    carrier = Column(String(100))
    estimated_arrival = Column(DateTime)
    actual_arrival = Column(DateTime)
    status = Column(String(20), nullable=False, default="registered")
    # [{timestamp, status, location, description, source}] oldest first
    tracking_events = Column(JSON, default=list)
    weather_risk = Column(String(10))
    route_risk_index = Column(Float)
    carrier_reliability = Column(Float)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    deleted_at = Column(DateTime)

    __table_args__ = (
        UniqueConstraint("organization_id", "shipment_number", name="uq_shipment_org_number"),
        Index("ix_shipments_org_status", "organization_id", "status"),
        CheckConstraint(
            "status IN ('registered', 'inTransit', 'delayed', 'rerouted', 'delivered', 'cancelled')",
            name="ck_shipment_status",
        ),
        CheckConstraint("weather_risk IN ('low', 'medium', 'high', 'severe')", name="ck_shipment_weather"),
    )


# ─── 6. Inventory Items ─────────────────────────────────────────────────────


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    item_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    organization_id = Column(GUID(), ForeignKey("organizations.organization_id"), nullable=False)
    supplier_id = Column(GUID(), ForeignKey("suppliers.supplier_id"))
    sku = Column(String(64), nullable=False)
    product_name = Column(String(200), nullable=False)
    current_stock = Column(Float, nullable=False, default=0)
    reorder_point = Column(Float, nullable=False, default=0)
    safety_stock = Column(Float, nullable=False, default=0)
    lead_time_days = Column(Integer, nullable=False, default=7)
    average_daily_demand = Column(Float, nullable=False, default=0)
    # [{period, forecasted_demand, actual_demand}]
    demand_history = Column(JSON, default=list)
    # Derived by supply_chain.derived before every write
    days_of_cover = Column(Float, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="adequate")
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    deleted_at = Column(DateTime)

    __table_args__ = (
        UniqueConstraint("organization_id", "sku", name="uq_inventory_org_sku"),
        Index("ix_inventory_supplier", "supplier_id"),
        CheckConstraint("current_stock >= 0", name="ck_inventory_stock_nonnegative"),
        CheckConstraint("lead_time_days > 0", name="ck_inventory_lead_time_positive"),
        CheckConstraint(
            "status IN ('adequate', 'low', 'critical', 'outOfStock')", name="ck_inventory_status"
        ),
    )


# ─── 7. Risk Scores ─────────────────────────────────────────────────────────


class RiskScore(Base):
    __tablename__ = "risk_scores"

    risk_score_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    organization_id = Column(GUID(), ForeignKey("organizations.organization_id"), nullable=False)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(GUID(), nullable=False)
    score_type = Column(String(20), nullable=False)
    overall_score = Column(Integer, nullable=False)
    risk_tier = Column(String(10), nullable=False)
    components = Column(JSON, default=dict)
    confidence = Column(Integer, nullable=False, default=100)
    low_confidence = Column(Boolean, nullable=False, default=False)
    confidence_warning = Column(Text)
    evaluated_at = Column(DateTime, nullable=False, default=utcnow)
    evaluated_by = Column(String(10), nullable=False, default="agent")
    previous_score = Column(Integer)
    # [{score, risk_tier, evaluated_at}] oldest first, capped at 365
    score_history = Column(JSON, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("organization_id", "entity_type", "entity_id", name="uq_risk_score_entity"),
        Index("ix_risk_scores_org_tier", "organization_id", "risk_tier"),
        CheckConstraint("overall_score >= 0 AND overall_score <= 100", name="ck_risk_score_range"),
        CheckConstraint("confidence >= 0 AND confidence <= 100", name="ck_risk_confidence_range"),
        CheckConstraint(f"entity_type IN ({_in(ENTITY_TYPES)})", name="ck_risk_entity_type"),
        CheckConstraint(f"risk_tier IN ({_in(RISK_TIERS)})", name="ck_risk_tier"),
        CheckConstraint("evaluated_by IN ('agent', 'manual', 'system')", name="ck_risk_evaluated_by"),
    )


# ─── 8. Alerts ──────────────────────────────────────────────────────────────


class Alert(Base):
    __tablename__ = "alerts"

    alert_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    organization_id = Column(GUID(), ForeignKey("organizations.organization_id"), nullable=False)
    alert_type = Column(String(30), nullable=False)
    severity = Column(String(10), nullable=False)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=False)
    related_entity_type = Column(String(20), nullable=False)
    related_entity_id = Column(GUID(), nullable=False)
    risk_score_id = Column(GUID(), ForeignKey("risk_scores.risk_score_id"))
    status = Column(String(20), nullable=False, default="generated")
    assigned_to = Column(GUID(), ForeignKey("users.user_id"))
    assigned_at = Column(DateTime)
    acknowledged_at = Column(DateTime)
    resolved_at = Column(DateTime)
    resolution_notes = Column(Text)
    escalation_level = Column(Integer, nullable=False, default=0)
    # [{level, escalated_at, reason}] oldest first
    escalation_history = Column(JSON, default=list)
    # [{priority, action, rationale}]
    recommendations = Column(JSON, default=list)
    cooldown_until = Column(DateTime)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    # Soft delete; rows are reaped by the retention job after 90 days
    deleted_at = Column(DateTime)

    __table_args__ = (
        Index("ix_alerts_org_status", "organization_id", "status"),
        Index("ix_alerts_cooldown", "organization_id", "related_entity_id", "alert_type"),
        Index("ix_alerts_assignee", "assigned_to", "status"),
        CheckConstraint(f"alert_type IN ({_in(ALERT_TYPES)})", name="ck_alert_type"),
        CheckConstraint(f"severity IN ({_in(SEVERITIES)})", name="ck_alert_severity"),
        CheckConstraint(f"status IN ({_in(ALERT_STATUSES)})", name="ck_alert_status"),
        CheckConstraint("escalation_level >= 0 AND escalation_level <= 3", name="ck_alert_escalation_level"),
        CheckConstraint(f"related_entity_type IN ({_in(ENTITY_TYPES)})", name="ck_alert_entity_type"),
    )


# ─── 9. Audit Logs ──────────────────────────────────────────────────────────


class AuditLog(Base):
    __tablename__ = "audit_logs"

    log_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    organization_id = Column(GUID(), ForeignKey("organizations.organization_id"), nullable=False)
    user_id = Column(GUID())
    action = Column(String(100), nullable=False)
    entity_type = Column(String(30), nullable=False)
    entity_id = Column(GUID())
    changes = Column(JSON)
    log_metadata = Column("metadata", JSON, default=dict)
    status = Column(String(10), nullable=False, default="success")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_audit_logs_org_created", "organization_id", "created_at"),
        CheckConstraint("status IN ('success', 'failure')", name="ck_audit_status"),
    )
