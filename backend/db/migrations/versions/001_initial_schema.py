"""
Initial schema - all 9 tables

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _pk(name: str) -> sa.Column:
    return sa.Column(name, UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def _org_fk() -> sa.Column:
    return sa.Column(
        "organization_id", UUID(as_uuid=True), sa.ForeignKey("organizations.organization_id"), nullable=False
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # 1. Organizations
    op.create_table(
        "organizations",
        _pk("organization_id"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime),
    )

    # 2. Users
    op.create_table(
        "users",
        _pk("user_id"),
        _org_fk(),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("phone", sa.String(50)),
        sa.Column("full_name", sa.String(255)),
        sa.Column("role", sa.String(20), nullable=False, server_default="viewer"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "role IN ('superAdmin', 'orgAdmin', 'riskAnalyst', 'viewer')", name="ck_user_role"
        ),
    )
    op.create_index("ix_users_org_role", "users", ["organization_id", "role"])

    # 3. Organization configs
    op.create_table(
        "organization_configs",
        _pk("config_id"),
        sa.Column(
            "organization_id",
            UUID(as_uuid=True),
            sa.ForeignKey("organizations.organization_id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("risk_thresholds", sa.JSON, nullable=False),
        sa.Column("alert_escalation_rules", sa.JSON, nullable=False),
        sa.Column("alert_cooldowns", sa.JSON, nullable=False),
        sa.Column("notification_channels", sa.JSON, nullable=False),
        sa.Column("last_agent_run", sa.JSON, nullable=False),
        *_timestamps(),
    )

    # 4. Suppliers
    op.create_table(
        "suppliers",
        _pk("supplier_id"),
        _org_fk(),
        sa.Column("supplier_code", sa.String(20), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("country", sa.String(100)),
        sa.Column("lead_time_days", sa.Integer, nullable=False, server_default="7"),
        sa.Column("performance_metrics", sa.JSON),
        sa.Column("financial_stability", sa.JSON),
        sa.Column("geopolitical_risk_flag", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime),
        sa.UniqueConstraint("organization_id", "supplier_code", name="uq_supplier_org_code"),
        sa.CheckConstraint("lead_time_days > 0", name="ck_supplier_lead_time_positive"),
        sa.CheckConstraint(
            "status IN ('active', 'underWatch', 'highRisk', 'inactive', 'blacklisted')",
            name="ck_supplier_status",
        ),
    )
    op.create_index("ix_suppliers_org_status", "suppliers", ["organization_id", "status"])

    # 5. Shipments
    op.create_table(
        "shipments",
        _pk("shipment_id"),
        _org_fk(),
        sa.Column("supplier_id", UUID(as_uuid=True), sa.ForeignKey("suppliers.supplier_id")),
        sa.Column("shipment_number", sa.String(50), nullable=False),
        sa.Column("carrier", sa.String(100)),
        sa.Column("estimated_arrival", sa.DateTime),
        sa.Column("actual_arrival", sa.DateTime),
        sa.Column("status", sa.String(20), nullable=False, server_default="registered"),
        sa.Column("tracking_events", sa.JSON),
        sa.Column("weather_risk", sa.String(10)),
        sa.Column("route_risk_index", sa.Float),
        sa.Column("carrier_reliability", sa.Float),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime),
        sa.UniqueConstraint("organization_id", "shipment_number", name="uq_shipment_org_number"),
        sa.CheckConstraint(
            "status IN ('registered', 'inTransit', 'delayed', 'rerouted', 'delivered', 'cancelled')",
            name="ck_shipment_status",
        ),
        sa.CheckConstraint("weather_risk IN ('low', 'medium', 'high', 'severe')", name="ck_shipment_weather"),
    )
    op.create_index("ix_shipments_org_status", "shipments", ["organization_id", "status"])

    # 6. Inventory items
    op.create_table(
        "inventory_items",
        _pk("item_id"),
        _org_fk(),
        sa.Column("supplier_id", UUID(as_uuid=True), sa.ForeignKey("suppliers.supplier_id")),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("product_name", sa.String(200), nullable=False),
        sa.Column("current_stock", sa.Float, nullable=False, server_default="0"),
        sa.Column("reorder_point", sa.Float, nullable=False, server_default="0"),
        sa.Column("safety_stock", sa.Float, nullable=False, server_default="0"),
        sa.Column("lead_time_days", sa.Integer, nullable=False, server_default="7"),
        sa.Column("average_daily_demand", sa.Float, nullable=False, server_default="0"),
        sa.Column("demand_history", sa.JSON),
        sa.Column("days_of_cover", sa.Float, nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="adequate"),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime),
        sa.UniqueConstraint("organization_id", "sku", name="uq_inventory_org_sku"),
        sa.CheckConstraint("current_stock >= 0", name="ck_inventory_stock_nonnegative"),
        sa.CheckConstraint("lead_time_days > 0", name="ck_inventory_lead_time_positive"),
        sa.CheckConstraint(
            "status IN ('adequate', 'low', 'critical', 'outOfStock')", name="ck_inventory_status"
        ),
    )
    op.create_index("ix_inventory_supplier", "inventory_items", ["supplier_id"])

    # 7. Risk scores
    op.create_table(
        "risk_scores",
        _pk("risk_score_id"),
        _org_fk(),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", UUID(as_uuid=True), nullable=False),
        sa.Column("score_type", sa.String(20), nullable=False),
        sa.Column("overall_score", sa.Integer, nullable=False),
        sa.Column("risk_tier", sa.String(10), nullable=False),
        sa.Column("components", sa.JSON),
        sa.Column("confidence", sa.Integer, nullable=False, server_default="100"),
        sa.Column("low_confidence", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("confidence_warning", sa.Text),
        sa.Column("evaluated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("evaluated_by", sa.String(10), nullable=False, server_default="agent"),
        sa.Column("previous_score", sa.Integer),
        sa.Column("score_history", sa.JSON),
        *_timestamps(),
        sa.UniqueConstraint("organization_id", "entity_type", "entity_id", name="uq_risk_score_entity"),
        sa.CheckConstraint("overall_score >= 0 AND overall_score <= 100", name="ck_risk_score_range"),
        sa.CheckConstraint("confidence >= 0 AND confidence <= 100", name="ck_risk_confidence_range"),
        sa.CheckConstraint(
            "entity_type IN ('supplier', 'shipment', 'inventory')", name="ck_risk_entity_type"
        ),
        sa.CheckConstraint("risk_tier IN ('low', 'medium', 'high', 'critical')", name="ck_risk_tier"),
        sa.CheckConstraint("evaluated_by IN ('agent', 'manual', 'system')", name="ck_risk_evaluated_by"),
    )
    op.create_index("ix_risk_scores_org_tier", "risk_scores", ["organization_id", "risk_tier"])

    # 8. Alerts
    op.create_table(
        "alerts",
        _pk("alert_id"),
        _org_fk(),
        sa.Column("alert_type", sa.String(30), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("related_entity_type", sa.String(20), nullable=False),
        sa.Column("related_entity_id", UUID(as_uuid=True), nullable=False),
        sa.Column("risk_score_id", UUID(as_uuid=True), sa.ForeignKey("risk_scores.risk_score_id")),
        sa.Column("status", sa.String(20), nullable=False, server_default="generated"),
        sa.Column("assigned_to", UUID(as_uuid=True), sa.ForeignKey("users.user_id")),
        sa.Column("assigned_at", sa.DateTime),
        sa.Column("acknowledged_at", sa.DateTime),
        sa.Column("resolved_at", sa.DateTime),
        sa.Column("resolution_notes", sa.Text),
        sa.Column("escalation_level", sa.Integer, nullable=False, server_default="0"),
        sa.Column("escalation_history", sa.JSON),
        sa.Column("recommendations", sa.JSON),
        sa.Column("cooldown_until", sa.DateTime),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime),
        sa.CheckConstraint(
            "alert_type IN ('supplierRisk', 'shipmentDelay', 'inventoryStockout', 'inventoryLow')",
            name="ck_alert_type",
        ),
        sa.CheckConstraint("severity IN ('low', 'medium', 'high', 'critical')", name="ck_alert_severity"),
        sa.CheckConstraint(
            "status IN ('generated', 'assigned', 'acknowledged', 'inReview', 'resolved', 'archived')",
            name="ck_alert_status",
        ),
        sa.CheckConstraint(
            "escalation_level >= 0 AND escalation_level <= 3", name="ck_alert_escalation_level"
        ),
        sa.CheckConstraint(
            "related_entity_type IN ('supplier', 'shipment', 'inventory')", name="ck_alert_entity_type"
        ),
    )
    op.create_index("ix_alerts_org_status", "alerts", ["organization_id", "status"])
    op.create_index("ix_alerts_cooldown", "alerts", ["organization_id", "related_entity_id", "alert_type"])
    op.create_index("ix_alerts_assignee", "alerts", ["assigned_to", "status"])

    # 9. Audit logs
    op.create_table(
        "audit_logs",
        _pk("log_id"),
        _org_fk(),
        sa.Column("user_id", UUID(as_uuid=True)),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", UUID(as_uuid=True)),
        sa.Column("changes", sa.JSON),
        sa.Column("metadata", sa.JSON),
        sa.Column("status", sa.String(10), nullable=False, server_default="success"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('success', 'failure')", name="ck_audit_status"),
    )
    op.create_index("ix_audit_logs_org_created", "audit_logs", ["organization_id", "created_at"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "alerts",
        "risk_scores",
        "inventory_items",
        "shipments",
        "suppliers",
        "organization_configs",
        "users",
        "organizations",
    ):
        op.drop_table(table)
