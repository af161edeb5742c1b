"""
Tests for the supplier, shipment, and inventory risk agents.

Agent runs open their own sessions through ``session_factory``; assertions
re-read rows through ``test_db`` with ``populate_existing`` so they see the
committed state, not the seed objects cached in the identity map.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from db.models import Alert, RiskScore
from workers.risk_agents import (
    run_inventory_risk_evaluation,
    run_shipment_risk_evaluation,
    run_supplier_risk_evaluation,
)

STRICT_SHIPMENT_BAND = {"shipment": {"low": 10, "medium": 20, "high": 30}}


async def _score_for(db, entity_id) -> RiskScore:
    result = await db.execute(
        select(RiskScore).where(RiskScore.entity_id == entity_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _alerts_for(db, entity_id) -> list[Alert]:
    result = await db.execute(
        select(Alert)
        .where(Alert.related_entity_id == entity_id)
        .order_by(Alert.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
class TestSupplierRiskAgent:
    async def test_scores_every_active_supplier_and_alerts_on_high(self, test_db, seeded_db, session_factory, now):
        result = await run_supplier_risk_evaluation(session_factory, now=now)

        assert result == {"processed": 2, "alerts_generated": 1, "errors": 0}

        risky = await _score_for(test_db, seeded_db["risky_supplier"].supplier_id)
        assert risky.overall_score == 63
        assert risky.risk_tier == "high"
        assert risky.evaluated_by == "agent"

        healthy = await _score_for(test_db, seeded_db["healthy_supplier"].supplier_id)
        assert healthy.risk_tier == "low"

        alerts = await _alerts_for(test_db, seeded_db["risky_supplier"].supplier_id)
        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.alert_type == "supplierRisk"
        assert alert.severity == "high"
        assert alert.status == "generated"
        assert alert.title == "Supplier Risk Alert: Shaky Parts Ltd (HIGH)"
        assert alert.risk_score_id == risky.risk_score_id
        assert len(alert.recommendations) == 6

        assert await _alerts_for(test_db, seeded_db["healthy_supplier"].supplier_id) == []

    async def test_rerun_within_cooldown_updates_score_without_new_alert(
        self, test_db, seeded_db, session_factory, now
    ):
        await run_supplier_risk_evaluation(session_factory, now=now)
        second = await run_supplier_risk_evaluation(session_factory, now=now + timedelta(hours=1))

        assert second["alerts_generated"] == 0
        risky = await _score_for(test_db, seeded_db["risky_supplier"].supplier_id)
        assert risky.previous_score == 63
        assert len(risky.score_history) == 1
        assert len(await _alerts_for(test_db, seeded_db["risky_supplier"].supplier_id)) == 1

    async def test_rerun_after_cooldown_alerts_again(self, test_db, seeded_db, session_factory, now):
        await run_supplier_risk_evaluation(session_factory, now=now)
        again = await run_supplier_risk_evaluation(session_factory, now=now + timedelta(hours=5))

        assert again["alerts_generated"] == 1
        assert len(await _alerts_for(test_db, seeded_db["risky_supplier"].supplier_id)) == 2

    async def test_inactive_suppliers_are_skipped(self, test_db, seeded_db, session_factory, now):
        seeded_db["risky_supplier"].status = "inactive"
        await test_db.flush()

        result = await run_supplier_risk_evaluation(session_factory, now=now)
        assert result == {"processed": 1, "alerts_generated": 0, "errors": 0}

    async def test_target_organization_only(self, seeded_db, session_factory, now):
        result = await run_supplier_risk_evaluation(session_factory, seeded_db["other_org_id"], now=now)
        assert result == {"processed": 0, "alerts_generated": 0, "errors": 0}

    async def test_entity_failure_is_isolated(self, test_db, seeded_db, session_factory, now, monkeypatch):
        import workers.risk_agents as risk_agents

        real_score_entity = risk_agents.score_entity

        async def failing_for_risky(db, organization_id, entity_type, entity, thresholds, now=None):
            if entity.supplier_code == "SUP-001":
                raise RuntimeError("metrics feed corrupted")
            return await real_score_entity(db, organization_id, entity_type, entity, thresholds, now=now)

        monkeypatch.setattr(risk_agents, "score_entity", failing_for_risky)

        result = await run_supplier_risk_evaluation(session_factory, now=now)

        assert result == {"processed": 1, "alerts_generated": 0, "errors": 1}
        healthy = await _score_for(test_db, seeded_db["healthy_supplier"].supplier_id)
        assert healthy.overall_score == 3

    async def test_organization_failure_is_isolated(self, test_db, seeded_db, session_factory, now, monkeypatch):
        import workers.risk_agents as risk_agents

        real_get_or_create_config = risk_agents.get_or_create_config
        broken_org = seeded_db["other_org_id"]

        async def failing_for_other_org(db, organization_id):
            if organization_id == broken_org:
                raise RuntimeError("config row unreadable")
            return await real_get_or_create_config(db, organization_id)

        monkeypatch.setattr(risk_agents, "get_or_create_config", failing_for_other_org)

        result = await run_supplier_risk_evaluation(session_factory, now=now)

        assert result == {"processed": 2, "alerts_generated": 1, "errors": 1}
        assert (await _score_for(test_db, seeded_db["risky_supplier"].supplier_id)).overall_score == 63

    async def test_enumeration_failure_fails_the_run_and_frees_the_lock(self, seeded_db, session_factory, monkeypatch):
        import workers.risk_agents as risk_agents
        from workers.scheduler import AgentScheduler

        async def no_organizations(db):
            raise RuntimeError("organizations table unavailable")

        monkeypatch.setattr(risk_agents, "list_active_organization_ids", no_organizations)

        with pytest.raises(RuntimeError, match="organizations table unavailable"):
            await run_supplier_risk_evaluation(session_factory)

        scheduler = AgentScheduler(session_factory)
        assert await scheduler.run_agent("supplierRisk") is None
        assert scheduler.is_running("supplierRisk") is False

    async def test_creates_org_config_with_defaults(self, test_db, seeded_db, session_factory, now):
        from organizations.config import get_config

        await run_supplier_risk_evaluation(session_factory, seeded_db["org_id"], now=now)

        config = await get_config(test_db, seeded_db["org_id"])
        assert config is not None
        assert config.risk_thresholds["supplier"] == {"low": 30, "medium": 60, "high": 80}


@pytest.mark.asyncio
class TestShipmentRiskAgent:
    async def test_default_thresholds_do_not_alert(self, test_db, seeded_db, session_factory, now):
        result = await run_shipment_risk_evaluation(session_factory, now=now)

        assert result == {"processed": 1, "alerts_generated": 0, "errors": 0}
        score = await _score_for(test_db, seeded_db["late_shipment"].shipment_id)
        assert score.overall_score == 36
        assert score.risk_tier == "medium"

    async def test_strict_org_thresholds_alert_critical(self, test_db, seeded_db, session_factory, now):
        from organizations.config import update_config

        await update_config(test_db, seeded_db["org_id"], {"risk_thresholds": STRICT_SHIPMENT_BAND})

        result = await run_shipment_risk_evaluation(session_factory, now=now)
        assert result["alerts_generated"] == 1

        alert = (await _alerts_for(test_db, seeded_db["late_shipment"].shipment_id))[0]
        assert alert.alert_type == "shipmentDelay"
        assert alert.severity == "critical"
        assert alert.title == "Shipment Delay Alert: SHP-1001 (CRITICAL)"
        assert alert.cooldown_until == now + timedelta(hours=1)
        # 5 critical-tier entries plus the severe weather bonus
        assert len(alert.recommendations) == 6

    async def test_delivered_shipments_are_skipped(self, test_db, seeded_db, session_factory, now):
        seeded_db["late_shipment"].status = "delivered"
        await test_db.flush()

        result = await run_shipment_risk_evaluation(session_factory, now=now)
        assert result["processed"] == 0


@pytest.mark.asyncio
class TestInventoryRiskAgent:
    async def test_stockout_alert_uses_supplier_score(self, test_db, seeded_db, session_factory, now):
        await run_supplier_risk_evaluation(session_factory, now=now)
        result = await run_inventory_risk_evaluation(session_factory, now=now)

        assert result == {"processed": 1, "alerts_generated": 1, "errors": 0}
        score = await _score_for(test_db, seeded_db["empty_item"].item_id)
        assert score.components["stockout_probability"] == 100
        assert score.components["supplier_risk_adjustment"] == 13
        assert score.overall_score == 62
        assert score.risk_tier == "high"

        alert = (await _alerts_for(test_db, seeded_db["empty_item"].item_id))[0]
        assert alert.alert_type == "inventoryStockout"
        assert "SKU-0001" in alert.description

    async def test_low_stock_alert_type(self, test_db, seeded_db, session_factory, now):
        from organizations.config import update_config

        item = seeded_db["empty_item"]
        item.current_stock = 15
        await test_db.flush()
        await update_config(
            test_db, seeded_db["org_id"], {"risk_thresholds": {"inventory": {"low": 10, "medium": 20, "high": 40}}}
        )

        await run_inventory_risk_evaluation(session_factory, now=now)

        alert = (await _alerts_for(test_db, item.item_id))[0]
        assert alert.alert_type == "inventoryLow"
        assert alert.severity == "critical"
