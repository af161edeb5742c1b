"""
Tests for the risk score store and on-demand evaluation.
"""

import uuid
from datetime import timedelta

import pytest

from scoring import store
from scoring.tiers import ScoreResult


def _result(score: int, tier: str) -> ScoreResult:
    return ScoreResult(
        overall_score=score,
        risk_tier=tier,
        components={"delay_score": score},
        confidence=100,
        low_confidence=False,
        confidence_warning=None,
        score_type="supplierRisk",
    )


@pytest.mark.asyncio
class TestScoreStore:
    async def test_first_upsert_creates_row(self, test_db, seeded_db, now):
        org_id = seeded_db["org_id"]
        supplier_id = seeded_db["risky_supplier"].supplier_id

        score = await store.upsert_score(test_db, org_id, supplier_id, "supplier", _result(63, "high"), now=now)

        assert score.overall_score == 63
        assert score.previous_score is None
        assert score.score_history == []
        assert score.evaluated_by == "agent"
        assert score.evaluated_at == now

    async def test_reevaluation_updates_in_place_and_keeps_history(self, test_db, seeded_db, now):
        org_id = seeded_db["org_id"]
        supplier_id = seeded_db["risky_supplier"].supplier_id

        first = await store.upsert_score(test_db, org_id, supplier_id, "supplier", _result(40, "medium"), now=now)
        second = await store.upsert_score(
            test_db, org_id, supplier_id, "supplier", _result(70, "high"), now=now + timedelta(hours=4)
        )

        assert second.risk_score_id == first.risk_score_id
        assert second.overall_score == 70
        assert second.previous_score == 40
        assert second.score_history == [
            {"score": 40, "risk_tier": "medium", "evaluated_at": now.isoformat()},
        ]

    async def test_history_is_bounded_fifo(self):
        history = [{"score": i} for i in range(store.MAX_SCORE_HISTORY)]
        updated = store.push_history(history, {"score": "newest"})
        assert len(updated) == store.MAX_SCORE_HISTORY
        assert updated[0] == {"score": 1}
        assert updated[-1] == {"score": "newest"}
        assert len(history) == store.MAX_SCORE_HISTORY

    async def test_get_history_newest_first(self, test_db, seeded_db, now):
        org_id = seeded_db["org_id"]
        supplier_id = seeded_db["risky_supplier"].supplier_id
        for hours, value in enumerate((10, 20, 30)):
            await store.upsert_score(
                test_db, org_id, supplier_id, "supplier", _result(value, "low"), now=now + timedelta(hours=hours)
            )

        points = await store.get_history(test_db, org_id, "supplier", supplier_id, limit=2)
        assert [p["score"] for p in points] == [30, 20]

    async def test_tier_distribution_zero_filled(self, test_db, seeded_db, now):
        org_id = seeded_db["org_id"]
        await store.upsert_score(
            test_db, org_id, seeded_db["risky_supplier"].supplier_id, "supplier", _result(63, "high"), now=now
        )
        await store.upsert_score(
            test_db, org_id, seeded_db["healthy_supplier"].supplier_id, "supplier", _result(3, "low"), now=now
        )

        distribution = await store.get_risk_tier_distribution(test_db, org_id, "supplier")
        assert distribution == {"low": 1, "medium": 0, "high": 1, "critical": 0}

        high = await store.get_by_risk_tier(test_db, org_id, "supplier", "high")
        assert [s.entity_id for s in high] == [seeded_db["risky_supplier"].supplier_id]

    async def test_scores_are_organization_scoped(self, test_db, seeded_db, now):
        supplier_id = seeded_db["risky_supplier"].supplier_id
        await store.upsert_score(test_db, seeded_db["org_id"], supplier_id, "supplier", _result(63, "high"), now=now)

        assert await store.get_by_entity_id(test_db, seeded_db["other_org_id"], "supplier", supplier_id) is None


@pytest.mark.asyncio
class TestEvaluateEntity:
    async def test_manual_supplier_evaluation(self, test_db, seeded_db, now):
        from scoring.service import evaluate_entity

        score = await evaluate_entity(
            test_db, seeded_db["org_id"], "supplier", seeded_db["risky_supplier"].supplier_id, now=now
        )
        assert score.overall_score == 63
        assert score.risk_tier == "high"
        assert score.evaluated_by == "manual"

    async def test_inventory_uses_current_supplier_score(self, test_db, seeded_db, now):
        from scoring.service import evaluate_entity

        org_id = seeded_db["org_id"]
        await evaluate_entity(test_db, org_id, "supplier", seeded_db["risky_supplier"].supplier_id, now=now)
        score = await evaluate_entity(
            test_db, org_id, "inventory", seeded_db["empty_item"].item_id, evaluated_by="system", now=now
        )

        assert score.components["supplier_risk_adjustment"] == 13
        assert score.overall_score == 62
        assert score.evaluated_by == "system"

    async def test_shipment_uses_org_thresholds(self, test_db, seeded_db, now):
        from organizations.config import update_config
        from scoring.service import evaluate_entity

        org_id = seeded_db["org_id"]
        await update_config(test_db, org_id, {"risk_thresholds": {"shipment": {"low": 10, "medium": 20, "high": 30}}})

        score = await evaluate_entity(test_db, org_id, "shipment", seeded_db["late_shipment"].shipment_id, now=now)
        assert score.overall_score == 36
        assert score.risk_tier == "critical"

    async def test_agent_is_not_an_on_demand_evaluator(self, test_db, seeded_db, now):
        from core.errors import ValidationError
        from scoring.service import evaluate_entity

        with pytest.raises(ValidationError):
            await evaluate_entity(
                test_db,
                seeded_db["org_id"],
                "supplier",
                seeded_db["risky_supplier"].supplier_id,
                evaluated_by="agent",
                now=now,
            )

    async def test_missing_entity_raises_not_found(self, test_db, seeded_db, now):
        from core.errors import NotFoundError
        from scoring.service import evaluate_entity

        with pytest.raises(NotFoundError):
            await evaluate_entity(test_db, seeded_db["org_id"], "supplier", uuid.uuid4(), now=now)

    async def test_entity_in_other_org_is_not_found(self, test_db, seeded_db, now):
        from core.errors import NotFoundError
        from scoring.service import evaluate_entity

        with pytest.raises(NotFoundError):
            await evaluate_entity(
                test_db, seeded_db["other_org_id"], "supplier", seeded_db["risky_supplier"].supplier_id, now=now
            )

    async def test_unknown_entity_type(self, test_db, seeded_db, now):
        from core.errors import ValidationError
        from scoring.service import evaluate_entity

        with pytest.raises(ValidationError):
            await evaluate_entity(test_db, seeded_db["org_id"], "warehouse", uuid.uuid4(), now=now)
