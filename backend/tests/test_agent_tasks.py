import asyncio
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.clock import utcnow
from core.config import Settings
from core.errors import ValidationError
from db.session import Base
from workers.agents import AGENT_LOCKS, run_agent
from workers.celery_app import celery_app


def _seed(db_url: str) -> uuid.UUID:
    from db.models import Organization, Supplier

    org_id = uuid.UUID("00000000-0000-0000-0000-000000000301")
    fresh = (utcnow() - timedelta(days=5)).isoformat()

    async def _run() -> None:
        engine = create_async_engine(db_url, echo=False)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with session_factory() as db:
            db.add(Organization(organization_id=org_id, name="Task Tenant"))
            db.add(
                Supplier(
                    organization_id=org_id,
                    supplier_code="SUP-900",
                    name="Late Again Inc",
                    performance_metrics={
                        "on_time_delivery_rate": 20,
                        "defect_rate": 40,
                        "dispute_frequency": 10,
                        "last_updated": fresh,
                    },
                    financial_stability={"score": 10, "last_updated": fresh},
                )
            )
            await db.commit()
        await engine.dispose()

    asyncio.run(_run())
    return org_id


def _count_alerts(db_url: str) -> int:
    from db.models import Alert

    async def _run() -> int:
        engine = create_async_engine(db_url, echo=False)
        async with engine.connect() as conn:
            count = await conn.scalar(select(func.count()).select_from(Alert.__table__))
        await engine.dispose()
        return int(count)

    return asyncio.run(_run())


@pytest.fixture
def task_db(tmp_path, monkeypatch):
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'agents.db'}"
    org_id = _seed(db_url)
    monkeypatch.setattr("core.config.get_settings", lambda: Settings(database_url=db_url, app_env="test"))
    return db_url, org_id


def test_beat_schedules_every_agent_through_one_task():
    schedule = celery_app.conf.beat_schedule
    agents = {entry["kwargs"]["agent_name"] for entry in schedule.values()}

    assert agents == {"supplierRisk", "shipmentRisk", "inventoryRisk", "alertEscalation"}
    assert {entry["task"] for entry in schedule.values()} == {"workers.agents.run_agent"}
    assert schedule["alert-escalation"]["schedule"] == 5 * 60


def test_agents_worker_runs_a_single_process():
    # Lock registry is per process
    assert celery_app.conf.worker_concurrency == 1


def test_run_agent_task_scores_and_alerts(task_db):
    db_url, _ = task_db

    summary = run_agent(agent_name="supplierRisk")

    assert summary["status"] == "success"
    # 80*.30 + 90*.25 + 40*.20 + 50*.15 = 62
    assert summary["result"] == {"processed": 1, "alerts_generated": 1, "errors": 0}
    assert _count_alerts(db_url) == 1


def test_run_agent_task_for_target_organization(task_db):
    _, org_id = task_db

    summary = run_agent(agent_name="alertEscalation", organization_id=str(org_id))

    assert summary["organization_id"] == str(org_id)
    assert summary["result"] == {"escalated": 0, "errors": 0}


def test_run_agent_task_skips_while_held(task_db):
    token = AGENT_LOCKS.try_acquire("supplierRisk")
    try:
        summary = run_agent(agent_name="supplierRisk")
    finally:
        AGENT_LOCKS.release("supplierRisk", token)

    assert summary["status"] == "skipped_or_failed"
    assert summary["result"] is None


def test_run_agent_task_rejects_unknown_agent(task_db):
    with pytest.raises(ValidationError):
        run_agent(agent_name="weatherRisk")
