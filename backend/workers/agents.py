"""
Celery entry point for the risk agents.

Beat fires ``workers.agents.run_agent`` once per agent interval. Every task in
this worker process shares one lock registry, so a beat tick that lands while
the previous run of the same agent is still going is skipped.
"""

import asyncio
import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workers.celery_app import celery_app
from workers.scheduler import AgentLockRegistry, AgentScheduler

logger = structlog.get_logger()

# Process-wide; single-flight holds within one worker process
AGENT_LOCKS = AgentLockRegistry()


@celery_app.task(
    name="workers.agents.run_agent",
    bind=True,
    acks_late=True,
)
def run_agent(self, agent_name: str, organization_id: str | None = None):
    """Run one agent under the shared single-flight lock."""
    from core.config import get_settings

    run_id = self.request.id or "manual"
    target = uuid.UUID(organization_id) if organization_id else None

    async def _run():
        settings = get_settings()
        engine = create_async_engine(settings.database_url)
        try:
            session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            scheduler = AgentScheduler(session_factory, settings=settings, locks=AGENT_LOCKS)
            scheduler.get_agent(agent_name)
            result = await scheduler.run_agent(agent_name, target)
        finally:
            await engine.dispose()

        summary = {
            "status": "skipped_or_failed" if result is None else "success",
            "agent": agent_name,
            "organization_id": organization_id,
            "result": result,
            "completed_at": datetime.now(timezone.utc).isoformat(),
            "run_id": run_id,
        }
        logger.info("agents.task_completed", **summary)
        return summary

    return asyncio.run(_run())
