"""
Agent Scheduler — single-flight execution of the periodic risk agents.

  supplierRisk      every 240 min
  shipmentRisk      every  15 min
  inventoryRisk     every  30 min
  alertEscalation   every   5 min

Each agent name owns one lock in ``AgentLockRegistry``. A run that finds its
lock held is skipped (never queued). Different agents may run concurrently.
Celery beat fires ``workers.agents.run_agent`` in production; ``AgentTicker``
drives the same runs in-process with an injectable clock.

When ``agent_lock_timeout_seconds`` is positive, a lock held longer than that
many seconds is treated as stale and reclaimed by the next run.
"""

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from alerts.escalation import run_alert_escalation
from core.clock import utcnow
from core.config import get_settings
from core.errors import ValidationError
from organizations.config import record_last_agent_run
from workers.risk_agents import (
    run_inventory_risk_evaluation,
    run_shipment_risk_evaluation,
    run_supplier_risk_evaluation,
)

logger = structlog.get_logger()

AgentFn = Callable[..., Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class AgentDefinition:
    name: str
    interval_minutes: int
    run: AgentFn
    description: str = ""


def build_agent_registry(settings=None) -> dict[str, AgentDefinition]:
    settings = settings or get_settings()
    agents = [
        AgentDefinition(
            "supplierRisk",
            settings.supplier_risk_interval_minutes,
            run_supplier_risk_evaluation,
            "Scores active suppliers from performance and financial signals",
        ),
        AgentDefinition(
            "shipmentRisk",
            settings.shipment_risk_interval_minutes,
            run_shipment_risk_evaluation,
            "Scores in-flight shipments from ETA, weather, route, and carrier signals",
        ),
        AgentDefinition(
            "inventoryRisk",
            settings.inventory_risk_interval_minutes,
            run_inventory_risk_evaluation,
            "Scores inventory positions from stock cover and demand variance",
        ),
        AgentDefinition(
            "alertEscalation",
            settings.alert_escalation_interval_minutes,
            run_alert_escalation,
            "Escalates assigned alerts whose timeout has elapsed",
        ),
    ]
    return {agent.name: agent for agent in agents}


# ─── Locks ──────────────────────────────────────────────────────────────────


class AgentLockRegistry:
    """Thread-safe map of agent name → (monotonic start time, owner token)."""

    def __init__(self, monotonic: Callable[[], float] = time.monotonic):
        self._mutex = threading.Lock()
        self._held: dict[str, tuple[float, object]] = {}
        self._monotonic = monotonic

    def try_acquire(self, name: str, stale_after_seconds: float | None = None) -> object | None:
        """Return an ownership token, or None if another run holds the lock."""
        with self._mutex:
            held = self._held.get(name)
            if held is not None:
                held_for = self._monotonic() - held[0]
                if not stale_after_seconds or held_for < stale_after_seconds:
                    return None
                logger.warning("scheduler.stale_lock_reclaimed", agent=name, held_seconds=round(held_for, 1))
            token = object()
            self._held[name] = (self._monotonic(), token)
            return token

    def release(self, name: str, token: object) -> None:
        """Release only if ``token`` still owns the lock (a reclaimed lock stays with its new owner)."""
        with self._mutex:
            held = self._held.get(name)
            if held is not None and held[1] is token:
                del self._held[name]

    def is_held(self, name: str) -> bool:
        with self._mutex:
            return name in self._held

    def held(self) -> list[str]:
        with self._mutex:
            return sorted(self._held)


class AgentTicker:
    """Fires once per ``interval_seconds`` of the injected clock."""

    def __init__(self, interval_seconds: float, clock: Callable[[], float] = time.monotonic, fire_immediately=False):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._next_due = clock() if fire_immediately else clock() + interval_seconds

    def due(self) -> bool:
        return self._clock() >= self._next_due

    def advance(self) -> None:
        """Schedule the next fire; missed intervals collapse into one."""
        now = self._clock()
        while self._next_due <= now:
            self._next_due += self.interval_seconds

    def seconds_until_due(self) -> float:
        return max(0.0, self._next_due - self._clock())


# ─── Scheduler ──────────────────────────────────────────────────────────────


class AgentScheduler:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        registry: dict[str, AgentDefinition] | None = None,
        clock: Callable[[], float] = time.monotonic,
        settings=None,
        locks: AgentLockRegistry | None = None,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.registry = registry if registry is not None else build_agent_registry(self.settings)
        self.locks = locks or AgentLockRegistry(monotonic=clock)
        self.tickers = {
            name: AgentTicker(agent.interval_minutes * 60, clock=clock) for name, agent in self.registry.items()
        }
        self._background: set[asyncio.Task] = set()

    def _stale_after(self) -> float | None:
        timeout = self.settings.agent_lock_timeout_seconds
        return timeout if timeout > 0 else None

    def is_running(self, name: str) -> bool:
        return self.locks.is_held(name)

    def running_agents(self) -> list[str]:
        return self.locks.held()

    def get_agent(self, name: str) -> AgentDefinition:
        agent = self.registry.get(name)
        if agent is None:
            raise ValidationError(
                f"Unknown agent: {name}",
                details={"agent": name, "valid": sorted(self.registry)},
            )
        return agent

    async def run_with_lock(self, name: str, agent_fn: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run ``agent_fn`` unless ``name`` is already running.

        Returns the agent's result, or None when the run was skipped or failed.
        Failures are logged, never raised; the lock is always released.
        """
        token = self.locks.try_acquire(name, self._stale_after())
        if token is None:
            logger.warning("scheduler.run_skipped", agent=name, reason="previous run still in progress")
            return None

        started = time.perf_counter()
        try:
            logger.info("scheduler.run_started", agent=name)
            result = await agent_fn()
            duration_ms = round((time.perf_counter() - started) * 1000)
            logger.info("scheduler.run_completed", agent=name, duration_ms=duration_ms, **(result or {}))
            await self._record_last_run(name, utcnow())
            return result
        except Exception as exc:  # noqa: BLE001
            duration_ms = round((time.perf_counter() - started) * 1000)
            logger.error("scheduler.run_failed", agent=name, duration_ms=duration_ms, error=str(exc), exc_info=True)
            return None
        finally:
            self.locks.release(name, token)

    async def _record_last_run(self, name: str, ran_at: datetime) -> None:
        try:
            async with self.session_factory() as db:
                await record_last_agent_run(db, name, ran_at)
                await db.commit()
        except Exception as exc:  # noqa: BLE001
            logger.error("scheduler.last_run_record_failed", agent=name, error=str(exc))

    async def run_agent(self, name: str, target_organization_id=None) -> Any:
        agent = self.get_agent(name)
        return await self.run_with_lock(
            name, lambda: agent.run(self.session_factory, target_organization_id)
        )

    async def trigger_agent(self, name: str, target_organization_id=None) -> dict[str, str]:
        """Out-of-band run with the same lock discipline. Unknown names raise ValidationError."""
        self.get_agent(name)
        await self.run_agent(name, target_organization_id)
        return {"triggered": name, "timestamp": utcnow().isoformat()}

    async def tick(self, wait: bool = True) -> list[str]:
        """
        Start every agent whose ticker is due; returns the names started.

        With ``wait=False`` the runs continue in the background so a slow agent
        never delays the others.
        """
        due = [name for name, ticker in self.tickers.items() if ticker.due()]
        for name in due:
            self.tickers[name].advance()
        if not due:
            return due
        if wait:
            await asyncio.gather(*(self.run_agent(name) for name in due))
        else:
            for name in due:
                task = asyncio.create_task(self.run_agent(name))
                self._background.add(task)
                task.add_done_callback(self._background.discard)
        return due

    async def run_forever(self, poll_seconds: float = 1.0) -> None:
        logger.info(
            "scheduler.started",
            agents={name: agent.interval_minutes for name, agent in self.registry.items()},
        )
        while True:
            await self.tick(wait=False)
            await asyncio.sleep(poll_seconds)


def main() -> None:
    """Run all agents in-process on their tickers (no Celery)."""
    from core.logging import configure_logging
    from db.session import AsyncSessionLocal

    configure_logging()
    scheduler = AgentScheduler(AsyncSessionLocal)
    asyncio.run(scheduler.run_forever())


if __name__ == "__main__":
    main()
