"""
Celery Application Configuration

Agent single-flight locks live in the worker process (``workers.agents.AGENT_LOCKS``),
so the agents worker runs one process: ``worker_concurrency=1``. Start it with
``celery -A workers.celery_app worker -Q agents``.
"""

from celery import Celery

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "riskwatch",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["workers.agents"],
)


def _every_minutes(minutes: int) -> float:
    return float(minutes * 60)


celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=1,
    task_routes={
        "workers.agents.*": {"queue": "agents"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    # One entry per agent; each goes through the single-flight scheduler.
    beat_schedule={
        "supplier-risk-evaluation": {
            "task": "workers.agents.run_agent",
            "schedule": _every_minutes(settings.supplier_risk_interval_minutes),
            "kwargs": {"agent_name": "supplierRisk"},
            "options": {"queue": "agents"},
        },
        "shipment-risk-evaluation": {
            "task": "workers.agents.run_agent",
            "schedule": _every_minutes(settings.shipment_risk_interval_minutes),
            "kwargs": {"agent_name": "shipmentRisk"},
            "options": {"queue": "agents"},
        },
        "inventory-risk-evaluation": {
            "task": "workers.agents.run_agent",
            "schedule": _every_minutes(settings.inventory_risk_interval_minutes),
            "kwargs": {"agent_name": "inventoryRisk"},
            "options": {"queue": "agents"},
        },
        "alert-escalation": {
            "task": "workers.agents.run_agent",
            "schedule": _every_minutes(settings.alert_escalation_interval_minutes),
            "kwargs": {"agent_name": "alertEscalation"},
            "options": {"queue": "agents"},
        },
    },
)
