"""
Test Configuration — Fixtures for async DB, session factories, and seed data.

Uses per-test transactions with SAVEPOINT/rollback so each test gets a
clean database state.
"""

import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from db.session import Base

# Use in-memory SQLite for tests.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ORG_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_ORG_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")

# Fixed evaluation time; every time-based call in the suite takes ``now``
NOW = datetime(2026, 3, 2, 12, 0, 0)


@pytest.fixture
async def test_engine():
    """Fresh in-memory database with all tables, one per test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    """Create a test session wrapped in a transaction that rolls back after each test."""
    async with test_engine.connect() as conn:
        trans = await conn.begin()
        # Use SAVEPOINT so nested commits inside app code don't end our transaction
        session = AsyncSession(
            bind=conn,
            expire_on_commit=False,
            join_transaction_mode="create_savepoint",
        )

        yield session

        await session.close()
        await trans.rollback()


@pytest.fixture
def session_factory(test_db):
    """Session factory for agent runs, bound to the test connection.

    Sessions it creates commit into a SAVEPOINT, so their writes are visible
    to ``test_db`` and still rolled back at the end of the test.
    """
    return async_sessionmaker(
        bind=test_db.bind,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
async def seeded_db(test_db):
    """Seed two organizations, users, and one of each entity kind."""
    from db.models import InventoryItem, Organization, Shipment, Supplier, User

    org = Organization(organization_id=ORG_ID, name="Acme Manufacturing", created_at=NOW - timedelta(days=30))
    other_org = Organization(organization_id=OTHER_ORG_ID, name="Globex", created_at=NOW - timedelta(days=20))
    test_db.add_all([org, other_org])
    await test_db.flush()

    admin = User(organization_id=ORG_ID, email="admin@acme.test", role="orgAdmin", full_name="Ada Admin")
    analyst = User(
        organization_id=ORG_ID,
        email="analyst@acme.test",
        phone="+15550100",
        role="riskAnalyst",
        full_name="Ari Analyst",
    )
    viewer = User(organization_id=ORG_ID, email="viewer@acme.test", role="viewer")
    outsider = User(organization_id=OTHER_ORG_ID, email="analyst@globex.test", role="riskAnalyst")
    test_db.add_all([admin, analyst, viewer, outsider])
    await test_db.flush()

    fresh = (NOW - timedelta(days=10)).isoformat()

    # Scores 63 (high) with default thresholds
    risky_supplier = Supplier(
        organization_id=ORG_ID,
        supplier_code="SUP-001",
        name="Shaky Parts Ltd",
        country="Freedonia",
        performance_metrics={
            "on_time_delivery_rate": 10,
            "defect_rate": 30,
            "dispute_frequency": 10,
            "last_updated": fresh,
        },
        financial_stability={"score": 20, "last_updated": fresh},
        geopolitical_risk_flag=True,
    )
    # Scores 3 (low)
    healthy_supplier = Supplier(
        organization_id=ORG_ID,
        supplier_code="SUP-002",
        name="Reliable Components",
        performance_metrics={
            "on_time_delivery_rate": 98,
            "defect_rate": 1,
            "dispute_frequency": 0,
            "last_updated": fresh,
        },
        financial_stability={"score": 90, "last_updated": fresh},
    )
    test_db.add_all([risky_supplier, healthy_supplier])
    await test_db.flush()

    # Scores 36 (medium with default thresholds)
    late_shipment = Shipment(
        organization_id=ORG_ID,
        supplier_id=risky_supplier.supplier_id,
        shipment_number="SHP-1001",
        carrier="Slow Freight",
        estimated_arrival=NOW - timedelta(hours=30),
        status="inTransit",
        tracking_events=[{"timestamp": (NOW - timedelta(hours=30)).isoformat(), "status": "inTransit"}],
        weather_risk="severe",
        route_risk_index=80,
        carrier_reliability=50,
    )
    test_db.add(late_shipment)

    # Stockout 100, variance 30 → 61 (high) with the default supplier adjustment
    empty_item = InventoryItem(
        organization_id=ORG_ID,
        supplier_id=risky_supplier.supplier_id,
        sku="SKU-0001",
        product_name="Hex Bolt M8",
        current_stock=0,
        reorder_point=40,
        safety_stock=20,
        lead_time_days=7,
        average_daily_demand=10,
        demand_history=[
            {"period": "2026-W05", "actual_demand": 0},
            {"period": "2026-W06", "actual_demand": 20},
            {"period": "2026-W07", "actual_demand": 0},
            {"period": "2026-W08", "actual_demand": 20},
        ],
        days_of_cover=0,
        status="outOfStock",
    )
    test_db.add(empty_item)
    await test_db.flush()

    return {
        "org_id": ORG_ID,
        "other_org_id": OTHER_ORG_ID,
        "admin": admin,
        "analyst": analyst,
        "viewer": viewer,
        "outsider": outsider,
        "risky_supplier": risky_supplier,
        "healthy_supplier": healthy_supplier,
        "late_shipment": late_shipment,
        "empty_item": empty_item,
    }


@pytest.fixture
async def make_alert(test_db):
    """Factory for alerts in any state, bypassing the dispatcher."""
    from db.models import Alert

    async def _make(organization_id=ORG_ID, **overrides):
        fields = {
            "organization_id": organization_id,
            "alert_type": "supplierRisk",
            "severity": "high",
            "title": "Supplier Risk Alert: Test",
            "description": "Test alert",
            "related_entity_type": "supplier",
            "related_entity_id": uuid.uuid4(),
            "status": "generated",
            "escalation_level": 0,
            "escalation_history": [],
            "recommendations": [],
            "version": 0,
            "created_at": NOW - timedelta(hours=2),
            "updated_at": NOW - timedelta(hours=2),
        }
        fields.update(overrides)
        alert = Alert(**fields)
        test_db.add(alert)
        await test_db.flush()
        return alert

    return _make
