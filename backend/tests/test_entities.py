"""
Tests for entity stores and derived inventory fields.
"""

import uuid

import pytest

from core.errors import ConcurrencyConflictError, NotFoundError, ValidationError
from db.models import InventoryItem, Supplier
from supply_chain.derived import (
    UNBOUNDED_DAYS_OF_COVER,
    apply_inventory_derivations,
    compute_days_of_cover,
    derive_inventory_status,
)
from supply_chain.entities import (
    find_active_shipments,
    find_active_suppliers,
    find_inventory,
    model_for,
    update_entity,
)


class TestDerivedInventoryFields:
    def test_days_of_cover(self):
        assert compute_days_of_cover(100, 10) == 10
        assert compute_days_of_cover(50, 0) == UNBOUNDED_DAYS_OF_COVER
        assert compute_days_of_cover(0, 0) == 0

    @pytest.mark.parametrize(
        "stock,expected",
        [(0, "outOfStock"), (20, "critical"), (35, "low"), (40, "low"), (41, "adequate")],
    )
    def test_status(self, stock, expected):
        assert derive_inventory_status(stock, safety_stock=20, reorder_point=40) == expected

    def test_partial_update_uses_stored_values(self):
        current = {"current_stock": 100, "average_daily_demand": 10, "safety_stock": 20, "reorder_point": 40}
        derived = apply_inventory_derivations({"current_stock": 30}, current)

        assert derived == {"current_stock": 30, "days_of_cover": 3, "status": "low"}


@pytest.mark.asyncio
class TestEntityStores:
    async def test_active_suppliers_ordered_by_code(self, test_db, seeded_db):
        suppliers = await find_active_suppliers(test_db, seeded_db["org_id"])
        assert [s.supplier_code for s in suppliers] == ["SUP-001", "SUP-002"]

        assert await find_active_suppliers(test_db, seeded_db["other_org_id"]) == []

    async def test_finders_skip_soft_deleted(self, test_db, seeded_db, now):
        seeded_db["late_shipment"].deleted_at = now
        seeded_db["empty_item"].deleted_at = now
        await test_db.flush()

        assert await find_active_shipments(test_db, seeded_db["org_id"]) == []
        assert await find_inventory(test_db, seeded_db["org_id"]) == []

    async def test_unknown_entity_type(self):
        with pytest.raises(ValidationError):
            model_for("warehouse")


@pytest.mark.asyncio
class TestVersionedUpdates:
    async def test_inventory_update_derives_fields_and_bumps_version(self, test_db, seeded_db):
        item = seeded_db["empty_item"]

        updated = await update_entity(
            test_db, InventoryItem, item.item_id, seeded_db["org_id"], {"current_stock": 100}, item.version
        )

        assert updated.current_stock == 100
        assert updated.days_of_cover == 10
        assert updated.status == "adequate"
        assert updated.version == 1

    async def test_stale_version_conflicts(self, test_db, seeded_db):
        supplier = seeded_db["healthy_supplier"]
        org_id = seeded_db["org_id"]

        await update_entity(test_db, Supplier, supplier.supplier_id, org_id, {"status": "underWatch"}, 0)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await update_entity(test_db, Supplier, supplier.supplier_id, org_id, {"status": "highRisk"}, 0)
        assert exc_info.value.details == {"expected_version": 0, "actual_version": 1}

        current = await test_db.get(Supplier, supplier.supplier_id, populate_existing=True)
        assert current.status == "underWatch"

    async def test_missing_entity_not_found(self, test_db, seeded_db):
        with pytest.raises(NotFoundError):
            await update_entity(test_db, Supplier, uuid.uuid4(), seeded_db["org_id"], {"name": "Ghost"}, 0)

    async def test_wrong_org_not_found(self, test_db, seeded_db):
        supplier = seeded_db["healthy_supplier"]
        with pytest.raises(NotFoundError):
            await update_entity(
                test_db, Supplier, supplier.supplier_id, seeded_db["other_org_id"], {"name": "Hijacked"}, 0
            )

    async def test_immutable_fields_rejected(self, test_db, seeded_db):
        supplier = seeded_db["healthy_supplier"]
        with pytest.raises(ValidationError):
            await update_entity(
                test_db, Supplier, supplier.supplier_id, seeded_db["org_id"], {"version": 10}, 0
            )
