"""
Inventory ledger tests.

Verifies:
- Derived availability and alert flags
- Each movement type and its audit row
- Reservations beyond available stock are rejected without mutation
- Admin inventory endpoints and role enforcement
"""

import pytest

from storefront.errors import ConflictError, ValidationError
from storefront.models import InventoryMovement
from storefront.services import inventory_service
from storefront.services.inventory_service import MovementType, recompute_derived


# =============================================================================
# DERIVED FIELDS
# =============================================================================


class TestRecomputeDerived:

    def test_available_and_alerts(self):
        levels = recompute_derived(current_stock=8, reserved_stock=3, reorder_point=5, max_stock=100)
        assert levels.available_stock == 5
        assert levels.is_low_stock
        assert not levels.is_out_of_stock
        assert not levels.is_over_stock

    def test_out_of_stock(self):
        levels = recompute_derived(4, 4, 5, 100)
        assert levels.available_stock == 0
        assert levels.is_out_of_stock
        assert not levels.is_low_stock

    def test_over_stock(self):
        assert recompute_derived(150, 0, 5, 100).is_over_stock

    def test_counters_are_clamped(self):
        levels = recompute_derived(-3, 7, 5, 100)
        assert levels.current_stock == 0
        assert levels.reserved_stock == 0
        assert levels.available_stock == 0


# =============================================================================
# MOVEMENTS
# =============================================================================


class TestMovements:

    def test_in_increments_and_logs(self, db_session, stocked):
        inv = inventory_service.apply_movement(stocked.id, "in", 5, "Restock from supplier")
        assert inv.current_stock == 25
        assert inv.total_purchased == 5
        assert inv.last_restocked is not None

        movement = (
            db_session.query(InventoryMovement)
            .filter_by(inventory_id=stocked.id, type="IN")
            .one()
        )
        assert movement.quantity == 5
        assert movement.stock_after == 25

    def test_out_tracks_sold(self, stocked):
        inv = inventory_service.apply_movement(stocked.id, MovementType.OUT, 4, "Sold over the counter")
        assert inv.current_stock == 16
        assert inv.total_sold == 4

    def test_negative_quantity_is_taken_as_absolute(self, stocked):
        inv = inventory_service.apply_movement(stocked.id, MovementType.OUT, -4, "Damaged")
        assert inv.current_stock == 16

    def test_out_never_goes_below_zero(self, stocked):
        inv = inventory_service.apply_movement(stocked.id, MovementType.OUT, 50, "Write-off")
        assert inv.current_stock == 0
        assert inv.is_out_of_stock

    def test_adjustment_sets_absolute_stock(self, stocked):
        inv = inventory_service.apply_movement(stocked.id, MovementType.ADJUSTMENT, 3, "Stock count")
        assert inv.current_stock == 3
        assert inv.is_low_stock

    def test_reserve_and_unreserve(self, stocked):
        inv = inventory_service.reserve_stock(stocked.id, 6)
        assert inv.reserved_stock == 6
        assert inv.available_stock == 14

        inv = inventory_service.unreserve_stock(stocked.id, 6)
        assert inv.reserved_stock == 0
        assert inv.available_stock == 20

    def test_reservation_beyond_available_is_rejected(self, db_session, stocked):
        inventory_service.reserve_stock(stocked.id, 18)
        before = db_session.query(InventoryMovement).filter_by(inventory_id=stocked.id).count()

        with pytest.raises(ConflictError):
            inventory_service.reserve_stock(stocked.id, 3)

        inv = inventory_service.get_inventory(stocked.id)
        db_session.refresh(inv)
        assert inv.reserved_stock == 18
        assert db_session.query(InventoryMovement).filter_by(inventory_id=stocked.id).count() == before

    def test_each_movement_bumps_version(self, stocked):
        start = stocked.version_id
        inv = inventory_service.apply_movement(stocked.id, MovementType.IN, 1, "Restock")
        inv = inventory_service.apply_movement(stocked.id, MovementType.RETURN, 1, "Customer return")
        assert inv.version_id == start + 2

    @pytest.mark.parametrize("quantity", ["x", 1.5, True])
    def test_rejects_non_integer_quantity(self, stocked, quantity):
        with pytest.raises(ValidationError):
            inventory_service.apply_movement(stocked.id, MovementType.IN, quantity, "Restock")

    def test_requires_reason(self, stocked):
        with pytest.raises(ValidationError):
            inventory_service.apply_movement(stocked.id, MovementType.IN, 1, "  ")

    def test_unknown_type(self, stocked):
        with pytest.raises(ValidationError):
            inventory_service.apply_movement(stocked.id, "TELEPORT", 1, "Restock")


class TestUpsert:

    def test_create_records_initial_stock(self, db_session, product):
        inv, created = inventory_service.create_or_update_inventory(product.id, initial_stock=7)
        assert created
        assert inv.current_stock == 7
        movement = db_session.query(InventoryMovement).filter_by(inventory_id=inv.id).one()
        assert movement.type == "ADJUSTMENT"
        assert movement.reason == "Initial stock"

    def test_update_existing_row(self, stocked):
        inv, created = inventory_service.create_or_update_inventory(
            stocked.product_id, initial_stock=2, reorder_point=3
        )
        assert not created
        assert inv.id == stocked.id
        assert inv.current_stock == 2
        assert inv.reorder_point == 3
        assert inv.is_low_stock

    def test_bulk_reorder_points_reports_per_item(self, stocked):
        results = inventory_service.bulk_update_reorder_points([
            {"inventory_id": stocked.id, "reorder_point": 25},
            {"inventory_id": 999999, "reorder_point": 1},
            {"inventory_id": stocked.id, "reorder_point": -1},
        ])
        assert [r["success"] for r in results] == [True, False, False]
        assert inventory_service.get_inventory(stocked.id).is_low_stock


# =============================================================================
# ENDPOINTS
# =============================================================================


class TestInventoryEndpoints:

    def test_requires_admin(self, client, buyer_headers):
        assert client.get("/admin/inventory/summary", headers=buyer_headers).status_code == 403

    def test_requires_auth(self, client):
        assert client.get("/admin/inventory/summary").status_code == 401

    def test_summary(self, client, admin_headers, stocked):
        resp = client.get("/admin/inventory/summary", headers=admin_headers)
        assert resp.status_code == 200
        summary = resp.json["data"]["summary"]
        assert summary["total_products"] == 1
        assert summary["total_stock"] == 20

    def test_update_stock(self, client, admin_headers, stocked):
        resp = client.put(
            f"/admin/inventory/{stocked.id}/stock",
            json={"quantity": 5, "type": "IN", "reason": "Restock"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["data"]["inventory"]["current_stock"] == 25

    def test_update_stock_requires_fields(self, client, admin_headers, stocked):
        resp = client.put(f"/admin/inventory/{stocked.id}/stock", json={"quantity": 5}, headers=admin_headers)
        assert resp.status_code == 400

    def test_reservation_conflict_is_400(self, client, admin_headers, stocked):
        resp = client.put(
            f"/admin/inventory/{stocked.id}/stock",
            json={"quantity": 21, "type": "RESERVED", "reason": "Hold"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "Insufficient stock" in resp.json["error"]

    def test_unknown_row_is_404(self, client, admin_headers):
        resp = client.put(
            "/admin/inventory/424242/stock",
            json={"quantity": 1, "type": "IN", "reason": "Restock"},
            headers=admin_headers,
        )
        assert resp.status_code == 404

    def test_low_stock_listing(self, client, admin_headers, stocked):
        inventory_service.apply_movement(stocked.id, MovementType.ADJUSTMENT, 2, "Count")
        resp = client.get("/admin/inventory/low-stock", headers=admin_headers)
        assert resp.json["data"]["count"] == 1

    def test_movements_newest_first(self, client, admin_headers, stocked):
        inventory_service.apply_movement(stocked.id, MovementType.IN, 1, "First")
        inventory_service.apply_movement(stocked.id, MovementType.IN, 1, "Second")
        resp = client.get(f"/admin/inventory/{stocked.id}/movements", headers=admin_headers)
        reasons = [m["reason"] for m in resp.json["data"]["movements"]]
        assert reasons[0] == "Second"

    def test_create_returns_201(self, client, admin_headers, make_product):
        other = make_product()
        resp = client.post(
            "/admin/inventory",
            json={"product_id": other.id, "initial_stock": 3},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["data"]["created"] is True

    def test_report_rejects_non_json_format(self, client, admin_headers, stocked):
        resp = client.get("/admin/inventory/report?format=csv", headers=admin_headers)
        assert resp.status_code == 400

    def test_report_with_movements(self, client, admin_headers, stocked):
        resp = client.get("/admin/inventory/report?include_movements=true", headers=admin_headers)
        entry = resp.json["data"]["report"][0]
        assert entry["variant_name"] == "N/A"
        assert len(entry["movements"]) == 1
