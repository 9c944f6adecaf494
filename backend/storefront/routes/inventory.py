# backend/storefront/routes/inventory.py
"""
Inventory management routes.

SECURITY: All routes require the ADMIN role.

Stock changes always go through the movement ledger: the row's counters
are never written directly, and every change leaves an InventoryMovement.
"""
from flask import Blueprint, g, request

from ..decorators import Role, require_auth, require_role
from ..errors import ValidationError
from ..responses import success
from ..services import inventory_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/admin/inventory")


@inventory_bp.get("/summary")
@require_auth
@require_role(Role.ADMIN)
def inventory_summary_route():
    return success({"summary": inventory_service.get_inventory_summary()})


@inventory_bp.get("/all")
@require_auth
@require_role(Role.ADMIN)
def list_inventory_route():
    result = inventory_service.list_inventory(
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
        stock_status=request.args.get("stock_status"),
        location=request.args.get("location"),
        sort=request.args.get("sort", "product"),
    )
    return success(result)


@inventory_bp.get("/low-stock")
@require_auth
@require_role(Role.ADMIN)
def low_stock_route():
    items = inventory_service.get_low_stock_items()
    return success({"items": items, "count": len(items)})


@inventory_bp.put("/<int:inventory_id>/stock")
@require_auth
@require_role(Role.ADMIN)
def update_stock_route(inventory_id: int):
    """
    Apply one movement.

    Body: {"quantity": int, "type": "IN|OUT|RESERVED|UNRESERVED|ADJUSTMENT|RETURN",
           "reason": str, "notes": str?}
    """
    data = request.get_json(silent=True) or {}
    if data.get("quantity") is None or not data.get("type") or not data.get("reason"):
        raise ValidationError("Quantity, type, and reason are required")

    inventory = inventory_service.apply_movement(
        inventory_id,
        data["type"],
        data["quantity"],
        data["reason"],
        actor_id=g.principal.user_id,
        notes=data.get("notes"),
    )
    return success({"inventory": inventory.to_dict(), "message": "Stock updated successfully"})


@inventory_bp.put("/bulk-reorder-points")
@require_auth
@require_role(Role.ADMIN)
def bulk_reorder_points_route():
    data = request.get_json(silent=True) or {}
    results = inventory_service.bulk_update_reorder_points(data.get("updates"))
    return success({"results": results})


@inventory_bp.get("/<int:inventory_id>/movements")
@require_auth
@require_role(Role.ADMIN)
def movements_route(inventory_id: int):
    result = inventory_service.get_movements(
        inventory_id,
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
    )
    return success(result)


@inventory_bp.post("")
@require_auth
@require_role(Role.ADMIN)
def create_or_update_inventory_route():
    data = request.get_json(silent=True) or {}
    if data.get("product_id") is None:
        raise ValidationError("product_id is required")

    inventory, created = inventory_service.create_or_update_inventory(
        data["product_id"],
        data.get("variant_id"),
        initial_stock=data.get("initial_stock"),
        reorder_point=data.get("reorder_point"),
        max_stock=data.get("max_stock"),
        location=data.get("location"),
        cost_price=data.get("cost_price"),
        actor_id=g.principal.user_id,
    )
    return success({"inventory": inventory.to_dict(), "created": created}, 201 if created else 200)


@inventory_bp.get("/report")
@require_auth
@require_role(Role.ADMIN)
def stock_report_route():
    report = inventory_service.generate_stock_report(
        include_movements=request.args.get("include_movements", "false").lower() == "true",
        report_format=request.args.get("format", "json"),
    )
    return success(report)
