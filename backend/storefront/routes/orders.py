# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/storefront/routes/orders.py
"""
Order routes.

SECURITY:
- /user/order/* requires an authenticated buyer; orders are scoped to the
  caller (another buyer's order is 403).
- /admin/order/* requires the ADMIN role.

Line payload: [{"product_id": int, "variant_id": int|null, "quantity": int}]
"""

from flask import Blueprint, g, request

from ..decorators import Role, require_auth, require_role
from ..responses import success
from ..services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/user/order")
admin_orders_bp = Blueprint("admin_orders", __name__, url_prefix="/admin/order")


# =============================================================================
# BUYER
# =============================================================================

@orders_bp.post("/place")
@require_auth
def place_order_route():
    data = request.get_json(silent=True) or {}
    order = order_service.place_order(
        g.principal.user_id,
        data.get("lines") or [],
        payment_mode=data.get("payment_mode") or "ONLINE",
        shipping_address=data.get("shipping_address"),
        coupon_code=data.get("coupon_code"),
    )
    return success({"order": order.to_dict(), "message": "Order placed successfully."}, 201)


@orders_bp.get("/all")
@require_auth
def list_my_orders_route():
    result = order_service.list_user_orders(
        g.principal.user_id,
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 10, type=int),
    )
    return success(result)


@orders_bp.get("/<int:order_id>")
@require_auth
def get_my_order_route(order_id: int):
    order = order_service.get_user_order(order_id, g.principal.user_id)
    return success({"order": order.to_dict(include_history=True)})


@orders_bp.put("/update/<int:order_id>")
@require_auth
def edit_my_order_route(order_id: int):
    data = request.get_json(silent=True) or {}
    order = order_service.user_edit_order(order_id, g.principal.user_id, data.get("lines"))
    return success({"order": order.to_dict(), "message": "Order updated successfully."})


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_my_order_route(order_id: int):
    data = request.get_json(silent=True) or {}
    order = order_service.cancel_order_by_user(order_id, g.principal.user_id, data.get("reason"))
    return success({"order": order.to_dict(), "message": "Order cancelled."})


# =============================================================================
# ADMIN
# =============================================================================

@admin_orders_bp.get("/all")
@require_auth
@require_role(Role.ADMIN)
def list_all_orders_route():
    filters = {
        key: request.args.get(key)
        for key in ("status", "payment_mode", "payment_status", "start_date", "end_date", "min_price", "max_price")
    }
    result = order_service.list_orders(
        filters,
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 10, type=int),
    )
    return success(result)


@admin_orders_bp.get("/<int:order_id>")
@require_auth
@require_role(Role.ADMIN)
def get_any_order_route(order_id: int):
    order = order_service.get_order(order_id)
    return success({"order": order.to_dict(include_history=True)})


@admin_orders_bp.put("/<int:order_id>/update")
@require_auth
@require_role(Role.ADMIN)
def admin_update_order_route(order_id: int):
    data = request.get_json(silent=True) or {}
    order = order_service.admin_update_order(
        order_id,
        payment_status=data.get("payment_status"),
        order_status=data.get("order_status"),
        reason=data.get("reason"),
        actor_id=g.principal.user_id,
    )
    return success({"order": order.to_dict(include_history=True), "message": "Order updated successfully."})
