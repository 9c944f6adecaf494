# Overview: Flask API routes for pricing operations; parses input and returns JSON responses.

# backend/storefront/routes/pricing.py
"""
Silver rate and dynamic price endpoints.

Public reads resolve the rate through the fallback chain, so they always
answer with a price even when the commodity source is down.
"""

from flask import Blueprint, request

from ..decorators import Role, require_auth, require_role
from ..errors import InternalError
from ..responses import success
from ..services import pricing_service


pricing_bp = Blueprint("pricing", __name__, url_prefix="/pricing")
admin_pricing_bp = Blueprint("admin_pricing", __name__, url_prefix="/admin/pricing")


@pricing_bp.get("/silver-price")
def current_silver_price_route():
    rate = pricing_service.get_current_rate()
    return success({"silver_price": rate.to_dict()})


@pricing_bp.post("/calculate")
def calculate_price_route():
    data = request.get_json(silent=True) or {}
    calc = pricing_service.calculate_price(
        data.get("silver_weight"),
        data.get("labor_percentage"),
        data.get("gst_percentage"),
    )
    return success(calc.to_dict())


@admin_pricing_bp.get("/silver-price/history")
@require_auth
@require_role(Role.ADMIN)
def price_history_route():
    result = pricing_service.get_price_history(
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 50, type=int),
    )
    return success(result)


@admin_pricing_bp.post("/silver-price/refresh")
@require_auth
@require_role(Role.ADMIN)
def refresh_price_route():
    row = pricing_service.refresh_silver_price()
    if row is None:
        raise InternalError("Failed to update silver price")
    return success({"silver_price": row.to_dict(), "message": "Silver price updated successfully"})


@admin_pricing_bp.post("/silver-price")
@require_auth
@require_role(Role.ADMIN)
def set_price_route():
    data = request.get_json(silent=True) or {}
    row = pricing_service.set_manual_price(data.get("price_per_gram"), data.get("currency") or "INR")
    return success({"silver_price": row.to_dict(), "message": "Silver price set successfully"}, 201)
