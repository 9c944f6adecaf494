# Overview: Flask API routes for guest checkout; parses input and returns JSON responses.

# backend/storefront/routes/guest.py
"""
Guest checkout routes. No authentication: the order id plus the guest's
email act as the lookup key, and the conversion token is the credential
for account creation.
"""

from flask import Blueprint, request

from ..responses import success
from ..services import guest_service


guest_bp = Blueprint("guest", __name__, url_prefix="/guest")


@guest_bp.post("/order/place")
def place_guest_order_route():
    data = request.get_json(silent=True) or {}
    guest_order, token = guest_service.place_guest_order(
        data.get("guest_info"),
        data.get("lines"),
        data.get("shipping_address"),
        billing_address=data.get("billing_address"),
        payment_method=data.get("payment_method"),
        coupon_code=data.get("coupon_code"),
        ip=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    return success({
        "order": guest_order.to_dict(),
        "conversion_token": token,
        "message": "Guest order placed successfully",
    }, 201)


@guest_bp.get("/order/<int:order_id>/<path:email>")
def get_guest_order_route(order_id: int, email: str):
    guest_order = guest_service.get_guest_order(order_id, email)
    return success({"order": guest_order.to_dict()})


@guest_bp.post("/convert-to-user")
def convert_guest_route():
    data = request.get_json(silent=True) or {}
    result = guest_service.convert_guest_to_user(data.get("token"), data.get("password"), data.get("name"))
    return success({
        "user": result["user"].to_dict(),
        "order": result["order"].to_dict(),
        "token": result["token"],
        "message": "Account created successfully",
    }, 201)
