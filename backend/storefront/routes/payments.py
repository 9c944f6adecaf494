# Overview: Flask API routes for payment providers; parses input and returns JSON responses.

# backend/storefront/routes/payments.py
"""
Payment provider endpoints.

- Razorpay: client-side checkout, server-side HMAC verification.
- Stripe: payment intents, signed webhooks (raw body is required for the
  signature check, so the webhook never parses JSON itself).
- CCAvenue: encrypted form posts. The response handler is the one endpoint
  that answers with a raw 301 redirect instead of the JSON envelope.
"""

from flask import Blueprint, current_app, g, redirect, request

from ..decorators import optional_auth, require_auth
from ..errors import ValidationError
from ..responses import success
from ..services import payment_service


payments_bp = Blueprint("payments", __name__)


def _caller_id():
    principal = getattr(g, "principal", None)
    return principal.user_id if principal else None


# =============================================================================
# RAZORPAY
# =============================================================================

@payments_bp.post("/rzp/create-order")
@optional_auth
def create_rzp_order_route():
    data = request.get_json(silent=True) or {}
    if data.get("amount") is None:
        raise ValidationError("amount is required")
    order = payment_service.create_razorpay_order(
        data["amount"],
        currency=data.get("currency") or "INR",
        receipt=data.get("receipt"),
        notes=data.get("notes"),
        order_id=data.get("order_id"),
        user_id=_caller_id(),
    )
    return success({"order": order})


@payments_bp.post("/rzp/payment-verification")
@optional_auth
def rzp_payment_verification_route():
    data = request.get_json(silent=True) or {}
    result = payment_service.verify_razorpay_payment(data, _caller_id())
    result["message"] = (
        "Payment verified and order updated successfully."
        if result["completed"]
        else "Payment already recorded for this order."
    )
    return success(result)


# =============================================================================
# STRIPE
# =============================================================================

@payments_bp.post("/stripe/create-payment-intent")
@optional_auth
def create_payment_intent_route():
    data = request.get_json(silent=True) or {}
    if data.get("amount") is None:
        raise ValidationError("amount is required")
    intent = payment_service.create_stripe_payment_intent(
        data["amount"],
        currency=data.get("currency") or "inr",
        order_id=data.get("order_id"),
        user_id=_caller_id(),
    )
    return success(intent)


@payments_bp.post("/stripe/webhook")
def stripe_webhook_route():
    result = payment_service.handle_stripe_webhook(
        request.get_data(),
        request.headers.get("Stripe-Signature"),
    )
    return success(result)


# =============================================================================
# CCAVENUE
# =============================================================================

@payments_bp.post("/ccavenue-createOrder")
@require_auth
def ccavenue_create_order_route():
    data = request.get_json(silent=True) or {}
    order = payment_service.create_ccavenue_order(
        g.principal.user_id,
        data.get("lines") or [],
        shipping_address=data.get("shipping_address"),
        coupon_code=data.get("coupon_code"),
    )
    return success({"order": order.to_dict(), "message": "Order placed successfully."}, 201)


@payments_bp.post("/ccavenuerequesthandler")
def ccavenue_request_handler_route():
    url = payment_service.build_ccavenue_request(request.get_data(as_text=True))
    return success({"url": url})


@payments_bp.post("/ccavenueresponsehandler")
def ccavenue_response_handler_route():
    enc_resp = request.form.get("encResp")
    if not enc_resp:
        current_app.logger.warning("ccavenue response without encResp")
        raise ValidationError("encResp is required")
    return redirect(payment_service.handle_ccavenue_response(enc_resp), code=301)
