# Overview: Service-layer operations for payment callbacks; verification then order transitions.

"""
Every provider callback runs verify-then-act:
1. The gateway adapter authenticates the payload. A SignatureError leaves
   all state untouched.
2. The verified result drives exactly one order transition
   (complete_payment, mark_payment_failed, delete_pending_order, or the
   guest equivalents). Those transitions are guarded, so duplicate
   deliveries are no-ops.
"""

from __future__ import annotations

import logging

from flask import current_app

from ..errors import AuthError, NotFoundError, SignatureError, ValidationError
from ..extensions import db
from ..models import GuestOrder
from . import guest_service, order_service
from .gateways import GatewayKind, get_gateway
from .gateways.cipher_gateway import STATUS_ABORTED, STATUS_SUCCESS
from .gateways.webhook_gateway import GUEST_USER_REF, HANDLED_EVENTS, PAYMENT_SUCCEEDED

logger = logging.getLogger(__name__)


def _order_id(value, field: str = "order_id") -> int:
    try:
        order_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if order_id < 1:
        raise ValidationError(f"{field} must be an integer")
    return order_id


# =============================================================================
# RAZORPAY (HMAC)
# =============================================================================

def create_razorpay_order(amount, currency: str = "INR", receipt: str | None = None,
                          notes: dict | None = None, order_id=None, user_id: int | None = None) -> dict:
    """
    Create the Razorpay order the checkout widget pays against.

    With order_id, the buyer's PENDING order is bound to the returned
    Razorpay order id; verification then only accepts that id for it.
    """
    if order_id is not None:
        order_id = _order_id(order_id)
        if user_id is None:
            raise AuthError("Authentication required to bind a payment to an order")
        order_service.get_user_order(order_id, user_id)

    rzp_order = get_gateway(GatewayKind.HMAC).create_order(amount, currency, receipt, notes)

    if order_id is not None and rzp_order.get("id"):
        order_service.bind_gateway_order(order_id, {"rzp_order_id": rzp_order["id"]})
    return rzp_order


def verify_razorpay_payment(payload: dict, user_id: int | None) -> dict:
    """
    Verify a Razorpay checkout callback and complete the referenced order.

    payload keys: order_id, order_creation_id, razorpay_payment_id,
    razorpay_order_id, razorpay_signature, is_guest_order.
    """
    result = get_gateway(GatewayKind.HMAC).verify(payload)

    if result.order_ref is None:
        raise ValidationError("Order ID is required for payment verification")
    order_id = _order_id(result.order_ref)

    if payload.get("is_guest_order"):
        completed = guest_service.mark_guest_order_paid(order_id, "RAZORPAY", result.transaction_id)
        guest_order = db.session.get(GuestOrder, order_id)
        return {
            "order": guest_order.to_dict(),
            "completed": completed,
            "order_id": result.gateway_order_id,
            "payment_id": result.transaction_id,
        }

    if user_id is None:
        raise AuthError("Authentication required to verify payment for user orders")

    # ownership and binding checks before any mutation
    order = order_service.get_user_order(order_id, user_id)
    if order.rzp_order_id and order.rzp_order_id != result.gateway_order_id:
        logger.warning(
            "razorpay order %s does not belong to order %s (bound to %s)",
            result.gateway_order_id, order_id, order.rzp_order_id,
        )
        raise SignatureError("Transaction not legit!")

    completed = order_service.complete_payment(
        order_id,
        {"rzp_order_id": result.gateway_order_id, "rzp_payment_id": result.transaction_id},
    )
    order = order_service.get_order(order_id)
    return {
        "order": order.to_dict(),
        "completed": completed,
        "order_id": result.gateway_order_id,
        "payment_id": result.transaction_id,
    }


# =============================================================================
# STRIPE (WEBHOOK)
# =============================================================================

def create_stripe_payment_intent(amount, currency: str = "inr", order_id=None,
                                 user_id: int | None = None) -> dict:
    if order_id is not None:
        order_id = _order_id(order_id, "orderId")
        if user_id is not None:
            order_service.get_user_order(order_id, user_id)
    user_ref = str(user_id) if user_id is not None else GUEST_USER_REF
    return get_gateway(GatewayKind.WEBHOOK).create_payment_intent(amount, currency, order_id, user_ref)


def handle_stripe_webhook(raw_body: bytes, signature_header: str | None) -> dict:
    """
    Apply one verified Stripe event. Unhandled event kinds and events that
    reference no known order are acknowledged so Stripe stops retrying.
    """
    result = get_gateway(GatewayKind.WEBHOOK).verify({"raw_body": raw_body, "signature": signature_header})

    if result.raw_status not in HANDLED_EVENTS:
        logger.info("stripe event %s ignored", result.raw_status)
        return {"received": True, "handled": False}

    if not result.order_ref:
        logger.warning("stripe %s for intent %s carries no orderId", result.raw_status, result.transaction_id)
        return {"received": True, "handled": False}

    try:
        order_id = int(result.order_ref)
    except ValueError:
        logger.warning("stripe event has non-numeric orderId %r", result.order_ref)
        return {"received": True, "handled": False}

    is_guest = result.metadata.get("user_ref") == GUEST_USER_REF
    succeeded = result.raw_status == PAYMENT_SUCCEEDED

    try:
        if is_guest and succeeded:
            changed = guest_service.mark_guest_order_paid(order_id, "STRIPE", result.transaction_id)
        elif is_guest:
            changed = guest_service.mark_guest_order_failed(order_id, "STRIPE", result.transaction_id)
        elif succeeded:
            changed = order_service.complete_payment(
                order_id, {"stripe_payment_id": result.transaction_id}, amount=result.amount
            )
        else:
            changed = order_service.mark_payment_failed(order_id, {"stripe_payment_id": result.transaction_id})
    except NotFoundError:
        logger.warning("stripe %s references unknown order %s", result.raw_status, order_id)
        return {"received": True, "handled": False}

    logger.info("stripe %s for order %s (guest=%s, changed=%s)", result.raw_status, order_id, is_guest, changed)
    return {"received": True, "handled": True}


# =============================================================================
# CCAVENUE (CIPHER)
# =============================================================================

def create_ccavenue_order(user_id: int, lines, shipping_address: dict | None = None,
                         coupon_code: str | None = None):
    """PENDING ONLINE order that the CCAvenue form will pay for."""
    return order_service.place_order(
        user_id,
        lines,
        payment_mode=order_service.PaymentMode.ONLINE.value,
        shipping_address=shipping_address,
        coupon_code=coupon_code,
    )


def build_ccavenue_request(form_body: str) -> str:
    """Encrypt the merchant form body into the CCAvenue transaction URL."""
    if not form_body:
        raise ValidationError("Request body is required")
    return get_gateway(GatewayKind.CIPHER).build_request_url(form_body)


def handle_ccavenue_response(enc_resp: str) -> str:
    """
    Decrypt the CCAvenue callback and return the URL to redirect the buyer to.

    Success -> complete the order, success URL
    Aborted -> delete the pending order, cancel URL
    other   -> no state change, default URL
    """
    cfg = current_app.config
    result = get_gateway(GatewayKind.CIPHER).verify({"enc_resp": enc_resp})

    if result.raw_status == STATUS_SUCCESS:
        order_id = _order_id(result.order_ref)
        try:
            order_service.complete_payment(
                order_id,
                {"cc_order_id": result.gateway_order_id, "cc_bank_ref_no": result.metadata.get("bank_ref_no")},
            )
        except NotFoundError:
            logger.warning("ccavenue success for unknown order %s", order_id)
            return cfg["CCAVENUE_DEFAULT_URL"]
        return cfg["CCAVENUE_SUCCESS_URL"]

    if result.raw_status == STATUS_ABORTED:
        order_id = _order_id(result.order_ref)
        if not order_service.delete_pending_order(order_id):
            logger.info("ccavenue abort for order %s: nothing to delete", order_id)
        return cfg["CCAVENUE_CANCEL_URL"]

    logger.info("ccavenue response for order %s with status %r", result.order_ref, result.raw_status)
    return cfg["CCAVENUE_DEFAULT_URL"]
