# Overview: Service-layer operations for guest checkout; pricing, payment marks and account conversion.

"""
Guest Checkout & Conversion

PRICING:
- Prices are resolved once, at placement. Dynamically priced products go
  through the pricing engine at the current rate; the rest use
  static_price (falling back to sale_price) plus GST.
- unit_price is the per-unit amount charged (GST included). subtotal is the
  sum of unit_price * quantity, gst_amount the GST contained in it.
- final_amount = subtotal - coupon discount + shipping charges.

CONVERSION TOKEN:
- secrets.token_hex(32), valid 7 days, single use.
- The claim is one UPDATE ... SET converted_at = now WHERE token = :t AND
  converted_at IS NULL AND expires > now. The user, the re-homed Order and
  the session token are created in the same transaction, so a failure
  releases the claim.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from decimal import Decimal

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import GuestOrder, GuestOrderLine, Order, OrderLine, OrderStatusHistory, User
from storefront.money import round_money, to_decimal
from storefront.time_utils import utcnow
from . import auth_service, email_service, loyalty_service, order_service, pricing_service, session_service
from .auth_service import EMAIL_RE, normalize_email
from .concurrency import guarded_update, run_with_retry
from .inventory_service import MovementType, apply_order_movement
from .order_service import (
    OrderStatus,
    PaymentMode,
    PaymentStatus,
    _parse_enum,
    coerce_quantity,
    coupon_discount,
    load_product,
    resolve_coupon,
)

logger = logging.getLogger(__name__)

CONVERSION_TOKEN_TTL = timedelta(days=7)
ADDRESS_FIELDS = ("address", "city", "state", "pincode")
# payment reference column on a converted Order, per gateway
CONVERTED_GATEWAY_FIELDS = {"STRIPE": "stripe_payment_id", "RAZORPAY": "rzp_payment_id"}


def _clean(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _require_address(raw, label: str) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"{label} is required")
    address = {field: _clean(raw.get(field)) for field in ADDRESS_FIELDS}
    if not all(address.values()):
        raise ValidationError(f"{label} requires address, city, state and pincode")
    address["country"] = _clean(raw.get("country")) or "India"
    return address


def _price_line(product) -> dict:
    """Per-unit figures frozen onto a guest order line."""
    if product.uses_dynamic_pricing:
        calc = pricing_service.calculate_price(
            product.silver_weight, product.labor_percentage, product.gst_percentage
        )
        b = calc.breakdown
        return {
            "unit_price": b.final_price,
            "silver_cost": b.silver_cost,
            "labor_cost": b.labor_cost,
            "unit_gst_amount": b.gst_amount,
            "unit_final_price": b.final_price,
        }

    base = product.static_price if product.static_price is not None else product.sale_price
    if base is None:
        raise ValidationError(f"Product {product.id} has no price")
    base = to_decimal(base)
    gst = round_money(to_decimal(product.gst_percentage or 0) / Decimal(100) * base)
    final = round_money(base + gst)
    return {
        "unit_price": final,
        "silver_cost": None,
        "labor_cost": None,
        "unit_gst_amount": gst,
        "unit_final_price": final,
    }


# =============================================================================
# PLACEMENT & LOOKUP
# =============================================================================

def place_guest_order(
    guest_info,
    lines,
    shipping_address,
    billing_address=None,
    payment_method: str | None = None,
    coupon_code: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
) -> tuple[GuestOrder, str]:
    """
    Create a PENDING guest order. Returns (guest_order, conversion_token).
    """
    if not isinstance(guest_info, dict) or not _clean(guest_info.get("email")) \
            or not _clean(guest_info.get("phone_number")):
        raise ValidationError("Guest information is required")
    email = normalize_email(guest_info.get("email"))
    if not EMAIL_RE.match(email):
        raise ValidationError("a valid email is required")
    if not lines or not isinstance(lines, list):
        raise ValidationError("Products are required")

    shipping = _require_address(shipping_address, "Shipping address")
    same_as_shipping = not billing_address
    billing = shipping if same_as_shipping else _require_address(billing_address, "Billing address")
    method = _parse_enum(PaymentMode, payment_method or PaymentMode.ONLINE.value, "payment_method")

    guest_lines = []
    subtotal = Decimal("0")
    gst_total = Decimal("0")
    for raw in lines:
        if not isinstance(raw, dict):
            raise ValidationError("each line must be an object")
        product, variant_id = load_product(raw.get("product_id"), raw.get("variant_id"))
        quantity = coerce_quantity(raw.get("quantity"))
        priced = _price_line(product)
        guest_lines.append(GuestOrderLine(
            product_id=product.id,
            variant_id=variant_id,
            quantity=quantity,
            **priced,
        ))
        subtotal += priced["unit_price"] * quantity
        gst_total += priced["unit_gst_amount"] * quantity

    coupon = resolve_coupon(coupon_code)
    discount = coupon_discount(coupon, subtotal)
    shipping_charges = Decimal("0")

    token = secrets.token_hex(32)
    guest_order = GuestOrder(
        guest_first_name=_clean(guest_info.get("first_name")) or "Guest",
        guest_last_name=_clean(guest_info.get("last_name")),
        guest_email=email,
        guest_phone_number=_clean(guest_info.get("phone_number")),
        ship_address=shipping["address"],
        ship_city=shipping["city"],
        ship_state=shipping["state"],
        ship_pincode=shipping["pincode"],
        ship_country=shipping["country"],
        bill_address=billing["address"],
        bill_city=billing["city"],
        bill_state=billing["state"],
        bill_pincode=billing["pincode"],
        bill_country=billing["country"],
        bill_same_as_shipping=same_as_shipping,
        subtotal=round_money(subtotal),
        gst_amount=round_money(gst_total),
        shipping_charges=shipping_charges,
        discount=discount,
        final_amount=round_money(subtotal - discount + shipping_charges),
        payment_method=method,
        payment_status=PaymentStatus.PENDING.value,
        order_status=OrderStatus.PLACED.value,
        coupon_id=coupon.id if coupon else None,
        conversion_token=token,
        conversion_token_expires_at=utcnow() + CONVERSION_TOKEN_TTL,
        ip_address=(ip or "")[:64] or None,
        user_agent=(user_agent or "")[:255] or None,
    )
    guest_order.lines.extend(guest_lines)
    db.session.add(guest_order)
    db.session.commit()

    logger.info("guest order %s placed (%s lines)", guest_order.id, len(guest_lines))
    email_service.send_guest_order_confirmation(guest_order)
    return guest_order, token


def get_guest_order(order_id: int, email: str) -> GuestOrder:
    guest_order = db.session.get(GuestOrder, order_id)
    if guest_order is None or guest_order.guest_email != normalize_email(email):
        raise NotFoundError("Order not found")
    return guest_order


# =============================================================================
# PAYMENT MARKS
# =============================================================================

def mark_guest_order_paid(order_id: int, gateway: str, transaction_id: str | None = None) -> bool:
    """
    PENDING -> COMPLETE for a guest order, decrementing stock once.
    Returns False for a duplicate or late confirmation.

    A guest order already converted to an account has its lines re-homed in
    an Order; the payment completes that Order through complete_payment, so
    stock and loyalty are handled there and not on the guest lines.
    """
    def _op():
        matched = guarded_update(
            GuestOrder,
            GuestOrder.id == order_id,
            GuestOrder.payment_status == PaymentStatus.PENDING.value,
            values={
                "payment_status": PaymentStatus.COMPLETE.value,
                "payment_gateway": gateway,
                "transaction_id": transaction_id,
                "paid_at": utcnow(),
            },
        )
        if matched == 0:
            db.session.rollback()
            if db.session.get(GuestOrder, order_id) is None:
                raise NotFoundError("Order not found")
            return False, None, None

        guest_order = db.session.get(GuestOrder, order_id)
        db.session.refresh(guest_order)
        if guest_order.converted_order_id is None:
            apply_order_movement(guest_order.lines, MovementType.OUT, f"Guest order {order_id} fulfillment")
        db.session.commit()
        return True, guest_order.converted_order_id, guest_order.final_amount

    try:
        paid, converted_order_id, final_amount = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    if paid and converted_order_id is not None:
        gateway_field = CONVERTED_GATEWAY_FIELDS.get(gateway)
        order_service.complete_payment(
            converted_order_id,
            {gateway_field: transaction_id} if gateway_field else None,
            amount=final_amount,
        )
        logger.info("guest order %s paid via %s; completed converted order %s",
                    order_id, gateway, converted_order_id)
    elif paid:
        logger.info("guest order %s paid via %s", order_id, gateway)
    else:
        logger.info("guest order %s payment confirmation ignored (not PENDING)", order_id)
    return paid


def mark_guest_order_failed(order_id: int, gateway: str, transaction_id: str | None = None) -> bool:
    matched = guarded_update(
        GuestOrder,
        GuestOrder.id == order_id,
        GuestOrder.payment_status == PaymentStatus.PENDING.value,
        values={
            "payment_status": PaymentStatus.FAILED.value,
            "payment_gateway": gateway,
            "transaction_id": transaction_id,
        },
    )
    db.session.commit()
    if matched:
        logger.info("guest order %s payment failed via %s", order_id, gateway)
        guest_order = db.session.get(GuestOrder, order_id)
        if guest_order.converted_order_id is not None:
            gateway_field = CONVERTED_GATEWAY_FIELDS.get(gateway)
            order_service.mark_payment_failed(
                guest_order.converted_order_id,
                {gateway_field: transaction_id} if gateway_field else None,
            )
    return bool(matched)


# =============================================================================
# CONVERSION
# =============================================================================

def _rehome(guest_order: GuestOrder, user: User) -> Order:
    """Copy a guest order into a standard Order, keeping its price snapshots."""
    paid = guest_order.payment_status == PaymentStatus.COMPLETE.value
    order = Order(
        buyer_id=user.id,
        payment_mode=guest_order.payment_method,
        payment_status=guest_order.payment_status,
        order_status=(
            OrderStatus.DELIVERED.value
            if guest_order.order_status == OrderStatus.DELIVERED.value
            else OrderStatus.PLACED.value
        ),
        ship_first_name=guest_order.guest_first_name,
        ship_last_name=guest_order.guest_last_name,
        ship_email=guest_order.guest_email,
        ship_phone_number=guest_order.guest_phone_number,
        ship_street=guest_order.ship_address,
        ship_city=guest_order.ship_city,
        ship_state=guest_order.ship_state,
        ship_zip=guest_order.ship_pincode,
        ship_country=guest_order.ship_country,
        coupon_id=guest_order.coupon_id,
        coupon_discount=guest_order.discount,
        order_price=guest_order.final_amount,
        total_amount_paid=guest_order.final_amount if paid else 0,
        paid_at=guest_order.paid_at,
        # stock already left the shelf when the guest order was paid
        inventory_committed=paid,
    )
    for line in guest_order.lines:
        order.lines.append(OrderLine(
            product_id=line.product_id,
            variant_id=line.variant_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
        ))
    order.status_history.append(OrderStatusHistory(
        status=order.order_status,
        reason=f"Converted from guest order {guest_order.id}",
        actor_user_id=user.id,
        occurred_at=utcnow(),
    ))
    db.session.add(order)
    db.session.flush()
    return order


def convert_guest_to_user(token: str, password: str, name: str) -> dict:
    """
    Turn a guest order into an account. Single use: a second call with the
    same token, or an expired token, raises ConflictError.

    Returns {"user", "order", "token"} where token is the new session token.
    """
    if not token or not password or not name:
        raise ValidationError("Token, password, and name are required")
    auth_service.validate_password_strength(password)

    now = utcnow()
    try:
        matched = guarded_update(
            GuestOrder,
            GuestOrder.conversion_token == token,
            GuestOrder.converted_at.is_(None),
            GuestOrder.converted_to_user_id.is_(None),
            GuestOrder.conversion_token_expires_at > now,
            values={"converted_at": now},
        )
        if matched == 0:
            raise ConflictError("Invalid or expired token")

        guest_order = db.session.query(GuestOrder).filter_by(conversion_token=token).one()
        db.session.refresh(guest_order)

        if db.session.query(User).filter_by(email=guest_order.guest_email).first():
            raise ConflictError("Account already exists with this email")

        user = auth_service.create_user(
            name,
            guest_order.guest_email,
            password,
            phone_number=guest_order.guest_phone_number,
            commit=False,
        )
        user.ship_first_name = guest_order.guest_first_name
        user.ship_last_name = guest_order.guest_last_name
        user.ship_phone_number = guest_order.guest_phone_number
        user.ship_street = guest_order.ship_address
        user.ship_city = guest_order.ship_city
        user.ship_state = guest_order.ship_state
        user.ship_zip = guest_order.ship_pincode
        user.ship_country = guest_order.ship_country

        order = _rehome(guest_order, user)
        guest_order.converted_to_user_id = user.id
        guest_order.converted_order_id = order.id

        if guest_order.payment_status == PaymentStatus.COMPLETE.value:
            loyalty_service.award_points_for_order(
                user.id, guest_order.final_amount, guest_order_id=guest_order.id
            )

        _, session_token = session_service.create_session(user.id, commit=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("guest order %s converted to user %s (order %s)", guest_order.id, user.id, order.id)
    return {"user": user, "order": order, "token": session_token}
