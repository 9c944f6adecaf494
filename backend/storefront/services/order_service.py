# Overview: Service-layer operations for orders; creation, edits, status transitions and payment completion.

"""
Order State Machine

order_status:   PLACED -> SHIPPED -> DELIVERED -> RETURNED
                PLACED -> CANCELLED_BY_ADMIN | CANCELLED_BY_USER
payment_status: PENDING -> COMPLETE | FAILED   (orthogonal axis)

Admin transitions are free-form between known statuses; RETURNED is terminal
for further order_status changes.

IDEMPOTENCY BOUNDARY (complete_payment):
- The transition is one UPDATE ... WHERE id = :id AND payment_status = 'PENDING'.
- Only the caller whose UPDATE matched performs the side effects: one OUT
  movement per line, cart clearing and the loyalty award, all in the same
  transaction. If any of them fails the whole transaction rolls back and the
  order stays PENDING.
- A duplicate confirmation matches zero rows and returns False.
- The confirmation email is sent after commit and never fails the payment.

Restocking:
- inventory_committed marks that the order's OUT movements are applied.
  Cancellation and return restock (RETURN movements) only while it is set,
  and clear it, so stock is given back at most once.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal
from enum import Enum

from sqlalchemy import delete, func, select

from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Cart, CartItem, Coupon, Order, OrderLine, OrderStatusHistory, Product, ProductVariant, User
from storefront.money import round_money, to_decimal
from storefront.time_utils import day_after, is_older_than, parse_iso_datetime, utcnow
from . import email_service, loyalty_service, pricing_service
from .concurrency import guarded_update, run_with_retry
from .inventory_service import MovementType, apply_order_movement, apply_movement, find_inventory

logger = logging.getLogger(__name__)

USER_CANCELLATION_WINDOW = timedelta(hours=48)
REQUIRED_ADDRESS_FIELDS = ("phone_number", "street", "city", "state", "zip")
ADDRESS_FIELDS = ("first_name", "last_name", "email", "phone_number", "street", "city", "state", "zip", "country")
GATEWAY_ID_FIELDS = ("rzp_order_id", "rzp_payment_id", "cc_order_id", "cc_bank_ref_no", "stripe_payment_id")


class OrderStatus(str, Enum):
    PLACED = "PLACED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED_BY_ADMIN = "CANCELLED_BY_ADMIN"
    CANCELLED_BY_USER = "CANCELLED_BY_USER"
    RETURNED = "RETURNED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


class PaymentMode(str, Enum):
    COD = "COD"
    ONLINE = "ONLINE"


TERMINAL_STATUSES = {OrderStatus.RETURNED.value}
RESTOCK_STATUSES = {
    OrderStatus.CANCELLED_BY_ADMIN.value: "Admin Cancellation",
    OrderStatus.RETURNED.value: "Customer Return",
}


def normalize_status(value) -> str:
    """'cancelled by  admin' -> 'CANCELLED_BY_ADMIN'."""
    if not isinstance(value, str):
        raise ValidationError("status must be a string")
    return "_".join(value.split()).upper()


def _parse_enum(enum_cls, value, field: str) -> str:
    normalized = normalize_status(value)
    try:
        return enum_cls(normalized).value
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}")


# =============================================================================
# COUPONS & LINE PRICING (shared with guest checkout)
# =============================================================================

def resolve_coupon(code: str | None) -> Coupon | None:
    if not code:
        return None
    coupon = (
        db.session.query(Coupon)
        .filter(func.upper(Coupon.code) == str(code).strip().upper())
        .first()
    )
    if coupon is None or not coupon.is_active:
        raise ValidationError("Invalid or inactive coupon")
    return coupon


def coupon_discount(coupon: Coupon | None, subtotal: Decimal) -> Decimal:
    """percent of subtotal, only once subtotal reaches the coupon's min_price."""
    if coupon is None or not coupon.is_active:
        return Decimal("0.00")
    if subtotal < to_decimal(coupon.min_price):
        return Decimal("0.00")
    return round_money(to_decimal(coupon.discount_percent) / Decimal(100) * subtotal)


def coerce_quantity(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError("quantity must be a positive integer")
    return value


def load_product(product_id, variant_id=None) -> tuple[Product, int | None]:
    product = db.session.get(Product, product_id) if isinstance(product_id, int) else None
    if product is None or not product.is_active:
        raise ValidationError("Invalid product or variant.")
    if variant_id in ("", None):
        return product, None
    variant = db.session.get(ProductVariant, variant_id) if isinstance(variant_id, int) else None
    if variant is None or variant.product_id != product.id:
        raise ValidationError("Invalid product or variant.")
    return product, variant.id


def current_sale_price(product: Product) -> Decimal:
    """Price snapshot for a standard order line."""
    if product.uses_dynamic_pricing:
        calc = pricing_service.calculate_price(
            product.silver_weight, product.labor_percentage, product.gst_percentage
        )
        return calc.final_price
    if product.sale_price is None:
        raise ValidationError(f"Product {product.id} has no sale price")
    return round_money(product.sale_price)


def _reprice(order: Order) -> None:
    subtotal = sum((line.line_total for line in order.lines), Decimal("0"))
    order.coupon_discount = coupon_discount(order.coupon, subtotal)
    order.order_price = round_money(subtotal - order.coupon_discount)


def _append_history(order: Order, status: str, reason: str | None, actor_id: int | None) -> None:
    order.status_history.append(OrderStatusHistory(
        status=status,
        reason=reason,
        actor_user_id=actor_id,
        occurred_at=utcnow(),
    ))


def _remove_from_cart(user_id: int, lines) -> None:
    cart = db.session.query(Cart).filter_by(user_id=user_id).first()
    if cart is None:
        return
    ordered = {(line.product_id, line.variant_id) for line in lines}
    for item in list(cart.items):
        if (item.product_id, item.variant_id) in ordered:
            db.session.delete(item)


def _resolve_address(user: User, incoming: dict | None) -> dict:
    """Per-field fallback to the user's saved address; email falls back to the account email."""
    incoming = incoming or {}
    saved = user.saved_address()
    address = {}
    for field in ADDRESS_FIELDS:
        value = incoming.get(field)
        if isinstance(value, str):
            value = value.strip()
        address[field] = value or saved.get(field) or ""
    address["email"] = address["email"] or user.email
    address["country"] = address["country"] or "India"

    missing = [f for f in REQUIRED_ADDRESS_FIELDS if not address[f]]
    if missing:
        raise ValidationError(
            "Incomplete shipping address. phone_number, street, city, state and zip are required."
        )
    return address


# =============================================================================
# CREATION & USER EDITS
# =============================================================================

def place_order(
    user_id: int,
    lines,
    *,
    payment_mode: str = PaymentMode.ONLINE.value,
    shipping_address: dict | None = None,
    coupon_code: str | None = None,
) -> Order:
    """
    Create a PENDING order from line items.

    Each line's unit_price is captured from the catalog now and never
    recalculated. Ordered items are removed from the buyer's cart.
    """
    if not lines:
        raise ValidationError("Cart is empty.")
    if not isinstance(lines, list):
        raise ValidationError("lines must be a list")

    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise NotFoundError("User not found")

    mode = _parse_enum(PaymentMode, payment_mode or PaymentMode.ONLINE.value, "payment_mode")
    address = _resolve_address(user, shipping_address)
    coupon = resolve_coupon(coupon_code)

    order_lines = []
    for raw in lines:
        if not isinstance(raw, dict):
            raise ValidationError("each line must be an object")
        product, variant_id = load_product(raw.get("product_id"), raw.get("variant_id"))
        order_lines.append(OrderLine(
            product_id=product.id,
            variant_id=variant_id,
            quantity=coerce_quantity(raw.get("quantity")),
            unit_price=current_sale_price(product),
        ))

    order = Order(
        buyer_id=user.id,
        payment_mode=mode,
        payment_status=PaymentStatus.PENDING.value,
        order_status=OrderStatus.PLACED.value,
        coupon=coupon,
        **{f"ship_{k}": v for k, v in address.items()},
    )
    order.lines.extend(order_lines)
    _reprice(order)
    _append_history(order, OrderStatus.PLACED.value, "Order placed", user.id)

    db.session.add(order)
    _remove_from_cart(user.id, order_lines)
    db.session.commit()

    logger.info("order %s placed by user %s (%s lines)", order.id, user.id, len(order_lines))
    email_service.send_order_confirmation(order, user)
    return order


def user_edit_order(order_id: int, user_id: int, lines) -> Order:
    """
    Decrease line quantities of the buyer's own PLACED order.

    Any increase is rejected and nothing is changed. Price snapshots are
    untouched. If stock was already taken for the order, the difference is
    returned to inventory.
    """
    if not isinstance(lines, list) or not lines:
        raise ValidationError("lines are required")

    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found.")
    if order.buyer_id != user_id:
        raise ForbiddenError("Unauthorized.")
    if order.order_status != OrderStatus.PLACED.value:
        raise ConflictError(f"Order can no longer be edited (status {order.order_status}).")

    changes = []
    for raw in lines:
        if not isinstance(raw, dict):
            raise ValidationError("each line must be an object")
        product_id = raw.get("product_id")
        variant_id = raw.get("variant_id") or None
        quantity = coerce_quantity(raw.get("quantity"))

        match = next(
            (
                line for line in order.lines
                if line.product_id == product_id and (variant_id is None or line.variant_id == variant_id)
            ),
            None,
        )
        if match is None:
            raise ValidationError(f"Product {product_id} is not part of this order.")
        if quantity > match.quantity:
            raise ConflictError(
                f"Cannot increase quantity of product {match.product_id} more than {match.quantity}."
            )
        changes.append((match, quantity))

    def _op():
        for line, quantity in changes:
            released = line.quantity - quantity
            if released <= 0:
                continue
            if order.inventory_committed:
                inventory = find_inventory(line.product_id, line.variant_id)
                if inventory is not None:
                    apply_movement(inventory.id, MovementType.RETURN, released, "Order quantity reduced",
                                   order_id=order.id, actor_id=user_id, commit=False)
            line.quantity = quantity
        _reprice(order)
        _append_history(order, order.order_status, "Quantities reduced by buyer", user_id)
        db.session.commit()

    run_with_retry(_op)
    return order


def cancel_order_by_user(order_id: int, user_id: int, reason: str | None) -> Order:
    """Buyer cancellation: PLACED only, within 48 hours of placement."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Cancellation reason is required.")

    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found.")
    if order.buyer_id != user_id:
        raise ForbiddenError("You are not authorized to cancel this order.")

    if is_older_than(order.created_at, USER_CANCELLATION_WINDOW):
        raise ConflictError("Orders can only be cancelled within 48 hours of placement.")
    if order.order_status != OrderStatus.PLACED.value:
        raise ConflictError("Only orders in 'PLACED' status can be cancelled.")

    def _op():
        order.order_status = OrderStatus.CANCELLED_BY_USER.value
        order.cancellation_reason = reason
        order.cancelled_at = utcnow()
        _restock(order, "User Cancellation", actor_id=None)
        _append_history(order, order.order_status, reason, user_id)
        db.session.commit()

    run_with_retry(_op)
    logger.info("order %s cancelled by user %s", order.id, user_id)
    return order


def _restock(order: Order, reason: str, actor_id: int | None) -> None:
    if not order.inventory_committed:
        return
    apply_order_movement(order.lines, MovementType.RETURN, reason, order_id=order.id, actor_id=actor_id)
    order.inventory_committed = False


# =============================================================================
# ADMIN
# =============================================================================

def admin_update_order(
    order_id: int,
    *,
    payment_status: str | None = None,
    order_status: str | None = None,
    reason: str | None = None,
    actor_id: int | None = None,
) -> Order:
    """
    Admin transition of payment_status and/or order_status.

    Status strings are normalized (whitespace -> '_', uppercased) and must
    name a known status. PENDING -> COMPLETE goes through complete_payment
    so stock and loyalty are handled exactly once.
    """
    if payment_status is None and order_status is None:
        raise ValidationError("payment_status or order_status is required")

    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order does not exist.")

    new_payment = _parse_enum(PaymentStatus, payment_status, "payment_status") if payment_status else None
    new_status = _parse_enum(OrderStatus, order_status, "order_status") if order_status else None

    if new_status and order.order_status in TERMINAL_STATUSES:
        raise ConflictError(f"This order is in {order.order_status} status and should not be updated further.")

    if new_payment:
        if new_payment == PaymentStatus.COMPLETE.value and order.payment_status != new_payment:
            complete_payment(order.id, allow_failed=True)
        elif new_payment != order.payment_status:
            order.payment_status = new_payment
            db.session.commit()
        db.session.refresh(order)

    if new_status:
        def _op():
            old_status = order.order_status
            order.order_status = new_status

            if new_status == OrderStatus.DELIVERED.value and old_status != new_status:
                order.delivered_at = utcnow()

            if new_status in RESTOCK_STATUSES and old_status != new_status:
                _restock(order, RESTOCK_STATUSES[new_status], actor_id)
                if new_status == OrderStatus.CANCELLED_BY_ADMIN.value:
                    order.cancellation_reason = reason or "Cancelled by admin"
                    order.cancelled_at = utcnow()

            _append_history(order, new_status, reason or "Status updated by admin", actor_id)
            db.session.commit()

        run_with_retry(_op)
        logger.info("order %s status set to %s by %s", order.id, new_status, actor_id)

    return order


# =============================================================================
# PAYMENT TRANSITIONS
# =============================================================================

def _gateway_values(gateway_ids: dict | None) -> dict:
    values = {}
    for key, value in (gateway_ids or {}).items():
        if key not in GATEWAY_ID_FIELDS:
            raise ValueError(f"unknown gateway id field: {key}")
        if value is not None:
            values[key] = str(value)
    return values


def complete_payment(order_id: int, gateway_ids: dict | None = None, amount=None, *,
                     allow_failed: bool = False) -> bool:
    """
    PENDING -> COMPLETE with its side effects, exactly once.

    Returns True when this call performed the transition, False when the
    order was no longer PENDING (duplicate delivery, already failed).
    allow_failed lets an admin override also complete a FAILED order.
    Raises NotFoundError for an unknown order.
    """
    values = _gateway_values(gateway_ids)
    from_statuses = [PaymentStatus.PENDING.value]
    if allow_failed:
        from_statuses.append(PaymentStatus.FAILED.value)

    def _op() -> bool:
        matched = guarded_update(
            Order,
            Order.id == order_id,
            Order.payment_status.in_(from_statuses),
            values={
                **values,
                "payment_status": PaymentStatus.COMPLETE.value,
                "paid_at": utcnow(),
            },
        )
        if matched == 0:
            db.session.rollback()
            if db.session.get(Order, order_id) is None:
                raise NotFoundError("Order not found")
            return False

        order = db.session.get(Order, order_id)
        db.session.refresh(order)

        paid = order.amount_due if amount is None else round_money(amount)
        order.total_amount_paid = paid

        # OUT only on the inventory_committed False -> True flip
        committed = guarded_update(
            Order,
            Order.id == order_id,
            Order.inventory_committed.is_(False),
            values={"inventory_committed": True},
        )
        if committed:
            apply_order_movement(order.lines, MovementType.OUT, "Order fulfillment", order_id=order.id)
        else:
            logger.info("order %s stock already committed; no OUT movement", order_id)
        _remove_from_cart(order.buyer_id, order.lines)
        loyalty_service.award_points_for_order(order.buyer_id, paid, order_id=order.id)

        db.session.commit()
        return True

    try:
        completed = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    if completed:
        order = db.session.get(Order, order_id)
        logger.info("order %s payment complete", order_id)
        email_service.send_payment_received(order, order.buyer)
    else:
        logger.info("order %s payment confirmation ignored (not PENDING)", order_id)
    return completed


def mark_payment_failed(order_id: int, gateway_ids: dict | None = None) -> bool:
    """PENDING -> FAILED. Returns False when the order was not PENDING."""
    matched = guarded_update(
        Order,
        Order.id == order_id,
        Order.payment_status == PaymentStatus.PENDING.value,
        values={**_gateway_values(gateway_ids), "payment_status": PaymentStatus.FAILED.value},
    )
    db.session.commit()
    if matched:
        logger.info("order %s payment failed", order_id)
    return bool(matched)


def bind_gateway_order(order_id: int, gateway_ids: dict) -> bool:
    """Record the provider's order id on a still-PENDING order."""
    matched = guarded_update(
        Order,
        Order.id == order_id,
        Order.payment_status == PaymentStatus.PENDING.value,
        values=_gateway_values(gateway_ids),
    )
    db.session.commit()
    if not matched:
        logger.info("order %s not PENDING; gateway ids %s not recorded", order_id, sorted(gateway_ids))
    return bool(matched)


def delete_pending_order(order_id: int) -> bool:
    """
    Hard-delete an order whose payment was aborted.

    Only PENDING orders whose stock was never taken are deleted, so
    inventory is untouched. Returns False when nothing was deleted.
    """
    pending = select(Order.id).where(
        Order.id == order_id,
        Order.payment_status == PaymentStatus.PENDING.value,
        Order.inventory_committed.is_(False),
    )
    no_sync = {"synchronize_session": False}

    db.session.execute(
        delete(OrderLine).where(OrderLine.order_id.in_(pending)).execution_options(**no_sync)
    )
    db.session.execute(
        delete(OrderStatusHistory).where(OrderStatusHistory.order_id.in_(pending)).execution_options(**no_sync)
    )
    result = db.session.execute(
        delete(Order)
        .where(
            Order.id == order_id,
            Order.payment_status == PaymentStatus.PENDING.value,
            Order.inventory_committed.is_(False),
        )
        .execution_options(**no_sync)
    )
    if not result.rowcount:
        db.session.rollback()
        return False

    db.session.commit()
    db.session.expire_all()
    logger.info("pending order %s deleted", order_id)
    return True


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found.")
    return order


def get_user_order(order_id: int, user_id: int) -> Order:
    order = get_order(order_id)
    if order.buyer_id != user_id:
        raise ForbiddenError("Unauthorized.")
    return order


def _paginate(query, page, limit) -> tuple[list, dict]:
    try:
        page = max(int(page or 1), 1)
        limit = min(max(int(limit or 10), 1), 100)
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return rows, {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": max(1, (total + limit - 1) // limit),
    }


def list_user_orders(user_id: int, page=1, limit=10) -> dict:
    query = (
        db.session.query(Order)
        .filter(Order.buyer_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    rows, pagination = _paginate(query, page, limit)
    return {"orders": [o.to_dict() for o in rows], "pagination": pagination}


def list_orders(filters: dict | None = None, page=1, limit=10) -> dict:
    """
    Admin listing. Filters: status ('cancelled' matches both cancellation
    statuses), payment_mode, payment_status, start_date/end_date (inclusive
    days), min_price/max_price on total_amount_paid.
    """
    filters = filters or {}
    query = db.session.query(Order)

    status = filters.get("status")
    if status:
        if status.lower() == "cancelled":
            query = query.filter(Order.order_status.in_([
                OrderStatus.CANCELLED_BY_ADMIN.value, OrderStatus.CANCELLED_BY_USER.value,
            ]))
        else:
            query = query.filter(Order.order_status == normalize_status(status))

    if filters.get("payment_mode"):
        query = query.filter(Order.payment_mode == normalize_status(filters["payment_mode"]))
    if filters.get("payment_status"):
        query = query.filter(Order.payment_status == normalize_status(filters["payment_status"]))

    try:
        start = parse_iso_datetime(filters.get("start_date"))
        end = parse_iso_datetime(filters.get("end_date"))
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 dates")
    if start:
        query = query.filter(Order.created_at >= start)
    if end:
        query = query.filter(Order.created_at < day_after(end))

    try:
        if filters.get("min_price"):
            query = query.filter(Order.total_amount_paid >= to_decimal(filters["min_price"]))
        if filters.get("max_price"):
            query = query.filter(Order.total_amount_paid <= to_decimal(filters["max_price"]))
    except ValueError:
        raise ValidationError("min_price and max_price must be numbers")

    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    rows, pagination = _paginate(query, page, limit)
    return {"orders": [o.to_dict() for o in rows], "pagination": pagination}
