from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from storefront.money import as_float, round_money
from storefront.time_utils import to_utc_z


class Order(db.Model):
    """
    A buyer's order.

    LIFECYCLE:
    - order_status: PLACED -> SHIPPED -> DELIVERED -> RETURNED,
      or PLACED -> CANCELLED_BY_ADMIN / CANCELLED_BY_USER
    - payment_status: PENDING -> COMPLETE | FAILED (orthogonal to order_status)

    INVARIANTS:
    - OrderLine.unit_price is captured at creation and never recalculated.
    - payment_status PENDING -> COMPLETE happens exactly once, through a
      conditional UPDATE (see order_service.complete_payment).
    - Rows are never hard-deleted except for an aborted CCAvenue payment.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_buyer_created", "buyer_id", "created_at"),
        db.Index("ix_orders_status", "order_status"),
        db.Index("ix_orders_payment_status", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    payment_mode = db.Column(db.String(16), nullable=False, default="ONLINE")
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING")
    order_status = db.Column(db.String(32), nullable=False, default="PLACED")

    # Shipping address snapshot
    ship_first_name = db.Column(db.String(128), nullable=False, default="")
    ship_last_name = db.Column(db.String(128), nullable=False, default="")
    ship_email = db.Column(db.String(255), nullable=False, default="")
    ship_phone_number = db.Column(db.String(32), nullable=False)
    ship_street = db.Column(db.String(255), nullable=False)
    ship_city = db.Column(db.String(128), nullable=False)
    ship_state = db.Column(db.String(128), nullable=False)
    ship_zip = db.Column(db.String(16), nullable=False)
    ship_country = db.Column(db.String(64), nullable=False, default="India")

    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=True)
    coupon_discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    order_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Gateway correlation ids
    rzp_order_id = db.Column(db.String(64), nullable=True, index=True)
    rzp_payment_id = db.Column(db.String(64), nullable=True)
    cc_order_id = db.Column(db.String(64), nullable=True)
    cc_bank_ref_no = db.Column(db.String(64), nullable=True)
    stripe_payment_id = db.Column(db.String(64), nullable=True, index=True)

    # True while the order's OUT movements are applied and not yet restocked
    inventory_committed = db.Column(db.Boolean, nullable=False, default=False)

    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    buyer = db.relationship("User", backref=db.backref("orders", lazy=True))
    coupon = db.relationship("Coupon")
    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderLine.id",
    )
    status_history = db.relationship(
        "OrderStatusHistory",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )

    @property
    def lines_total(self) -> Decimal:
        return round_money(sum((line.line_total for line in self.lines), Decimal("0")))

    @property
    def amount_due(self) -> Decimal:
        return round_money(self.lines_total - (self.coupon_discount or Decimal("0")))

    def shipping_address(self) -> dict:
        return {
            "first_name": self.ship_first_name,
            "last_name": self.ship_last_name,
            "email": self.ship_email,
            "phone_number": self.ship_phone_number,
            "street": self.ship_street,
            "city": self.ship_city,
            "state": self.ship_state,
            "zip": self.ship_zip,
            "country": self.ship_country,
        }

    def __repr__(self) -> str:
        return f"<Order id={self.id} buyer={self.buyer_id} {self.order_status}/{self.payment_status}>"

    def to_dict(self, include_history: bool = False) -> dict:
        data = {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "lines": [line.to_dict() for line in self.lines],
            "payment_mode": self.payment_mode,
            "payment_status": self.payment_status,
            "order_status": self.order_status,
            "shipping_address": self.shipping_address(),
            "coupon_id": self.coupon_id,
            "coupon_discount": as_float(self.coupon_discount),
            "order_price": as_float(self.order_price),
            "order_total": as_float(self.lines_total),
            "total_amount_paid": as_float(self.total_amount_paid),
            "rzp_order_id": self.rzp_order_id,
            "rzp_payment_id": self.rzp_payment_id,
            "cc_order_id": self.cc_order_id,
            "cc_bank_ref_no": self.cc_bank_ref_no,
            "stripe_payment_id": self.stripe_payment_id,
            "inventory_committed": self.inventory_committed,
            "delivered_at": to_utc_z(self.delivered_at),
            "cancellation_reason": self.cancellation_reason,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "paid_at": to_utc_z(self.paid_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_history:
            data["status_history"] = [h.to_dict() for h in self.status_history]
        return data


class OrderLine(db.Model):
    """
    One product (+ optional variant) within an order.

    IMMUTABLE: unit_price is the price snapshot at order time. Only quantity
    may change afterwards, and only downwards (user edit while PLACED).
    """
    __tablename__ = "order_lines"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)

    product = db.relationship("Product")

    @property
    def line_total(self) -> Decimal:
        return round_money(Decimal(self.unit_price) * self.quantity)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "unit_price": as_float(self.unit_price),
            "line_total": as_float(self.line_total),
        }


class OrderStatusHistory(db.Model):
    """Append-only record of order_status changes."""
    __tablename__ = "order_status_history"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "reason": self.reason,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
