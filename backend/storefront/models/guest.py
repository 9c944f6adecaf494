from __future__ import annotations

from ..extensions import db
from storefront.money import as_float
from storefront.time_utils import to_utc_z


class GuestOrder(db.Model):
    """
    Order placed without an account.

    Prices are resolved once at checkout (dynamic pricing included) and
    frozen into the lines and order totals.

    CONVERSION: conversion_token (64 hex chars, 7-day expiry) lets the buyer
    create an account later. converted_to_user_id is set exactly once; a
    converted guest order is terminal.
    """
    __tablename__ = "guest_orders"
    __table_args__ = (
        db.UniqueConstraint("conversion_token", name="uq_guest_orders_conversion_token"),
        db.Index("ix_guest_orders_email", "guest_email"),
        db.Index("ix_guest_orders_payment_status", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    guest_first_name = db.Column(db.String(128), nullable=False)
    guest_last_name = db.Column(db.String(128), nullable=False, default="")
    guest_email = db.Column(db.String(255), nullable=False)
    guest_phone_number = db.Column(db.String(32), nullable=False)

    ship_address = db.Column(db.String(255), nullable=False)
    ship_city = db.Column(db.String(128), nullable=False)
    ship_state = db.Column(db.String(128), nullable=False)
    ship_pincode = db.Column(db.String(16), nullable=False)
    ship_country = db.Column(db.String(64), nullable=False, default="India")

    bill_address = db.Column(db.String(255), nullable=True)
    bill_city = db.Column(db.String(128), nullable=True)
    bill_state = db.Column(db.String(128), nullable=True)
    bill_pincode = db.Column(db.String(16), nullable=True)
    bill_country = db.Column(db.String(64), nullable=True)
    bill_same_as_shipping = db.Column(db.Boolean, nullable=False, default=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    gst_amount = db.Column(db.Numeric(12, 2), nullable=False)
    shipping_charges = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    final_amount = db.Column(db.Numeric(12, 2), nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, default="ONLINE")
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING")
    payment_gateway = db.Column(db.String(32), nullable=True)
    transaction_id = db.Column(db.String(64), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    order_status = db.Column(db.String(32), nullable=False, default="PLACED")
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=True)

    conversion_token = db.Column(db.String(64), nullable=True)
    conversion_token_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    converted_to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    converted_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "GuestOrderLine",
        backref="guest_order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="GuestOrderLine.id",
    )

    def guest_info(self) -> dict:
        return {
            "first_name": self.guest_first_name,
            "last_name": self.guest_last_name,
            "email": self.guest_email,
            "phone_number": self.guest_phone_number,
        }

    def shipping_address(self) -> dict:
        return {
            "address": self.ship_address,
            "city": self.ship_city,
            "state": self.ship_state,
            "pincode": self.ship_pincode,
            "country": self.ship_country,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "guest_info": self.guest_info(),
            "lines": [line.to_dict() for line in self.lines],
            "shipping_address": self.shipping_address(),
            "billing_address": {
                "address": self.bill_address,
                "city": self.bill_city,
                "state": self.bill_state,
                "pincode": self.bill_pincode,
                "country": self.bill_country,
                "same_as_shipping": self.bill_same_as_shipping,
            },
            "order_total": {
                "subtotal": as_float(self.subtotal),
                "gst_amount": as_float(self.gst_amount),
                "shipping_charges": as_float(self.shipping_charges),
                "discount": as_float(self.discount),
                "final_amount": as_float(self.final_amount),
            },
            "payment_info": {
                "method": self.payment_method,
                "status": self.payment_status,
                "gateway": self.payment_gateway,
                "transaction_id": self.transaction_id,
                "paid_at": to_utc_z(self.paid_at),
            },
            "order_status": self.order_status,
            "coupon_id": self.coupon_id,
            "converted_to_user_id": self.converted_to_user_id,
            "converted_order_id": self.converted_order_id,
            "created_at": to_utc_z(self.created_at),
        }


class GuestOrderLine(db.Model):
    __tablename__ = "guest_order_lines"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    guest_order_id = db.Column(db.Integer, db.ForeignKey("guest_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)

    # Price breakdown captured at checkout
    silver_cost = db.Column(db.Numeric(12, 2), nullable=True)
    labor_cost = db.Column(db.Numeric(12, 2), nullable=True)
    unit_gst_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    unit_final_price = db.Column(db.Numeric(12, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "unit_price": as_float(self.unit_price),
            "price_breakdown": {
                "silver_cost": as_float(self.silver_cost),
                "labor_cost": as_float(self.labor_cost),
                "gst_amount": as_float(self.unit_gst_amount),
                "final_price": as_float(self.unit_final_price),
            },
        }
