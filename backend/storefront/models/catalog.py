from __future__ import annotations

from ..extensions import db
from storefront.money import as_float
from storefront.time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product, as seen by the order core.

    Catalog CRUD lives elsewhere; the core only reads price inputs from here.
    A dynamically priced product carries silver_weight/labor_percentage and
    is priced through the pricing engine at checkout time. Everything else
    uses sale_price (standard checkout) or static_price (guest checkout,
    falling back to sale_price).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    title = db.Column(db.String(255), nullable=False)

    sale_price = db.Column(db.Numeric(12, 2), nullable=True)
    static_price = db.Column(db.Numeric(12, 2), nullable=True)
    gst_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=18)

    is_dynamic_pricing = db.Column(db.Boolean, nullable=False, default=False)
    silver_weight = db.Column(db.Numeric(10, 3), nullable=True)
    labor_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def uses_dynamic_pricing(self) -> bool:
        return bool(self.is_dynamic_pricing and self.silver_weight and self.silver_weight > 0)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} title={self.title!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "title": self.title,
            "sale_price": as_float(self.sale_price),
            "static_price": as_float(self.static_price),
            "gst_percentage": as_float(self.gst_percentage),
            "is_dynamic_pricing": self.is_dynamic_pricing,
            "silver_weight": float(self.silver_weight) if self.silver_weight is not None else None,
            "labor_percentage": as_float(self.labor_percentage),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductVariant(db.Model):
    __tablename__ = "product_variants"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)

    product = db.relationship("Product", backref=db.backref("variants", lazy=True))

    def to_dict(self) -> dict:
        return {"id": self.id, "product_id": self.product_id, "name": self.name}


class Coupon(db.Model):
    """Percentage coupon; applies only when the order subtotal reaches min_price."""
    __tablename__ = "coupons"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_coupons_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    min_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "discount_percent": as_float(self.discount_percent),
            "min_price": as_float(self.min_price),
            "is_active": self.is_active,
        }


class Cart(db.Model):
    __tablename__ = "carts"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_carts_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", backref=db.backref("cart", uselist=False, lazy=True))
    items = db.relationship("CartItem", backref="cart", lazy=True, cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "items": [item.to_dict() for item in self.items],
        }


class CartItem(db.Model):
    __tablename__ = "cart_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
        }
