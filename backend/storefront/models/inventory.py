from __future__ import annotations

from ..extensions import db
from storefront.money import as_float
from storefront.time_utils import to_utc_z


class Inventory(db.Model):
    """
    Stock counters for one (product, variant-or-null) pair.

    DERIVED FIELDS: available_stock and the three alert flags are never
    written directly. They are produced by inventory_service.recompute_derived
    and persisted in the same UPDATE as the counters they derive from.

    CONCURRENCY: every movement is a compare-and-swap on version_id, so two
    writers racing on the same row cannot both succeed with a stale read.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", "variant_id", name="uq_inventory_product_variant"),
        db.Index("ix_inventory_alerts", "is_low_stock", "is_out_of_stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    reserved_stock = db.Column(db.Integer, nullable=False, default=0)
    available_stock = db.Column(db.Integer, nullable=False, default=0)

    reorder_point = db.Column(db.Integer, nullable=False, default=10)
    max_stock = db.Column(db.Integer, nullable=False, default=1000)

    is_low_stock = db.Column(db.Boolean, nullable=False, default=False)
    is_out_of_stock = db.Column(db.Boolean, nullable=False, default=True)
    is_over_stock = db.Column(db.Boolean, nullable=False, default=False)

    warehouse = db.Column(db.String(128), nullable=False, default="Main Warehouse")
    section = db.Column(db.String(32), nullable=False, default="A1")
    shelf = db.Column(db.String(32), nullable=False, default="1")

    cost_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    last_restocked = db.Column(db.DateTime(timezone=True), nullable=True)
    total_sold = db.Column(db.Integer, nullable=False, default=0)
    total_purchased = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("inventory_rows", lazy=True))
    variant = db.relationship("ProductVariant")
    movements = db.relationship(
        "InventoryMovement",
        backref="inventory",
        lazy="dynamic",
        order_by="InventoryMovement.id.desc()",
    )

    @property
    def stock_status(self) -> str:
        if self.is_out_of_stock:
            return "out_of_stock"
        if self.is_low_stock:
            return "low_stock"
        if self.is_over_stock:
            return "over_stock"
        return "in_stock"

    def __repr__(self) -> str:
        return (
            f"<Inventory id={self.id} product={self.product_id} variant={self.variant_id} "
            f"current={self.current_stock} reserved={self.reserved_stock}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "current_stock": self.current_stock,
            "reserved_stock": self.reserved_stock,
            "available_stock": self.available_stock,
            "reorder_point": self.reorder_point,
            "max_stock": self.max_stock,
            "alerts": {
                "low_stock": self.is_low_stock,
                "out_of_stock": self.is_out_of_stock,
                "over_stock": self.is_over_stock,
            },
            "stock_status": self.stock_status,
            "location": {
                "warehouse": self.warehouse,
                "section": self.section,
                "shelf": self.shelf,
            },
            "cost_price": as_float(self.cost_price),
            "last_restocked": to_utc_z(self.last_restocked),
            "total_sold": self.total_sold,
            "total_purchased": self.total_purchased,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only audit trail of stock movements.

    Rows are inserted in the same transaction as the counter update they
    describe and are never updated or deleted afterwards. quantity is the
    absolute amount moved; for ADJUSTMENT it is the new absolute stock.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_inventory_occurred", "inventory_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    stock_after = db.Column(db.Integer, nullable=False)
    reserved_after = db.Column(db.Integer, nullable=False)

    occurred_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_id": self.inventory_id,
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "notes": self.notes,
            "order_id": self.order_id,
            "actor_user_id": self.actor_user_id,
            "stock_after": self.stock_after,
            "reserved_after": self.reserved_after,
            "occurred_at": to_utc_z(self.occurred_at),
        }
