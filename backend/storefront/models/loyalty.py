from __future__ import annotations

from ..extensions import db
from storefront.money import as_float
from storefront.time_utils import to_utc_z


class LoyaltyProgram(db.Model):
    """Points program configuration. Only the newest active program is used."""
    __tablename__ = "loyalty_programs"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    points_per_rupee = db.Column(db.Numeric(8, 4), nullable=False, default=1)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tiers = db.relationship(
        "LoyaltyTier",
        backref="program",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="LoyaltyTier.min_points",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "points_per_rupee": float(self.points_per_rupee),
            "is_active": self.is_active,
            "tiers": [t.to_dict() for t in self.tiers],
        }


class LoyaltyTier(db.Model):
    __tablename__ = "loyalty_tiers"
    __table_args__ = (
        db.UniqueConstraint("program_id", "name", name="uq_loyalty_tiers_program_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(db.Integer, db.ForeignKey("loyalty_programs.id"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    min_points = db.Column(db.Integer, nullable=False, default=0)
    benefits = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "min_points": self.min_points,
            "benefits": self.benefits,
        }


class UserLoyalty(db.Model):
    """Per-user running totals. One row per user, created on first award."""
    __tablename__ = "user_loyalty"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_user_loyalty_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    program_id = db.Column(db.Integer, db.ForeignKey("loyalty_programs.id"), nullable=True)

    total_points = db.Column(db.Integer, nullable=False, default=0)
    available_points = db.Column(db.Integer, nullable=False, default=0)
    lifetime_spend = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_orders = db.Column(db.Integer, nullable=False, default=0)
    average_order_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    current_tier = db.Column(db.String(64), nullable=True)
    last_activity_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "program_id": self.program_id,
            "total_points": self.total_points,
            "available_points": self.available_points,
            "lifetime_spend": as_float(self.lifetime_spend),
            "total_orders": self.total_orders,
            "average_order_value": as_float(self.average_order_value),
            "current_tier": self.current_tier,
            "last_activity_at": to_utc_z(self.last_activity_at),
        }


class PointsTransaction(db.Model):
    """
    Append-only points ledger.

    IDEMPOTENCY: (order_id, type) and (guest_order_id, type) are unique, so
    an order can earn points at most once even if the award is re-invoked.
    """
    __tablename__ = "points_transactions"
    __table_args__ = (
        db.UniqueConstraint("order_id", "type", name="uq_points_transactions_order_type"),
        db.UniqueConstraint("guest_order_id", "type", name="uq_points_transactions_guest_order_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # EARNED | REDEEMED | ADJUSTED
    type = db.Column(db.String(16), nullable=False)
    points = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    guest_order_id = db.Column(db.Integer, db.ForeignKey("guest_orders.id"), nullable=True)
    order_amount = db.Column(db.Numeric(12, 2), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "points": self.points,
            "balance_after": self.balance_after,
            "description": self.description,
            "order_id": self.order_id,
            "guest_order_id": self.guest_order_id,
            "order_amount": as_float(self.order_amount),
            "occurred_at": to_utc_z(self.occurred_at),
        }
