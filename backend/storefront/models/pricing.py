from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class SilverPrice(db.Model):
    """
    Commodity rate snapshot (INR per gram of silver).

    At most one row has is_active=True. Activating a new rate deactivates
    every other row in the same transaction (pricing_service.save_silver_price).
    Older rows are kept as price history.
    """
    __tablename__ = "silver_prices"
    __table_args__ = (
        db.Index("ix_silver_prices_active_updated", "is_active", "last_updated"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    price_per_gram = db.Column(db.Numeric(12, 4), nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="INR")

    # api | manual
    source = db.Column(db.String(32), nullable=False, default="api")

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "price_per_gram": float(self.price_per_gram),
            "currency": self.currency,
            "source": self.source,
            "last_updated": to_utc_z(self.last_updated),
            "is_active": self.is_active,
        }
