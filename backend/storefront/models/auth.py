from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class User(db.Model):
    """
    Buyer and admin accounts.

    WHY one table: a single Principal type (user + role) is resolved per
    request, so admins and buyers share authentication and only differ by
    role. The saved shipping address is the per-field fallback used when an
    order is placed without a complete address.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone_number = db.Column(db.String(32), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    # USER or ADMIN (see decorators.Role)
    role = db.Column(db.String(16), nullable=False, default="USER")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Saved shipping address (fallback for order placement)
    ship_first_name = db.Column(db.String(128), nullable=True)
    ship_last_name = db.Column(db.String(128), nullable=True)
    ship_phone_number = db.Column(db.String(32), nullable=True)
    ship_street = db.Column(db.String(255), nullable=True)
    ship_city = db.Column(db.String(128), nullable=True)
    ship_state = db.Column(db.String(128), nullable=True)
    ship_zip = db.Column(db.String(16), nullable=True)
    ship_country = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def saved_address(self) -> dict:
        return {
            "first_name": self.ship_first_name,
            "last_name": self.ship_last_name,
            "phone_number": self.ship_phone_number,
            "street": self.ship_street,
            "city": self.ship_city,
            "state": self.ship_state,
            "zip": self.ship_zip,
            "country": self.ship_country,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone_number": self.phone_number,
            "role": self.role,
            "is_active": self.is_active,
            "shipping_address": self.saved_address(),
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Bearer session tokens.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - 24-hour absolute timeout
    - Revocable on logout
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
