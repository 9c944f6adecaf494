# Overview: Service-layer operations for auth; account creation and credential checks.

"""
Account and credential handling for buyers and admins.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, at least one letter and one digit
- Emails are normalized (trimmed, lowercased) before lookup and storage
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import Cart, User
from storefront.time_utils import utcnow

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def validate_password_strength(password: str) -> None:
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed hash
        return False


def create_user(
    name: str,
    email: str,
    password: str,
    *,
    phone_number: str | None = None,
    role: str = "USER",
    commit: bool = True,
) -> User:
    """
    Create a user together with an empty cart.

    Raises ValidationError for malformed input and ConflictError when the
    email already belongs to an account.
    """
    email = normalize_email(email)
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if not EMAIL_RE.match(email):
        raise ValidationError("a valid email is required")

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise ConflictError("An account with this email already exists")

    user = User(
        name=name,
        email=email,
        phone_number=phone_number,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.flush()

    db.session.add(Cart(user_id=user.id))

    if commit:
        db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Return the active user for these credentials, or None.

    Updates last_login_at on success.
    """
    user = db.session.query(User).filter_by(email=normalize_email(email), is_active=True).first()
    if not user or not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
