# Overview: Request principal and role decorators for API routes.

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import wraps

from flask import g, request

from .models import User
from .responses import failure
from .services import session_service


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class Principal:
    user: User
    role: Role

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _resolve_principal() -> Principal | None:
    token = _bearer_token()
    if not token:
        return None
    user = session_service.validate_session(token)
    if user is None:
        return None
    try:
        role = Role(user.role)
    except ValueError:
        role = Role.USER
    return Principal(user=user, role=role)


def current_principal() -> Principal | None:
    return getattr(g, "principal", None)


def require_auth(f):
    """
    Require a valid bearer session token.

    Sets g.principal (Principal) for the handler. Returns 401 when the
    header is missing, the token is unknown/expired/revoked, or the user
    is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _bearer_token():
            return failure("Authentication required", 401)

        principal = _resolve_principal()
        if principal is None:
            return failure("Invalid or expired token", 401)

        g.principal = principal
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """Like require_auth, but anonymous callers pass through with g.principal = None."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.principal = _resolve_principal()
        return f(*args, **kwargs)

    return decorated_function


def require_role(role: Role):
    """Must be stacked under @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = current_principal()
            if principal is None:
                return failure("Authentication required", 401)
            if principal.role != role:
                return failure("Permission denied", 403)
            return f(*args, **kwargs)

        return decorated_function
    return decorator
