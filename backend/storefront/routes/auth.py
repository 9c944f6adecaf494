# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/storefront/routes/auth.py
"""
Minimal account endpoints so buyers can obtain bearer tokens.

Tokens go in the Authorization header: "Bearer <token>".
"""

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..errors import AuthError, ValidationError
from ..responses import success
from ..services import auth_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.post("/register")
def register_route():
    data = request.get_json(silent=True) or {}
    name = data.get("name")
    email = data.get("email")
    password = data.get("password")

    if not all([name, email, password]):
        raise ValidationError("name, email and password are required")

    user = auth_service.create_user(
        name,
        email,
        password,
        phone_number=data.get("phone_number"),
        commit=False,
    )
    _, token = session_service.create_session(user.id)
    return success({"user": user.to_dict(), "token": token}, 201)


@auth_bp.post("/login")
def login_route():
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not all([email, password]):
        raise ValidationError("email and password are required")

    user = auth_service.authenticate(email, password)
    if not user:
        raise AuthError("Invalid credentials")

    _, token = session_service.create_session(user.id)
    return success({"user": user.to_dict(), "token": token})


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers["Authorization"].split(" ", 1)[1].strip()
    session_service.revoke_session(token)
    return success({"message": "Logged out"})


@auth_bp.get("/me")
@require_auth
def me_route():
    return success({"user": g.principal.user.to_dict()})
