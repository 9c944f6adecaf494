"""
Account and session tests.

Verifies:
- Registration issues a usable bearer token
- Login with normalized email, bad credentials are 401
- Logout revokes the token
- Unauthenticated and wrong-role requests on protected routes
"""

import pytest

from storefront.errors import ConflictError, ValidationError
from storefront.models import Cart
from storefront.services import auth_service, session_service


class TestRegister:

    def test_register_and_me(self, client, db_session):
        resp = client.post("/auth/register", json={
            "name": "Kiran Rao",
            "email": "Kiran@Example.com ",
            "password": "Password123",
            "phone_number": "9111111111",
        })
        assert resp.status_code == 201
        data = resp.json["data"]
        assert data["user"]["email"] == "kiran@example.com"
        assert data["user"]["role"] == "USER"

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.status_code == 200
        assert me.json["data"]["user"]["id"] == data["user"]["id"]

        assert db_session.query(Cart).filter_by(user_id=data["user"]["id"]).count() == 1

    def test_duplicate_email(self, buyer):
        with pytest.raises(ConflictError):
            auth_service.create_user("Other", "ASHA@example.com", "Password123")

    @pytest.mark.parametrize("password", ["short1", "allletters", "12345678"])
    def test_weak_passwords(self, client, password):
        resp = client.post("/auth/register", json={
            "name": "Weak", "email": "weak@example.com", "password": password,
        })
        assert resp.status_code == 400

    def test_missing_fields(self, client):
        resp = client.post("/auth/register", json={"email": "x@example.com"})
        assert resp.status_code == 400
        assert resp.json["status"] == 400

    def test_invalid_email(self):
        with pytest.raises(ValidationError):
            auth_service.create_user("Name", "nope", "Password123")


class TestLogin:

    def test_login(self, client, buyer):
        resp = client.post("/auth/login", json={"email": " ASHA@example.com", "password": "Password123"})
        assert resp.status_code == 200
        assert resp.json["data"]["token"]

    def test_wrong_password(self, client, buyer):
        resp = client.post("/auth/login", json={"email": "asha@example.com", "password": "Password999"})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid credentials"

    def test_inactive_user(self, client, db_session, buyer):
        buyer.is_active = False
        db_session.commit()
        resp = client.post("/auth/login", json={"email": "asha@example.com", "password": "Password123"})
        assert resp.status_code == 401


class TestSessions:

    def test_logout_revokes(self, client, buyer):
        _, token = session_service.create_session(buyer.id)
        headers = {"Authorization": f"Bearer {token}"}

        assert client.post("/auth/logout", headers=headers).status_code == 200
        resp = client.get("/auth/me", headers=headers)
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid or expired token"

    def test_token_is_stored_hashed(self, db_session, buyer):
        session, token = session_service.create_session(buyer.id)
        assert session.token_hash != token
        assert session.token_hash == session_service.hash_token(token)

    def test_deactivated_user_token_rejected(self, client, db_session, buyer, buyer_headers):
        buyer.is_active = False
        db_session.commit()
        assert client.get("/auth/me", headers=buyer_headers).status_code == 401


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/auth/me"),
            ("GET", "/user/order/all"),
            ("POST", "/user/order/place"),
            ("GET", "/user/loyalty"),
            ("GET", "/admin/order/all"),
            ("GET", "/admin/inventory/all"),
            ("GET", "/admin/pricing/silver-price/history"),
            ("POST", "/ccavenue-createOrder"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"


class TestBuyerDeniedAdmin:

    @pytest.mark.parametrize(
        "path",
        [
            "/admin/order/all",
            "/admin/inventory/all",
            "/admin/inventory/report",
            "/admin/pricing/silver-price/history",
        ],
    )
    def test_forbidden(self, client, buyer_headers, path):
        assert client.get(path, headers=buyer_headers).status_code == 403

    def test_admin_allowed(self, client, admin_headers):
        assert client.get("/admin/order/all", headers=admin_headers).status_code == 200
