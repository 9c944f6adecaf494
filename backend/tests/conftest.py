"""
Pytest fixtures for storefront backend tests.

Provides the app on an in-memory database, a fresh schema per test,
account/catalog factories and bearer headers.
"""

import pytest

from storefront import create_app
from storefront.config import TestConfig
from storefront.extensions import db
from storefront.models import Product, ProductVariant, Coupon
from storefront.services import loyalty_service, pricing_service, session_service
from storefront.services.auth_service import create_user
from storefront.services.inventory_service import create_or_update_inventory


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Clear all data but keep schema."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function', autouse=True)
def offline_rate_source(monkeypatch):
    """No test reaches the real commodity API; tests that need a fetch patch it again."""
    def _unavailable():
        raise pricing_service.RateFetchError("offline in tests")

    monkeypatch.setattr(pricing_service, "fetch_current_silver_price", _unavailable)


# =============================================================================
# ACCOUNTS
# =============================================================================

def _with_address(user):
    user.ship_first_name = "Asha"
    user.ship_last_name = "Verma"
    user.ship_phone_number = "9876543210"
    user.ship_street = "12 MG Road"
    user.ship_city = "Jaipur"
    user.ship_state = "Rajasthan"
    user.ship_zip = "302001"
    user.ship_country = "India"
    return user


@pytest.fixture(scope='function')
def buyer(db_session):
    user = _with_address(create_user("Asha Verma", "asha@example.com", "Password123", commit=False))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_buyer(db_session):
    user = _with_address(create_user("Ravi Kumar", "ravi@example.com", "Password123", commit=False))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session):
    return create_user("Store Admin", "admin@example.com", "Password123", role="ADMIN")


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user) -> dict:
    _, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def buyer_headers(buyer):
    return headers_for(buyer)


@pytest.fixture(scope='function')
def other_headers(other_buyer):
    return headers_for(other_buyer)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return headers_for(admin)


# =============================================================================
# CATALOG & STOCK
# =============================================================================

@pytest.fixture(scope='function')
def make_product(db_session):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "sku": f"SKU-{counter['n']:03d}",
            "title": f"Silver Anklet {counter['n']}",
            "sale_price": 500,
            "static_price": None,
            "gst_percentage": 18,
            "is_dynamic_pricing": False,
            "silver_weight": None,
            "labor_percentage": 0,
            "is_active": True,
        }
        fields.update(overrides)
        product = Product(**fields)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product(sale_price=500)


@pytest.fixture(scope='function')
def variant(db_session, product):
    v = ProductVariant(product_id=product.id, name="Size 8")
    db_session.add(v)
    db_session.commit()
    return v


@pytest.fixture(scope='function')
def stocked(product):
    """Inventory row for product with 20 units and reorder point 5."""
    inventory, _ = create_or_update_inventory(product.id, initial_stock=20, reorder_point=5)
    return inventory


@pytest.fixture(scope='function')
def coupon(db_session):
    c = Coupon(code="SAVE10", discount_percent=10, min_price=100, is_active=True)
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def loyalty_program(db_session):
    program, _ = loyalty_service.ensure_default_program()
    return program


@pytest.fixture(scope='function')
def silver_rate(db_session):
    """Fresh active rate of 100 INR/g."""
    return pricing_service.save_silver_price(100, "INR", "manual")
