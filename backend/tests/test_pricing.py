"""
Pricing engine tests.

Verifies:
- The price chain for a fixed rate (rounded half-up per figure)
- Rate resolution: fresh row, refetch, last known row, configured default
- The public and admin pricing endpoints
"""

from datetime import timedelta
from decimal import Decimal

import httpx
import pytest

from storefront.errors import ValidationError
from storefront.models import SilverPrice
from storefront.services import pricing_service
from storefront.time_utils import utcnow


# =============================================================================
# PURE COMPUTATION
# =============================================================================


class TestComputeBreakdown:

    def test_reference_chain(self):
        b = pricing_service.compute_breakdown(10, 20, 18, 80)
        assert b.silver_cost == Decimal("800.00")
        assert b.labor_cost == Decimal("160.00")
        assert b.subtotal == Decimal("960.00")
        assert b.gst_amount == Decimal("172.80")
        assert b.final_price == Decimal("1132.80")

    def test_defaults_to_no_labor_and_18_percent_gst(self):
        b = pricing_service.compute_breakdown(1, None, None, 100)
        assert b.labor_cost == Decimal("0.00")
        assert b.gst_amount == Decimal("18.00")
        assert b.final_price == Decimal("118.00")

    def test_rounds_half_up(self):
        # 0.125 g * 1 INR/g = 0.125 -> 0.13
        b = pricing_service.compute_breakdown("0.125", 0, 0, 1)
        assert b.silver_cost == Decimal("0.13")

    @pytest.mark.parametrize("weight", [0, -1, "abc"])
    def test_rejects_bad_weight(self, weight):
        with pytest.raises(ValidationError):
            pricing_service.compute_breakdown(weight, 0, 18, 80)

    def test_rejects_negative_percentages(self):
        with pytest.raises(ValidationError):
            pricing_service.compute_breakdown(1, -5, 18, 80)


# =============================================================================
# RATE RESOLUTION
# =============================================================================


class TestCurrentRate:

    def test_uses_fresh_active_row(self, silver_rate):
        rate = pricing_service.get_current_rate()
        assert rate.price_per_gram == Decimal("100")
        assert rate.source == "manual"

    def test_stale_row_triggers_refetch(self, db_session, monkeypatch, silver_rate):
        silver_rate.last_updated = utcnow() - timedelta(hours=30)
        db_session.commit()

        monkeypatch.setattr(
            pricing_service,
            "fetch_current_silver_price",
            lambda: {"price_per_gram": Decimal("91.25"), "currency": "INR", "source": "metalpriceapi"},
        )

        rate = pricing_service.get_current_rate()
        assert rate.price_per_gram == Decimal("91.25")
        assert rate.source == "metalpriceapi"
        assert db_session.query(SilverPrice).filter_by(is_active=True).count() == 1

    def test_failed_refetch_falls_back_to_last_known(self, db_session, silver_rate):
        silver_rate.last_updated = utcnow() - timedelta(days=3)
        db_session.commit()

        rate = pricing_service.get_current_rate()
        assert rate.price_per_gram == Decimal("100")
        assert rate.persisted

    def test_no_rows_uses_configured_default(self):
        rate = pricing_service.get_current_rate()
        assert rate.price_per_gram == Decimal("80")
        assert rate.source == "default"
        assert not rate.persisted

    def test_save_keeps_single_active_row(self, db_session):
        pricing_service.save_silver_price(90)
        pricing_service.save_silver_price(95)
        active = db_session.query(SilverPrice).filter_by(is_active=True).all()
        assert len(active) == 1
        assert active[0].price_per_gram == Decimal("95")

    def test_refresh_returns_none_when_source_fails(self):
        assert pricing_service.refresh_silver_price() is None


class TestFetchConversion:

    def test_converts_xag_rate_to_inr_per_gram(self, app, monkeypatch):
        monkeypatch.undo()

        class FakeResponse:
            def raise_for_status(self):
                return None

            def json(self):
                # 1 / 0.04 = 25 USD per troy ounce
                return {"rates": {"XAG": 0.04}}

        monkeypatch.setattr(pricing_service.httpx, "get", lambda *a, **kw: FakeResponse())

        fetched = pricing_service.fetch_current_silver_price()
        # 25 / 31.1035 * 83 = 66.71...
        assert fetched["price_per_gram"] == Decimal("66.71")
        assert fetched["currency"] == "INR"

    def test_bad_payload_is_a_fetch_error(self, app, monkeypatch):
        monkeypatch.undo()

        class FakeResponse:
            def raise_for_status(self):
                return None

            def json(self):
                return {"rates": {}}

        monkeypatch.setattr(pricing_service.httpx, "get", lambda *a, **kw: FakeResponse())

        with pytest.raises(pricing_service.RateFetchError):
            pricing_service.fetch_current_silver_price()

    def test_timeout_degrades_to_last_known_row(self, db_session, monkeypatch, silver_rate):
        monkeypatch.undo()
        silver_rate.last_updated = utcnow() - timedelta(days=2)
        db_session.commit()

        def timed_out(*args, **kwargs):
            raise httpx.ReadTimeout("read timed out")

        monkeypatch.setattr(pricing_service.httpx, "get", timed_out)

        with pytest.raises(pricing_service.RateFetchError):
            pricing_service.fetch_current_silver_price()

        rate = pricing_service.get_current_rate()
        assert rate.price_per_gram == Decimal("100")
        assert rate.source == "manual"
        assert db_session.query(SilverPrice).count() == 1


# =============================================================================
# ENDPOINTS
# =============================================================================


class TestPricingEndpoints:

    def test_current_price(self, client, silver_rate):
        resp = client.get("/pricing/silver-price")
        assert resp.status_code == 200
        assert resp.json["data"]["silver_price"]["price_per_gram"] == 100.0

    def test_calculate(self, client, silver_rate):
        resp = client.post("/pricing/calculate", json={
            "silver_weight": 10,
            "labor_percentage": 20,
            "gst_percentage": 18,
        })
        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["breakdown"]["silver_cost"] == 1000.0
        assert data["final_price"] == 1416.0

    def test_calculate_requires_weight(self, client, silver_rate):
        resp = client.post("/pricing/calculate", json={"labor_percentage": 20})
        assert resp.status_code == 400

    def test_admin_set_price(self, client, admin_headers, db_session):
        resp = client.post(
            "/admin/pricing/silver-price",
            json={"price_per_gram": 88.5, "currency": "inr"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        active = pricing_service.get_active_price()
        assert active.source == "manual"
        assert active.currency == "INR"

    def test_buyer_cannot_set_price(self, client, buyer_headers):
        resp = client.post(
            "/admin/pricing/silver-price",
            json={"price_per_gram": 88.5},
            headers=buyer_headers,
        )
        assert resp.status_code == 403

    def test_refresh_failure_is_500(self, client, admin_headers):
        resp = client.post("/admin/pricing/silver-price/refresh", headers=admin_headers)
        assert resp.status_code == 500
        assert resp.json["error"] == "Failed to update silver price"
