"""
Guest checkout and conversion tests.

Verifies:
- Placement pricing (GST-inclusive unit prices, coupon, totals)
- Lookup requires the matching email
- Paid guest orders take stock once
- Conversion is single use, expires, re-homes the order and carries loyalty
- Payment arriving after conversion completes the converted order
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.errors import ConflictError, NotFoundError, ValidationError
from storefront.models import GuestOrder, InventoryMovement, Order, PointsTransaction, User
from storefront.services import guest_service, order_service
from storefront.time_utils import utcnow

GUEST = {"first_name": "Meera", "last_name": "Shah", "email": "Meera@Example.com", "phone_number": "9000000000"}
ADDRESS = {"address": "4 Lake Road", "city": "Udaipur", "state": "Rajasthan", "pincode": "313001"}


def _place(product, quantity=2, **kwargs):
    return guest_service.place_guest_order(
        dict(GUEST),
        [{"product_id": product.id, "quantity": quantity}],
        dict(ADDRESS),
        **kwargs,
    )


# =============================================================================
# PLACEMENT
# =============================================================================


class TestGuestPlacement:

    def test_place_via_api(self, client, product):
        resp = client.post("/guest/order/place", json={
            "guest_info": GUEST,
            "lines": [{"product_id": product.id, "quantity": 2}],
            "shipping_address": ADDRESS,
        })
        assert resp.status_code == 201
        data = resp.json["data"]
        assert len(data["conversion_token"]) == 64

        order = data["order"]
        assert order["guest_info"]["email"] == "meera@example.com"
        assert order["payment_info"]["status"] == "PENDING"
        assert order["billing_address"]["same_as_shipping"] is True
        # 500 + 18% GST = 590 per unit
        assert order["lines"][0]["unit_price"] == 590.0
        assert order["order_total"]["subtotal"] == 1180.0
        assert order["order_total"]["gst_amount"] == 180.0
        assert order["order_total"]["final_amount"] == 1180.0

    def test_static_price_preferred_over_sale_price(self, make_product):
        product = make_product(sale_price=500, static_price=1000, gst_percentage=3)
        guest_order, _ = _place(product, quantity=1)
        assert guest_order.lines[0].unit_price == Decimal("1030.00")

    def test_dynamic_product(self, make_product, silver_rate):
        product = make_product(is_dynamic_pricing=True, silver_weight=10, labor_percentage=20, gst_percentage=18)
        guest_order, _ = _place(product, quantity=1)
        line = guest_order.lines[0]
        assert line.silver_cost == Decimal("1000.00")
        assert line.labor_cost == Decimal("200.00")
        assert line.unit_gst_amount == Decimal("216.00")
        assert line.unit_price == Decimal("1416.00")

    def test_coupon_reduces_final_amount(self, product, coupon):
        guest_order, _ = _place(product, coupon_code="SAVE10")
        assert guest_order.discount == Decimal("118.00")
        assert guest_order.final_amount == Decimal("1062.00")

    def test_separate_billing_address(self, product):
        billing = {"address": "9 Fort Lane", "city": "Jodhpur", "state": "Rajasthan", "pincode": "342001"}
        guest_order, _ = _place(product, billing_address=billing)
        assert not guest_order.bill_same_as_shipping
        assert guest_order.bill_city == "Jodhpur"

    def test_requires_guest_info(self, product):
        with pytest.raises(ValidationError):
            guest_service.place_guest_order(None, [{"product_id": product.id, "quantity": 1}], ADDRESS)

    def test_requires_lines(self):
        with pytest.raises(ValidationError):
            guest_service.place_guest_order(GUEST, [], ADDRESS)

    def test_requires_complete_address(self, product):
        with pytest.raises(ValidationError):
            guest_service.place_guest_order(GUEST, [{"product_id": product.id, "quantity": 1}], {"city": "Udaipur"})

    def test_rejects_bad_email(self, product):
        with pytest.raises(ValidationError):
            guest_service.place_guest_order(
                {**GUEST, "email": "not-an-email"}, [{"product_id": product.id, "quantity": 1}], ADDRESS
            )


class TestGuestLookup:

    def test_lookup_with_matching_email(self, client, product):
        guest_order, _ = _place(product)
        resp = client.get(f"/guest/order/{guest_order.id}/MEERA@example.com")
        assert resp.status_code == 200
        assert resp.json["data"]["order"]["id"] == guest_order.id

    def test_wrong_email_is_404(self, client, product):
        guest_order, _ = _place(product)
        resp = client.get(f"/guest/order/{guest_order.id}/someone@example.com")
        assert resp.status_code == 404

    def test_unknown_order(self):
        with pytest.raises(NotFoundError):
            guest_service.get_guest_order(123456, "meera@example.com")


# =============================================================================
# PAYMENT
# =============================================================================


class TestGuestPayment:

    def test_paid_once(self, db_session, product, stocked):
        guest_order, _ = _place(product)

        assert guest_service.mark_guest_order_paid(guest_order.id, "RAZORPAY", "pay_G1") is True
        assert guest_service.mark_guest_order_paid(guest_order.id, "RAZORPAY", "pay_G1") is False

        db_session.refresh(stocked)
        assert stocked.current_stock == 18
        movement = db_session.query(InventoryMovement).filter_by(type="OUT").one()
        assert movement.reason == f"Guest order {guest_order.id} fulfillment"
        assert movement.order_id is None

    def test_failed_is_not_overwritten_by_late_success(self, db_session, product):
        guest_order, _ = _place(product)
        assert guest_service.mark_guest_order_failed(guest_order.id, "STRIPE", "pi_1")
        assert not guest_service.mark_guest_order_paid(guest_order.id, "STRIPE", "pi_1")
        db_session.refresh(guest_order)
        assert guest_order.payment_status == "FAILED"

    def test_unknown_order(self):
        with pytest.raises(NotFoundError):
            guest_service.mark_guest_order_paid(424242, "RAZORPAY")


# =============================================================================
# CONVERSION
# =============================================================================


class TestConversion:

    def test_convert_via_api(self, client, db_session, product):
        guest_order, token = _place(product)

        resp = client.post("/guest/convert-to-user", json={
            "token": token, "password": "Password123", "name": "Meera Shah",
        })
        assert resp.status_code == 201
        data = resp.json["data"]
        assert data["user"]["email"] == "meera@example.com"
        assert data["user"]["shipping_address"]["city"] == "Udaipur"
        assert data["order"]["lines"][0]["unit_price"] == 590.0
        assert data["order"]["order_price"] == 1180.0

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.status_code == 200

        db_session.refresh(guest_order)
        assert guest_order.converted_to_user_id == data["user"]["id"]
        assert guest_order.converted_order_id == data["order"]["id"]

    def test_token_is_single_use(self, db_session, product):
        _, token = _place(product)
        guest_service.convert_guest_to_user(token, "Password123", "Meera Shah")

        with pytest.raises(ConflictError):
            guest_service.convert_guest_to_user(token, "Password123", "Meera Shah")
        assert db_session.query(User).filter_by(email="meera@example.com").count() == 1

    def test_second_use_via_api_is_400(self, client, product):
        _, token = _place(product)
        body = {"token": token, "password": "Password123", "name": "Meera Shah"}
        assert client.post("/guest/convert-to-user", json=body).status_code == 201
        resp = client.post("/guest/convert-to-user", json=body)
        assert resp.status_code == 400
        assert resp.json["error"] == "Invalid or expired token"

    def test_expired_token(self, db_session, product):
        guest_order, token = _place(product)
        guest_order.conversion_token_expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        with pytest.raises(ConflictError):
            guest_service.convert_guest_to_user(token, "Password123", "Meera Shah")

    def test_existing_account_releases_claim(self, db_session, product):
        from storefront.services.auth_service import create_user

        guest_order, token = _place(product)
        create_user("Meera", "meera@example.com", "Password123")

        with pytest.raises(ConflictError):
            guest_service.convert_guest_to_user(token, "Password123", "Meera Shah")

        db_session.refresh(guest_order)
        assert guest_order.converted_at is None
        assert guest_order.converted_to_user_id is None

    def test_weak_password_keeps_token_usable(self, product):
        _, token = _place(product)
        with pytest.raises(ValidationError):
            guest_service.convert_guest_to_user(token, "short", "Meera Shah")
        result = guest_service.convert_guest_to_user(token, "Password123", "Meera Shah")
        assert result["user"].email == "meera@example.com"

    def test_missing_fields(self):
        with pytest.raises(ValidationError):
            guest_service.convert_guest_to_user("", "Password123", "Meera")

    def test_paid_order_converts_without_second_stock_take(self, db_session, product, stocked, loyalty_program):
        guest_order, token = _place(product)
        guest_service.mark_guest_order_paid(guest_order.id, "RAZORPAY", "pay_G2")

        result = guest_service.convert_guest_to_user(token, "Password123", "Meera Shah")
        order = db_session.get(Order, result["order"].id)

        assert order.payment_status == "COMPLETE"
        assert order.inventory_committed
        db_session.refresh(stocked)
        assert stocked.current_stock == 18

        earned = db_session.query(PointsTransaction).filter_by(guest_order_id=guest_order.id).one()
        assert earned.points == 1180

    def test_unpaid_order_earns_nothing(self, db_session, product, loyalty_program):
        guest_order, token = _place(product)
        guest_service.convert_guest_to_user(token, "Password123", "Meera Shah")
        assert db_session.query(PointsTransaction).count() == 0
        assert db_session.get(GuestOrder, guest_order.id).converted_order_id is not None


# =============================================================================
# PAYMENT AFTER CONVERSION
# =============================================================================


class TestPaymentAfterConversion:

    def test_payment_completes_converted_order_once(self, db_session, product, stocked, loyalty_program):
        guest_order, token = _place(product)
        result = guest_service.convert_guest_to_user(token, "Password123", "Meera Shah")
        order_id = result["order"].id

        assert guest_service.mark_guest_order_paid(guest_order.id, "STRIPE", "pi_G3") is True

        order = db_session.get(Order, order_id)
        assert order.payment_status == "COMPLETE"
        assert order.inventory_committed
        assert order.stripe_payment_id == "pi_G3"
        assert float(order.total_amount_paid) == 1180.0

        # a later confirmation aimed at the converted order itself is a no-op
        assert order_service.complete_payment(order_id, {"stripe_payment_id": "pi_G3"}) is False

        db_session.refresh(stocked)
        assert stocked.current_stock == 18
        outs = db_session.query(InventoryMovement).filter_by(type="OUT").all()
        assert len(outs) == 1
        assert outs[0].order_id == order_id

        earned = db_session.query(PointsTransaction).filter_by(order_id=order_id).one()
        assert earned.points == 1180

    def test_admin_completion_after_guest_payment_takes_no_more_stock(self, db_session, admin, product, stocked):
        guest_order, token = _place(product)
        order_id = guest_service.convert_guest_to_user(token, "Password123", "Meera Shah")["order"].id
        guest_service.mark_guest_order_paid(guest_order.id, "RAZORPAY", "pay_G4")

        order_service.admin_update_order(order_id, payment_status="PENDING", actor_id=admin.id)
        order_service.admin_update_order(order_id, payment_status="COMPLETE", actor_id=admin.id)

        db_session.refresh(stocked)
        assert stocked.current_stock == 18
        assert db_session.get(Order, order_id).rzp_payment_id == "pay_G4"

    def test_failure_after_conversion_fails_converted_order(self, db_session, product, stocked):
        guest_order, token = _place(product)
        order_id = guest_service.convert_guest_to_user(token, "Password123", "Meera Shah")["order"].id

        assert guest_service.mark_guest_order_failed(guest_order.id, "STRIPE", "pi_G5")

        assert db_session.get(Order, order_id).payment_status == "FAILED"
        db_session.refresh(stocked)
        assert stocked.current_stock == 20
