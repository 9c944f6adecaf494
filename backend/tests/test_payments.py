"""
Payment callback tests.

Verifies:
- Razorpay: HMAC verification, duplicate confirmations take stock once,
  a bad signature changes nothing, a bound order only accepts its own
  Razorpay order
- Stripe: webhook events drive completion and failure, unhandled events are
  acknowledged, unsigned bodies are rejected
- CCAvenue: fixed cipher vector, UTF-8 round trips, encrypted request URL,
  Success/Aborted callbacks and redirects
"""

import base64

import pytest
import stripe

from storefront.config import TestConfig
from storefront.models import InventoryMovement, Order
from storefront.services import guest_service, order_service
from storefront.services.gateways import HmacGateway, cipher_gateway


def _place(buyer, product, quantity=2):
    return order_service.place_order(buyer.id, [{"product_id": product.id, "quantity": quantity}])


def _rzp_payload(order_id, payment_id="pay_TEST123", creation_id="order_TEST123"):
    gateway = HmacGateway(TestConfig.RAZORPAY_KEY_ID, TestConfig.RAZORPAY_KEY_SECRET, "")
    return {
        "order_id": order_id,
        "order_creation_id": creation_id,
        "razorpay_order_id": creation_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": gateway.sign(creation_id, payment_id),
    }


# =============================================================================
# RAZORPAY
# =============================================================================


class TestRazorpay:

    def test_verified_payment_completes_order(self, client, db_session, buyer, buyer_headers, product, stocked):
        order = _place(buyer, product)
        resp = client.post("/rzp/payment-verification", json=_rzp_payload(order.id), headers=buyer_headers)

        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["completed"] is True
        assert data["order"]["payment_status"] == "COMPLETE"
        assert data["order"]["rzp_payment_id"] == "pay_TEST123"
        assert data["order"]["total_amount_paid"] == 1000.0

        db_session.refresh(stocked)
        assert stocked.current_stock == 18

    def test_duplicate_confirmation_takes_stock_once(self, client, db_session, buyer, buyer_headers, product, stocked):
        order = _place(buyer, product)
        payload = _rzp_payload(order.id)

        first = client.post("/rzp/payment-verification", json=payload, headers=buyer_headers)
        second = client.post("/rzp/payment-verification", json=payload, headers=buyer_headers)

        assert first.json["data"]["completed"] is True
        assert second.status_code == 200
        assert second.json["data"]["completed"] is False
        assert second.json["data"]["message"] == "Payment already recorded for this order."

        db_session.refresh(stocked)
        assert stocked.current_stock == 18
        outs = db_session.query(InventoryMovement).filter_by(type="OUT", order_id=order.id).count()
        assert outs == 1

    def test_bad_signature_changes_nothing(self, client, db_session, buyer, buyer_headers, product, stocked):
        order = _place(buyer, product)
        payload = _rzp_payload(order.id)
        payload["razorpay_signature"] = "0" * 64

        resp = client.post("/rzp/payment-verification", json=payload, headers=buyer_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Transaction not legit!"

        assert db_session.get(Order, order.id).payment_status == "PENDING"
        db_session.refresh(stocked)
        assert stocked.current_stock == 20

    def test_anonymous_caller_cannot_verify_user_order(self, client, buyer, product):
        order = _place(buyer, product)
        resp = client.post("/rzp/payment-verification", json=_rzp_payload(order.id))
        assert resp.status_code == 401

    def test_other_buyer_cannot_verify(self, client, buyer, other_headers, product):
        order = _place(buyer, product)
        resp = client.post("/rzp/payment-verification", json=_rzp_payload(order.id), headers=other_headers)
        assert resp.status_code == 403

    def test_create_order_sends_paise(self, client, monkeypatch):
        sent = {}

        class FakeResponse:
            def raise_for_status(self):
                return None

            def json(self):
                return {"id": "order_ABC", "amount": sent["json"]["amount"]}

        def fake_post(url, json=None, auth=None, timeout=None):
            sent.update(url=url, json=json, auth=auth)
            return FakeResponse()

        from storefront.services.gateways import hmac_gateway
        monkeypatch.setattr(hmac_gateway.httpx, "post", fake_post)

        resp = client.post("/rzp/create-order", json={"amount": 499.5})
        assert resp.status_code == 200
        assert sent["json"]["amount"] == 49950
        assert sent["json"]["currency"] == "INR"
        assert sent["url"].endswith("/orders")

    def test_create_order_binds_pending_order(self, client, db_session, buyer, buyer_headers, product, monkeypatch):
        order = _place(buyer, product)

        class FakeResponse:
            def raise_for_status(self):
                return None

            def json(self):
                return {"id": "order_BOUND1", "amount": 100000}

        from storefront.services.gateways import hmac_gateway
        monkeypatch.setattr(hmac_gateway.httpx, "post", lambda *a, **kw: FakeResponse())

        resp = client.post(
            "/rzp/create-order",
            json={"amount": 1000, "order_id": order.id},
            headers=buyer_headers,
        )
        assert resp.status_code == 200
        assert db_session.get(Order, order.id).rzp_order_id == "order_BOUND1"

    def test_signature_for_other_razorpay_order_rejected(self, client, db_session, buyer, buyer_headers,
                                                         product, stocked):
        order = _place(buyer, product)
        order_service.bind_gateway_order(order.id, {"rzp_order_id": "order_BOUND1"})

        payload = _rzp_payload(order.id, creation_id="order_ELSEWHERE")
        resp = client.post("/rzp/payment-verification", json=payload, headers=buyer_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Transaction not legit!"

        assert db_session.get(Order, order.id).payment_status == "PENDING"
        db_session.refresh(stocked)
        assert stocked.current_stock == 20

    def test_bound_order_completes_with_its_razorpay_order(self, client, db_session, buyer, buyer_headers,
                                                          product, stocked):
        order = _place(buyer, product)
        order_service.bind_gateway_order(order.id, {"rzp_order_id": "order_BOUND1"})

        payload = _rzp_payload(order.id, creation_id="order_BOUND1")
        resp = client.post("/rzp/payment-verification", json=payload, headers=buyer_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["completed"] is True
        db_session.refresh(stocked)
        assert stocked.current_stock == 18

    def test_binding_requires_the_buyer(self, client, buyer, other_headers, product):
        order = _place(buyer, product)
        resp = client.post(
            "/rzp/create-order",
            json={"amount": 1000, "order_id": order.id},
            headers=other_headers,
        )
        assert resp.status_code == 403


# =============================================================================
# STRIPE
# =============================================================================


def _event(event_type, order_id, user_ref, amount=100000, intent_id="pi_TEST123"):
    return {
        "type": event_type,
        "data": {
            "object": {
                "id": intent_id,
                "amount": amount,
                "metadata": {"orderId": str(order_id), "userId": user_ref},
            }
        },
    }


@pytest.fixture
def stripe_event(monkeypatch):
    """Make construct_event accept any signature and return the queued event."""
    queued = {}

    def fake_construct_event(payload, sig_header, secret, *args, **kwargs):
        assert secret == TestConfig.STRIPE_WEBHOOK_SECRET
        return queued["event"]

    monkeypatch.setattr(stripe.Webhook, "construct_event", fake_construct_event)

    def _queue(event):
        queued["event"] = event

    return _queue


class TestStripe:

    def _post(self, client):
        return client.post(
            "/stripe/webhook",
            data=b'{"id": "evt_test"}',
            headers={"Stripe-Signature": "t=1,v1=test", "Content-Type": "application/json"},
        )

    def test_succeeded_completes_order(self, client, db_session, buyer, product, stocked, stripe_event):
        order = _place(buyer, product)
        stripe_event(_event("payment_intent.succeeded", order.id, str(buyer.id)))

        resp = self._post(client)
        assert resp.status_code == 200
        assert resp.json["data"] == {"received": True, "handled": True}

        order = db_session.get(Order, order.id)
        assert order.payment_status == "COMPLETE"
        assert order.stripe_payment_id == "pi_TEST123"
        assert float(order.total_amount_paid) == 1000.0
        db_session.refresh(stocked)
        assert stocked.current_stock == 18

    def test_redelivery_is_a_no_op(self, client, db_session, buyer, product, stocked, stripe_event):
        order = _place(buyer, product)
        stripe_event(_event("payment_intent.succeeded", order.id, str(buyer.id)))
        self._post(client)
        self._post(client)

        db_session.refresh(stocked)
        assert stocked.current_stock == 18

    def test_redelivery_after_admin_reset_takes_stock_once(self, client, db_session, buyer, admin, product,
                                                           stocked, stripe_event):
        order = _place(buyer, product)
        stripe_event(_event("payment_intent.succeeded", order.id, str(buyer.id)))
        self._post(client)

        order_service.admin_update_order(order.id, payment_status="PENDING", actor_id=admin.id)
        resp = self._post(client)
        assert resp.json["data"]["handled"] is True

        assert db_session.get(Order, order.id).payment_status == "COMPLETE"
        db_session.refresh(stocked)
        assert stocked.current_stock == 18

    def test_failed_marks_order_failed(self, client, db_session, buyer, product, stripe_event):
        order = _place(buyer, product)
        stripe_event(_event("payment_intent.payment_failed", order.id, str(buyer.id)))

        self._post(client)
        assert db_session.get(Order, order.id).payment_status == "FAILED"

    def test_unhandled_event_is_acknowledged(self, client, stripe_event):
        stripe_event({"type": "charge.refunded", "data": {"object": {"id": "ch_1"}}})
        resp = self._post(client)
        assert resp.status_code == 200
        assert resp.json["data"]["handled"] is False

    def test_unknown_order_is_acknowledged(self, client, buyer, stripe_event):
        stripe_event(_event("payment_intent.succeeded", 987654, str(buyer.id)))
        resp = self._post(client)
        assert resp.status_code == 200
        assert resp.json["data"]["handled"] is False

    def test_guest_order_marked_paid(self, client, db_session, product, stocked, stripe_event):
        guest_order, _ = guest_service.place_guest_order(
            {"first_name": "Meera", "email": "meera@example.com", "phone_number": "9000000000"},
            [{"product_id": product.id, "quantity": 1}],
            {"address": "4 Lake Road", "city": "Udaipur", "state": "Rajasthan", "pincode": "313001"},
        )
        stripe_event(_event("payment_intent.succeeded", guest_order.id, "guest"))

        self._post(client)
        db_session.refresh(guest_order)
        assert guest_order.payment_status == "COMPLETE"
        assert guest_order.payment_gateway == "STRIPE"
        db_session.refresh(stocked)
        assert stocked.current_stock == 19

    def test_missing_signature_rejected(self, client):
        resp = client.post("/stripe/webhook", data=b"{}")
        assert resp.status_code == 400

    def test_invalid_signature_rejected(self, client):
        resp = client.post(
            "/stripe/webhook",
            data=b'{"type": "payment_intent.succeeded"}',
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )
        assert resp.status_code == 400

    def test_create_payment_intent(self, client, buyer, buyer_headers, product, monkeypatch):
        order = _place(buyer, product)
        captured = {}

        def fake_create(**kwargs):
            captured.update(kwargs)
            return {"client_secret": "pi_TEST_secret_abc", "id": "pi_TEST"}

        monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

        resp = client.post(
            "/stripe/create-payment-intent",
            json={"amount": 1000, "currency": "INR", "order_id": order.id},
            headers=buyer_headers,
        )
        assert resp.status_code == 200
        assert resp.json["data"]["client_secret"] == "pi_TEST_secret_abc"
        assert captured["amount"] == 100000
        assert captured["currency"] == "inr"
        assert captured["metadata"] == {"orderId": str(order.id), "userId": str(buyer.id)}


# =============================================================================
# CCAVENUE
# =============================================================================


def _encrypted_response(**fields):
    plaintext = "&".join(f"{k}={v}" for k, v in fields.items())
    return cipher_gateway.encrypt(plaintext, cipher_gateway.derive_key(TestConfig.CCAVENUE_WORKING_KEY))


class TestCipher:

    # openssl enc -aes-128-cbc -K $(md5 of the test working key) -iv 000102030405060708090a0b0c0d0e0f
    KNOWN_PLAINTEXT = "order_id=42&order_status=Success"
    KNOWN_CIPHERTEXT = (
        "e6d353f97e8246495caad3a2696864745ca98b61b9afa9902627b5a947603c06"
        "739a2fa4a6176ff809220736915e811a"
    )

    def _key(self):
        return cipher_gateway.derive_key(TestConfig.CCAVENUE_WORKING_KEY)

    def test_key_is_md5_of_working_key(self):
        assert base64.b64decode(self._key()).hex() == "766f6dbcdecde010ffccc0c2c73e03aa"

    def test_known_vector(self):
        assert cipher_gateway.encrypt(self.KNOWN_PLAINTEXT, self._key()) == self.KNOWN_CIPHERTEXT
        assert cipher_gateway.decrypt(self.KNOWN_CIPHERTEXT, self._key()) == self.KNOWN_PLAINTEXT

    @pytest.mark.parametrize("plaintext", [
        "",
        "billing_name=Asha Verma&billing_city=Jaipur",
        "billing_name=आशा वर्मा&billing_address=हवा महल, जयपुर",
        "delivery_name=Zoë Ångström&note=₹1,180 paid ✓",
        "emoji=💍🪙&metal=silver",
    ])
    def test_utf8_round_trip(self, plaintext):
        enc = cipher_gateway.encrypt(plaintext, self._key())
        assert len(enc) % 32 == 0
        assert cipher_gateway.decrypt(enc, self._key()) == plaintext


class TestCCAvenue:

    def test_request_handler_encrypts_form(self, client):
        body = "merchant_id=123&order_id=42&amount=1000.00&currency=INR"
        resp = client.post("/ccavenuerequesthandler", data=body, content_type="text/plain")
        assert resp.status_code == 200

        url = resp.json["data"]["url"]
        assert url.startswith(TestConfig.CCAVENUE_TRANSACTION_URL + "&encRequest=")
        assert url.endswith("&access_code=TESTACCESSCODE")

        enc = url.split("&encRequest=", 1)[1].split("&access_code=", 1)[0]
        key = cipher_gateway.derive_key(TestConfig.CCAVENUE_WORKING_KEY)
        assert cipher_gateway.decrypt(enc, key) == body

    def test_create_order(self, client, buyer_headers, product):
        resp = client.post(
            "/ccavenue-createOrder",
            json={"lines": [{"product_id": product.id, "quantity": 1}]},
            headers=buyer_headers,
        )
        assert resp.status_code == 201
        assert resp.json["data"]["order"]["payment_mode"] == "ONLINE"

    def test_success_redirects_and_completes(self, client, db_session, buyer, product, stocked):
        order = _place(buyer, product)
        enc = _encrypted_response(
            order_id=order.id,
            tracking_id="3100001",
            bank_ref_no="BRN42",
            order_status="Success",
            amount="1000.00",
            currency="INR",
        )

        resp = client.post("/ccavenueresponsehandler", data={"encResp": enc})
        assert resp.status_code == 301
        assert resp.headers["Location"] == TestConfig.CCAVENUE_SUCCESS_URL

        order = db_session.get(Order, order.id)
        assert order.payment_status == "COMPLETE"
        assert order.cc_bank_ref_no == "BRN42"
        db_session.refresh(stocked)
        assert stocked.current_stock == 18

    def test_aborted_deletes_pending_order(self, client, db_session, buyer, product, stocked):
        order = _place(buyer, product)
        order_id = order.id
        enc = _encrypted_response(order_id=order_id, order_status="Aborted")

        resp = client.post("/ccavenueresponsehandler", data={"encResp": enc})
        assert resp.status_code == 301
        assert resp.headers["Location"] == TestConfig.CCAVENUE_CANCEL_URL

        db_session.expire_all()
        assert db_session.get(Order, order_id) is None
        db_session.refresh(stocked)
        assert stocked.current_stock == 20

    def test_other_status_leaves_order(self, client, db_session, buyer, product):
        order = _place(buyer, product)
        enc = _encrypted_response(order_id=order.id, order_status="Failure")

        resp = client.post("/ccavenueresponsehandler", data={"encResp": enc})
        assert resp.headers["Location"] == TestConfig.CCAVENUE_DEFAULT_URL
        assert db_session.get(Order, order.id).payment_status == "PENDING"

    def test_garbage_ciphertext_rejected(self, client):
        resp = client.post("/ccavenueresponsehandler", data={"encResp": "not-hex"})
        assert resp.status_code == 400

    def test_missing_body_rejected(self, client):
        resp = client.post("/ccavenueresponsehandler", data={})
        assert resp.status_code == 400
