# Overview: Razorpay adapter; HMAC-SHA256 signature verification and order creation.

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from decimal import Decimal

import httpx

from ...errors import InternalError, SignatureError, ValidationError
from storefront.money import round_money, to_decimal
from .base import GatewayKind, PaymentGateway, PaymentVerificationResult

logger = logging.getLogger(__name__)


class HmacGateway(PaymentGateway):
    """
    signature = hex(HMAC-SHA256(key_secret, f"{order_creation_id}|{payment_id}"))

    The supplied signature must equal the computed digest exactly.
    """
    kind = GatewayKind.HMAC

    def __init__(self, key_id: str, key_secret: str, api_url: str, timeout: float = 10):
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def sign(self, order_creation_id: str, payment_id: str) -> str:
        if not self.key_secret:
            raise InternalError("Razorpay is not configured")
        message = f"{order_creation_id}|{payment_id}".encode("utf-8")
        return hmac.new(self.key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    def verify(self, payload: dict) -> PaymentVerificationResult:
        order_creation_id = payload.get("order_creation_id")
        payment_id = payload.get("razorpay_payment_id")
        signature = payload.get("razorpay_signature")

        if not signature:
            raise SignatureError("Transaction not legit!")
        if not order_creation_id or not payment_id:
            raise SignatureError("Transaction not legit!")

        expected = self.sign(str(order_creation_id), str(payment_id))
        if not hmac.compare_digest(expected, str(signature)):
            logger.warning("razorpay signature mismatch for order_creation_id=%s", order_creation_id)
            raise SignatureError("Transaction not legit!")

        return PaymentVerificationResult(
            success=True,
            gateway_order_id=str(order_creation_id),
            transaction_id=str(payment_id),
            raw_status="verified",
            order_ref=str(payload["order_id"]) if payload.get("order_id") is not None else None,
        )

    def create_order(self, amount, currency: str = "INR", receipt: str | None = None,
                     notes: dict | None = None) -> dict:
        """Create a Razorpay order; amount is in rupees and sent as integer paise."""
        try:
            amount = round_money(to_decimal(amount))
        except ValueError:
            raise ValidationError("Valid amount is required")
        if amount <= 0:
            raise ValidationError("Valid amount is required")
        if not self.key_id or not self.key_secret:
            raise InternalError("Razorpay is not configured")

        body = {
            "amount": int(amount * Decimal(100)),
            "currency": (currency or "INR").upper(),
            "receipt": receipt or f"rcpt_{int(time.time() * 1000)}",
            "notes": notes or {},
        }
        try:
            response = httpx.post(
                f"{self.api_url}/orders",
                json=body,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            logger.error("razorpay order creation failed: %s", exc)
            raise InternalError("Error creating Razorpay order")
