# Overview: Stripe adapter; webhook signature verification and payment intents.

from __future__ import annotations

import logging
from decimal import Decimal

import stripe

from ...errors import InternalError, SignatureError, ValidationError
from storefront.money import round_money, to_decimal
from .base import GatewayKind, PaymentGateway, PaymentVerificationResult

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
HANDLED_EVENTS = (PAYMENT_SUCCEEDED, PAYMENT_FAILED)

GUEST_USER_REF = "guest"


class WebhookGateway(PaymentGateway):
    """
    Events are authenticated with stripe.Webhook.construct_event against the
    endpoint secret. Payment intents carry our order id and buyer reference
    ("guest" for guest orders) in metadata.
    """
    kind = GatewayKind.WEBHOOK

    def __init__(self, secret_key: str, webhook_secret: str):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    def construct_event(self, raw_body: bytes, signature_header: str | None):
        if not self.webhook_secret:
            raise InternalError("Stripe webhook secret is not configured")
        if not signature_header:
            raise SignatureError("Webhook signature verification failed")
        try:
            return stripe.Webhook.construct_event(raw_body, signature_header, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            logger.warning("stripe webhook rejected: %s", exc)
            raise SignatureError("Webhook signature verification failed")

    def verify(self, payload: dict) -> PaymentVerificationResult:
        """
        payload: {"raw_body": bytes, "signature": header value}.

        success is True only for payment_intent.succeeded. Events we do not
        handle come back with success=False and their type in raw_status.
        """
        event = self.construct_event(payload.get("raw_body") or b"", payload.get("signature"))
        event_type = event["type"]
        intent = event["data"]["object"]

        if event_type not in HANDLED_EVENTS:
            return PaymentVerificationResult(success=False, raw_status=event_type)

        metadata = intent.get("metadata") or {}
        amount = intent.get("amount")

        return PaymentVerificationResult(
            success=event_type == PAYMENT_SUCCEEDED,
            gateway_order_id=intent.get("id"),
            transaction_id=intent.get("id"),
            amount=(Decimal(amount) / 100) if amount is not None else None,
            raw_status=event_type,
            order_ref=metadata.get("orderId") or None,
            metadata={"user_ref": metadata.get("userId") or GUEST_USER_REF},
        )

    def create_payment_intent(self, amount, currency: str = "inr", order_id: int | None = None,
                              user_ref: str = GUEST_USER_REF) -> dict:
        try:
            amount = round_money(to_decimal(amount))
        except ValueError:
            raise ValidationError("Valid amount is required")
        if amount <= 0:
            raise ValidationError("Valid amount is required")
        if not self.secret_key:
            raise InternalError("Stripe is not configured")

        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.secret_key,
                amount=int(amount * Decimal(100)),
                currency=(currency or "inr").lower(),
                metadata={
                    "orderId": str(order_id) if order_id is not None else "",
                    "userId": user_ref,
                },
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as exc:
            logger.error("stripe payment intent creation failed: %s", exc)
            raise InternalError("Error creating payment intent")

        return {"client_secret": intent["client_secret"], "payment_intent_id": intent["id"]}
