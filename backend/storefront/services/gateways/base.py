# Overview: Shared types for payment gateway adapters.

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class GatewayKind(str, Enum):
    """Closed set of verification schemes."""
    HMAC = "HMAC"          # Razorpay: HMAC-SHA256 over "order_id|payment_id"
    WEBHOOK = "WEBHOOK"    # Stripe: signed webhook events
    CIPHER = "CIPHER"      # CCAvenue: AES-128-CBC encrypted callback


@dataclass(frozen=True)
class PaymentVerificationResult:
    """
    Provider-neutral outcome of verifying one payment callback.

    success is the provider's verdict on the payment itself; authenticity
    failures never produce a result, they raise SignatureError instead.
    order_ref is our order id as echoed back by the provider, when it has one.
    """
    success: bool
    gateway_order_id: str | None = None
    transaction_id: str | None = None
    amount: Decimal | None = None
    raw_status: str | None = None
    order_ref: str | None = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "gateway_order_id": self.gateway_order_id,
            "transaction_id": self.transaction_id,
            "amount": float(self.amount) if self.amount is not None else None,
            "raw_status": self.raw_status,
            "order_ref": self.order_ref,
        }


class PaymentGateway:
    kind: GatewayKind

    def verify(self, payload) -> PaymentVerificationResult:
        raise NotImplementedError
