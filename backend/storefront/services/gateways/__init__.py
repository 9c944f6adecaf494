# Overview: Payment gateway adapters selected by GatewayKind.

from flask import current_app

from .base import GatewayKind, PaymentGateway, PaymentVerificationResult
from .cipher_gateway import CipherGateway
from .hmac_gateway import HmacGateway
from .webhook_gateway import WebhookGateway


def get_gateway(kind: GatewayKind) -> PaymentGateway:
    """Adapter for kind, configured from the current app."""
    cfg = current_app.config
    if kind == GatewayKind.HMAC:
        return HmacGateway(
            cfg.get("RAZORPAY_KEY_ID", ""),
            cfg.get("RAZORPAY_KEY_SECRET", ""),
            cfg.get("RAZORPAY_API_URL", "https://api.razorpay.com/v1"),
        )
    if kind == GatewayKind.WEBHOOK:
        return WebhookGateway(cfg.get("STRIPE_SECRET_KEY", ""), cfg.get("STRIPE_WEBHOOK_SECRET", ""))
    if kind == GatewayKind.CIPHER:
        return CipherGateway(
            cfg.get("CCAVENUE_WORKING_KEY", ""),
            cfg.get("CCAVENUE_ACCESS_CODE", ""),
            cfg["CCAVENUE_TRANSACTION_URL"],
        )
    raise ValueError(f"unknown gateway kind: {kind!r}")


__all__ = [
    "GatewayKind",
    "PaymentGateway",
    "PaymentVerificationResult",
    "HmacGateway",
    "WebhookGateway",
    "CipherGateway",
    "get_gateway",
]
