# Overview: Service-layer operations for email; order confirmation and payment receipt dispatch.

"""
Outbound order mail.

Fire-and-forget: every public function logs failures and returns False
instead of raising, so a mail outage never fails an order or a payment.
Without MAIL_SERVER configured, messages are written to the log only.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from flask import current_app

from storefront.money import as_float

logger = logging.getLogger(__name__)


def _deliver(to_address: str, subject: str, body: str) -> bool:
    cfg = current_app.config
    if not to_address:
        logger.warning("email '%s' skipped: no recipient", subject)
        return False

    if not cfg.get("MAIL_SERVER"):
        logger.info("email (not sent, MAIL_SERVER unset) to=%s subject=%s", to_address, subject)
        return False

    message = EmailMessage()
    message["From"] = cfg.get("MAIL_DEFAULT_SENDER")
    message["To"] = to_address
    message["Subject"] = subject
    message.set_content(body)

    try:
        with smtplib.SMTP(cfg["MAIL_SERVER"], cfg.get("MAIL_PORT", 587), timeout=10) as smtp:
            if cfg.get("MAIL_USE_TLS"):
                smtp.starttls()
            if cfg.get("MAIL_USERNAME"):
                smtp.login(cfg["MAIL_USERNAME"], cfg.get("MAIL_PASSWORD", ""))
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError):
        logger.exception("failed to send email to %s (%s)", to_address, subject)
        return False

    logger.info("email sent to=%s subject=%s", to_address, subject)
    return True


def _line_summary(lines) -> str:
    rows = []
    for line in lines:
        rows.append(f"  product #{line.product_id} x {line.quantity} @ {as_float(line.unit_price):.2f}")
    return "\n".join(rows)


def send_order_confirmation(order, user) -> bool:
    try:
        subject = f"Order #{order.id} confirmed"
        body = (
            f"Hi {user.name},\n\n"
            f"Thank you for your order #{order.id}.\n\n"
            f"{_line_summary(order.lines)}\n\n"
            f"Total: {as_float(order.amount_due):.2f}\n"
            f"Payment: {order.payment_mode} ({order.payment_status})\n"
        )
        return _deliver(order.ship_email or user.email, subject, body)
    except Exception:
        logger.exception("order confirmation for order %s failed", getattr(order, "id", None))
        return False


def send_payment_received(order, user) -> bool:
    """Sent once payment_status reaches COMPLETE; placement has its own mail."""
    try:
        subject = f"Payment received for order #{order.id}"
        body = (
            f"Hi {user.name},\n\n"
            f"We have received {as_float(order.total_amount_paid):.2f} for order #{order.id}.\n"
            f"Your order is being prepared for dispatch.\n"
        )
        return _deliver(order.ship_email or user.email, subject, body)
    except Exception:
        logger.exception("payment receipt for order %s failed", getattr(order, "id", None))
        return False


def send_guest_order_confirmation(guest_order) -> bool:
    try:
        client_url = current_app.config.get("CLIENT_URL", "")
        subject = f"Order #{guest_order.id} confirmed"
        body = (
            f"Hi {guest_order.guest_first_name},\n\n"
            f"Thank you for your order #{guest_order.id}.\n\n"
            f"{_line_summary(guest_order.lines)}\n\n"
            f"Subtotal: {as_float(guest_order.subtotal):.2f}\n"
            f"GST: {as_float(guest_order.gst_amount):.2f}\n"
            f"Discount: {as_float(guest_order.discount):.2f}\n"
            f"Total: {as_float(guest_order.final_amount):.2f}\n\n"
            f"Create an account to track this order:\n"
            f"{client_url}/convert-account?token={guest_order.conversion_token}\n"
        )
        return _deliver(guest_order.guest_email, subject, body)
    except Exception:
        logger.exception("guest order confirmation for order %s failed", getattr(guest_order, "id", None))
        return False
