# Overview: CCAvenue adapter; AES-128-CBC encrypted request and response bodies.

"""
Fixed shared-secret scheme:
- key: MD5(working_key), 16 raw bytes, carried base64-encoded
- IV:  bytes 0x00..0x0f, carried base64-encoded
- ciphertext: hex string, PKCS7 padding

A decrypted response is "k1=v1&k2=v2..." with URL-encoded values.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
from urllib.parse import unquote

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ...errors import InternalError, SignatureError
from storefront.money import to_decimal
from .base import GatewayKind, PaymentGateway, PaymentVerificationResult

logger = logging.getLogger(__name__)

FIXED_IV = base64.b64encode(bytes(range(16))).decode("ascii")

STATUS_SUCCESS = "Success"
STATUS_ABORTED = "Aborted"


def derive_key(working_key: str) -> str:
    return base64.b64encode(hashlib.md5(working_key.encode("utf-8")).digest()).decode("ascii")


def _cipher(key_b64: str, iv_b64: str) -> Cipher:
    return Cipher(algorithms.AES(base64.b64decode(key_b64)), modes.CBC(base64.b64decode(iv_b64)))


def encrypt(plaintext: str, key_b64: str, iv_b64: str = FIXED_IV) -> str:
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = _cipher(key_b64, iv_b64).encryptor()
    return (encryptor.update(padded) + encryptor.finalize()).hex()


def decrypt(ciphertext_hex: str, key_b64: str, iv_b64: str = FIXED_IV) -> str:
    """Raises SignatureError when the body is not valid ciphertext for this key."""
    try:
        raw = bytes.fromhex((ciphertext_hex or "").strip())
        if not raw or len(raw) % 16:
            raise ValueError("ciphertext length is not a multiple of the block size")
        decryptor = _cipher(key_b64, iv_b64).decryptor()
        padded = decryptor.update(raw) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plain = unpadder.update(padded) + unpadder.finalize()
        return plain.decode("utf-8")
    except (ValueError, binascii.Error, UnicodeDecodeError) as exc:
        logger.warning("ccavenue response could not be decrypted: %s", exc)
        raise SignatureError("Invalid encrypted response")


def parse_response(plaintext: str) -> dict:
    """'order_id=12&order_status=Success&billing_name=A%20B' -> dict of decoded values."""
    data = {}
    for pair in plaintext.split("&"):
        if not pair:
            continue
        key, _, value = pair.partition("=")
        data[unquote(key)] = unquote(value)
    return data


class CipherGateway(PaymentGateway):
    kind = GatewayKind.CIPHER

    def __init__(self, working_key: str, access_code: str, transaction_url: str):
        if not working_key:
            raise InternalError("CCAvenue is not configured")
        self.key = derive_key(working_key)
        self.access_code = access_code
        self.transaction_url = transaction_url

    def encrypt(self, plaintext: str) -> str:
        return encrypt(plaintext, self.key, FIXED_IV)

    def decrypt(self, ciphertext_hex: str) -> str:
        return decrypt(ciphertext_hex, self.key, FIXED_IV)

    def build_request_url(self, form_body: str) -> str:
        enc_request = self.encrypt(form_body)
        return f"{self.transaction_url}&encRequest={enc_request}&access_code={self.access_code}"

    def verify(self, payload: dict) -> PaymentVerificationResult:
        """payload: {"enc_resp": hex ciphertext}."""
        enc_resp = payload.get("enc_resp")
        if not enc_resp:
            raise SignatureError("Missing encrypted response")

        data = parse_response(self.decrypt(enc_resp))
        status = data.get("order_status", "")

        amount = None
        if data.get("amount"):
            amount = to_decimal(data["amount"], default="0")

        return PaymentVerificationResult(
            success=status == STATUS_SUCCESS,
            gateway_order_id=data.get("order_id"),
            transaction_id=data.get("tracking_id"),
            amount=amount,
            raw_status=status,
            order_ref=data.get("order_id"),
            metadata={
                "bank_ref_no": data.get("bank_ref_no"),
                "currency": data.get("currency"),
            },
        )
