from __future__ import annotations
import os


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storefront.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Razorpay (HMAC-signed verification)
    RAZORPAY_KEY_ID = os.environ.get("RAZORPAY_KEY_ID", "")
    RAZORPAY_KEY_SECRET = os.environ.get("RAZORPAY_KEY_SECRET", "")
    RAZORPAY_API_URL = os.environ.get("RAZORPAY_API_URL", "https://api.razorpay.com/v1")

    # Stripe (webhook-signed verification)
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")

    # CCAvenue (AES-128-CBC callback)
    CCAVENUE_WORKING_KEY = os.environ.get("CCAVENUE_WORKING_KEY", "")
    CCAVENUE_ACCESS_CODE = os.environ.get("CCAVENUE_ACCESS_CODE", "")
    CCAVENUE_TRANSACTION_URL = os.environ.get(
        "CCAVENUE_TRANSACTION_URL",
        "https://secure.ccavenue.com/transaction/transaction.do?command=initiateTransaction",
    )
    CCAVENUE_SUCCESS_URL = os.environ.get("CCAVENUE_SUCCESS_URL", "http://localhost:3000/#/cart")
    CCAVENUE_CANCEL_URL = os.environ.get("CCAVENUE_CANCEL_URL", "http://localhost:3000")
    CCAVENUE_DEFAULT_URL = os.environ.get("CCAVENUE_DEFAULT_URL", "http://localhost:3000")

    # Commodity rate source
    SILVER_PRICE_API_URL = os.environ.get("SILVER_PRICE_API_URL", "https://api.metalpriceapi.com/v1/latest")
    SILVER_PRICE_API_KEY = os.environ.get("SILVER_PRICE_API_KEY", "")
    SILVER_PRICE_MAX_AGE_HOURS = _env_float("SILVER_PRICE_MAX_AGE_HOURS", 24)
    SILVER_PRICE_DEFAULT_PER_GRAM = _env_float("SILVER_PRICE_DEFAULT_PER_GRAM", 80)
    SILVER_PRICE_HTTP_TIMEOUT = _env_float("SILVER_PRICE_HTTP_TIMEOUT", 10)
    USD_TO_INR_RATE = _env_float("USD_TO_INR_RATE", 83)

    # Outbound mail; unset MAIL_SERVER means messages are only logged
    MAIL_SERVER = os.environ.get("MAIL_SERVER", "")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", "587"))
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME", "")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD", "")
    MAIL_USE_TLS = os.environ.get("MAIL_USE_TLS", "true").lower() == "true"
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", "orders@storefront.local")

    CLIENT_URL = os.environ.get("CLIENT_URL", "http://localhost:3000")

    CORS_ALLOWED_ORIGINS = {
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    }


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"

    RAZORPAY_KEY_ID = "rzp_test_key"
    RAZORPAY_KEY_SECRET = "rzp_test_secret"
    STRIPE_SECRET_KEY = "sk_test_storefront"
    STRIPE_WEBHOOK_SECRET = "whsec_test_storefront"
    CCAVENUE_WORKING_KEY = "5843BAB2CA2A191D060233093430D41F"
    CCAVENUE_ACCESS_CODE = "TESTACCESSCODE"
    CCAVENUE_SUCCESS_URL = "https://shop.test/#/cart"
    CCAVENUE_CANCEL_URL = "https://shop.test/cancelled"
    CCAVENUE_DEFAULT_URL = "https://shop.test"

    SILVER_PRICE_API_KEY = "test-key"
    SILVER_PRICE_HTTP_TIMEOUT = 1
    MAIL_SERVER = ""
