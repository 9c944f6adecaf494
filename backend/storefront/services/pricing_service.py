# Overview: Service-layer operations for pricing; commodity rate resolution and price computation.

"""
Pricing Engine

Turns (silver weight, labor %, GST %) into a final price using the current
silver rate (INR per gram).

Price chain (evaluated on unrounded values, every reported figure rounded
to 2 dp half-up on its own):
    silver_cost = weight * price_per_gram
    labor_cost  = labor% / 100 * silver_cost
    subtotal    = silver_cost + labor_cost
    gst_amount  = gst% / 100 * subtotal
    final_price = subtotal + gst_amount

Rate resolution (get_current_rate):
    1. active row updated within SILVER_PRICE_MAX_AGE_HOURS
    2. synchronous refetch from the commodity source, saved as the new active row
    3. most recent row of any age
    4. SILVER_PRICE_DEFAULT_PER_GRAM (source="default", not persisted)

Provider failures never reach the caller; they are logged and the chain
moves on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

import httpx
from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import SilverPrice
from storefront.money import round_money, to_decimal
from storefront.time_utils import is_older_than, to_utc_z, utcnow

logger = logging.getLogger(__name__)

GRAMS_PER_TROY_OUNCE = Decimal("31.1035")
DEFAULT_LABOR_PERCENTAGE = Decimal("0")
DEFAULT_GST_PERCENTAGE = Decimal("18")


class RateFetchError(Exception):
    """The external commodity source could not produce a usable rate."""


@dataclass(frozen=True)
class RateSnapshot:
    price_per_gram: Decimal
    currency: str
    source: str
    last_updated: datetime | None
    persisted: bool = True

    @classmethod
    def from_row(cls, row: SilverPrice) -> "RateSnapshot":
        return cls(
            price_per_gram=to_decimal(row.price_per_gram),
            currency=row.currency,
            source=row.source,
            last_updated=row.last_updated,
        )

    def to_dict(self) -> dict:
        return {
            "price_per_gram": float(self.price_per_gram),
            "currency": self.currency,
            "source": self.source,
            "last_updated": to_utc_z(self.last_updated),
        }


@dataclass(frozen=True)
class PriceBreakdown:
    silver_weight: Decimal
    silver_price_per_gram: Decimal
    silver_cost: Decimal
    labor_percentage: Decimal
    labor_cost: Decimal
    subtotal: Decimal
    gst_percentage: Decimal
    gst_amount: Decimal
    final_price: Decimal

    def to_dict(self) -> dict:
        return {
            "silver_weight": float(self.silver_weight),
            "silver_price_per_gram": float(self.silver_price_per_gram),
            "silver_cost": float(self.silver_cost),
            "labor_percentage": float(self.labor_percentage),
            "labor_cost": float(self.labor_cost),
            "subtotal": float(self.subtotal),
            "gst_percentage": float(self.gst_percentage),
            "gst_amount": float(self.gst_amount),
            "final_price": float(self.final_price),
        }


@dataclass(frozen=True)
class PriceCalculation:
    breakdown: PriceBreakdown
    final_price: Decimal
    last_updated: datetime | None
    rate_source: str

    def to_dict(self) -> dict:
        return {
            "breakdown": self.breakdown.to_dict(),
            "final_price": float(self.final_price),
            "last_updated": to_utc_z(self.last_updated),
            "rate_source": self.rate_source,
        }


# =============================================================================
# PURE COMPUTATION
# =============================================================================

def compute_breakdown(weight, labor_percentage, gst_percentage, price_per_gram) -> PriceBreakdown:
    """
    Deterministic price chain for a fixed rate. No I/O.

    Raises ValidationError for non-positive weight or negative percentages.
    """
    try:
        weight = to_decimal(weight)
        labor_percentage = to_decimal(labor_percentage if labor_percentage is not None else DEFAULT_LABOR_PERCENTAGE)
        gst_percentage = to_decimal(gst_percentage if gst_percentage is not None else DEFAULT_GST_PERCENTAGE)
        price_per_gram = to_decimal(price_per_gram)
    except ValueError as exc:
        raise ValidationError(str(exc))

    if weight <= 0:
        raise ValidationError("Valid silver weight is required")
    if labor_percentage < 0 or gst_percentage < 0:
        raise ValidationError("percentages must not be negative")
    if price_per_gram <= 0:
        raise ValidationError("price per gram must be positive")

    silver_cost = weight * price_per_gram
    labor_cost = labor_percentage / Decimal(100) * silver_cost
    subtotal = silver_cost + labor_cost
    gst_amount = gst_percentage / Decimal(100) * subtotal
    final_price = subtotal + gst_amount

    return PriceBreakdown(
        silver_weight=weight,
        silver_price_per_gram=price_per_gram,
        silver_cost=round_money(silver_cost),
        labor_percentage=labor_percentage,
        labor_cost=round_money(labor_cost),
        subtotal=round_money(subtotal),
        gst_percentage=gst_percentage,
        gst_amount=round_money(gst_amount),
        final_price=round_money(final_price),
    )


def calculate_price(weight, labor_percentage=None, gst_percentage=None) -> PriceCalculation:
    """Price a dynamically priced item at the current rate."""
    rate = get_current_rate()
    breakdown = compute_breakdown(weight, labor_percentage, gst_percentage, rate.price_per_gram)
    return PriceCalculation(
        breakdown=breakdown,
        final_price=breakdown.final_price,
        last_updated=rate.last_updated,
        rate_source=rate.source,
    )


# =============================================================================
# RATE STORAGE
# =============================================================================

def get_active_price() -> SilverPrice | None:
    return (
        db.session.query(SilverPrice)
        .filter_by(is_active=True)
        .order_by(SilverPrice.last_updated.desc(), SilverPrice.id.desc())
        .first()
    )


def get_last_known_price() -> SilverPrice | None:
    return (
        db.session.query(SilverPrice)
        .order_by(SilverPrice.last_updated.desc(), SilverPrice.id.desc())
        .first()
    )


def save_silver_price(price_per_gram, currency: str = "INR", source: str = "api") -> SilverPrice:
    """
    Persist a new active rate.

    Deactivating the previous rows and inserting the new one commit together,
    so readers never observe zero or two active rows.
    """
    price_per_gram = to_decimal(price_per_gram)
    if price_per_gram <= 0:
        raise ValidationError("price per gram must be positive")

    db.session.query(SilverPrice).filter(SilverPrice.is_active.is_(True)).update(
        {"is_active": False}, synchronize_session=False
    )
    row = SilverPrice(
        price_per_gram=price_per_gram,
        currency=currency,
        source=source,
        last_updated=utcnow(),
        is_active=True,
    )
    db.session.add(row)
    db.session.commit()

    logger.info("silver price saved: %s %s/g (source=%s)", price_per_gram, currency, source)
    return row


def set_manual_price(price_per_gram, currency: str = "INR") -> SilverPrice:
    """Admin override of the current rate."""
    if price_per_gram is None:
        raise ValidationError("price_per_gram is required")
    try:
        value = to_decimal(price_per_gram)
    except ValueError:
        raise ValidationError("price_per_gram must be a number")
    return save_silver_price(value, currency=(currency or "INR").upper(), source="manual")


def get_price_history(page: int = 1, limit: int = 50) -> dict:
    page = max(int(page), 1)
    limit = min(max(int(limit), 1), 200)

    query = db.session.query(SilverPrice).order_by(SilverPrice.last_updated.desc(), SilverPrice.id.desc())
    total = query.count()
    rows = query.offset((page - 1) * limit).limit(limit).all()

    return {
        "history": [r.to_dict() for r in rows],
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        },
    }


# =============================================================================
# EXTERNAL SOURCE
# =============================================================================

def fetch_current_silver_price() -> dict:
    """
    Fetch the XAG rate and convert it to INR per gram.

    The source quotes troy ounces of silver per USD, so the USD price of one
    ounce is 1 / rate. Raises RateFetchError on any transport, HTTP or
    payload problem, including timeouts.
    """
    cfg = current_app.config
    api_key = cfg.get("SILVER_PRICE_API_KEY")
    if not api_key:
        raise RateFetchError("commodity rate source is not configured")

    try:
        response = httpx.get(
            cfg["SILVER_PRICE_API_URL"],
            params={"api_key": api_key, "base": "USD", "currencies": "XAG"},
            timeout=cfg.get("SILVER_PRICE_HTTP_TIMEOUT", 10),
        )
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPError as exc:
        raise RateFetchError(f"commodity rate request failed: {exc}")
    except ValueError as exc:
        raise RateFetchError(f"commodity rate response is not JSON: {exc}")

    try:
        xag = to_decimal(payload["rates"]["XAG"])
    except (KeyError, TypeError, ValueError):
        raise RateFetchError("Invalid API response")
    if xag <= 0:
        raise RateFetchError("Invalid API response")

    price_per_ounce = Decimal(1) / xag
    price_per_gram_usd = price_per_ounce / GRAMS_PER_TROY_OUNCE
    price_in_inr = price_per_gram_usd * to_decimal(cfg.get("USD_TO_INR_RATE", 83))

    return {
        "price_per_gram": round_money(price_in_inr),
        "currency": "INR",
        "source": "metalpriceapi",
    }


def is_fresh(row: SilverPrice) -> bool:
    max_age = timedelta(hours=float(current_app.config.get("SILVER_PRICE_MAX_AGE_HOURS", 24)))
    return not is_older_than(row.last_updated, max_age)


def get_current_rate() -> RateSnapshot:
    active = get_active_price()
    if active is not None and is_fresh(active):
        return RateSnapshot.from_row(active)

    try:
        fetched = fetch_current_silver_price()
        saved = save_silver_price(fetched["price_per_gram"], fetched["currency"], fetched["source"])
        return RateSnapshot.from_row(saved)
    except RateFetchError as exc:
        logger.warning("silver price refetch failed, using last known rate: %s", exc)

    last = get_last_known_price()
    if last is not None:
        return RateSnapshot.from_row(last)

    default = to_decimal(current_app.config.get("SILVER_PRICE_DEFAULT_PER_GRAM", 80))
    logger.warning("no silver price on record, using default %s/g", default)
    return RateSnapshot(
        price_per_gram=default,
        currency="INR",
        source="default",
        last_updated=None,
        persisted=False,
    )


def refresh_silver_price() -> SilverPrice | None:
    """
    Scheduled daily refresh (flask pricing refresh).

    Returns the new active row, or None when the source failed. Failure only
    logs: request-time resolution still has the fallback chain.
    """
    try:
        fetched = fetch_current_silver_price()
    except RateFetchError as exc:
        logger.error("scheduled silver price refresh failed: %s", exc)
        return None
    return save_silver_price(fetched["price_per_gram"], fetched["currency"], fetched["source"])
