# Overview: Service-layer operations for loyalty; points awarded from completed orders.

"""
Loyalty Awarder

points = floor(order_amount * points_per_rupee) of the active program.

IDEMPOTENCY: an order earns points at most once. The payment completion
gate (PENDING -> COMPLETE) is the primary guard; the EARNED transaction's
unique (order_id, type) key is the persisted backstop, and
award_points_for_order checks it before writing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..extensions import db
from ..models import LoyaltyProgram, LoyaltyTier, PointsTransaction, UserLoyalty
from storefront.money import floor_int, round_money, to_decimal
from storefront.time_utils import utcnow

logger = logging.getLogger(__name__)

EARNED = "EARNED"

DEFAULT_PROGRAM_NAME = "Silver Rewards"
DEFAULT_TIERS = (
    ("Bronze", 0, "Base earning rate"),
    ("Silver", 1000, "5% discount on select items"),
    ("Gold", 5000, "10% discount, free shipping"),
    ("Platinum", 10000, "15% discount, free shipping, early access"),
)


@dataclass(frozen=True)
class AwardResult:
    points_earned: int
    new_total: int
    tier: str | None

    def to_dict(self) -> dict:
        return {"points_earned": self.points_earned, "new_total": self.new_total, "tier": self.tier}


def get_active_program() -> LoyaltyProgram | None:
    return (
        db.session.query(LoyaltyProgram)
        .filter_by(is_active=True)
        .order_by(LoyaltyProgram.id.desc())
        .first()
    )


def resolve_tier(program: LoyaltyProgram, total_points: int) -> LoyaltyTier | None:
    """Highest min_points <= total_points; the lowest tier when none qualifies."""
    tiers = sorted(program.tiers, key=lambda t: t.min_points)
    if not tiers:
        return None
    chosen = tiers[0]
    for tier in tiers:
        if total_points >= tier.min_points:
            chosen = tier
    return chosen


def _get_or_create_account(user_id: int, program: LoyaltyProgram | None) -> UserLoyalty:
    account = db.session.query(UserLoyalty).filter_by(user_id=user_id).first()
    if account is None:
        account = UserLoyalty(
            user_id=user_id,
            program_id=program.id if program else None,
            total_points=0,
            available_points=0,
            lifetime_spend=Decimal("0"),
            total_orders=0,
            average_order_value=Decimal("0"),
        )
        db.session.add(account)
        db.session.flush()
    return account


def award_points_for_order(
    user_id: int,
    order_amount,
    order_id: int | None = None,
    guest_order_id: int | None = None,
    *,
    commit: bool = False,
) -> AwardResult | None:
    """
    Credit points for a completed order.

    Returns None when there is no active program, when the amount earns zero
    points, or when this order already earned points. Runs inside the
    caller's transaction unless commit=True.
    """
    program = get_active_program()
    if program is None:
        return None

    amount = round_money(to_decimal(order_amount))
    points = floor_int(amount * to_decimal(program.points_per_rupee))
    if points <= 0:
        return None

    if order_id is not None or guest_order_id is not None:
        if order_id is not None:
            same_order = PointsTransaction.order_id == order_id
        else:
            same_order = PointsTransaction.guest_order_id == guest_order_id
        already = db.session.query(PointsTransaction.id).filter(
            PointsTransaction.type == EARNED, same_order
        ).first()
        if already:
            logger.info("points already awarded for order=%s guest_order=%s", order_id, guest_order_id)
            return None

    account = _get_or_create_account(user_id, program)
    account.program_id = program.id
    account.total_points += points
    account.available_points += points
    account.lifetime_spend = round_money(to_decimal(account.lifetime_spend) + amount)
    account.total_orders += 1
    account.average_order_value = round_money(to_decimal(account.lifetime_spend) / account.total_orders)
    account.last_activity_at = utcnow()

    tier = resolve_tier(program, account.total_points)
    account.current_tier = tier.name if tier else None

    db.session.add(PointsTransaction(
        user_id=user_id,
        type=EARNED,
        points=points,
        balance_after=account.available_points,
        description=f"Points earned from order #{order_id or guest_order_id}",
        order_id=order_id,
        guest_order_id=guest_order_id,
        order_amount=amount,
        occurred_at=utcnow(),
    ))

    if commit:
        db.session.commit()
    else:
        db.session.flush()

    logger.info("awarded %s points to user %s (total %s)", points, user_id, account.total_points)
    return AwardResult(points_earned=points, new_total=account.total_points, tier=account.current_tier)


def get_user_loyalty(user_id: int) -> dict:
    """Account summary with the 20 most recent transactions. Creates the account on first read."""
    program = get_active_program()
    account = _get_or_create_account(user_id, program)
    if program is not None:
        tier = resolve_tier(program, account.total_points)
        account.current_tier = tier.name if tier else None
    db.session.commit()

    recent = (
        db.session.query(PointsTransaction)
        .filter_by(user_id=user_id)
        .order_by(PointsTransaction.id.desc())
        .limit(20)
        .all()
    )
    return {
        "loyalty": account.to_dict(),
        "program": program.to_dict() if program else None,
        "transactions": [t.to_dict() for t in recent],
    }


def ensure_default_program() -> tuple[LoyaltyProgram, bool]:
    """Idempotent bootstrap: returns (program, created)."""
    program = get_active_program()
    if program is not None:
        return program, False

    program = LoyaltyProgram(name=DEFAULT_PROGRAM_NAME, points_per_rupee=Decimal("1"), is_active=True)
    for name, min_points, benefits in DEFAULT_TIERS:
        program.tiers.append(LoyaltyTier(name=name, min_points=min_points, benefits=benefits))
    db.session.add(program)
    db.session.commit()
    return program, True
