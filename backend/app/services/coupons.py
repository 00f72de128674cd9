from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core import metrics
from app.models.coupons import Campaign, Coupon, CouponStatus
from app.models.customer import Customer
from app.models.transaction import Transaction
from app.schemas.checkout import CartItem
from app.services import conditions as conditions_service
from app.services import discounts
from app.services import pricing
from app.services import targeting
from app.services.conflicts import ResourceConflict
from app.services.engine_settings import EngineSettings
from app.services.targeting import EnforcementMode


logger = logging.getLogger(__name__)

UPSELL_MAX_FAILED_CONDITIONS = 4
_CART_DEPENDENT_REASONS = {"targeting_not_met", "conditions_not_met"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def normalize_code(code: str | None) -> str:
    return "".join((code or "").split()).upper()


def cart_subtotal(items: Sequence[CartItem]) -> Decimal:
    return pricing.sum_money(item.line_total for item in items)


def coupon_state_reasons(coupon: Coupon, *, now: datetime | None = None, prior_uses: int = 0) -> list[str]:
    """Reasons the coupon itself is unusable, independent of customer and cart."""
    now_value = now or _now()
    reasons: list[str] = []
    if CouponStatus(coupon.status or CouponStatus.draft) == CouponStatus.expired:
        reasons.append("expired")
    elif CouponStatus(coupon.status or CouponStatus.draft) != CouponStatus.active:
        reasons.append("inactive")
    if coupon.expires_at is not None and _as_aware(coupon.expires_at) < now_value and "expired" not in reasons:
        reasons.append("expired")
    if coupon.max_uses is not None and int(coupon.use_count or 0) >= int(coupon.max_uses):
        reasons.append("usage_limit_reached")
    if coupon.is_single_use and prior_uses > 0:
        reasons.append("already_used")
    if not coupon.rewards:
        reasons.append("no_rewards")
    return reasons


@dataclass(frozen=True)
class CouponEvaluation:
    coupon: Coupon
    eligible: bool
    discount_amount: Decimal
    potential_discount: Decimal
    warnings: list[str] = field(default_factory=list)
    failed_conditions: list[str] = field(default_factory=list)
    missing_items: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    targeting_passed: bool = True
    conditions_passed: bool = True


def evaluate_coupon(
    coupon: Coupon,
    customer: Customer | None,
    cart: Sequence[CartItem],
    enforcement_mode: EnforcementMode = "soft",
    *,
    subtotal: Decimal | None = None,
    now: datetime | None = None,
    prior_uses: int = 0,
) -> CouponEvaluation:
    """Targeting, then conditions, then discount. Ineligibility is returned, never raised."""
    subtotal_value = cart_subtotal(cart) if subtotal is None else pricing.quantize_money(subtotal)
    reasons = coupon_state_reasons(coupon, now=now, prior_uses=prior_uses)

    targeting_result = targeting.evaluate_targeting(coupon, customer, enforcement_mode)
    if not targeting_result.passed:
        reasons.append("targeting_not_met")

    conditions_result = conditions_service.evaluate_conditions(coupon, cart, subtotal_value, customer)
    if not conditions_result.passed:
        reasons.append("conditions_not_met")

    potential = discounts.calculate_discount(list(coupon.rewards or []), cart, subtotal_value)
    eligible = not reasons
    return CouponEvaluation(
        coupon=coupon,
        eligible=eligible,
        discount_amount=potential if eligible else pricing.ZERO,
        potential_discount=potential,
        warnings=[targeting_result.warning] if targeting_result.warning else [],
        failed_conditions=list(conditions_result.failed_conditions),
        missing_items=list(conditions_result.missing_items),
        reasons=reasons,
        targeting_passed=targeting_result.passed,
        conditions_passed=conditions_result.passed,
    )


async def get_coupon_by_code(session: AsyncSession, *, code: str) -> Coupon | None:
    cleaned = normalize_code(code)
    if not cleaned:
        return None
    result = await session.execute(select(Coupon).options(selectinload(Coupon.rewards)).where(Coupon.code == cleaned))
    return result.scalar_one_or_none()


async def get_customer(session: AsyncSession, customer_id: UUID | None) -> Customer | None:
    if customer_id is None:
        return None
    return await session.get(Customer, customer_id)


async def count_customer_uses(session: AsyncSession, *, coupon_id: UUID, customer_id: UUID | None) -> int:
    if customer_id is None:
        return 0
    return int(
        (
            await session.execute(
                select(func.count())
                .select_from(Transaction)
                .where(Transaction.coupon_id == coupon_id, Transaction.customer_id == customer_id)
            )
        ).scalar_one()
    )


async def evaluate_coupon_code(
    session: AsyncSession,
    *,
    code: str,
    customer_id: UUID | None,
    items: Sequence[CartItem],
    engine: EngineSettings,
    subtotal: Decimal | None = None,
) -> CouponEvaluation:
    coupon = await get_coupon_by_code(session, code=code)
    if coupon is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid coupon code")
    customer = await get_customer(session, customer_id)
    prior_uses = 0
    if coupon.is_single_use and customer is not None:
        prior_uses = await count_customer_uses(session, coupon_id=coupon.id, customer_id=customer.id)
    evaluation = evaluate_coupon(
        coupon,
        customer,
        items,
        engine.coupon_type_enforcement,
        subtotal=subtotal,
        prior_uses=prior_uses,
    )
    metrics.record_coupon_evaluation(evaluation.eligible)
    return evaluation


@dataclass(frozen=True)
class AvailablePromotions:
    for_you: list[CouponEvaluation]
    eligible: list[CouponEvaluation]
    upsell: list[CouponEvaluation]


async def _customer_use_counts(session: AsyncSession, customer_id: UUID | None) -> dict[UUID, int]:
    if customer_id is None:
        return {}
    rows = (
        await session.execute(
            select(Transaction.coupon_id, func.count())
            .where(Transaction.customer_id == customer_id, Transaction.coupon_id.is_not(None))
            .group_by(Transaction.coupon_id)
        )
    ).all()
    return {coupon_id: int(count) for coupon_id, count in rows}


async def list_available_promotions(
    session: AsyncSession,
    *,
    customer_id: UUID | None,
    items: Sequence[CartItem],
    engine: EngineSettings,
    subtotal: Decimal | None = None,
) -> AvailablePromotions:
    """Bucket every active coupon for the checkout screen: assigned to this customer, usable now, or one step away."""
    now = _now()
    coupons = (
        (
            await session.execute(
                select(Coupon)
                .options(selectinload(Coupon.rewards))
                .where(
                    Coupon.status == CouponStatus.active,
                    or_(Coupon.expires_at.is_(None), Coupon.expires_at > now),
                )
                .order_by(Coupon.created_at.desc())
            )
        )
        .scalars()
        .all()
    )
    customer = await get_customer(session, customer_id)
    use_counts = await _customer_use_counts(session, customer.id if customer else None)

    for_you: list[CouponEvaluation] = []
    eligible: list[CouponEvaluation] = []
    upsell: list[CouponEvaluation] = []
    for coupon in coupons:
        evaluation = evaluate_coupon(
            coupon,
            customer,
            items,
            engine.coupon_type_enforcement,
            subtotal=subtotal,
            now=now,
            prior_uses=use_counts.get(coupon.id, 0),
        )
        if not evaluation.targeting_passed or set(evaluation.reasons) - _CART_DEPENDENT_REASONS:
            continue
        if customer is not None and coupon.customer_id is not None and coupon.customer_id == customer.id:
            for_you.append(evaluation)
        elif evaluation.conditions_passed:
            eligible.append(evaluation)
        elif len(evaluation.failed_conditions) < UPSELL_MAX_FAILED_CONDITIONS:
            upsell.append(evaluation)

    def _by_discount(e: CouponEvaluation) -> Decimal:
        return e.potential_discount

    return AvailablePromotions(
        for_you=sorted(for_you, key=_by_discount, reverse=True),
        eligible=sorted(eligible, key=_by_discount, reverse=True),
        upsell=sorted(upsell, key=_by_discount, reverse=True),
    )


class CouponUsageConflict(ResourceConflict):
    def __init__(self, coupon_id: UUID) -> None:
        super().__init__(f"Coupon {coupon_id} has reached its usage limit")
        self.coupon_id = coupon_id


async def increment_coupon_usage(session: AsyncSession, *, coupon_id: UUID) -> None:
    """Check-and-increment in one statement so ``use_count`` can never pass ``max_uses``."""
    stmt = (
        update(Coupon)
        .where(
            Coupon.id == coupon_id,
            or_(Coupon.max_uses.is_(None), Coupon.use_count < Coupon.max_uses),
        )
        .values(use_count=Coupon.use_count + 1)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount == 0:
        logger.warning("coupon_usage_conflict", extra={"coupon_id": str(coupon_id)})
        raise CouponUsageConflict(coupon_id)


async def attribute_campaign(session: AsyncSession, *, campaign_id: UUID, total_amount: Decimal) -> None:
    await session.execute(
        update(Campaign)
        .where(Campaign.id == campaign_id)
        .values(
            redeemed_count=Campaign.redeemed_count + 1,
            revenue_attributed=Campaign.revenue_attributed + pricing.quantize_money(total_amount),
        )
        .execution_options(synchronize_session=False)
    )
