from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_session
from app.schemas.coupons import (
    AvailablePromotionsRead,
    CouponAvailableRequest,
    CouponEvaluateRequest,
    CouponEvaluationRead,
    CouponSummaryRead,
)
from app.services import coupons as coupons_service
from app.services import discounts
from app.services import engine_settings as engine_settings_service
from app.services.coupons import CouponEvaluation


router = APIRouter(prefix="/coupons", tags=["coupons"])


def _to_read(evaluation: CouponEvaluation) -> CouponEvaluationRead:
    coupon = evaluation.coupon
    return CouponEvaluationRead(
        coupon=CouponSummaryRead.model_validate(coupon),
        eligible=evaluation.eligible,
        discount_amount=evaluation.discount_amount,
        potential_discount=evaluation.potential_discount,
        reward_summary=discounts.describe_rewards(list(coupon.rewards or [])),
        warnings=evaluation.warnings,
        failed_conditions=evaluation.failed_conditions,
        missing_items=evaluation.missing_items,
        reasons=evaluation.reasons,
    )


@router.post("/evaluate", response_model=CouponEvaluationRead)
async def evaluate_coupon(
    payload: CouponEvaluateRequest,
    session: AsyncSession = Depends(get_session),
) -> CouponEvaluationRead:
    engine = await engine_settings_service.get_engine_settings(session)
    evaluation = await coupons_service.evaluate_coupon_code(
        session,
        code=payload.code,
        customer_id=payload.customer_id,
        items=payload.items,
        engine=engine,
        subtotal=payload.subtotal,
    )
    return _to_read(evaluation)


@router.post("/available", response_model=AvailablePromotionsRead)
async def available_promotions(
    payload: CouponAvailableRequest,
    session: AsyncSession = Depends(get_session),
) -> AvailablePromotionsRead:
    engine = await engine_settings_service.get_engine_settings(session)
    promotions = await coupons_service.list_available_promotions(
        session,
        customer_id=payload.customer_id,
        items=payload.items,
        engine=engine,
        subtotal=payload.subtotal,
    )
    return AvailablePromotionsRead(
        for_you=[_to_read(e) for e in promotions.for_you],
        eligible=[_to_read(e) for e in promotions.eligible],
        upsell=[_to_read(e) for e in promotions.upsell],
    )
