from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.coupons import CouponStatus, RewardDiscountType, RewardScope
from app.schemas.checkout import CartItem


class CouponEvaluateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=40)
    customer_id: UUID | None = None
    items: list[CartItem] = Field(default_factory=list)
    subtotal: Decimal | None = Field(default=None, ge=0)


class CouponAvailableRequest(BaseModel):
    customer_id: UUID | None = None
    items: list[CartItem] = Field(default_factory=list)
    subtotal: Decimal | None = Field(default=None, ge=0)


class CouponRewardRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    applies_to: RewardScope
    discount_type: RewardDiscountType
    discount_value: Decimal
    max_discount: Decimal | None = None
    target_product_id: str | None = None
    target_service_id: str | None = None
    target_product_category_id: str | None = None
    target_service_category_id: str | None = None


class CouponSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str | None = None
    status: CouponStatus
    auto_apply: bool
    customer_id: UUID | None = None
    campaign_id: UUID | None = None
    rewards: list[CouponRewardRead] = Field(default_factory=list)


class CouponEvaluationRead(BaseModel):
    coupon: CouponSummaryRead
    eligible: bool
    discount_amount: Decimal
    potential_discount: Decimal
    reward_summary: str
    warnings: list[str] = Field(default_factory=list)
    failed_conditions: list[str] = Field(default_factory=list)
    missing_items: list[str] = Field(default_factory=list)
    reasons: list[str] = Field(default_factory=list)


class AvailablePromotionsRead(BaseModel):
    for_you: list[CouponEvaluationRead] = Field(default_factory=list)
    eligible: list[CouponEvaluationRead] = Field(default_factory=list)
    upsell: list[CouponEvaluationRead] = Field(default_factory=list)
