import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.customer import CustomerType


class CouponStatus(str, enum.Enum):
    draft = "draft"
    active = "active"
    expired = "expired"
    disabled = "disabled"


class TagMatchMode(str, enum.Enum):
    any = "any"
    all = "all"


class ConditionLogic(str, enum.Enum):
    and_ = "and"
    or_ = "or"


class RewardScope(str, enum.Enum):
    order = "order"
    product = "product"
    service = "service"


class RewardDiscountType(str, enum.Enum):
    percentage = "percentage"
    flat = "flat"
    free = "free"


class Campaign(Base):
    __tablename__ = "campaigns"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    redeemed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    revenue_attributed: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    coupons: Mapped[list["Coupon"]] = relationship("Coupon", back_populates="campaign")


class Coupon(Base):
    __tablename__ = "coupons"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(40), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(160), nullable=True)
    status: Mapped[CouponStatus] = mapped_column(
        Enum(CouponStatus, native_enum=False), nullable=False, default=CouponStatus.draft
    )
    auto_apply: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Targeting
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True, index=True
    )
    customer_tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    tag_match_mode: Mapped[TagMatchMode] = mapped_column(
        Enum(TagMatchMode, native_enum=False), nullable=False, default=TagMatchMode.any
    )
    target_customer_type: Mapped[CustomerType | None] = mapped_column(
        Enum(CustomerType, native_enum=False), nullable=True
    )

    # Conditions
    condition_logic: Mapped[ConditionLogic] = mapped_column(
        Enum(ConditionLogic, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ConditionLogic.and_,
    )
    requires_product_ids: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    requires_service_ids: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    requires_product_category_ids: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    requires_service_category_ids: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    min_purchase: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    max_customer_visits: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Usage
    is_single_use: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    use_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    campaign_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("campaigns.id"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    rewards: Mapped[list["CouponReward"]] = relationship(
        "CouponReward", back_populates="coupon", cascade="all, delete-orphan", lazy="selectin"
    )
    campaign: Mapped[Campaign | None] = relationship("Campaign", back_populates="coupons")


class CouponReward(Base):
    __tablename__ = "coupon_rewards"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    coupon_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True
    )
    applies_to: Mapped[RewardScope] = mapped_column(
        Enum(RewardScope, native_enum=False), nullable=False, default=RewardScope.order
    )
    discount_type: Mapped[RewardDiscountType] = mapped_column(
        Enum(RewardDiscountType, native_enum=False), nullable=False, default=RewardDiscountType.percentage
    )
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    max_discount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    target_product_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    target_service_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    target_product_category_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    target_service_category_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    coupon: Mapped[Coupon] = relationship("Coupon", back_populates="rewards")
