from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.transaction import ItemType, PaymentMethod, TransactionStatus
from app.schemas.loyalty import LoyaltyLedgerEntryRead


class CartItem(BaseModel):
    """One cart line as seen by the coupon evaluators; never persisted."""

    item_type: ItemType
    product_id: str | None = None
    service_id: str | None = None
    category_id: str | None = None
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    item_name: str = Field(default="", max_length=255)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @model_validator(mode="after")
    def _require_item_reference(self) -> "CartItem":
        if self.item_type == ItemType.product and not self.product_id:
            raise ValueError("product lines require product_id")
        if self.item_type == ItemType.service and not self.service_id:
            raise ValueError("service lines require service_id")
        return self


class TransactionLineDraft(BaseModel):
    item_type: ItemType
    product_id: UUID | None = None
    service_id: UUID | None = None
    item_name: str = Field(min_length=1, max_length=255)
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal = Field(ge=0)
    total_price: Decimal = Field(ge=0)
    tax_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    is_taxable: bool | None = None
    tier_name: str | None = Field(default=None, max_length=80)
    notes: str | None = None


class PaymentDraft(BaseModel):
    method: PaymentMethod
    amount: Decimal = Field(ge=0)
    tip_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    stripe_payment_intent_id: str | None = Field(default=None, max_length=255)
    card_brand: str | None = Field(default=None, max_length=32)
    card_last_four: str | None = Field(default=None, min_length=4, max_length=4)


class LoyaltyRedemption(BaseModel):
    points: int = Field(gt=0)
    discount: Decimal = Field(ge=0)


class TransactionDraft(BaseModel):
    customer_id: UUID | None = None
    coupon_id: UUID | None = None
    subtotal: Decimal = Field(ge=0)
    tax_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    tip_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    discount_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    total_amount: Decimal = Field(ge=0)
    payment_method: PaymentMethod
    items: list[TransactionLineDraft] = Field(default_factory=list)
    payments: list[PaymentDraft] = Field(default_factory=list)
    loyalty_redemption: LoyaltyRedemption | None = None
    notes: str | None = None


class TransactionItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    item_type: ItemType
    product_id: UUID | None = None
    service_id: UUID | None = None
    category_id: UUID | None = None
    item_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    tax_amount: Decimal
    is_taxable: bool
    tier_name: str | None = None


class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    method: PaymentMethod
    amount: Decimal
    tip_amount: Decimal
    tip_net: Decimal
    card_brand: str | None = None
    card_last_four: str | None = None


class TransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    receipt_number: str
    customer_id: UUID | None = None
    coupon_id: UUID | None = None
    status: TransactionStatus
    subtotal: Decimal
    tax_amount: Decimal
    tip_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    payment_method: PaymentMethod
    loyalty_points_earned: int
    loyalty_points_redeemed: int
    loyalty_discount: Decimal
    notes: str | None = None
    transaction_date: datetime
    items: list[TransactionItemRead] = Field(default_factory=list)
    payments: list[PaymentRead] = Field(default_factory=list)


class SettlementRead(BaseModel):
    transaction: TransactionRead
    ledger_entries: list[LoyaltyLedgerEntryRead] = Field(default_factory=list)
