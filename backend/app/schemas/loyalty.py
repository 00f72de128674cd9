from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.customer import LoyaltyAction


class LoyaltyLedgerEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: UUID
    transaction_id: UUID | None = None
    action: LoyaltyAction
    points_change: int
    points_balance: int
    entry_number: int
    description: str | None = None
    created_at: datetime


class LoyaltyAdjustRequest(BaseModel):
    points_change: int
    description: str = Field(min_length=1, max_length=255)


class LoyaltyBalanceRead(BaseModel):
    customer_id: UUID
    balance: int
    ledger_balance: int
    in_sync: bool
