from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_session
from app.schemas.loyalty import LoyaltyAdjustRequest, LoyaltyBalanceRead, LoyaltyLedgerEntryRead
from app.services import loyalty as loyalty_service


router = APIRouter(prefix="/loyalty", tags=["loyalty"])


@router.get("/{customer_id}/ledger", response_model=list[LoyaltyLedgerEntryRead])
async def list_ledger(
    customer_id: UUID,
    limit: int = Query(default=100, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
):
    return await loyalty_service.list_ledger(session, customer_id=customer_id, limit=limit)


@router.get("/{customer_id}/balance", response_model=LoyaltyBalanceRead)
async def balance(customer_id: UUID, session: AsyncSession = Depends(get_session)) -> LoyaltyBalanceRead:
    cached, ledger_balance = await loyalty_service.reconcile_balance(session, customer_id=customer_id)
    return LoyaltyBalanceRead(
        customer_id=customer_id, balance=cached, ledger_balance=ledger_balance, in_sync=cached == ledger_balance
    )


@router.post("/{customer_id}/adjust", response_model=LoyaltyLedgerEntryRead, status_code=status.HTTP_201_CREATED)
async def adjust(
    customer_id: UUID,
    payload: LoyaltyAdjustRequest,
    session: AsyncSession = Depends(get_session),
):
    return await loyalty_service.adjust_points(
        session, customer_id=customer_id, points_change=payload.points_change, description=payload.description
    )
