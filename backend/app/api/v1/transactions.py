from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_session
from app.schemas.checkout import SettlementRead, TransactionDraft, TransactionRead
from app.schemas.loyalty import LoyaltyLedgerEntryRead
from app.services import engine_settings as engine_settings_service
from app.services import notifications as notifications_service
from app.services import settlement as settlement_service
from app.services.notifications import NotificationGateway


router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.post("", response_model=SettlementRead, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    background_tasks: BackgroundTasks,
    payload: TransactionDraft,
    session: AsyncSession = Depends(get_session),
    gateway: NotificationGateway = Depends(notifications_service.get_notification_gateway),
) -> SettlementRead:
    engine = await engine_settings_service.get_engine_settings(session)
    result = await settlement_service.settle(session, payload, settings=engine)
    transaction = result.transaction
    background_tasks.add_task(
        notifications_service.notify_transaction_settled,
        gateway,
        transaction_id=transaction.id,
        receipt_number=transaction.receipt_number,
        customer_id=transaction.customer_id,
    )
    return SettlementRead(
        transaction=TransactionRead.model_validate(transaction),
        ledger_entries=[LoyaltyLedgerEntryRead.model_validate(e) for e in result.ledger_entries],
    )
