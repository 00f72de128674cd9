from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID


logger = logging.getLogger(__name__)


class NotificationGateway(Protocol):
    async def send_transaction_receipt(
        self, *, transaction_id: UUID, receipt_number: str, customer_id: UUID | None
    ) -> None: ...


class LoggingNotificationGateway:
    """Default gateway: records that a receipt would have gone out."""

    async def send_transaction_receipt(
        self, *, transaction_id: UUID, receipt_number: str, customer_id: UUID | None
    ) -> None:
        logger.info(
            "receipt_notification_queued",
            extra={
                "transaction_id": str(transaction_id),
                "receipt_number": receipt_number,
                "customer_id": str(customer_id) if customer_id else None,
            },
        )


_gateway: NotificationGateway = LoggingNotificationGateway()


def get_notification_gateway() -> NotificationGateway:
    return _gateway


async def notify_transaction_settled(
    gateway: NotificationGateway, *, transaction_id: UUID, receipt_number: str, customer_id: UUID | None
) -> None:
    # Runs after commit; a delivery failure must not surface to the caller.
    try:
        await gateway.send_transaction_receipt(
            transaction_id=transaction_id, receipt_number=receipt_number, customer_id=customer_id
        )
    except Exception:
        logger.exception("receipt_notification_failed", extra={"transaction_id": str(transaction_id)})
