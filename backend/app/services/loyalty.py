from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import Product
from app.models.customer import Customer, LoyaltyAction, LoyaltyLedgerEntry
from app.models.transaction import ItemType
from app.schemas.checkout import TransactionLineDraft
from app.services import pricing
from app.services.engine_settings import EngineSettings


logger = logging.getLogger(__name__)


def redemption_value(points: int, settings: EngineSettings) -> Decimal:
    """Dollar value of ``points`` at the configured redeem rate."""
    return pricing.quantize_money(Decimal(max(0, int(points))) * settings.loyalty_redeem_rate)


def earnable_spend(
    lines: Sequence[TransactionLineDraft],
    products: Mapping[UUID, Product],
    settings: EngineSettings,
) -> Decimal:
    total = pricing.ZERO
    for line in lines:
        if line.item_type == ItemType.product and line.product_id is not None:
            product = products.get(line.product_id)
            if product is not None and (product.sku in settings.loyalty_excluded_skus or not product.is_loyalty_eligible):
                continue
        total += pricing.to_decimal(line.total_price)
    return pricing.quantize_money(total)


async def _next_entry_number(session: AsyncSession, customer_id: UUID) -> int:
    current = (
        await session.execute(
            select(func.coalesce(func.max(LoyaltyLedgerEntry.entry_number), 0)).where(
                LoyaltyLedgerEntry.customer_id == customer_id
            )
        )
    ).scalar_one()
    return int(current) + 1


async def _append_entry(
    session: AsyncSession,
    *,
    customer_id: UUID,
    action: LoyaltyAction,
    points_change: int,
    points_balance: int,
    description: str | None,
    transaction_id: UUID | None = None,
) -> LoyaltyLedgerEntry:
    entry = LoyaltyLedgerEntry(
        customer_id=customer_id,
        transaction_id=transaction_id,
        action=action,
        points_change=points_change,
        points_balance=points_balance,
        description=description,
        entry_number=await _next_entry_number(session, customer_id),
    )
    session.add(entry)
    await session.flush()
    return entry


async def _shift_balance(session: AsyncSession, customer_id: UUID, points_change: int) -> int | None:
    """Apply a signed change floored at zero; returns the new balance, None if the customer is gone."""
    new_balance = Customer.loyalty_points_balance + points_change
    stmt = (
        update(Customer)
        .where(Customer.id == customer_id)
        .values(loyalty_points_balance=case((new_balance < 0, 0), else_=new_balance))
        .returning(Customer.loyalty_points_balance)
        .execution_options(synchronize_session=False)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def record_customer_visit(
    session: AsyncSession,
    *,
    customer_id: UUID,
    total_amount: Decimal,
    visit_date: date,
) -> int | None:
    """Bump visit stats and return the loyalty balance as of this point.

    This is the first write to the customer row in a settlement, so it also takes the
    row lock every later balance change relies on.
    """
    stmt = (
        update(Customer)
        .where(Customer.id == customer_id)
        .values(
            visit_count=Customer.visit_count + 1,
            lifetime_spend=Customer.lifetime_spend + pricing.quantize_money(total_amount),
            last_visit_date=visit_date,
        )
        .returning(Customer.loyalty_points_balance)
        .execution_options(synchronize_session=False)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def redeem_points(
    session: AsyncSession,
    *,
    customer_id: UUID,
    points: int,
    balance_before: int,
    discount: Decimal,
    settings: EngineSettings,
    transaction_id: UUID | None = None,
) -> LoyaltyLedgerEntry:
    new_balance = await _shift_balance(session, customer_id, -abs(int(points)))
    if new_balance is None:
        raise LookupError(f"customer {customer_id} not found")
    # The balance floors at zero, so record what was actually taken and only the
    # part of the discount those points paid for.
    deducted = int(balance_before) - int(new_balance)
    offset = min(pricing.quantize_money(discount), redemption_value(deducted, settings))
    return await _append_entry(
        session,
        customer_id=customer_id,
        transaction_id=transaction_id,
        action=LoyaltyAction.redeemed,
        points_change=-deducted,
        points_balance=int(new_balance),
        description=f"Redeemed for -${offset} discount",
    )


async def earn_points(
    session: AsyncSession,
    *,
    customer_id: UUID,
    points: int,
    receipt_number: str,
    transaction_id: UUID | None = None,
) -> LoyaltyLedgerEntry | None:
    if points <= 0:
        return None
    stmt = (
        update(Customer)
        .where(Customer.id == customer_id)
        .values(loyalty_points_balance=Customer.loyalty_points_balance + int(points))
        .returning(Customer.loyalty_points_balance)
        .execution_options(synchronize_session=False)
    )
    new_balance = (await session.execute(stmt)).scalar_one_or_none()
    if new_balance is None:
        raise LookupError(f"customer {customer_id} not found")
    return await _append_entry(
        session,
        customer_id=customer_id,
        transaction_id=transaction_id,
        action=LoyaltyAction.earned,
        points_change=int(points),
        points_balance=int(new_balance),
        description=f"Earned from transaction #{receipt_number}",
    )


async def adjust_points(
    session: AsyncSession,
    *,
    customer_id: UUID,
    points_change: int,
    description: str,
) -> LoyaltyLedgerEntry:
    """Manual correction by staff; commits on success."""
    locked = (
        await session.execute(
            select(Customer.loyalty_points_balance).where(Customer.id == customer_id).with_for_update()
        )
    ).scalar_one_or_none()
    if locked is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    new_balance = await _shift_balance(session, customer_id, int(points_change))
    entry = await _append_entry(
        session,
        customer_id=customer_id,
        action=LoyaltyAction.adjusted,
        points_change=int(new_balance or 0) - int(locked),
        points_balance=int(new_balance or 0),
        description=description,
    )
    await session.commit()
    await session.refresh(entry)
    logger.info(
        "loyalty_adjusted",
        extra={"customer_id": str(customer_id), "points_change": entry.points_change, "balance": entry.points_balance},
    )
    return entry


async def list_ledger(session: AsyncSession, *, customer_id: UUID, limit: int = 100) -> list[LoyaltyLedgerEntry]:
    customer = await session.get(Customer, customer_id)
    if customer is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    result = await session.execute(
        select(LoyaltyLedgerEntry)
        .where(LoyaltyLedgerEntry.customer_id == customer_id)
        .order_by(LoyaltyLedgerEntry.entry_number.desc())
        .limit(max(1, min(int(limit), 500)))
    )
    return list(result.scalars().all())


async def reconcile_balance(session: AsyncSession, *, customer_id: UUID) -> tuple[int, int]:
    """Return ``(cached_balance, ledger_balance)``; a customer with no ledger rows has a ledger balance of 0."""
    cached = (
        await session.execute(select(Customer.loyalty_points_balance).where(Customer.id == customer_id))
    ).scalar_one_or_none()
    if cached is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    latest = (
        await session.execute(
            select(LoyaltyLedgerEntry.points_balance)
            .where(LoyaltyLedgerEntry.customer_id == customer_id)
            .order_by(LoyaltyLedgerEntry.entry_number.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    ledger_balance = int(latest or 0)
    if int(cached) != ledger_balance:
        logger.warning(
            "loyalty_balance_drift",
            extra={"customer_id": str(customer_id), "cached": int(cached), "ledger": ledger_balance},
        )
    return int(cached), ledger_balance
