import asyncio
import uuid
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.db.base import Base
from app.models.catalog import Product
from app.models.customer import Customer, LoyaltyAction
from app.models.transaction import ItemType
from app.schemas.checkout import TransactionLineDraft
from app.services import loyalty as loyalty_service
from app.services.engine_settings import EngineSettings


def test_redemption_value_uses_rate() -> None:
    settings = EngineSettings()
    assert loyalty_service.redemption_value(100, settings) == Decimal("5.00")
    assert loyalty_service.redemption_value(-5, settings) == Decimal("0.00")


def test_earnable_spend_skips_excluded_lines() -> None:
    water = Product(sku="0000001", name="Water", is_loyalty_eligible=True)
    wax = Product(sku="WAX", name="Wax", is_loyalty_eligible=True)
    gift = Product(sku="GIFT", name="Gift card", is_loyalty_eligible=False)
    products = {}
    lines = []
    for product, total in ((water, "5.00"), (wax, "35.00"), (gift, "25.00")):
        product.id = uuid.uuid4()
        products[product.id] = product
        lines.append(
            TransactionLineDraft(
                item_type=ItemType.product,
                product_id=product.id,
                item_name=product.name,
                unit_price=Decimal(total),
                total_price=Decimal(total),
            )
        )
    assert loyalty_service.earnable_spend(lines, products, EngineSettings()) == Decimal("35.00")
    relaxed = EngineSettings(loyalty_excluded_skus=frozenset())
    assert loyalty_service.earnable_spend(lines, products, relaxed) == Decimal("40.00")


def test_adjust_points_floors_and_keeps_ledger_in_sync() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def run_flow() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with SessionLocal() as session:
            customer = Customer(first_name="Ana", tags=[])
            session.add(customer)
            await session.commit()
            customer_id = customer.id

            credit = await loyalty_service.adjust_points(
                session, customer_id=customer_id, points_change=40, description="Goodwill"
            )
            assert credit.action == LoyaltyAction.adjusted
            assert (credit.points_change, credit.points_balance, credit.entry_number) == (40, 40, 1)

            debit = await loyalty_service.adjust_points(
                session, customer_id=customer_id, points_change=-100, description="Correction"
            )
            assert (debit.points_change, debit.points_balance, debit.entry_number) == (-40, 0, 2)

            ledger = await loyalty_service.list_ledger(session, customer_id=customer_id)
            assert [entry.entry_number for entry in ledger] == [2, 1]
            assert await loyalty_service.reconcile_balance(session, customer_id=customer_id) == (0, 0)

            with pytest.raises(HTTPException) as exc:
                await loyalty_service.adjust_points(
                    session, customer_id=uuid.uuid4(), points_change=1, description="x"
                )
            assert exc.value.status_code == 404

    asyncio.run(run_flow())


def test_reconcile_reports_drift() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def run_flow() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with SessionLocal() as session:
            customer = Customer(first_name="Ana", tags=[], loyalty_points_balance=120)
            session.add(customer)
            await session.commit()
            assert await loyalty_service.reconcile_balance(session, customer_id=customer.id) == (120, 0)

    asyncio.run(run_flow())
