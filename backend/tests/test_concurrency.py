import asyncio
import uuid
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.db.base import Base
from app.models.catalog import Product
from app.models.coupons import Coupon, CouponReward, CouponStatus, RewardDiscountType, RewardScope
from app.models.transaction import ItemType, PaymentMethod, Transaction
from app.schemas.checkout import PaymentDraft, TransactionDraft, TransactionLineDraft
from app.services import coupons as coupons_service
from app.services import inventory
from app.services.conflicts import ResourceConflict
from app.services.engine_settings import EngineSettings
from app.services.settlement import SettlementError, settle


def _file_engine(tmp_path: Path):
    # Separate connections need a shared file; ":memory:" would give each its own database.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'settle.db'}", future=True)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


def _draft(product_id, coupon_id=None) -> TransactionDraft:
    return TransactionDraft(
        coupon_id=coupon_id,
        subtotal=Decimal("8.00"),
        total_amount=Decimal("8.00"),
        payment_method=PaymentMethod.cash,
        items=[
            TransactionLineDraft(
                item_type=ItemType.product,
                product_id=product_id,
                item_name="Towel",
                unit_price=Decimal("8.00"),
                total_price=Decimal("8.00"),
            )
        ],
        payments=[PaymentDraft(method=PaymentMethod.cash, amount=Decimal("8.00"))],
    )


def test_last_unit_sells_once(tmp_path: Path) -> None:
    engine, SessionLocal = _file_engine(tmp_path)

    async def run_flow() -> list[object]:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with SessionLocal() as session:
            towel = Product(sku="TWL-01", name="Towel", unit_price=Decimal("8.00"), quantity_on_hand=1)
            session.add(towel)
            await session.commit()
            towel_id = towel.id

        async def checkout() -> object:
            async with SessionLocal() as session:
                try:
                    result = await settle(session, _draft(towel_id), settings=EngineSettings())
                except SettlementError as exc:
                    return exc
                return result.transaction.id

        outcomes = await asyncio.gather(checkout(), checkout())

        async with SessionLocal() as session:
            towel = await session.get(Product, towel_id)
            assert towel.quantity_on_hand == 0
            assert (await session.execute(select(func.count()).select_from(Transaction))).scalar_one() == 1
        return outcomes

    outcomes = asyncio.run(run_flow())
    failures = [o for o in outcomes if isinstance(o, SettlementError)]
    assert len(failures) == 1
    assert len(outcomes) - len(failures) == 1


def test_decrement_rejects_when_short() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def run_flow() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with SessionLocal() as session:
            towel = Product(sku="TWL-02", name="Towel", unit_price=Decimal("8.00"), quantity_on_hand=1)
            session.add(towel)
            await session.commit()
            towel_id = towel.id

            await inventory.decrement_stock(session, product_id=towel_id, quantity=1)
            with pytest.raises(inventory.StockConflict) as exc:
                await inventory.decrement_stock(session, product_id=towel_id, quantity=1)
            assert exc.value.product_id == towel_id
            assert exc.value.retryable is True
            await session.commit()

            stock = (await session.execute(select(Product.quantity_on_hand).where(Product.id == towel_id))).scalar_one()
            assert stock == 0

    asyncio.run(run_flow())


def test_coupon_ceiling_holds_under_concurrent_checkouts(tmp_path: Path) -> None:
    engine, SessionLocal = _file_engine(tmp_path)

    async def run_flow() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with SessionLocal() as session:
            towel = Product(sku="TWL-03", name="Towel", unit_price=Decimal("8.00"), quantity_on_hand=10)
            coupon = Coupon(code="ONEONLY", status=CouponStatus.active, max_uses=1)
            coupon.rewards = [
                CouponReward(
                    applies_to=RewardScope.order,
                    discount_type=RewardDiscountType.flat,
                    discount_value=Decimal("1"),
                )
            ]
            session.add_all([towel, coupon])
            await session.commit()
            towel_id, coupon_id = towel.id, coupon.id

        async def checkout() -> bool:
            async with SessionLocal() as session:
                try:
                    await settle(session, _draft(towel_id, coupon_id), settings=EngineSettings())
                except SettlementError:
                    return False
                return True

        outcomes = await asyncio.gather(checkout(), checkout(), checkout())
        assert outcomes.count(True) == 1

        async with SessionLocal() as session:
            coupon = await session.get(Coupon, coupon_id)
            assert coupon.use_count == 1
            towel = await session.get(Product, towel_id)
            assert towel.quantity_on_hand == 9

    asyncio.run(run_flow())


def test_increment_coupon_usage_respects_ceiling() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def run_flow() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with SessionLocal() as session:
            limited = Coupon(code="TWICE", status=CouponStatus.active, max_uses=2)
            unlimited = Coupon(code="ALWAYS", status=CouponStatus.active)
            session.add_all([limited, unlimited])
            await session.commit()

            for _ in range(2):
                await coupons_service.increment_coupon_usage(session, coupon_id=limited.id)
            with pytest.raises(coupons_service.CouponUsageConflict):
                await coupons_service.increment_coupon_usage(session, coupon_id=limited.id)
            for _ in range(5):
                await coupons_service.increment_coupon_usage(session, coupon_id=unlimited.id)
            await session.commit()

            counts = dict(
                (await session.execute(select(Coupon.code, Coupon.use_count))).all()
            )
            assert counts == {"TWICE": 2, "ALWAYS": 5}

    asyncio.run(run_flow())


def test_stock_and_coupon_conflicts_share_retryable_base() -> None:
    assert issubclass(inventory.StockConflict, ResourceConflict)
    assert issubclass(coupons_service.CouponUsageConflict, ResourceConflict)
    assert coupons_service.CouponUsageConflict(uuid.uuid4()).retryable is True
