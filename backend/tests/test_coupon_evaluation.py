import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core import metrics
from app.db.base import Base
from app.models.coupons import Coupon, CouponReward, CouponStatus, RewardDiscountType, RewardScope
from app.models.customer import Customer, CustomerType
from app.models.transaction import ItemType, PaymentMethod, Transaction
from app.schemas.checkout import CartItem
from app.services import coupons as coupons_service
from app.services.engine_settings import EngineSettings


def _coupon(rewards: list[CouponReward] | None = None, **kwargs) -> Coupon:
    kwargs.setdefault("code", "EVAL")
    kwargs.setdefault("status", CouponStatus.active)
    coupon = Coupon(**kwargs)
    coupon.rewards = rewards if rewards is not None else [
        CouponReward(
            applies_to=RewardScope.order,
            discount_type=RewardDiscountType.percentage,
            discount_value=Decimal("10"),
            max_discount=Decimal("5"),
        )
    ]
    return coupon


def _service_cart(price: str = "80.00") -> list[CartItem]:
    return [CartItem(item_type=ItemType.service, service_id="svc-1", unit_price=Decimal(price), item_name="Detail")]


def test_eligible_coupon_reports_capped_discount() -> None:
    evaluation = coupons_service.evaluate_coupon(_coupon(), None, _service_cart())
    assert evaluation.eligible is True
    assert evaluation.discount_amount == Decimal("5.00")
    assert evaluation.reasons == []


def test_ineligible_coupon_keeps_potential_discount() -> None:
    coupon = _coupon(min_purchase=Decimal("100"))
    evaluation = coupons_service.evaluate_coupon(coupon, None, _service_cart())
    assert evaluation.eligible is False
    assert evaluation.discount_amount == Decimal("0.00")
    assert evaluation.potential_discount == Decimal("5.00")
    assert evaluation.failed_conditions == ["minimum purchase of $100.00"]
    assert evaluation.reasons == ["conditions_not_met"]


def test_soft_type_mismatch_is_eligible_with_warning() -> None:
    coupon = _coupon(target_customer_type=CustomerType.professional)
    customer = Customer(id=uuid.uuid4(), customer_type=CustomerType.enthusiast)

    soft = coupons_service.evaluate_coupon(coupon, customer, _service_cart(), "soft")
    hard = coupons_service.evaluate_coupon(coupon, customer, _service_cart(), "hard")

    assert soft.eligible is True
    assert soft.warnings == ["This coupon is intended for Professional customers"]
    assert hard.eligible is False
    assert "targeting_not_met" in hard.reasons


def test_state_reasons() -> None:
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert coupons_service.coupon_state_reasons(_coupon(status=CouponStatus.draft), now=now) == ["inactive"]
    assert coupons_service.coupon_state_reasons(_coupon(expires_at=now - timedelta(days=1)), now=now) == ["expired"]
    assert coupons_service.coupon_state_reasons(_coupon(max_uses=2, use_count=2), now=now) == ["usage_limit_reached"]
    assert coupons_service.coupon_state_reasons(_coupon(is_single_use=True), now=now, prior_uses=1) == ["already_used"]
    assert coupons_service.coupon_state_reasons(_coupon(rewards=[]), now=now) == ["no_rewards"]


def test_normalize_code() -> None:
    assert coupons_service.normalize_code("  save 10 ") == "SAVE10"
    assert coupons_service.normalize_code(None) == ""


def test_evaluate_coupon_code_against_database() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def run_flow() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with SessionLocal() as session:
            customer = Customer(first_name="Ana", tags=[])
            coupon = _coupon(code="ONCE", is_single_use=True)
            session.add_all([customer, coupon])
            await session.commit()

            first = await coupons_service.evaluate_coupon_code(
                session, code="once", customer_id=customer.id, items=_service_cart(), engine=EngineSettings()
            )
            assert first.eligible is True

            session.add(
                Transaction(
                    receipt_number="R-1",
                    customer_id=customer.id,
                    coupon_id=coupon.id,
                    subtotal=Decimal("80"),
                    total_amount=Decimal("75"),
                    payment_method=PaymentMethod.cash,
                )
            )
            await session.commit()

            second = await coupons_service.evaluate_coupon_code(
                session, code="ONCE", customer_id=customer.id, items=_service_cart(), engine=EngineSettings()
            )
            assert second.eligible is False
            assert second.reasons == ["already_used"]

            with pytest.raises(HTTPException) as exc:
                await coupons_service.evaluate_coupon_code(
                    session, code="NOPE", customer_id=None, items=[], engine=EngineSettings()
                )
            assert exc.value.status_code == 404

    asyncio.run(run_flow())
    counts = metrics.snapshot()
    assert counts["coupon_evaluations_eligible"] == 1
    assert counts["coupon_evaluations_ineligible"] == 1


def test_available_promotions_buckets() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    def _flat(value: str) -> list[CouponReward]:
        return [
            CouponReward(
                applies_to=RewardScope.order,
                discount_type=RewardDiscountType.flat,
                discount_value=Decimal(value),
            )
        ]

    async def run_flow() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with SessionLocal() as session:
            customer = Customer(first_name="Ana", tags=["vip"])
            session.add(customer)
            await session.flush()
            session.add_all(
                [
                    _coupon(code="MINE", customer_id=customer.id, rewards=_flat("3")),
                    _coupon(code="SMALL", rewards=_flat("2")),
                    _coupon(code="BIG", rewards=_flat("8")),
                    _coupon(code="ALMOST", min_purchase=Decimal("100"), rewards=_flat("10")),
                    _coupon(code="FAR", requires_product_ids=["a"], requires_service_ids=["b"],
                            requires_product_category_ids=["c"], requires_service_category_ids=["d"],
                            min_purchase=Decimal("500"), rewards=_flat("50")),
                    _coupon(code="FLEET", customer_tags=["fleet"], rewards=_flat("20")),
                    _coupon(code="EMPTY", rewards=[]),
                    _coupon(code="USEDUP", max_uses=1, use_count=1, rewards=_flat("9")),
                    _coupon(code="PAUSED", status=CouponStatus.disabled, rewards=_flat("9")),
                ]
            )
            await session.commit()

            promotions = await coupons_service.list_available_promotions(
                session, customer_id=customer.id, items=_service_cart(), engine=EngineSettings()
            )

        assert [e.coupon.code for e in promotions.for_you] == ["MINE"]
        assert [e.coupon.code for e in promotions.eligible] == ["BIG", "SMALL"]
        assert [e.coupon.code for e in promotions.upsell] == ["ALMOST"]

    asyncio.run(run_flow())
