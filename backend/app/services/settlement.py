from __future__ import annotations

import enum
import logging
import random
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core import metrics
from app.models.catalog import Product, Service
from app.models.coupons import Coupon
from app.models.customer import Customer, LoyaltyLedgerEntry
from app.models.transaction import ItemType, Payment, PaymentMethod, Transaction, TransactionItem, TransactionStatus
from app.schemas.checkout import TransactionDraft
from app.services import coupons as coupons_service
from app.services import inventory
from app.services import loyalty
from app.services import pricing
from app.services.conflicts import ResourceConflict
from app.services.engine_settings import EngineSettings


logger = logging.getLogger(__name__)


class SettlementStage(str, enum.Enum):
    initiated = "initiated"
    items_recorded = "items_recorded"
    payments_recorded = "payments_recorded"
    inventory_applied = "inventory_applied"
    loyalty_applied = "loyalty_applied"
    attribution_applied = "attribution_applied"
    committed = "committed"


class SettlementValidationError(ValueError):
    """The draft is unusable as submitted; nothing was written."""


class SettlementError(Exception):
    """The pipeline failed at ``stage`` and everything it wrote was rolled back."""

    def __init__(self, message: str, *, stage: SettlementStage, retryable: bool = False) -> None:
        super().__init__(message)
        self.stage = stage
        self.retryable = retryable


@dataclass
class SettlementResult:
    transaction: Transaction
    ledger_entries: list[LoyaltyLedgerEntry] = field(default_factory=list)


@dataclass
class _Context:
    customer: Customer | None
    coupon: Coupon | None
    products: dict[UUID, Product]
    services: dict[UUID, Service]


async def _generate_receipt_number(session: AsyncSession, now: datetime, length: int = 6) -> str:
    chars = string.ascii_uppercase + string.digits
    while True:
        candidate = f"{now:%y%m%d}-{''.join(random.choices(chars, k=length))}"
        result = await session.execute(select(Transaction.id).where(Transaction.receipt_number == candidate))
        if result.scalar_one_or_none() is None:
            return candidate


async def _load_context(session: AsyncSession, draft: TransactionDraft, settings: EngineSettings) -> _Context:
    product_ids: set[UUID] = set()
    service_ids: set[UUID] = set()
    for index, line in enumerate(draft.items):
        if line.item_type == ItemType.product:
            if line.product_id is None:
                raise SettlementValidationError(f"Line {index + 1}: product lines require product_id")
            product_ids.add(line.product_id)
        else:
            if line.service_id is None:
                raise SettlementValidationError(f"Line {index + 1}: service lines require service_id")
            service_ids.add(line.service_id)

    redemption = draft.loyalty_redemption
    if redemption is not None:
        if draft.customer_id is None:
            raise SettlementValidationError("Loyalty redemption requires a customer")
        if not settings.loyalty_enabled:
            raise SettlementValidationError("Loyalty is disabled")
        if redemption.points < settings.loyalty_redeem_minimum:
            raise SettlementValidationError(
                f"At least {settings.loyalty_redeem_minimum} points are required to redeem"
            )
        if pricing.quantize_money(redemption.discount) > loyalty.redemption_value(redemption.points, settings):
            raise SettlementValidationError("Loyalty discount exceeds the value of the redeemed points")

    customer = None
    if draft.customer_id is not None:
        customer = await session.get(Customer, draft.customer_id)
        if customer is None:
            raise SettlementValidationError("Customer not found")

    coupon = None
    if draft.coupon_id is not None:
        coupon = await session.get(
            Coupon, draft.coupon_id, options=[selectinload(Coupon.rewards)], populate_existing=True
        )
        if coupon is None:
            raise SettlementValidationError("Coupon not found")
        state = coupons_service.coupon_state_reasons(coupon)
        if "inactive" in state or "expired" in state:
            raise SettlementValidationError("Coupon is not active")

    products: dict[UUID, Product] = {}
    if product_ids:
        rows = (await session.execute(select(Product).where(Product.id.in_(product_ids)))).scalars().all()
        products = {p.id: p for p in rows}
        if set(products) != product_ids:
            raise SettlementValidationError("Unknown product in cart")
    services: dict[UUID, Service] = {}
    if service_ids:
        rows = (await session.execute(select(Service).where(Service.id.in_(service_ids)))).scalars().all()
        services = {s.id: s for s in rows}
        if set(services) != service_ids:
            raise SettlementValidationError("Unknown service in cart")

    return _Context(customer=customer, coupon=coupon, products=products, services=services)


def _build_items(draft: TransactionDraft, ctx: _Context, transaction_id: UUID) -> list[TransactionItem]:
    rows: list[TransactionItem] = []
    for line in draft.items:
        if line.item_type == ItemType.product:
            catalog = ctx.products[line.product_id]  # type: ignore[index]
            unit_price = pricing.quantize_money(line.unit_price)
        else:
            catalog = ctx.services[line.service_id]  # type: ignore[index]
            # Services are booked as a total; store what one unit cost.
            unit_price = (
                pricing.per_unit_price(line.total_price, line.quantity)
                if line.quantity > 1
                else pricing.quantize_money(line.unit_price)
            )
        rows.append(
            TransactionItem(
                transaction_id=transaction_id,
                item_type=line.item_type,
                product_id=line.product_id,
                service_id=line.service_id,
                category_id=catalog.category_id,
                item_name=line.item_name,
                quantity=line.quantity,
                unit_price=unit_price,
                total_price=pricing.quantize_money(line.total_price),
                tax_amount=pricing.quantize_money(line.tax_amount),
                is_taxable=catalog.is_taxable if line.is_taxable is None else line.is_taxable,
                tier_name=line.tier_name,
                notes=line.notes,
            )
        )
    return rows


def _build_payments(draft: TransactionDraft, settings: EngineSettings, transaction_id: UUID) -> list[Payment]:
    rows: list[Payment] = []
    for tender in draft.payments:
        tip = pricing.quantize_money(tender.tip_amount)
        rows.append(
            Payment(
                transaction_id=transaction_id,
                method=tender.method,
                amount=pricing.quantize_money(tender.amount),
                tip_amount=tip,
                tip_net=pricing.net_of_fee(tip, settings.card_fee_rate) if tender.method == PaymentMethod.card else tip,
                stripe_payment_intent_id=tender.stripe_payment_intent_id,
                card_brand=tender.card_brand,
                card_last_four=tender.card_last_four,
            )
        )
    return rows


async def settle(session: AsyncSession, draft: TransactionDraft, *, settings: EngineSettings) -> SettlementResult:
    """Persist a checkout as one unit of work.

    Header, lines, payments, stock, customer stats and loyalty, coupon and campaign
    counters are all written inside the session's transaction. Shared counters move
    only through single conditional UPDATEs, so concurrent checkouts cannot lose an
    update or cross a floor or ceiling. Any failure rolls everything back.
    """
    try:
        ctx = await _load_context(session, draft, settings)
    except SettlementValidationError:
        await session.rollback()
        raise
    except SQLAlchemyError as exc:
        await session.rollback()
        metrics.record_settlement_failure(SettlementStage.initiated.value)
        logger.exception("settlement_failed", extra={"stage": SettlementStage.initiated.value})
        raise SettlementError("Checkout failed before anything was recorded", stage=SettlementStage.initiated) from exc

    now = datetime.now(timezone.utc)
    stage = SettlementStage.initiated
    ledger_entries: list[LoyaltyLedgerEntry] = []
    try:
        redemption = draft.loyalty_redemption
        transaction = Transaction(
            receipt_number=await _generate_receipt_number(session, now),
            customer_id=draft.customer_id,
            coupon_id=draft.coupon_id,
            status=TransactionStatus.completed,
            subtotal=pricing.quantize_money(draft.subtotal),
            tax_amount=pricing.quantize_money(draft.tax_amount),
            tip_amount=pricing.quantize_money(draft.tip_amount),
            discount_amount=pricing.quantize_money(draft.discount_amount),
            total_amount=pricing.quantize_money(draft.total_amount),
            payment_method=draft.payment_method,
            loyalty_points_earned=0,
            loyalty_points_redeemed=redemption.points if redemption else 0,
            loyalty_discount=pricing.quantize_money(redemption.discount) if redemption else pricing.ZERO,
            notes=draft.notes,
            transaction_date=now,
        )
        session.add(transaction)
        await session.flush()

        stage = SettlementStage.items_recorded
        session.add_all(_build_items(draft, ctx, transaction.id))
        await session.flush()

        stage = SettlementStage.payments_recorded
        session.add_all(_build_payments(draft, settings, transaction.id))
        await session.flush()

        stage = SettlementStage.inventory_applied
        for line in draft.items:
            if line.item_type == ItemType.product and line.product_id is not None:
                await inventory.decrement_stock(
                    session,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    allow_oversell=settings.inventory_allow_oversell,
                )

        stage = SettlementStage.loyalty_applied
        if ctx.customer is not None:
            balance = await loyalty.record_customer_visit(
                session,
                customer_id=ctx.customer.id,
                total_amount=draft.total_amount,
                visit_date=now.date(),
            )
            if balance is None:
                raise LookupError("customer disappeared during settlement")
            if settings.loyalty_enabled:
                if redemption is not None:
                    redeemed = await loyalty.redeem_points(
                        session,
                        customer_id=ctx.customer.id,
                        points=redemption.points,
                        balance_before=int(balance),
                        discount=redemption.discount,
                        settings=settings,
                        transaction_id=transaction.id,
                    )
                    ledger_entries.append(redeemed)
                    transaction.loyalty_points_redeemed = -redeemed.points_change
                    transaction.loyalty_discount = min(
                        transaction.loyalty_discount,
                        loyalty.redemption_value(transaction.loyalty_points_redeemed, settings),
                    )
                spend = loyalty.earnable_spend(draft.items, ctx.products, settings)
                earned_points = pricing.floor_points(spend, settings.loyalty_earn_rate)
                earned = await loyalty.earn_points(
                    session,
                    customer_id=ctx.customer.id,
                    points=earned_points,
                    receipt_number=transaction.receipt_number,
                    transaction_id=transaction.id,
                )
                if earned is not None:
                    ledger_entries.append(earned)
                    transaction.loyalty_points_earned = earned_points

        stage = SettlementStage.attribution_applied
        if ctx.coupon is not None:
            await coupons_service.increment_coupon_usage(session, coupon_id=ctx.coupon.id)
            if ctx.coupon.campaign_id is not None:
                await coupons_service.attribute_campaign(
                    session, campaign_id=ctx.coupon.campaign_id, total_amount=draft.total_amount
                )

        stage = SettlementStage.committed
        await session.commit()
    except ResourceConflict as exc:
        await session.rollback()
        metrics.record_settlement_failure(stage.value)
        logger.warning("settlement_conflict", extra={"stage": stage.value, "error": str(exc)})
        raise SettlementError(f"Checkout conflicted at {stage.value}; please retry", stage=stage, retryable=True) from exc
    except (SQLAlchemyError, LookupError) as exc:
        await session.rollback()
        metrics.record_settlement_failure(stage.value)
        logger.exception("settlement_failed", extra={"stage": stage.value})
        raise SettlementError(f"Checkout failed at {stage.value}", stage=stage, retryable=False) from exc

    await session.refresh(transaction)
    await session.refresh(transaction, attribute_names=["items", "payments"])
    for entry in ledger_entries:
        await session.refresh(entry)
    # Counters moved through bulk UPDATEs; reload what the identity map still holds.
    for loaded in (ctx.customer, ctx.coupon):
        if loaded is not None:
            await session.refresh(loaded)

    metrics.record_settlement_committed()
    if ctx.coupon is not None:
        metrics.record_coupon_redemption()
    logger.info(
        "settlement_committed",
        extra={
            "transaction_id": str(transaction.id),
            "receipt_number": transaction.receipt_number,
            "total_amount": transaction.total_amount,
            "points_earned": transaction.loyalty_points_earned,
        },
    )
    return SettlementResult(transaction=transaction, ledger_entries=ledger_entries)
