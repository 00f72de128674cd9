from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from app.models.coupons import ConditionLogic, Coupon
from app.models.customer import Customer
from app.models.transaction import ItemType
from app.schemas.checkout import CartItem
from app.services import pricing


@dataclass(frozen=True)
class Condition:
    kind: str
    met: bool
    description: str
    missing: str | None = None


@dataclass(frozen=True)
class ConditionsResult:
    passed: bool
    failed_conditions: list[str] = field(default_factory=list)
    missing_items: list[str] = field(default_factory=list)


def _id_set(values: Iterable[object] | None) -> set[str]:
    return {str(v) for v in (values or []) if v is not None and str(v)}


def _any_item(items: Sequence[CartItem], item_type: ItemType, key: Callable[[CartItem], str | None], wanted: set[str]) -> bool:
    for item in items:
        if item.item_type != item_type:
            continue
        value = key(item)
        if value and str(value) in wanted:
            return True
    return False


def _item_condition(
    *,
    kind: str,
    description: str,
    wanted: set[str],
    items: Sequence[CartItem],
    item_type: ItemType,
    key: Callable[[CartItem], str | None],
) -> Condition:
    met = _any_item(items, item_type, key, wanted)
    return Condition(kind=kind, met=met, description=description, missing=None if met else kind)


def collect_conditions(
    coupon: Coupon,
    items: Sequence[CartItem],
    subtotal: Decimal,
    customer: Customer | None,
) -> list[Condition]:
    """Evaluate every configured usage condition independently, in a fixed order."""
    conditions: list[Condition] = []

    product_ids = _id_set(coupon.requires_product_ids)
    if product_ids:
        conditions.append(
            _item_condition(
                kind="product",
                description="required product",
                wanted=product_ids,
                items=items,
                item_type=ItemType.product,
                key=lambda i: i.product_id,
            )
        )

    service_ids = _id_set(coupon.requires_service_ids)
    if service_ids:
        conditions.append(
            _item_condition(
                kind="service",
                description="required service",
                wanted=service_ids,
                items=items,
                item_type=ItemType.service,
                key=lambda i: i.service_id,
            )
        )

    product_categories = _id_set(coupon.requires_product_category_ids)
    if product_categories:
        conditions.append(
            _item_condition(
                kind="product_category",
                description="product from required category",
                wanted=product_categories,
                items=items,
                item_type=ItemType.product,
                key=lambda i: i.category_id,
            )
        )

    service_categories = _id_set(coupon.requires_service_category_ids)
    if service_categories:
        conditions.append(
            _item_condition(
                kind="service_category",
                description="service from required category",
                wanted=service_categories,
                items=items,
                item_type=ItemType.service,
                key=lambda i: i.category_id,
            )
        )

    if coupon.min_purchase is not None:
        minimum = pricing.to_decimal(coupon.min_purchase)
        met = pricing.to_decimal(subtotal) >= minimum
        conditions.append(
            Condition(
                kind="min_purchase",
                met=met,
                description=f"minimum purchase of ${pricing.quantize_money(minimum)}",
                missing=None if met else f"min_purchase:{minimum.normalize():f}",
            )
        )

    if coupon.max_customer_visits is not None:
        met = customer is not None and int(customer.visit_count or 0) <= int(coupon.max_customer_visits)
        conditions.append(Condition(kind="max_visits", met=met, description="visit count limit"))

    return conditions


def combine(conditions: Sequence[Condition], logic: ConditionLogic | str | None) -> ConditionsResult:
    if not conditions:
        return ConditionsResult(passed=True)
    if ConditionLogic(logic or ConditionLogic.and_) == ConditionLogic.or_:
        passed = any(c.met for c in conditions)
    else:
        passed = all(c.met for c in conditions)
    failed = [c for c in conditions if not c.met]
    return ConditionsResult(
        passed=passed,
        failed_conditions=[c.description for c in failed],
        missing_items=[c.missing for c in failed if c.missing],
    )


def evaluate_conditions(
    coupon: Coupon,
    items: Sequence[CartItem],
    subtotal: Decimal,
    customer: Customer | None,
) -> ConditionsResult:
    return combine(collect_conditions(coupon, items, subtotal, customer), coupon.condition_logic)
