from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from app.models.coupons import CouponReward, RewardDiscountType, RewardScope
from app.models.transaction import ItemType
from app.schemas.checkout import CartItem
from app.services import pricing


def _matching_items(
    items: Sequence[CartItem],
    item_type: ItemType,
    target_id: str | None,
    target_category_id: str | None,
) -> list[CartItem]:
    matches: list[CartItem] = []
    for item in items:
        if item.item_type != item_type:
            continue
        if target_id:
            item_id = item.product_id if item_type == ItemType.product else item.service_id
            if str(item_id or "") == str(target_id):
                matches.append(item)
            continue
        if target_category_id:
            if str(item.category_id or "") == str(target_category_id):
                matches.append(item)
            continue
        matches.append(item)
    return matches


def applicable_base(reward: CouponReward, items: Sequence[CartItem], subtotal: Decimal) -> Decimal | None:
    """Amount the reward is computed against, or None when no cart line matches it."""
    scope = RewardScope(reward.applies_to)
    if scope == RewardScope.order:
        return pricing.to_decimal(subtotal)
    if scope == RewardScope.product:
        matching = _matching_items(items, ItemType.product, reward.target_product_id, reward.target_product_category_id)
    else:
        matching = _matching_items(items, ItemType.service, reward.target_service_id, reward.target_service_category_id)
    if not matching:
        return None
    return sum((item.line_total for item in matching), start=pricing.ZERO)


def reward_discount(reward: CouponReward, base: Decimal) -> Decimal:
    value = pricing.to_decimal(reward.discount_value)
    discount_type = RewardDiscountType(reward.discount_type)
    if discount_type == RewardDiscountType.percentage:
        amount = pricing.quantize_money(base * value / Decimal("100"))
        if reward.max_discount is not None:
            amount = min(amount, pricing.to_decimal(reward.max_discount))
        return amount
    if discount_type == RewardDiscountType.flat:
        return min(value, base)
    if discount_type == RewardDiscountType.free:
        return base
    return pricing.ZERO


def calculate_discount(rewards: Sequence[CouponReward], items: Sequence[CartItem], subtotal: Decimal) -> Decimal:
    """Total coupon discount for a cart.

    Each reward is rounded to cents on its own before summing, and only the sum is
    clamped to the subtotal. Keep that order: it is what makes totals reproducible
    for coupons that carry several rewards.
    """
    subtotal_dec = pricing.to_decimal(subtotal)
    if subtotal_dec <= 0:
        return pricing.ZERO

    total = pricing.ZERO
    for reward in rewards:
        base = applicable_base(reward, items, subtotal_dec)
        if base is None or base <= 0:
            continue
        total += max(pricing.ZERO, pricing.quantize_money(reward_discount(reward, base)))

    total = min(total, subtotal_dec)
    return pricing.quantize_money(max(total, pricing.ZERO))


def describe_rewards(rewards: Sequence[CouponReward]) -> str:
    parts: list[str] = []
    for reward in rewards:
        discount_type = RewardDiscountType(reward.discount_type)
        value = pricing.to_decimal(reward.discount_value)
        if discount_type == RewardDiscountType.free:
            parts.append("Free item")
        elif discount_type == RewardDiscountType.percentage:
            parts.append(f"{value.normalize():f}% off")
        else:
            parts.append(f"${value.normalize():f} off")
    return " + ".join(parts)
