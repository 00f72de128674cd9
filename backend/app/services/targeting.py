from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from app.models.coupons import Coupon, TagMatchMode
from app.models.customer import CUSTOMER_TYPE_LABELS, Customer, CustomerType


EnforcementMode = Literal["soft", "hard"]


@dataclass(frozen=True)
class TargetingResult:
    passed: bool
    warning: str | None = None


def _customer_tags(customer: Customer) -> set[str]:
    return {str(tag) for tag in (customer.tags or [])}


def _tags_match(required: list[str], present: set[str], mode: TagMatchMode | str | None) -> bool:
    if TagMatchMode(mode or TagMatchMode.any) == TagMatchMode.all:
        return all(tag in present for tag in required)
    return any(tag in present for tag in required)


def _type_label(value: CustomerType | str) -> str:
    customer_type = CustomerType(value)
    return CUSTOMER_TYPE_LABELS.get(customer_type, customer_type.value.title())


def evaluate_targeting(
    coupon: Coupon,
    customer: Customer | None,
    enforcement_mode: EnforcementMode = "soft",
) -> TargetingResult:
    """Decide whether ``customer`` may use ``coupon``.

    Identity and tag rules are hard gates. The customer-class rule only blocks in
    ``hard`` mode; in ``soft`` mode it passes with a warning staff can surface.
    """
    if coupon.customer_id is not None:
        if customer is None or str(coupon.customer_id) != str(customer.id):
            return TargetingResult(passed=False)

    required_tags = [str(tag) for tag in (coupon.customer_tags or [])]
    if required_tags:
        if customer is None:
            return TargetingResult(passed=False)
        if not _tags_match(required_tags, _customer_tags(customer), coupon.tag_match_mode):
            return TargetingResult(passed=False)

    if coupon.target_customer_type is not None:
        if customer is None:
            return TargetingResult(passed=False)
        target = CustomerType(coupon.target_customer_type)
        actual = CustomerType(customer.customer_type) if customer.customer_type is not None else None
        if actual != target:
            if enforcement_mode == "hard":
                return TargetingResult(passed=False)
            return TargetingResult(passed=True, warning=f"This coupon is intended for {_type_label(target)} customers")

    return TargetingResult(passed=True)
