from decimal import Decimal

from app.models.coupons import ConditionLogic, Coupon, CouponStatus
from app.models.customer import Customer
from app.models.transaction import ItemType
from app.schemas.checkout import CartItem
from app.services.conditions import collect_conditions, evaluate_conditions


def _coupon(**kwargs) -> Coupon:
    kwargs.setdefault("code", "COND")
    kwargs.setdefault("status", CouponStatus.active)
    return Coupon(**kwargs)


def _product(product_id: str, price: str, category_id: str | None = None, quantity: int = 1) -> CartItem:
    return CartItem(
        item_type=ItemType.product,
        product_id=product_id,
        category_id=category_id,
        unit_price=Decimal(price),
        quantity=quantity,
    )


def _service(service_id: str, price: str, category_id: str | None = None) -> CartItem:
    return CartItem(item_type=ItemType.service, service_id=service_id, category_id=category_id, unit_price=Decimal(price))


def test_no_conditions_pass() -> None:
    result = evaluate_conditions(_coupon(), [], Decimal("0"), None)
    assert result.passed is True
    assert result.failed_conditions == []


def test_and_logic_fails_when_category_missing() -> None:
    coupon = _coupon(
        min_purchase=Decimal("50"),
        requires_product_category_ids=["cat-x"],
        condition_logic=ConditionLogic.and_,
    )
    cart = [_product("p1", "60.00", category_id="cat-y")]

    result = evaluate_conditions(coupon, cart, Decimal("60.00"), None)

    assert result.passed is False
    assert result.failed_conditions == ["product from required category"]
    assert result.missing_items == ["product_category"]


def test_or_logic_passes_with_one_condition_met() -> None:
    coupon = _coupon(
        min_purchase=Decimal("50"),
        requires_product_category_ids=["cat-x"],
        condition_logic=ConditionLogic.or_,
    )
    cart = [_product("p1", "60.00", category_id="cat-y")]

    result = evaluate_conditions(coupon, cart, Decimal("60.00"), None)

    assert result.passed is True
    # Failed conditions are still reported for upsell hints.
    assert result.failed_conditions == ["product from required category"]


def test_min_purchase_missing_tag_carries_threshold() -> None:
    coupon = _coupon(min_purchase=Decimal("75.50"))
    result = evaluate_conditions(coupon, [_service("s1", "20")], Decimal("20"), None)
    assert result.passed is False
    assert result.failed_conditions == ["minimum purchase of $75.50"]
    assert result.missing_items == ["min_purchase:75.5"]


def test_required_product_and_service_ids() -> None:
    coupon = _coupon(requires_product_ids=["p1"], requires_service_ids=["s9"])
    cart = [_product("p1", "10"), _service("s1", "30")]

    result = evaluate_conditions(coupon, cart, Decimal("40"), None)

    assert result.passed is False
    assert result.failed_conditions == ["required service"]
    assert result.missing_items == ["service"]


def test_product_id_does_not_satisfy_service_requirement() -> None:
    coupon = _coupon(requires_service_category_ids=["shared"])
    cart = [_product("p1", "10", category_id="shared")]
    assert evaluate_conditions(coupon, cart, Decimal("10"), None).passed is False


def test_visit_cap_needs_customer_within_limit() -> None:
    coupon = _coupon(max_customer_visits=3)
    regular = Customer(visit_count=5)
    newcomer = Customer(visit_count=1)

    assert evaluate_conditions(coupon, [], Decimal("0"), newcomer).passed is True
    failed = evaluate_conditions(coupon, [], Decimal("0"), regular)
    assert failed.passed is False
    assert failed.failed_conditions == ["visit count limit"]
    assert failed.missing_items == []
    assert evaluate_conditions(coupon, [], Decimal("0"), None).passed is False


def test_conditions_are_collected_in_fixed_order() -> None:
    coupon = _coupon(
        requires_product_ids=["p"],
        requires_service_ids=["s"],
        requires_product_category_ids=["pc"],
        requires_service_category_ids=["sc"],
        min_purchase=Decimal("1"),
        max_customer_visits=10,
    )
    kinds = [c.kind for c in collect_conditions(coupon, [], Decimal("0"), None)]
    assert kinds == ["product", "service", "product_category", "service_category", "min_purchase", "max_visits"]
