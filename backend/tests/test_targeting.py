import uuid

from app.models.coupons import Coupon, CouponStatus, TagMatchMode
from app.models.customer import Customer, CustomerType
from app.services.targeting import evaluate_targeting


def _coupon(**kwargs) -> Coupon:
    kwargs.setdefault("code", "SAVE10")
    kwargs.setdefault("status", CouponStatus.active)
    return Coupon(**kwargs)


def _customer(**kwargs) -> Customer:
    kwargs.setdefault("id", uuid.uuid4())
    return Customer(**kwargs)


def test_untargeted_coupon_passes_without_customer() -> None:
    result = evaluate_targeting(_coupon(), None)
    assert result.passed is True
    assert result.warning is None


def test_assigned_coupon_only_passes_for_that_customer() -> None:
    owner = _customer()
    coupon = _coupon(customer_id=owner.id)

    assert evaluate_targeting(coupon, owner).passed is True
    assert evaluate_targeting(coupon, _customer()).passed is False
    assert evaluate_targeting(coupon, None).passed is False


def test_tag_match_all_requires_every_tag() -> None:
    customer = _customer(tags=["vip"])
    coupon = _coupon(customer_tags=["vip", "fleet"], tag_match_mode=TagMatchMode.all)
    assert evaluate_targeting(coupon, customer).passed is False

    coupon.tag_match_mode = TagMatchMode.any
    assert evaluate_targeting(coupon, customer).passed is True


def test_tag_targeting_fails_without_customer() -> None:
    coupon = _coupon(customer_tags=["vip"])
    assert evaluate_targeting(coupon, None).passed is False


def test_customer_type_soft_mode_warns() -> None:
    coupon = _coupon(target_customer_type=CustomerType.professional)
    customer = _customer(customer_type=CustomerType.enthusiast)

    result = evaluate_targeting(coupon, customer, "soft")

    assert result.passed is True
    assert result.warning == "This coupon is intended for Professional customers"


def test_customer_type_hard_mode_blocks() -> None:
    coupon = _coupon(target_customer_type=CustomerType.professional)
    assert evaluate_targeting(coupon, _customer(customer_type=CustomerType.enthusiast), "hard").passed is False
    assert evaluate_targeting(coupon, _customer(customer_type=None), "hard").passed is False


def test_customer_type_match_has_no_warning() -> None:
    coupon = _coupon(target_customer_type=CustomerType.enthusiast)
    result = evaluate_targeting(coupon, _customer(customer_type=CustomerType.enthusiast), "hard")
    assert result.passed is True
    assert result.warning is None


def test_customer_type_requires_customer() -> None:
    coupon = _coupon(target_customer_type=CustomerType.enthusiast)
    assert evaluate_targeting(coupon, None, "soft").passed is False
