from app.db.base import Base  # noqa: F401
from app.models.business_setting import BusinessSetting  # noqa: F401
from app.models.catalog import Product, ProductCategory, Service, ServiceCategory  # noqa: F401
from app.models.customer import Customer, CustomerType, LoyaltyAction, LoyaltyLedgerEntry  # noqa: F401
from app.models.coupons import (  # noqa: F401
    Campaign,
    ConditionLogic,
    Coupon,
    CouponReward,
    CouponStatus,
    RewardDiscountType,
    RewardScope,
    TagMatchMode,
)
from app.models.transaction import (  # noqa: F401
    ItemType,
    Payment,
    PaymentMethod,
    Transaction,
    TransactionItem,
    TransactionStatus,
)

__all__ = [
    "Base",
    "BusinessSetting",
    "Product",
    "ProductCategory",
    "Service",
    "ServiceCategory",
    "Customer",
    "CustomerType",
    "LoyaltyAction",
    "LoyaltyLedgerEntry",
    "Campaign",
    "ConditionLogic",
    "Coupon",
    "CouponReward",
    "CouponStatus",
    "RewardDiscountType",
    "RewardScope",
    "TagMatchMode",
    "ItemType",
    "Payment",
    "PaymentMethod",
    "Transaction",
    "TransactionItem",
    "TransactionStatus",
]
