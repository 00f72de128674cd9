"""settlement engine schema

Revision ID: 0001
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        onupdate=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    for table in ("product_categories", "service_categories"):
        op.create_table(
            table,
            _uuid_pk(),
            sa.Column("slug", sa.String(length=120), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            _created_at(),
        )
        op.create_index(f"ix_{table}_slug", table, ["slug"], unique=True)

    op.create_table(
        "products",
        _uuid_pk(),
        sa.Column(
            "category_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("product_categories.id"), nullable=True
        ),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("quantity_on_hand", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_taxable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_loyalty_eligible", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("quantity_on_hand >= 0", name="ck_products_quantity_on_hand_non_negative"),
    )
    op.create_index("ix_products_sku", "products", ["sku"], unique=True)
    op.create_index("ix_products_category_id", "products", ["category_id"])

    op.create_table(
        "services",
        _uuid_pk(),
        sa.Column(
            "category_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("service_categories.id"), nullable=True
        ),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("is_taxable", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index("ix_services_category_id", "services", ["category_id"])

    op.create_table(
        "customers",
        _uuid_pk(),
        sa.Column("first_name", sa.String(length=80), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(length=80), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("customer_type", sa.String(length=20), nullable=True),
        sa.Column("visit_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_spend", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("loyalty_points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_visit_date", sa.Date(), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "loyalty_points_balance >= 0", name="ck_customers_loyalty_points_balance_non_negative"
        ),
    )
    op.create_index("ix_customers_email", "customers", ["email"])
    op.create_index("ix_customers_phone", "customers", ["phone"])

    op.create_table(
        "campaigns",
        _uuid_pk(),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("redeemed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("revenue_attributed", sa.Numeric(12, 2), nullable=False, server_default="0"),
        _created_at(),
    )

    op.create_table(
        "coupons",
        _uuid_pk(),
        sa.Column("code", sa.String(length=40), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("auto_apply", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("customer_tags", sa.JSON(), nullable=True),
        sa.Column("tag_match_mode", sa.String(length=10), nullable=False, server_default="any"),
        sa.Column("target_customer_type", sa.String(length=20), nullable=True),
        sa.Column("condition_logic", sa.String(length=10), nullable=False, server_default="and"),
        sa.Column("requires_product_ids", sa.JSON(), nullable=True),
        sa.Column("requires_service_ids", sa.JSON(), nullable=True),
        sa.Column("requires_product_category_ids", sa.JSON(), nullable=True),
        sa.Column("requires_service_category_ids", sa.JSON(), nullable=True),
        sa.Column("min_purchase", sa.Numeric(10, 2), nullable=True),
        sa.Column("max_customer_visits", sa.Integer(), nullable=True),
        sa.Column("is_single_use", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("use_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("campaigns.id"), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_coupons_code", "coupons", ["code"], unique=True)
    op.create_index("ix_coupons_customer_id", "coupons", ["customer_id"])
    op.create_index("ix_coupons_campaign_id", "coupons", ["campaign_id"])

    op.create_table(
        "coupon_rewards",
        _uuid_pk(),
        sa.Column(
            "coupon_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("coupons.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("applies_to", sa.String(length=20), nullable=False, server_default="order"),
        sa.Column("discount_type", sa.String(length=20), nullable=False, server_default="percentage"),
        sa.Column("discount_value", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("max_discount", sa.Numeric(10, 2), nullable=True),
        sa.Column("target_product_id", sa.String(length=64), nullable=True),
        sa.Column("target_service_id", sa.String(length=64), nullable=True),
        sa.Column("target_product_category_id", sa.String(length=64), nullable=True),
        sa.Column("target_service_category_id", sa.String(length=64), nullable=True),
        _created_at(),
    )
    op.create_index("ix_coupon_rewards_coupon_id", "coupon_rewards", ["coupon_id"])

    op.create_table(
        "transactions",
        _uuid_pk(),
        sa.Column("receipt_number", sa.String(length=20), nullable=False, unique=True),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("coupon_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("coupons.id"), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="completed"),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("tip_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("payment_method", sa.String(length=10), nullable=False),
        sa.Column("loyalty_points_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("loyalty_points_redeemed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("loyalty_discount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("transaction_date", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_transactions_customer_id", "transactions", ["customer_id"])
    op.create_index("ix_transactions_coupon_id", "transactions", ["coupon_id"])

    op.create_table(
        "transaction_items",
        _uuid_pk(),
        sa.Column(
            "transaction_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("transactions.id"), nullable=False
        ),
        sa.Column("item_type", sa.String(length=10), nullable=False),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("products.id"), nullable=True),
        sa.Column("service_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("services.id"), nullable=True),
        sa.Column("category_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("item_name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("is_taxable", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tier_name", sa.String(length=80), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_transaction_items_transaction_id", "transaction_items", ["transaction_id"])

    op.create_table(
        "payments",
        _uuid_pk(),
        sa.Column(
            "transaction_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("transactions.id"), nullable=False
        ),
        sa.Column("method", sa.String(length=10), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("tip_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("tip_net", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("stripe_payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("card_brand", sa.String(length=32), nullable=True),
        sa.Column("card_last_four", sa.String(length=4), nullable=True),
        _created_at(),
    )
    op.create_index("ix_payments_transaction_id", "payments", ["transaction_id"])

    op.create_table(
        "loyalty_ledger",
        _uuid_pk(),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column(
            "transaction_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("transactions.id"), nullable=True
        ),
        sa.Column("action", sa.String(length=10), nullable=False),
        sa.Column("points_change", sa.Integer(), nullable=False),
        sa.Column("points_balance", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("entry_number", sa.Integer(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("customer_id", "entry_number", name="uq_loyalty_ledger_customer_entry"),
    )
    op.create_index("ix_loyalty_ledger_customer_id", "loyalty_ledger", ["customer_id"])
    op.create_index("ix_loyalty_ledger_transaction_id", "loyalty_ledger", ["transaction_id"])

    op.create_table(
        "business_settings",
        _uuid_pk(),
        sa.Column("key", sa.String(length=80), nullable=False),
        sa.Column("value", sa.JSON(), nullable=True),
        _updated_at(),
    )
    op.create_index("ix_business_settings_key", "business_settings", ["key"], unique=True)


def downgrade() -> None:
    op.drop_table("business_settings")
    op.drop_table("loyalty_ledger")
    op.drop_table("payments")
    op.drop_table("transaction_items")
    op.drop_table("transactions")
    op.drop_table("coupon_rewards")
    op.drop_table("coupons")
    op.drop_table("campaigns")
    op.drop_table("customers")
    op.drop_table("services")
    op.drop_table("products")
    op.drop_table("service_categories")
    op.drop_table("product_categories")
