import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, CheckConstraint, Date, DateTime, Enum, ForeignKey, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class CustomerType(str, enum.Enum):
    enthusiast = "enthusiast"
    professional = "professional"


CUSTOMER_TYPE_LABELS: dict[CustomerType, str] = {
    CustomerType.enthusiast: "Enthusiast",
    CustomerType.professional: "Professional",
}


class LoyaltyAction(str, enum.Enum):
    earned = "earned"
    redeemed = "redeemed"
    adjusted = "adjusted"
    expired = "expired"


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (
        CheckConstraint("loyalty_points_balance >= 0", name="ck_customers_loyalty_points_balance_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    customer_type: Mapped[CustomerType | None] = mapped_column(Enum(CustomerType, native_enum=False), nullable=True)
    visit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_spend: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    loyalty_points_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_visit_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    ledger_entries: Mapped[list["LoyaltyLedgerEntry"]] = relationship(
        "LoyaltyLedgerEntry", back_populates="customer", order_by="LoyaltyLedgerEntry.entry_number"
    )


class LoyaltyLedgerEntry(Base):
    """Append-only history of point balance changes; the customer balance is a cache of it."""

    __tablename__ = "loyalty_ledger"
    __table_args__ = (UniqueConstraint("customer_id", "entry_number", name="uq_loyalty_ledger_customer_entry"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True
    )
    transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=True, index=True
    )
    action: Mapped[LoyaltyAction] = mapped_column(Enum(LoyaltyAction, native_enum=False), nullable=False)
    points_change: Mapped[int] = mapped_column(Integer, nullable=False)
    points_balance: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Per-customer position; the latest row carries the balance the cache must equal.
    entry_number: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    customer: Mapped[Customer] = relationship("Customer", back_populates="ledger_entries")
