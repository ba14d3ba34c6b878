"""Domain models for the billing ledger."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlmodel import Column, Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    NET_BANKING = "net_banking"
    GATEWAY = "gateway"


def _enum_column(enum_cls, default, index: bool = False) -> Column:
    return Column(
        sa.Enum(
            enum_cls,
            native_enum=False,
            length=20,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        default=default,
        index=index,
    )


class Customer(SQLModel, table=True):
    """Customer billed by the business; also the principal for customer logins."""

    __tablename__ = "customers"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(max_length=50)
    email: str = Field(max_length=255, unique=True, index=True)
    phone: Optional[str] = Field(default=None, max_length=20)
    address: Optional[str] = Field(default=None, max_length=200)
    is_active: bool = True
    created_by_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(timezone=True))


class Product(SQLModel, table=True):
    """Catalog product with on-hand stock."""

    __tablename__ = "products"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(max_length=100, index=True)
    description: str = Field(default="", max_length=500)
    category: Optional[str] = Field(default=None, max_length=50)
    price: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    quantity: int = Field(default=0, ge=0)
    low_stock_threshold: int = Field(default=10, ge=0)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(timezone=True))

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.low_stock_threshold


class Bill(SQLModel, table=True):
    """Invoice for a sale together with its payment state."""

    __tablename__ = "bills"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    bill_number: str = Field(max_length=32, unique=True, index=True)
    customer_id: UUID = Field(foreign_key="customers.id", index=True)
    subtotal: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    tax_rate: Decimal = Field(default=Decimal("0"), max_digits=5, decimal_places=2)
    tax_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    discount_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    total_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    payment_status: PaymentStatus = Field(
        default=PaymentStatus.PENDING,
        sa_column=_enum_column(PaymentStatus, PaymentStatus.PENDING, index=True),
    )
    payment_method: PaymentMethod = Field(
        default=PaymentMethod.CASH,
        sa_column=_enum_column(PaymentMethod, PaymentMethod.CASH),
    )
    gateway_order_id: Optional[str] = Field(default=None, max_length=64, index=True)
    gateway_payment_id: Optional[str] = Field(default=None, max_length=64)
    notes: Optional[str] = Field(default=None, max_length=500)
    due_date: datetime = Field(sa_type=sa.DateTime(timezone=True), index=True)
    paid_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    email_sent_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    email_sent_to: Optional[str] = Field(default=None, max_length=255)
    rendered_document_ref: Optional[str] = Field(default=None, max_length=255)
    created_by_id: UUID = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(timezone=True), index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(timezone=True))

    # Relationships
    customer: Optional[Customer] = Relationship(sa_relationship_kwargs={"lazy": "selectin"})
    line_items: List["BillLineItem"] = Relationship(
        back_populates="bill",
        sa_relationship_kwargs={
            "lazy": "selectin",
            "order_by": "BillLineItem.position",
            "cascade": "all, delete-orphan",
        },
    )

    @property
    def is_overdue(self) -> bool:
        return self.payment_status == PaymentStatus.PENDING and utcnow() > as_utc(self.due_date)


class BillLineItem(SQLModel, table=True):
    """Product snapshot captured on a bill at creation time."""

    __tablename__ = "bill_line_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    bill_id: UUID = Field(foreign_key="bills.id", index=True)
    position: int
    product_id: UUID = Field(foreign_key="products.id")
    product_name: str = Field(max_length=100)
    product_description: str = Field(default="", max_length=500)
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    line_total: Decimal = Field(ge=0, max_digits=12, decimal_places=2)

    # Relationships
    bill: Optional[Bill] = Relationship(back_populates="line_items")


class BillSequence(SQLModel, table=True):
    """Per-day counter backing bill number allocation."""

    __tablename__ = "bill_sequences"

    day: str = Field(primary_key=True, max_length=8)  # YYYYMMDD
    last_value: int = 0
