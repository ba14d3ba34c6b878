"""Request, response and value models for the billing API."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Generic, List, Optional, TypeVar
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    PlainSerializer,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel

from billing.models.domain import PaymentMethod, PaymentStatus, as_utc, utcnow

# Money is exact in Python and a plain number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

T = TypeVar("T")


class Role(str, Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"


class Principal(BaseModel):
    """Authenticated caller handed to the billing core."""

    id: UUID
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------- requests


class LineItemRequest(CamelModel):
    product: UUID
    quantity: int = Field(..., ge=1)


class CustomerInfo(CamelModel):
    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=200)


class BillCreateRequest(CamelModel):
    products: List[LineItemRequest] = Field(default_factory=list)
    customer: Optional[UUID] = None
    customer_info: Optional[CustomerInfo] = None
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    discount: Decimal = Decimal("0")
    notes: Optional[str] = Field(None, max_length=500)
    bill_number: Optional[str] = Field(None, pattern=r"^INV-\d{8}-\d{4}$")


class PaymentStatusUpdate(CamelModel):
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    gateway_payment_id: Optional[str] = None
    gateway_order_id: Optional[str] = None


class VerifyPaymentRequest(CamelModel):
    gateway_payment_id: str = Field(..., min_length=1)
    gateway_order_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)


class SendEmailRequest(CamelModel):
    email: Optional[EmailStr] = None
    subject: Optional[str] = Field(None, max_length=200)
    message: Optional[str] = Field(None, max_length=2000)

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


# ---------------------------------------------------------------- responses


class CustomerSummary(CamelModel):
    id: UUID
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None


class LineItemRead(CamelModel):
    product_id: UUID
    product_name: str
    product_description: str
    quantity: int
    unit_price: Money
    line_total: Money


class BillRead(CamelModel):
    id: UUID
    bill_number: str
    customer_id: UUID
    customer: Optional[CustomerSummary] = None
    line_items: List[LineItemRead] = Field(default_factory=list)
    subtotal: Money
    tax_rate: Money
    tax_amount: Money
    discount_amount: Money
    total_amount: Money
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    notes: Optional[str] = None
    due_date: datetime
    paid_at: Optional[datetime] = None
    email_sent_at: Optional[datetime] = None
    email_sent_to: Optional[str] = None
    rendered_document_ref: Optional[str] = None
    created_by_id: UUID
    created_at: datetime
    updated_at: datetime

    @computed_field(alias="isOverdue")  # type: ignore[prop-decorator]
    @property
    def is_overdue(self) -> bool:
        return self.payment_status == PaymentStatus.PENDING and utcnow() > as_utc(self.due_date)

    @computed_field(alias="daysUntilDue")  # type: ignore[prop-decorator]
    @property
    def days_until_due(self) -> int:
        seconds = (as_utc(self.due_date) - utcnow()).total_seconds()
        days, remainder = divmod(seconds, 86400)
        return int(days) + (1 if remainder > 0 else 0)


class GatewayOrderRead(CamelModel):
    order_id: str
    amount: int
    currency: str
    key: str
    bill_number: str
    customer_name: str
    description: str


class VerifyPaymentRead(CamelModel):
    bill: BillRead
    pdf_url: Optional[str] = None
    download_url: Optional[str] = None


class PdfLinkRead(CamelModel):
    download_url: str
    file_name: str


class EmailSentRead(CamelModel):
    message_id: Optional[str] = None
    sent_to: str


class StatusBreakdown(CamelModel):
    status: PaymentStatus
    count: int
    amount: Money


class BillStatsRead(CamelModel):
    total_bills: int
    total_amount: Money
    paid_amount: Money
    pending_amount: Money
    status_breakdown: List[StatusBreakdown] = Field(default_factory=list)


class Envelope(CamelModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: T


class BillList(CamelModel):
    success: bool = True
    count: int
    data: List[BillRead]


class BillPage(CamelModel):
    success: bool = True
    count: int
    total_bills: int
    total_pages: int
    current_page: int
    data: List[BillRead]
