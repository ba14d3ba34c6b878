"""Bill creation: validation, totals, numbering and stock reservation."""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, List, Optional, Sequence
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from billing.core.config import settings
from billing.core.errors import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from billing.models.bill import CustomerInfo, LineItemRequest, Principal
from billing.models.domain import Bill, BillLineItem, Customer, Product, utcnow
from billing.services.ledger_store import LedgerStore

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
MAX_TAX_RATE = Decimal("100")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class BillTotals:
    """Derived amounts for a set of line items."""
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal


def calculate_totals(line_totals: Sequence[Decimal], tax_rate, discount) -> BillTotals:
    """Compute subtotal, tax and total; caller-supplied totals are never used."""
    tax_rate = to_decimal(tax_rate)
    discount = to_decimal(discount)
    if tax_rate < 0:
        raise ValidationError("Tax rate cannot be negative")
    if tax_rate > MAX_TAX_RATE:
        raise ValidationError(f"Tax rate cannot exceed {MAX_TAX_RATE}")
    if discount < 0:
        raise ValidationError("Discount cannot be negative")

    # Tax is charged at the rate the bill stores
    tax_rate = round_money(tax_rate)
    subtotal = round_money(sum((to_decimal(t) for t in line_totals), Decimal("0")))
    tax_amount = round_money(subtotal * tax_rate / Decimal("100"))
    discount_amount = round_money(discount)
    total_amount = round_money(subtotal + tax_amount - discount_amount)
    if total_amount < 0:
        raise ValidationError("Discount cannot exceed the bill amount")

    return BillTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        total_amount=total_amount,
    )


def format_bill_number(day: str, sequence: int) -> str:
    return f"INV-{day}-{sequence:04d}"


class BillBuilder:
    """Service that turns a line-item request into a persisted bill."""

    def __init__(
        self,
        session: Session,
        clock: Callable[[], datetime] = utcnow,
        max_retries: Optional[int] = None,
    ):
        self.session = session
        self.store = LedgerStore(session)
        self.clock = clock
        self.max_retries = settings.BILL_NUMBER_MAX_RETRIES if max_retries is None else max_retries
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.timezone = ZoneInfo(settings.BILLING_TIMEZONE)

    def create_bill(
        self,
        line_items: Sequence[LineItemRequest],
        actor: Principal,
        customer_id: Optional[UUID] = None,
        customer_info: Optional[CustomerInfo] = None,
        tax_rate=None,
        discount=Decimal("0"),
        notes: Optional[str] = None,
        bill_number: Optional[str] = None,
    ) -> Bill:
        """Create a bill and reserve its stock in one transaction.

        A uniqueness violation (bill number or a customer created concurrently
        from the same email) rolls the transaction back and the whole unit of
        work is retried, up to ``max_retries`` attempts.
        """
        if not line_items:
            raise ValidationError("Products are required")
        if customer_id is None and customer_info is None:
            raise ValidationError("Customer is required")
        for item in line_items:
            if item.quantity < 1:
                raise ValidationError("Quantity must be at least 1")
        if tax_rate is None:
            tax_rate = settings.DEFAULT_TAX_RATE

        for attempt in range(1, self.max_retries + 1):
            try:
                bill = self._create_once(
                    line_items, actor, customer_id, customer_info, tax_rate, discount, notes, bill_number
                )
                self.session.commit()
            except IntegrityError as exc:
                self.session.rollback()
                if bill_number:
                    raise ConflictError(f"Bill number {bill_number} already exists") from exc
                logger.warning("Bill creation collided on attempt %d/%d: %s", attempt, self.max_retries, exc.orig)
                continue
            except Exception:
                self.session.rollback()
                raise

            self.session.refresh(bill)
            logger.info(
                "Created bill %s for customer %s: total %s", bill.bill_number, bill.customer_id, bill.total_amount
            )
            return bill

        raise ConflictError("Could not allocate a unique bill number, please retry")

    def _create_once(
        self,
        line_items: Sequence[LineItemRequest],
        actor: Principal,
        customer_id: Optional[UUID],
        customer_info: Optional[CustomerInfo],
        tax_rate,
        discount,
        notes: Optional[str],
        bill_number: Optional[str],
    ) -> Bill:
        products = self.store.get_products(item.product for item in line_items)
        for item in line_items:
            if item.product not in products:
                raise NotFoundError(f"Product {item.product} not found")

        # Stock is checked per product across all lines requesting it
        requested: Dict[UUID, int] = OrderedDict()
        for item in line_items:
            requested[item.product] = requested.get(item.product, 0) + item.quantity
        for product_id, quantity in requested.items():
            product = products[product_id]
            if product.quantity < quantity:
                raise InsufficientStockError(product.name, product.quantity, quantity)

        bill_lines = self._snapshot_lines(line_items, products)
        totals = calculate_totals([line.line_total for line in bill_lines], tax_rate, discount)
        customer = self._resolve_customer(customer_id, customer_info, actor)

        now = self.clock()
        if bill_number:
            if self.store.bill_number_exists(bill_number):
                raise ConflictError(f"Bill number {bill_number} already exists")
        else:
            day = now.astimezone(self.timezone).strftime("%Y%m%d")
            bill_number = format_bill_number(day, self.store.next_bill_sequence(day))
            # Skip numbers taken outside the counter, e.g. supplied by a caller
            while self.store.bill_number_exists(bill_number):
                bill_number = format_bill_number(day, self.store.next_bill_sequence(day))

        bill = Bill(
            bill_number=bill_number,
            customer_id=customer.id,
            subtotal=totals.subtotal,
            tax_rate=round_money(tax_rate),
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total_amount=totals.total_amount,
            notes=notes,
            due_date=now + timedelta(days=settings.BILL_DUE_DAYS),
            created_by_id=actor.id,
            created_at=now,
            updated_at=now,
            line_items=bill_lines,
        )
        self.store.add_bill(bill)

        # Stock is reserved at creation, not at payment
        for product_id, quantity in requested.items():
            if not self.store.decrement_stock(product_id, quantity):
                raise InsufficientStockError(products[product_id].name)

        return bill

    def _snapshot_lines(
        self, line_items: Sequence[LineItemRequest], products: Dict[UUID, Product]
    ) -> List[BillLineItem]:
        lines = []
        for position, item in enumerate(line_items):
            product = products[item.product]
            unit_price = round_money(product.price)
            lines.append(
                BillLineItem(
                    position=position,
                    product_id=product.id,
                    product_name=product.name,
                    product_description=product.description or "",
                    quantity=item.quantity,
                    unit_price=unit_price,
                    line_total=round_money(unit_price * item.quantity),
                )
            )
        return lines

    def _resolve_customer(
        self,
        customer_id: Optional[UUID],
        customer_info: Optional[CustomerInfo],
        actor: Principal,
    ) -> Customer:
        if customer_id is not None:
            customer = self.store.get_customer(customer_id)
            if customer is None:
                raise NotFoundError(f"Customer {customer_id} not found")
            return customer

        existing = self.store.find_customer_by_email(customer_info.email)
        if existing:
            return existing

        logger.info("Creating customer %s from bill contact info", customer_info.email)
        return self.store.add_customer(
            Customer(
                name=customer_info.name,
                email=customer_info.email,
                phone=customer_info.phone,
                address=customer_info.address,
                created_by_id=actor.id,
            )
        )
