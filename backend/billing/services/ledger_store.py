"""Ledger storage for products, customers and bills."""

import logging
import math
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, update
from sqlmodel import Session, select

from billing.models.domain import (
    Bill,
    BillSequence,
    Customer,
    PaymentStatus,
    Product,
    utcnow,
)

logger = logging.getLogger(__name__)


class LedgerStore:
    """Data access for the billing core.

    All writes go through the caller's session; the caller owns commit and
    rollback so that a bill and its stock decrements form one unit of work.
    """

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------ products

    def get_products(self, product_ids: Iterable[UUID]) -> Dict[UUID, Product]:
        """Load products by id, keyed by id."""
        ids = list(set(product_ids))
        if not ids:
            return {}
        products = self.session.exec(select(Product).where(Product.id.in_(ids))).all()
        return {product.id: product for product in products}

    def decrement_stock(self, product_id: UUID, quantity: int) -> bool:
        """Atomically take ``quantity`` units off a product.

        Returns False when the product no longer has enough stock, in which
        case nothing was changed.
        """
        result = self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.quantity >= quantity)
            .values(quantity=Product.quantity - quantity, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ------------------------------------------------------------ customers

    def get_customer(self, customer_id: UUID) -> Optional[Customer]:
        return self.session.get(Customer, customer_id)

    def find_customer_by_email(self, email: str) -> Optional[Customer]:
        return self.session.exec(
            select(Customer).where(Customer.email == email.strip().lower())
        ).first()

    def add_customer(self, customer: Customer) -> Customer:
        customer.email = customer.email.strip().lower()
        self.session.add(customer)
        self.session.flush()
        return customer

    # ------------------------------------------------------------ bill numbers

    def next_bill_sequence(self, day: str) -> int:
        """Increment and return the bill counter for ``day`` (YYYYMMDD)."""
        result = self.session.execute(
            update(BillSequence)
            .where(BillSequence.day == day)
            .values(last_value=BillSequence.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # First bill of the day; a concurrent insert surfaces as IntegrityError
            self.session.add(BillSequence(day=day, last_value=1))
            self.session.flush()
            return 1
        return self.session.exec(
            select(BillSequence.last_value).where(BillSequence.day == day)
        ).one()

    def bill_number_exists(self, bill_number: str) -> bool:
        return self.session.exec(
            select(Bill.id).where(Bill.bill_number == bill_number)
        ).first() is not None

    # ------------------------------------------------------------ bills

    def add_bill(self, bill: Bill) -> Bill:
        self.session.add(bill)
        self.session.flush()
        return bill

    def get_bill(self, bill_id: UUID) -> Optional[Bill]:
        return self.session.get(Bill, bill_id)

    def list_bills(
        self,
        page: int = 1,
        limit: int = 10,
        payment_status: Optional[PaymentStatus] = None,
        customer_id: Optional[UUID] = None,
        visible_to: Optional[UUID] = None,
    ) -> Tuple[List[Bill], int, int]:
        """Return one page of bills, newest first, with total count and pages.

        ``visible_to`` restricts the result to bills where that principal is
        the customer or the creator.
        """
        conditions = []
        if visible_to is not None:
            conditions.append(or_(Bill.customer_id == visible_to, Bill.created_by_id == visible_to))
        if customer_id is not None:
            conditions.append(Bill.customer_id == customer_id)
        if payment_status is not None:
            conditions.append(Bill.payment_status == payment_status)

        total = self.session.exec(select(func.count()).select_from(Bill).where(*conditions)).one()
        bills = self.session.exec(
            select(Bill)
            .where(*conditions)
            .order_by(Bill.created_at.desc(), Bill.bill_number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        total_pages = math.ceil(total / limit) if limit else 0
        return list(bills), total, total_pages

    def list_overdue_bills(self, now: datetime) -> List[Bill]:
        return list(
            self.session.exec(
                select(Bill)
                .where(Bill.payment_status == PaymentStatus.PENDING, Bill.due_date < now)
                .order_by(Bill.due_date.asc())
            ).all()
        )

    def bills_created_since(self, start: datetime) -> List[Bill]:
        return list(self.session.exec(select(Bill).where(Bill.created_at >= start)).all())

    def mark_paid_if_unpaid(self, bill_id: UUID, values: dict) -> bool:
        """Check-and-set transition to paid.

        Only a bill that is pending or failed is updated; returns whether this
        call performed the transition.
        """
        result = self.session.execute(
            update(Bill)
            .where(
                Bill.id == bill_id,
                Bill.payment_status.in_([PaymentStatus.PENDING, PaymentStatus.FAILED]),
            )
            .values(payment_status=PaymentStatus.PAID, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def delete_bill(self, bill: Bill) -> None:
        """Hard delete a bill and its line items. Stock is not restored."""
        self.session.delete(bill)
        self.session.flush()
        logger.info("Deleted bill %s", bill.bill_number)
