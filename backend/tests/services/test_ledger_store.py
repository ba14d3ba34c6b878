from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlmodel import Session

from billing.models.domain import Bill, BillLineItem, PaymentMethod, PaymentStatus, Product, utcnow
from billing.services.ledger_store import LedgerStore
from tests.utils.test_utils import create_test_customer, create_test_product


def _add_bill(session: Session, customer_id, created_by_id, number: str, status=PaymentStatus.PENDING,
              due_in_days: int = 30, created_ago_days: int = 0) -> Bill:
    now = utcnow()
    bill = Bill(
        bill_number=number,
        customer_id=customer_id,
        subtotal=Decimal("100.00"),
        tax_rate=Decimal("0"),
        tax_amount=Decimal("0"),
        discount_amount=Decimal("0"),
        total_amount=Decimal("100.00"),
        payment_status=status,
        due_date=now + timedelta(days=due_in_days),
        created_by_id=created_by_id,
        created_at=now - timedelta(days=created_ago_days),
        updated_at=now,
    )
    session.add(bill)
    session.commit()
    session.refresh(bill)
    return bill


class TestLedgerStore:
    """Test cases for the LedgerStore."""

    @pytest.fixture
    def store(self, db: Session) -> LedgerStore:
        return LedgerStore(db)

    def test_decrement_stock_success(self, db: Session, store: LedgerStore):
        product = create_test_product(db, quantity=5)

        assert store.decrement_stock(product.id, 3) is True
        db.commit()

        db.refresh(product)
        assert product.quantity == 2

    def test_decrement_stock_refuses_to_go_negative(self, db: Session, store: LedgerStore):
        product = create_test_product(db, quantity=2)

        assert store.decrement_stock(product.id, 3) is False
        db.commit()

        db.refresh(product)
        assert product.quantity == 2

    def test_get_products_keys_by_id(self, db: Session, store: LedgerStore):
        first = create_test_product(db, name="First")
        second = create_test_product(db, name="Second")

        products = store.get_products([first.id, second.id, uuid4()])

        assert set(products) == {first.id, second.id}
        assert products[first.id].name == "First"

    def test_next_bill_sequence_per_day(self, db: Session, store: LedgerStore):
        assert store.next_bill_sequence("20260314") == 1
        assert store.next_bill_sequence("20260314") == 2
        assert store.next_bill_sequence("20260315") == 1
        assert store.next_bill_sequence("20260314") == 3

    def test_find_customer_by_email_is_case_insensitive(self, db: Session, store: LedgerStore):
        customer = create_test_customer(db, email="mixed@example.com")

        assert store.find_customer_by_email("  MIXED@example.com ").id == customer.id
        assert store.find_customer_by_email("other@example.com") is None

    def test_list_bills_pagination_newest_first(self, db: Session, store: LedgerStore):
        customer = create_test_customer(db)
        for index in range(5):
            _add_bill(db, customer.id, customer.id, f"INV-20260314-{index + 1:04d}", created_ago_days=5 - index)

        bills, total, total_pages = store.list_bills(page=1, limit=2)
        assert total == 5
        assert total_pages == 3
        assert [b.bill_number for b in bills] == ["INV-20260314-0005", "INV-20260314-0004"]

        last_page, _, _ = store.list_bills(page=3, limit=2)
        assert [b.bill_number for b in last_page] == ["INV-20260314-0001"]

    def test_list_bills_visibility_and_filters(self, db: Session, store: LedgerStore):
        alice = create_test_customer(db, name="Alice")
        bob = create_test_customer(db, name="Bob")
        _add_bill(db, alice.id, alice.id, "INV-20260314-0001")
        _add_bill(db, bob.id, alice.id, "INV-20260314-0002", status=PaymentStatus.PAID)
        _add_bill(db, bob.id, bob.id, "INV-20260314-0003")

        visible_to_alice, total, _ = store.list_bills(visible_to=alice.id)
        assert total == 2
        assert {b.bill_number for b in visible_to_alice} == {"INV-20260314-0001", "INV-20260314-0002"}

        paid, _, _ = store.list_bills(payment_status=PaymentStatus.PAID)
        assert [b.bill_number for b in paid] == ["INV-20260314-0002"]

        for_bob, _, _ = store.list_bills(customer_id=bob.id)
        assert {b.bill_number for b in for_bob} == {"INV-20260314-0002", "INV-20260314-0003"}

    def test_list_overdue_bills(self, db: Session, store: LedgerStore):
        customer = create_test_customer(db)
        _add_bill(db, customer.id, customer.id, "INV-20260314-0001", due_in_days=-5)
        _add_bill(db, customer.id, customer.id, "INV-20260314-0002", due_in_days=-10)
        _add_bill(db, customer.id, customer.id, "INV-20260314-0003", due_in_days=-3, status=PaymentStatus.PAID)
        _add_bill(db, customer.id, customer.id, "INV-20260314-0004", due_in_days=3)

        overdue = store.list_overdue_bills(utcnow())

        assert [b.bill_number for b in overdue] == ["INV-20260314-0002", "INV-20260314-0001"]

    def test_mark_paid_if_unpaid_only_once(self, db: Session, store: LedgerStore):
        customer = create_test_customer(db)
        bill = _add_bill(db, customer.id, customer.id, "INV-20260314-0001")
        values = {"payment_method": PaymentMethod.GATEWAY, "gateway_payment_id": "pay_1", "paid_at": utcnow()}

        assert store.mark_paid_if_unpaid(bill.id, values) is True
        db.commit()
        assert store.mark_paid_if_unpaid(bill.id, values) is False
        db.commit()

        db.refresh(bill)
        assert bill.payment_status == PaymentStatus.PAID
        assert bill.payment_method == PaymentMethod.GATEWAY

    def test_mark_paid_skips_cancelled(self, db: Session, store: LedgerStore):
        customer = create_test_customer(db)
        bill = _add_bill(db, customer.id, customer.id, "INV-20260314-0001", status=PaymentStatus.CANCELLED)

        assert store.mark_paid_if_unpaid(bill.id, {"paid_at": utcnow()}) is False

    def test_delete_bill_keeps_stock(self, db: Session, store: LedgerStore):
        product = create_test_product(db, quantity=3)
        customer = create_test_customer(db)
        bill = _add_bill(db, customer.id, customer.id, "INV-20260314-0001")
        bill.line_items = [
            BillLineItem(
                position=0,
                product_id=product.id,
                product_name=product.name,
                quantity=2,
                unit_price=Decimal("50.00"),
                line_total=Decimal("100.00"),
            )
        ]
        db.add(bill)
        db.commit()

        store.delete_bill(bill)
        db.commit()

        assert store.get_bill(bill.id) is None
        assert db.get(Product, product.id).quantity == 3
