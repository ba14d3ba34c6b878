import smtplib
from decimal import Decimal
from email.message import EmailMessage
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from sqlmodel import Session

from billing.core.errors import EmailError, ValidationError
from billing.models.bill import LineItemRequest, Principal, Role
from billing.services.bill_builder import BillBuilder
from billing.services.invoice_renderer import InvoiceRenderer
from billing.services.notification_service import Mailer, NotificationService, render_email_body
from tests.utils.test_utils import create_test_customer, create_test_product


class TestMailer:
    """Test cases for the SMTP mailer."""

    def _message(self):
        message = EmailMessage()
        message["From"] = "billing@example.com"
        message["To"] = "jane@example.com"
        message["Subject"] = "Hello"
        message.set_content("Hi")
        return message

    def test_send_uses_starttls_and_login(self):
        mailer = Mailer(host="smtp.test", port=587, user="billing@example.com", password="pw", use_tls=True, timeout=3)

        with patch("billing.services.notification_service.smtplib.SMTP") as smtp_cls:
            message_id = mailer.send(self._message())

        smtp_cls.assert_called_once_with("smtp.test", 587, timeout=3)
        smtp = smtp_cls.return_value.__enter__.return_value
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("billing@example.com", "pw")
        smtp.send_message.assert_called_once()
        assert message_id.startswith("<")

    def test_transport_errors_become_email_errors(self):
        mailer = Mailer(host="smtp.test", port=587, user="", password="", use_tls=False, timeout=3)

        with patch("billing.services.notification_service.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.__enter__.return_value.send_message.side_effect = smtplib.SMTPException("boom")
            with pytest.raises(EmailError):
                mailer.send(self._message())

    def test_unconfigured_host_is_an_email_error(self):
        with patch("billing.services.notification_service.settings") as settings:
            settings.SMTP_HOST = None
            mailer = Mailer(host=None, user="", password="", use_tls=False, timeout=3, port=25)
        with pytest.raises(EmailError):
            mailer.send(self._message())


class TestEmailBody:
    """Test cases for the invoice email template."""

    def test_body_is_filled_and_escaped(self):
        body = render_email_body("Jane <Doe>", "INV-20260314-0001", "Acme", 2026, "Thanks & regards")

        assert "Jane &lt;Doe&gt;" in body
        assert "INV-20260314-0001" in body
        assert "2026" in body
        assert "Thanks &amp; regards" in body
        assert "${" not in body

    def test_body_without_custom_message(self):
        body = render_email_body("Jane", "INV-20260314-0001", "Acme", 2026)
        assert "${customMessage}" not in body


class TestNotificationService:
    """Test cases for the NotificationService."""

    @pytest.fixture
    def bill(self, db: Session):
        product = create_test_product(db, price="100.00", quantity=5)
        customer = create_test_customer(db, email="jane@example.com")
        actor = Principal(id=uuid4(), role=Role.ADMIN)
        return BillBuilder(db).create_bill(
            [LineItemRequest(product=product.id, quantity=2)], actor, customer_id=customer.id, tax_rate=Decimal("18")
        )

    @pytest.fixture
    def renderer(self, storage, fixed_clock):
        return MagicMock(wraps=InvoiceRenderer(storage, clock=fixed_clock))

    @pytest.fixture
    def service(self, db: Session, renderer, storage, mailer, fixed_clock):
        return NotificationService(db, renderer, storage, mailer, clock=fixed_clock)

    def test_sends_pdf_attachment_to_customer(self, db: Session, service, bill, mailer, fixed_clock):
        result = service.send_invoice_email(bill, bill.customer)

        assert result.success is True
        assert result.sent_to == "jane@example.com"
        assert result.message_id

        [message] = mailer.sent
        assert message["To"] == "jane@example.com"
        assert message["Subject"].startswith(f"Invoice {bill.bill_number} from ")
        [attachment] = list(message.iter_attachments())
        assert attachment.get_filename() == f"invoice-{bill.bill_number}.pdf"
        assert attachment.get_content_type() == "application/pdf"
        assert attachment.get_content().startswith(b"%PDF")

        db.refresh(bill)
        assert bill.email_sent_to == "jane@example.com"
        assert bill.email_sent_at is not None
        assert bill.rendered_document_ref is not None

    def test_override_address_subject_and_message(self, service, bill, mailer):
        result = service.send_invoice_email(
            bill, bill.customer, override_address="accounts@example.com", custom_message="Due Friday", subject="Your bill"
        )

        assert result.sent_to == "accounts@example.com"
        [message] = mailer.sent
        assert message["Subject"] == "Your bill"
        html = message.get_body(preferencelist=("html",)).get_content()
        assert "Due Friday" in html

    def test_reuses_stored_pdf(self, db: Session, service, bill, renderer):
        service.send_invoice_email(bill, bill.customer)
        service.send_invoice_email(bill, bill.customer)

        assert renderer.render.call_count == 1

    def test_transport_failure_returns_failed_result(self, db: Session, service, bill, mailer):
        mailer.fail = True

        result = service.send_invoice_email(bill, bill.customer)

        assert result.success is False
        assert "connection refused" in result.error
        db.refresh(bill)
        assert bill.email_sent_at is None

    def test_missing_address_is_a_validation_error(self, service, bill):
        with pytest.raises(ValidationError):
            service.send_invoice_email(bill, None)
