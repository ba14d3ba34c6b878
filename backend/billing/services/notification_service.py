"""Invoice email delivery."""

import html
import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from pathlib import Path
from string import Template
from typing import Callable, Optional

from sqlmodel import Session

from billing.core.config import settings
from billing.core.errors import EmailError, ValidationError
from billing.models.domain import Bill, Customer, utcnow
from billing.services.invoice_renderer import InvoiceRenderer
from billing.services.invoice_storage import InvoiceStorage

logger = logging.getLogger(__name__)

TEMPLATE_PATH = Path(__file__).resolve().parent.parent / "templates" / "invoice_email.html"


@dataclass
class EmailResult:
    """Outcome of one delivery attempt."""
    success: bool
    sent_to: str
    message_id: Optional[str] = None
    error: Optional[str] = None


class Mailer:
    """SMTP transport."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        timeout: Optional[float] = None,
    ):
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.user = user if user is not None else settings.SMTP_USER
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls
        self.timeout = timeout or settings.SMTP_TIMEOUT_SECONDS

    @property
    def from_address(self) -> str:
        return self.user or settings.COMPANY_EMAIL

    def send(self, message: EmailMessage) -> str:
        """Send ``message`` and return its Message-ID."""
        if not self.host:
            raise EmailError("Email service is not configured")
        if "Message-ID" not in message:
            message["Message-ID"] = make_msgid()
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.user:
                    smtp.login(self.user, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailError(f"Failed to send email: {exc}") from exc
        return message["Message-ID"]


def render_email_body(customer_name: str, bill_number: str, company_name: str, year: int,
                      custom_message: Optional[str] = None) -> str:
    template = Template(TEMPLATE_PATH.read_text(encoding="utf-8"))
    extra = ""
    if custom_message:
        extra = "<p>" + html.escape(custom_message).replace("\n", "<br>") + "</p>"
    return template.safe_substitute(
        customerName=html.escape(customer_name),
        billNumber=html.escape(bill_number),
        companyName=html.escape(company_name),
        currentYear=year,
        customMessage=extra,
    )


class NotificationService:
    """Sends invoice PDFs to customers and records delivery on the bill."""

    def __init__(
        self,
        session: Session,
        renderer: InvoiceRenderer,
        storage: InvoiceStorage,
        mailer: Mailer,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.renderer = renderer
        self.storage = storage
        self.mailer = mailer
        self.clock = clock

    def send_invoice_email(
        self,
        bill: Bill,
        customer: Optional[Customer],
        override_address: Optional[str] = None,
        custom_message: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> EmailResult:
        """Email the bill's PDF.

        The stored PDF is reused when present, otherwise the bill is rendered
        first. Transport failures come back as an unsuccessful result.
        """
        sent_to = override_address or (customer.email if customer else None)
        if not sent_to:
            raise ValidationError("Customer email not found")

        content = self._invoice_pdf(bill, customer)
        company = settings.COMPANY_NAME

        message = EmailMessage()
        message["From"] = formataddr((settings.EMAILS_FROM_NAME or company, self.mailer.from_address))
        message["To"] = sent_to
        message["Subject"] = subject or f"Invoice {bill.bill_number} from {company}"
        message.set_content(
            f"Dear {customer.name if customer else 'Customer'},\n\n"
            f"Please find attached invoice {bill.bill_number}.\n"
            + (f"\n{custom_message}\n" if custom_message else "")
        )
        message.add_alternative(
            render_email_body(
                customer.name if customer else "Customer",
                bill.bill_number,
                company,
                self.clock().year,
                custom_message,
            ),
            subtype="html",
        )
        message.add_attachment(
            content,
            maintype="application",
            subtype="pdf",
            filename=f"invoice-{bill.bill_number}.pdf",
        )

        try:
            message_id = self.mailer.send(message)
        except EmailError as exc:
            logger.error("Invoice email for bill %s to %s failed: %s", bill.bill_number, sent_to, exc.message)
            return EmailResult(success=False, sent_to=sent_to, error=exc.message)

        bill.email_sent_at = self.clock()
        bill.email_sent_to = sent_to
        self.session.add(bill)
        self.session.commit()
        self.session.refresh(bill)
        logger.info("Invoice email for bill %s sent to %s (%s)", bill.bill_number, sent_to, message_id)
        return EmailResult(success=True, sent_to=sent_to, message_id=message_id)

    def _invoice_pdf(self, bill: Bill, customer: Optional[Customer]) -> bytes:
        if self.storage.exists(bill.rendered_document_ref):
            return self.storage.read(bill.rendered_document_ref)

        rendered = self.renderer.render(bill, customer)
        bill.rendered_document_ref = rendered.document_ref
        self.session.add(bill)
        self.session.commit()
        self.session.refresh(bill)
        return rendered.content
