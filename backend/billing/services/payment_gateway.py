"""Payment gateway bridge: order creation and signed callback verification."""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Optional
from uuid import UUID

import httpx
from sqlmodel import Session

from billing.core.config import settings
from billing.core.errors import (
    AlreadyPaidError,
    AuthorizationError,
    GatewayUnavailableError,
    NotFoundError,
    SignatureVerificationError,
    ValidationError,
)
from billing.models.bill import Principal
from billing.models.domain import Bill, PaymentMethod, PaymentStatus, utcnow
from billing.services.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


@dataclass
class GatewayOrder:
    """Order handle returned by the gateway."""
    order_id: str
    amount: int  # minor units
    currency: str
    receipt: Optional[str] = None


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    """HMAC-SHA256 hex digest over ``"{order_id}|{payment_id}"``."""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(secret: str, order_id: str, payment_id: str, signature: str) -> bool:
    expected = compute_signature(secret, order_id, payment_id)
    return hmac.compare_digest(expected, signature or "")


def can_access_bill(actor: Principal, bill: Bill) -> bool:
    return actor.is_admin or actor.id in (bill.customer_id, bill.created_by_id)


class GatewayClient:
    """Thin HTTP client for the payment gateway's orders API."""

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.key_id = key_id if key_id is not None else settings.GATEWAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.GATEWAY_KEY_SECRET
        self.client = httpx.Client(
            base_url=base_url or settings.GATEWAY_BASE_URL,
            auth=(self.key_id, self.key_secret),
            timeout=timeout or settings.GATEWAY_TIMEOUT_SECONDS,
            transport=transport,
        )

    def create_order(
        self, amount: int, currency: str, receipt: str, notes: Optional[Dict[str, Any]] = None
    ) -> GatewayOrder:
        payload = {"amount": amount, "currency": currency, "receipt": receipt, "notes": notes or {}}
        try:
            response = self.client.post("/v1/orders", json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as exc:
            logger.error("Payment gateway timed out creating order for %s", receipt)
            raise GatewayUnavailableError("Payment gateway timed out") from exc
        except httpx.HTTPStatusError as exc:
            logger.error("Payment gateway rejected order for %s: %s", receipt, exc.response.text)
            raise GatewayUnavailableError(
                f"Payment gateway returned {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Payment gateway request failed for %s: %s", receipt, exc)
            raise GatewayUnavailableError("Payment gateway is unavailable") from exc

        if not body.get("id"):
            raise GatewayUnavailableError("Payment gateway returned no order id")

        return GatewayOrder(
            order_id=body["id"],
            amount=int(body.get("amount", amount)),
            currency=body.get("currency", currency),
            receipt=body.get("receipt", receipt),
        )

    def close(self) -> None:
        self.client.close()


class PaymentGatewayBridge:
    """Reconciles bills with the payment gateway."""

    def __init__(
        self,
        session: Session,
        gateway: GatewayClient,
        renderer=None,
        notifier=None,
        secret: Optional[str] = None,
        clock: Callable = utcnow,
        email_on_payment: Optional[bool] = None,
    ):
        self.session = session
        self.store = LedgerStore(session)
        self.gateway = gateway
        self.renderer = renderer
        self.notifier = notifier
        self.secret = secret if secret is not None else gateway.key_secret
        self.clock = clock
        if email_on_payment is None:
            email_on_payment = settings.EMAIL_INVOICE_ON_PAYMENT
        self.email_on_payment = email_on_payment

    def create_order(self, bill_id: UUID, actor: Principal) -> GatewayOrder:
        bill = self.store.get_bill(bill_id)
        if bill is None:
            raise NotFoundError("Bill not found")
        if not can_access_bill(actor, bill):
            raise AuthorizationError("Access denied")
        if bill.payment_status == PaymentStatus.PAID:
            raise AlreadyPaidError("Bill is already paid")
        if bill.payment_status in (PaymentStatus.CANCELLED, PaymentStatus.REFUNDED):
            raise ValidationError(f"Bill is {bill.payment_status.value} and cannot be paid")

        customer = bill.customer
        order = self.gateway.create_order(
            amount=to_minor_units(bill.total_amount),
            currency=settings.CURRENCY,
            receipt=bill.bill_number,
            notes={
                "billId": str(bill.id),
                "customerName": customer.name if customer else "",
                "customerEmail": customer.email if customer else "",
            },
        )

        bill.gateway_order_id = order.order_id
        bill.updated_at = self.clock()
        self.session.add(bill)
        self.session.commit()
        logger.info("Created gateway order %s for bill %s (%d minor units)", order.order_id, bill.bill_number, order.amount)
        return order

    def verify_payment(
        self,
        bill_id: UUID,
        gateway_payment_id: str,
        gateway_order_id: str,
        signature: str,
        actor: Optional[Principal] = None,
    ) -> Bill:
        """Verify a completion callback and mark the bill paid once.

        A repeated callback for an already paid bill returns the stored bill
        without rendering or emailing again.
        """
        bill = self.store.get_bill(bill_id)
        if bill is None:
            raise NotFoundError("Bill not found")
        if actor is not None and not can_access_bill(actor, bill):
            raise AuthorizationError("Access denied")

        if not verify_signature(self.secret, gateway_order_id, gateway_payment_id, signature):
            logger.warning("Rejected payment signature for bill %s", bill.bill_number)
            raise SignatureVerificationError("Payment verification failed")
        if not bill.gateway_order_id:
            logger.warning("Payment for bill %s arrived before any order was created", bill.bill_number)
            raise SignatureVerificationError("No payment order exists for this bill")
        if bill.gateway_order_id != gateway_order_id:
            logger.warning(
                "Payment for bill %s names order %s, expected %s",
                bill.bill_number, gateway_order_id, bill.gateway_order_id,
            )
            raise SignatureVerificationError("Payment does not match the bill's order")

        if bill.payment_status == PaymentStatus.PAID:
            return bill
        if bill.payment_status in (PaymentStatus.CANCELLED, PaymentStatus.REFUNDED):
            raise ValidationError(f"Bill is {bill.payment_status.value} and cannot be paid")

        paid_at = self.clock()
        try:
            transitioned = self.store.mark_paid_if_unpaid(
                bill.id,
                {
                    "payment_method": PaymentMethod.GATEWAY,
                    "gateway_payment_id": gateway_payment_id,
                    "gateway_order_id": gateway_order_id,
                    "paid_at": paid_at,
                },
            )
            if not transitioned:
                # Another delivery of the same callback won the transition
                self.session.rollback()
                self.session.refresh(bill)
                return bill

            self.session.refresh(bill)
            if self.renderer is not None:
                rendered = self.renderer.render(bill, bill.customer)
                bill.rendered_document_ref = rendered.document_ref
                self.session.add(bill)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(bill)
        logger.info("Bill %s paid via gateway payment %s", bill.bill_number, gateway_payment_id)

        if self.notifier is not None and self.email_on_payment:
            result = self.notifier.send_invoice_email(bill, bill.customer)
            if not result.success:
                logger.warning("Payment receipt email for bill %s failed: %s", bill.bill_number, result.error)

        return bill
