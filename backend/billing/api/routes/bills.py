"""Bill API endpoints."""

from datetime import timedelta
from decimal import Decimal
from typing import Annotated, Dict, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from billing.api.deps import (
    AdminDep,
    ClockDep,
    GatewayDep,
    MailerDep,
    PrincipalDep,
    SessionDep,
    StorageDep,
)
from billing.core.errors import AuthorizationError, EmailError, NotFoundError
from billing.models.bill import (
    BillCreateRequest,
    BillList,
    BillPage,
    BillRead,
    BillStatsRead,
    EmailSentRead,
    Envelope,
    GatewayOrderRead,
    PaymentStatusUpdate,
    PdfLinkRead,
    Principal,
    SendEmailRequest,
    StatusBreakdown,
    VerifyPaymentRead,
    VerifyPaymentRequest,
)
from billing.models.domain import Bill, PaymentStatus
from billing.services import (
    BillBuilder,
    InvoiceRenderer,
    LedgerStore,
    NotificationService,
    PaymentGatewayBridge,
)
from billing.services.payment_gateway import can_access_bill

router = APIRouter(prefix="/bills", tags=["bills"])

STATS_PERIODS = {"week": 7, "month": 30, "year": 365}


def _load_bill(store: LedgerStore, bill_id: UUID, principal: Principal) -> Bill:
    bill = store.get_bill(bill_id)
    if bill is None:
        raise NotFoundError("Bill not found")
    if not can_access_bill(principal, bill):
        raise AuthorizationError("Access denied")
    return bill


def _read(bill: Bill) -> BillRead:
    return BillRead.model_validate(bill)


@router.get("", response_model=BillPage)
def list_bills(
    session: SessionDep,
    principal: PrincipalDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    payment_status: Annotated[Optional[PaymentStatus], Query(alias="paymentStatus")] = None,
    customer_id: Annotated[Optional[UUID], Query(alias="customerId")] = None,
) -> BillPage:
    """
    List bills newest first. Customers only see bills they are billed on or created.
    """
    store = LedgerStore(session)
    bills, total, total_pages = store.list_bills(
        page=page,
        limit=limit,
        payment_status=payment_status,
        customer_id=customer_id if principal.is_admin else None,
        visible_to=None if principal.is_admin else principal.id,
    )
    return BillPage(
        count=len(bills),
        total_bills=total,
        total_pages=total_pages,
        current_page=page,
        data=[_read(bill) for bill in bills],
    )


@router.post("", response_model=Envelope[BillRead], status_code=status.HTTP_201_CREATED)
def create_bill(
    request: BillCreateRequest,
    session: SessionDep,
    principal: PrincipalDep,
    clock: ClockDep,
) -> Envelope[BillRead]:
    builder = BillBuilder(session, clock=clock)
    bill = builder.create_bill(
        request.products,
        principal,
        customer_id=request.customer,
        customer_info=request.customer_info,
        tax_rate=request.tax_rate,
        discount=request.discount,
        notes=request.notes,
        bill_number=request.bill_number,
    )
    return Envelope[BillRead](message="Bill created successfully", data=_read(bill))


@router.get("/admin/overdue", response_model=BillList)
def get_overdue_bills(session: SessionDep, admin: AdminDep, clock: ClockDep) -> BillList:
    """Pending bills past their due date, oldest due first."""
    bills = LedgerStore(session).list_overdue_bills(clock())
    return BillList(count=len(bills), data=[_read(bill) for bill in bills])


@router.get("/admin/stats", response_model=Envelope[BillStatsRead])
def get_bill_stats(
    session: SessionDep,
    admin: AdminDep,
    clock: ClockDep,
    period: Literal["week", "month", "year"] = "month",
) -> Envelope[BillStatsRead]:
    """Totals and per-status breakdown for bills created within the period."""
    since = clock() - timedelta(days=STATS_PERIODS[period])
    bills = LedgerStore(session).bills_created_since(since)

    counts: Dict[PaymentStatus, int] = {}
    amounts: Dict[PaymentStatus, Decimal] = {}
    for bill in bills:
        counts[bill.payment_status] = counts.get(bill.payment_status, 0) + 1
        amounts[bill.payment_status] = amounts.get(bill.payment_status, Decimal("0")) + bill.total_amount

    stats = BillStatsRead(
        total_bills=len(bills),
        total_amount=sum(amounts.values(), Decimal("0")),
        paid_amount=amounts.get(PaymentStatus.PAID, Decimal("0")),
        pending_amount=amounts.get(PaymentStatus.PENDING, Decimal("0")),
        status_breakdown=[
            StatusBreakdown(status=s, count=counts[s], amount=amounts[s])
            for s in PaymentStatus
            if s in counts
        ],
    )
    return Envelope[BillStatsRead](data=stats)


@router.get("/customer/{customer_id}", response_model=BillList)
def get_customer_bills(customer_id: UUID, session: SessionDep, principal: PrincipalDep) -> BillList:
    if not principal.is_admin and principal.id != customer_id:
        raise AuthorizationError("Access denied")
    bills: List[Bill] = []
    store = LedgerStore(session)
    page = 1
    while True:
        batch, _, total_pages = store.list_bills(page=page, limit=100, customer_id=customer_id)
        bills.extend(batch)
        if page >= total_pages:
            break
        page += 1
    return BillList(count=len(bills), data=[_read(bill) for bill in bills])


@router.get("/{bill_id}", response_model=Envelope[BillRead])
def get_bill(bill_id: UUID, session: SessionDep, principal: PrincipalDep) -> Envelope[BillRead]:
    bill = _load_bill(LedgerStore(session), bill_id, principal)
    return Envelope[BillRead](data=_read(bill))


@router.patch("/{bill_id}/payment", response_model=Envelope[BillRead])
def update_payment_status(
    bill_id: UUID,
    update: PaymentStatusUpdate,
    session: SessionDep,
    admin: AdminDep,
    clock: ClockDep,
) -> Envelope[BillRead]:
    """
    Manually record a payment outcome, e.g. cash collected at the counter.
    """
    store = LedgerStore(session)
    bill = store.get_bill(bill_id)
    if bill is None:
        raise NotFoundError("Bill not found")

    now = clock()
    if update.payment_status == PaymentStatus.PAID and bill.payment_status != PaymentStatus.PAID:
        bill.paid_at = now
    bill.payment_status = update.payment_status
    if update.payment_method is not None:
        bill.payment_method = update.payment_method
    if update.gateway_payment_id:
        bill.gateway_payment_id = update.gateway_payment_id
    if update.gateway_order_id:
        bill.gateway_order_id = update.gateway_order_id
    # The stored invoice shows the old payment state
    bill.rendered_document_ref = None
    bill.updated_at = now

    session.add(bill)
    session.commit()
    session.refresh(bill)
    return Envelope[BillRead](message="Payment status updated successfully", data=_read(bill))


@router.get("/{bill_id}/pdf", response_model=Envelope[PdfLinkRead])
def generate_bill_pdf(
    bill_id: UUID,
    session: SessionDep,
    principal: PrincipalDep,
    storage: StorageDep,
    clock: ClockDep,
) -> Envelope[PdfLinkRead]:
    bill = _load_bill(LedgerStore(session), bill_id, principal)
    rendered = InvoiceRenderer(storage, clock=clock).render(bill, bill.customer)
    bill.rendered_document_ref = rendered.document_ref
    session.add(bill)
    session.commit()
    return Envelope[PdfLinkRead](
        message="PDF generated successfully",
        data=PdfLinkRead(download_url=rendered.document_ref, file_name=rendered.file_name),
    )


@router.get("/{bill_id}/download-pdf")
def download_bill_pdf(
    bill_id: UUID,
    session: SessionDep,
    principal: PrincipalDep,
    storage: StorageDep,
    clock: ClockDep,
) -> Response:
    """Render the bill and stream the PDF as an attachment."""
    bill = _load_bill(LedgerStore(session), bill_id, principal)
    rendered = InvoiceRenderer(storage, clock=clock).render(bill, bill.customer)
    bill.rendered_document_ref = rendered.document_ref
    session.add(bill)
    session.commit()

    file_name = f"Invoice_{bill.bill_number or bill.id}_{int(clock().timestamp() * 1000)}.pdf"
    return Response(
        content=rendered.content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{file_name}"',
            "Cache-Control": "no-cache",
        },
    )


@router.post("/{bill_id}/send-email", response_model=Envelope[EmailSentRead])
def send_invoice_email(
    bill_id: UUID,
    session: SessionDep,
    principal: PrincipalDep,
    storage: StorageDep,
    mailer: MailerDep,
    clock: ClockDep,
    request: Optional[SendEmailRequest] = None,
) -> Envelope[EmailSentRead]:
    request = request or SendEmailRequest()
    bill = _load_bill(LedgerStore(session), bill_id, principal)
    notifier = NotificationService(session, InvoiceRenderer(storage, clock=clock), storage, mailer, clock=clock)
    result = notifier.send_invoice_email(
        bill,
        bill.customer,
        override_address=request.email,
        custom_message=request.message,
        subject=request.subject,
    )
    if not result.success:
        raise EmailError(f"Failed to send email: {result.error}")
    return Envelope[EmailSentRead](
        message="Invoice sent successfully",
        data=EmailSentRead(message_id=result.message_id, sent_to=result.sent_to),
    )


@router.post("/{bill_id}/create-order", response_model=Envelope[GatewayOrderRead])
def create_payment_order(
    bill_id: UUID,
    session: SessionDep,
    principal: PrincipalDep,
    gateway: GatewayDep,
    clock: ClockDep,
) -> Envelope[GatewayOrderRead]:
    bridge = PaymentGatewayBridge(session, gateway, clock=clock)
    order = bridge.create_order(bill_id, principal)
    bill = LedgerStore(session).get_bill(bill_id)
    return Envelope[GatewayOrderRead](
        data=GatewayOrderRead(
            order_id=order.order_id,
            amount=order.amount,
            currency=order.currency,
            key=gateway.key_id,
            bill_number=bill.bill_number,
            customer_name=bill.customer.name if bill.customer else "",
            description=f"Payment for Invoice {bill.bill_number}",
        )
    )


@router.post("/{bill_id}/verify-payment", response_model=Envelope[VerifyPaymentRead])
def verify_payment(
    bill_id: UUID,
    request: VerifyPaymentRequest,
    session: SessionDep,
    principal: PrincipalDep,
    gateway: GatewayDep,
    storage: StorageDep,
    mailer: MailerDep,
    clock: ClockDep,
) -> Envelope[VerifyPaymentRead]:
    renderer = InvoiceRenderer(storage, clock=clock)
    bridge = PaymentGatewayBridge(
        session,
        gateway,
        renderer=renderer,
        notifier=NotificationService(session, renderer, storage, mailer, clock=clock),
        clock=clock,
    )
    bill = bridge.verify_payment(
        bill_id,
        request.gateway_payment_id,
        request.gateway_order_id,
        request.signature,
        actor=principal,
    )
    return Envelope[VerifyPaymentRead](
        message="Payment verified successfully",
        data=VerifyPaymentRead(
            bill=_read(bill),
            pdf_url=bill.rendered_document_ref,
            download_url=bill.rendered_document_ref,
        ),
    )


@router.delete("/{bill_id}", response_model=Envelope[dict])
def delete_bill(bill_id: UUID, session: SessionDep, admin: AdminDep) -> Envelope[dict]:
    """Hard delete; stock taken by the bill is not returned."""
    store = LedgerStore(session)
    bill = store.get_bill(bill_id)
    if bill is None:
        raise NotFoundError("Bill not found")
    store.delete_bill(bill)
    session.commit()
    return Envelope[dict](message="Bill deleted successfully", data={})
