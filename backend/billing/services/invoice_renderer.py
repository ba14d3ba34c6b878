"""Invoice PDF rendering."""

import io
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Sequence
from zoneinfo import ZoneInfo

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from billing.core.config import settings
from billing.models.domain import Bill, Customer, as_utc, utcnow
from billing.services.invoice_storage import InvoiceStorage

logger = logging.getLogger(__name__)

# ─── PAGE GEOMETRY (points, measured from the top edge) ───
PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 30
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN
FIRST_TABLE_TOP = 220
CONTINUATION_TABLE_TOP = 70
FOOTER_TOP = PAGE_HEIGHT - 60

TOTALS_HEIGHT = 85
PAYMENT_HEIGHT = 35
TERMS_HEIGHT = 70
SUMMARY_GAP = 15
SUMMARY_HEIGHT = TOTALS_HEIGHT + PAYMENT_HEIGHT + TERMS_HEIGHT + SUMMARY_GAP

# ─── COLOR PALETTE ───
BRAND = HexColor("#2563eb")
HEADER_FILL = HexColor("#f1f5f9")
BORDER = HexColor("#e2e8f0")
RULE = HexColor("#e5e7eb")
ROW_SHADE = HexColor("#f8fafc")
WHITE = HexColor("#ffffff")
BLACK = HexColor("#000000")
MUTED = HexColor("#6b7280")

STATUS_COLORS = {
    "paid": HexColor("#22c55e"),
    "pending": HexColor("#f59e0b"),
    "failed": HexColor("#ef4444"),
    "cancelled": MUTED,
    "refunded": MUTED,
}

# (title, x, width, align); right-aligned columns anchor at x + width
COLUMNS = [
    ("Item", 40, 120, "left"),
    ("Description", 165, 170, "left"),
    ("Qty", 340, 40, "right"),
    ("Rate", 385, 80, "right"),
    ("Amount", 470, 90, "right"),
]

TERMS = [
    "Payment due within {due_days} days",
    "Late fees may apply after due date",
    "Goods sold are not returnable",
    "All disputes subject to local jurisdiction",
    "Quote invoice number in all communications",
]


@dataclass(frozen=True)
class TableProfile:
    """Font and row metrics for the line-item table."""
    name: str
    font_size: float
    row_height: float
    header_height: float


REGULAR = TableProfile("regular", 8, 20, 20)
COMPACT = TableProfile("compact", 7, 14, 16)


@dataclass
class PagePlan:
    page_number: int
    first_row: int
    last_row: int  # exclusive
    table_top: float
    repeat_header: bool
    summary_top: Optional[float] = None

    @property
    def row_count(self) -> int:
        return self.last_row - self.first_row


@dataclass
class LayoutPlan:
    profile: TableProfile
    pages: List[PagePlan] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)


@dataclass
class CompanyInfo:
    name: str
    address: str
    phone: str
    email: str
    website: str = ""

    @classmethod
    def from_settings(cls) -> "CompanyInfo":
        return cls(
            name=settings.COMPANY_NAME,
            address=settings.COMPANY_ADDRESS,
            phone=settings.COMPANY_PHONE,
            email=settings.COMPANY_EMAIL,
            website=settings.COMPANY_WEBSITE,
        )


@dataclass
class RenderedInvoice:
    document_ref: str
    file_name: str
    page_count: int
    content: bytes


def format_money(amount, symbol: Optional[str] = None) -> str:
    symbol = settings.CURRENCY_SYMBOL if symbol is None else symbol
    value = Decimal(str(amount)) if not isinstance(amount, Decimal) else amount
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


def format_date(value: Optional[datetime], tz: Optional[ZoneInfo] = None) -> str:
    if value is None:
        return "-"
    value = as_utc(value)
    if tz is not None:
        value = value.astimezone(tz)
    return value.strftime("%d/%m/%Y")


def plan_layout(row_count: int) -> LayoutPlan:
    """Split the line-item table across pages.

    The compact profile is used when the table and summary would not fit on
    the first page. Rows never straddle a page and every page after the first
    repeats the table header. The summary block goes after the last row, on a
    page of its own when it does not fit.
    """
    first_space = FOOTER_TOP - FIRST_TABLE_TOP
    estimated = REGULAR.header_height + row_count * REGULAR.row_height + SUMMARY_HEIGHT
    profile = REGULAR if estimated <= first_space else COMPACT

    def capacity(table_top: float) -> int:
        return max(1, int(math.floor((FOOTER_TOP - table_top - profile.header_height) / profile.row_height)))

    plan = LayoutPlan(profile=profile)
    start = 0
    table_top = FIRST_TABLE_TOP
    while True:
        end = min(row_count, start + capacity(table_top))
        page = PagePlan(
            page_number=len(plan.pages) + 1,
            first_row=start,
            last_row=end,
            table_top=table_top,
            repeat_header=bool(plan.pages),
        )
        plan.pages.append(page)
        start = end
        if start >= row_count:
            break
        table_top = CONTINUATION_TABLE_TOP

    last = plan.pages[-1]
    table_bottom = last.table_top + profile.header_height + last.row_count * profile.row_height
    if table_bottom + SUMMARY_GAP + SUMMARY_HEIGHT <= FOOTER_TOP:
        last.summary_top = table_bottom + SUMMARY_GAP
    else:
        plan.pages.append(
            PagePlan(
                page_number=len(plan.pages) + 1,
                first_row=row_count,
                last_row=row_count,
                table_top=CONTINUATION_TABLE_TOP,
                repeat_header=False,
                summary_top=CONTINUATION_TABLE_TOP,
            )
        )
    return plan


def _fit(text: str, font: str, size: float, width: float) -> str:
    text = text or ""
    if stringWidth(text, font, size) <= width:
        return text
    ellipsis = "..."
    while text and stringWidth(text + ellipsis, font, size) > width:
        text = text[:-1]
    return text + ellipsis


class InvoiceRenderer:
    """Lays out a bill as an A4 PDF and stores it."""

    def __init__(
        self,
        storage: InvoiceStorage,
        clock: Callable[[], datetime] = utcnow,
        company: Optional[CompanyInfo] = None,
    ):
        self.storage = storage
        self.clock = clock
        self.company = company or CompanyInfo.from_settings()
        self.timezone = ZoneInfo(settings.BILLING_TIMEZONE)

    def render(self, bill: Bill, customer: Optional[Customer], company_info: Optional[CompanyInfo] = None) -> RenderedInvoice:
        generated_at = self.clock()
        content, page_count = self.build_pdf(bill, customer, company_info, generated_at)
        stored = self.storage.save(
            bill.bill_number or str(bill.id),
            content,
            int(as_utc(generated_at).timestamp() * 1000),
        )
        logger.info("Rendered bill %s to %s (%d pages)", bill.bill_number, stored.file_name, page_count)
        return RenderedInvoice(
            document_ref=stored.document_ref,
            file_name=stored.file_name,
            page_count=page_count,
            content=content,
        )

    def build_pdf(
        self,
        bill: Bill,
        customer: Optional[Customer],
        company_info: Optional[CompanyInfo] = None,
        generated_at: Optional[datetime] = None,
    ):
        """Return ``(pdf_bytes, page_count)``; identical inputs give identical bytes."""
        company = company_info or self.company
        generated_at = generated_at or self.clock()
        items = list(bill.line_items)
        plan = plan_layout(len(items))

        buffer = io.BytesIO()
        c = canvas.Canvas(buffer, pagesize=A4, invariant=1)
        c.setTitle(f"Invoice - {bill.bill_number or 'N/A'}")
        c.setAuthor(company.name)
        c.setSubject("Invoice Document")

        for page in plan.pages:
            if page.page_number == 1:
                self._draw_company_header(c, company)
                self._draw_invoice_and_customer(c, bill, customer)
            else:
                self._draw_continuation_header(c, bill, page)
            if page.row_count or page.page_number == 1:
                self._draw_table(c, items, page, plan.profile)
            if page.summary_top is not None:
                self._draw_summary(c, bill, page.summary_top)
            self._draw_footer(c, page.page_number, plan.page_count, generated_at)
            c.showPage()

        c.save()
        return buffer.getvalue(), plan.page_count

    # ─── DRAWING PRIMITIVES ───

    @staticmethod
    def _y(top: float) -> float:
        return PAGE_HEIGHT - top

    def _text(self, c, text, x, top, font="Helvetica", size=9, color=BLACK, align="left"):
        c.setFont(font, size)
        c.setFillColor(color)
        if align == "right":
            c.drawRightString(x, self._y(top), text)
        else:
            c.drawString(x, self._y(top), text)

    def _box(self, c, x, top, width, height, fill=None, stroke=None):
        c.saveState()
        if fill is not None:
            c.setFillColor(fill)
        if stroke is not None:
            c.setStrokeColor(stroke)
        c.rect(x, self._y(top + height), width, height, fill=1 if fill else 0, stroke=1 if stroke else 0)
        c.restoreState()

    def _rule(self, c, top, color=RULE):
        c.saveState()
        c.setStrokeColor(color)
        c.line(MARGIN, self._y(top), PAGE_WIDTH - MARGIN, self._y(top))
        c.restoreState()

    # ─── SECTIONS ───

    def _draw_company_header(self, c, company: CompanyInfo):
        self._box(c, MARGIN, 30, CONTENT_WIDTH, 60, fill=HEADER_FILL, stroke=BORDER)
        self._text(c, company.name, 40, 52, font="Helvetica-Bold", size=16)
        self._text(c, company.address, 40, 68)
        self._text(c, f"Phone: {company.phone} | Email: {company.email}", 40, 80)
        if company.website:
            self._text(c, company.website, PAGE_WIDTH - 40, 80, color=MUTED, align="right")
        self._text(c, "INVOICE", PAGE_WIDTH - 40, 110, font="Helvetica-Bold", size=20, color=BRAND, align="right")

    def _draw_invoice_and_customer(self, c, bill: Bill, customer: Optional[Customer]):
        top = 125
        self._text(c, "Invoice Details", 40, top, font="Helvetica-Bold", size=10)
        self._text(c, f"Invoice No: {bill.bill_number}", 40, top + 15)
        self._text(c, f"Date: {format_date(bill.created_at, self.timezone)}", 40, top + 30)
        self._text(c, f"Due Date: {format_date(bill.due_date, self.timezone)}", 40, top + 45)
        self._text(c, "Status:", 40, top + 60)
        status = bill.payment_status.value
        self._text(c, status.upper(), 75, top + 60, font="Helvetica-Bold", color=STATUS_COLORS.get(status, MUTED))

        self._text(c, "Bill To", 320, top, font="Helvetica-Bold", size=10)
        if customer is None:
            self._text(c, "-", 320, top + 15)
        else:
            self._text(c, _fit(customer.name, "Helvetica", 9, 240), 320, top + 15)
            self._text(c, _fit(customer.email, "Helvetica", 9, 240), 320, top + 30)
            self._text(c, customer.phone or "", 320, top + 45)
            if customer.address:
                self._text(c, _fit(customer.address, "Helvetica", 8, 240), 320, top + 60, size=8)

        self._rule(c, FIRST_TABLE_TOP - 15)

    def _draw_continuation_header(self, c, bill: Bill, page: PagePlan):
        self._text(c, f"Invoice {bill.bill_number} (continued)", 40, 45, font="Helvetica-Bold", size=10)
        self._rule(c, 55)

    def _draw_table(self, c, items: Sequence, page: PagePlan, profile: TableProfile):
        top = page.table_top
        self._box(c, MARGIN, top, CONTENT_WIDTH, profile.header_height, fill=BRAND)
        header_baseline = top + profile.header_height - (profile.header_height - profile.font_size) / 2 - 1
        for title, x, width, align in COLUMNS:
            anchor = x + width if align == "right" else x
            self._text(c, title, anchor, header_baseline, font="Helvetica-Bold", size=profile.font_size + 1,
                       color=WHITE, align=align)

        row_top = top + profile.header_height
        for index in range(page.first_row, page.last_row):
            item = items[index]
            shade = ROW_SHADE if index % 2 == 0 else WHITE
            self._box(c, MARGIN, row_top, CONTENT_WIDTH, profile.row_height, fill=shade)
            baseline = row_top + profile.row_height - (profile.row_height - profile.font_size) / 2 - 1
            values = [
                item.product_name,
                item.product_description or "-",
                str(item.quantity),
                format_money(item.unit_price),
                format_money(item.line_total),
            ]
            for value, (_, x, width, align) in zip(values, COLUMNS):
                text = _fit(value, "Helvetica", profile.font_size, width)
                anchor = x + width if align == "right" else x
                self._text(c, text, anchor, baseline, size=profile.font_size, align=align)
            row_top += profile.row_height

        self._box(c, MARGIN, top, CONTENT_WIDTH, row_top - top, stroke=RULE)

    def _draw_summary(self, c, bill: Bill, top: float):
        # Totals box
        box_x = PAGE_WIDTH - MARGIN - 240
        self._box(c, box_x, top, 240, TOTALS_HEIGHT - 5, fill=ROW_SHADE, stroke=BORDER)
        label_x = box_x + 20
        value_x = PAGE_WIDTH - MARGIN - 15
        line = top + 15
        self._text(c, "Subtotal:", label_x, line)
        self._text(c, format_money(bill.subtotal), value_x, line, align="right")
        line += 15
        tax_rate = Decimal(str(bill.tax_rate or 0)).normalize()
        self._text(c, f"Tax ({tax_rate:f}%):", label_x, line)
        self._text(c, format_money(bill.tax_amount), value_x, line, align="right")
        if bill.discount_amount and Decimal(str(bill.discount_amount)) > 0:
            line += 15
            self._text(c, "Discount:", label_x, line)
            self._text(c, format_money(-Decimal(str(bill.discount_amount))), value_x, line, align="right")
        self._text(c, "TOTAL:", label_x, top + 68, font="Helvetica-Bold", size=11, color=BRAND)
        self._text(c, format_money(bill.total_amount), value_x, top + 68, font="Helvetica-Bold", size=11,
                   color=BRAND, align="right")

        # Payment info
        pay_top = top + TOTALS_HEIGHT + 5
        self._text(c, "Payment Info", 40, pay_top, font="Helvetica-Bold", size=9, color=BRAND)
        self._text(c, f"Status: {bill.payment_status.value.upper()}", 40, pay_top + 15, size=8)
        method = bill.payment_method.value if bill.payment_method else "Not specified"
        self._text(c, f"Method: {method}", 160, pay_top + 15, size=8)
        if bill.gateway_payment_id:
            self._text(c, _fit(f"Txn ID: {bill.gateway_payment_id}", "Helvetica", 8, 190), 270, pay_top + 15, size=8)
        if bill.paid_at:
            self._text(c, f"Paid: {format_date(bill.paid_at, self.timezone)}", 470, pay_top + 15, size=8)

        # Terms
        terms_top = pay_top + PAYMENT_HEIGHT
        self._text(c, "Terms & Conditions", 40, terms_top, font="Helvetica-Bold", size=7, color=BRAND)
        line = terms_top + 11
        for term in TERMS:
            self._text(c, "• " + term.format(due_days=settings.BILL_DUE_DAYS), 40, line, size=6)
            line += 9

    def _draw_footer(self, c, page_number: int, page_count: int, generated_at: datetime):
        self._rule(c, PAGE_HEIGHT - 52)
        self._text(c, "Thank you for your business!", MARGIN, PAGE_HEIGHT - 40, size=8, color=MUTED)
        stamp = as_utc(generated_at).astimezone(self.timezone).strftime("%d/%m/%Y %H:%M")
        self._text(c, f"Generated on {stamp}", MARGIN, PAGE_HEIGHT - 28, size=8, color=MUTED)
        self._text(c, f"Page {page_number} of {page_count}", PAGE_WIDTH - MARGIN, PAGE_HEIGHT - 28, size=8,
                   color=MUTED, align="right")
