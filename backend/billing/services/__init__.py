"""Initialize services package."""

from .ledger_store import LedgerStore
from .bill_builder import BillBuilder
from .payment_gateway import GatewayClient, PaymentGatewayBridge
from .invoice_storage import InvoiceStorage
from .invoice_renderer import InvoiceRenderer
from .notification_service import Mailer, NotificationService
