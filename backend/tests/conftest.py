import json
import os
import tempfile
from collections.abc import Generator
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import List
from uuid import uuid4

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["INVOICE_STORAGE_DIR"] = tempfile.mkdtemp(prefix="billing-invoices-")
os.environ["GATEWAY_KEY_ID"] = "rzp_test_key"
os.environ["GATEWAY_KEY_SECRET"] = "test_gateway_secret"
os.environ["EMAIL_INVOICE_ON_PAYMENT"] = "false"

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from billing.api.deps import get_db, get_gateway_client, get_invoice_storage, get_mailer
from billing.core.errors import EmailError
from billing.main import app
from billing.models.bill import Principal, Role
from billing.services.invoice_storage import InvoiceStorage
from billing.services.payment_gateway import GatewayClient
from tests.utils.test_utils import TEST_GATEWAY_KEY_ID, TEST_GATEWAY_SECRET

FIXED_NOW = datetime(2026, 3, 14, 10, 30, tzinfo=timezone.utc)


class FakeGateway:
    """Records order requests and answers like the gateway's orders API."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.fail_with = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            if isinstance(self.fail_with, Exception):
                raise self.fail_with
            return httpx.Response(self.fail_with, json={"error": {"description": "gateway error"}})
        payload = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": f"order_{uuid4().hex[:14]}",
                "amount": payload["amount"],
                "currency": payload["currency"],
                "receipt": payload["receipt"],
                "status": "created",
            },
        )


class FakeMailer:
    """Mailer that keeps messages in memory."""

    from_address = "billing@example.com"

    def __init__(self):
        self.sent: List[EmailMessage] = []
        self.fail = False

    def send(self, message: EmailMessage) -> str:
        if self.fail:
            raise EmailError("Failed to send email: connection refused")
        self.sent.append(message)
        return f"<{uuid4().hex}@billing.test>"


@pytest.fixture(scope="function")
def engine():
    """In-memory SQLite engine with the billing tables."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def file_engine(tmp_path):
    """File-backed SQLite engine for tests that use several connections at once."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'billing.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    with Session(engine) as session:
        yield session


@pytest.fixture(scope="function")
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture(scope="function")
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture(scope="function")
def gateway_client(fake_gateway) -> Generator[GatewayClient, None, None]:
    client = GatewayClient(
        key_id=TEST_GATEWAY_KEY_ID,
        key_secret=TEST_GATEWAY_SECRET,
        base_url="https://gateway.test",
        timeout=5,
        transport=httpx.MockTransport(fake_gateway.handler),
    )
    yield client
    client.close()


@pytest.fixture(scope="function")
def storage(tmp_path) -> InvoiceStorage:
    return InvoiceStorage(root=str(tmp_path / "invoices"), url_prefix="/uploads/invoices", timeout=5)


@pytest.fixture(scope="function")
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture(scope="function")
def admin() -> Principal:
    return Principal(id=uuid4(), role=Role.ADMIN)


@pytest.fixture(scope="function")
def admin_headers(admin):
    return {"X-User-Id": str(admin.id), "X-User-Role": "admin"}


@pytest.fixture(scope="function")
def client(engine, gateway_client, storage, mailer) -> Generator[TestClient, None, None]:
    """Create a test client wired to the test database and fakes."""

    def override_get_db():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway_client] = lambda: gateway_client
    app.dependency_overrides[get_invoice_storage] = lambda: storage
    app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
