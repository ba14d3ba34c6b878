"""Request-scoped dependencies for the API routes."""

from collections.abc import Generator
from datetime import datetime
from typing import Annotated, Callable, Optional
from uuid import UUID

from fastapi import Depends, Header
from sqlmodel import Session

from billing.core.db import engine
from billing.core.errors import AuthenticationError, AuthorizationError
from billing.models.bill import Principal, Role
from billing.models.domain import utcnow
from billing.services.invoice_storage import InvoiceStorage
from billing.services.notification_service import Mailer
from billing.services.payment_gateway import GatewayClient


def get_db() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


def get_gateway_client() -> Generator[GatewayClient, None, None]:
    client = GatewayClient()
    try:
        yield client
    finally:
        client.close()


def get_invoice_storage() -> InvoiceStorage:
    return InvoiceStorage()


def get_mailer() -> Mailer:
    return Mailer()


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_current_principal(
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_user_role: Annotated[Optional[str], Header()] = None,
) -> Principal:
    """Principal asserted by the upstream authentication layer."""
    if not x_user_id or not x_user_role:
        raise AuthenticationError("Not authorized to access this route")
    try:
        return Principal(id=UUID(x_user_id), role=Role(x_user_role.lower()))
    except ValueError as exc:
        raise AuthenticationError("Not authorized to access this route") from exc


def require_admin(principal: Annotated[Principal, Depends(get_current_principal)]) -> Principal:
    if not principal.is_admin:
        raise AuthorizationError(f"User role {principal.role.value} is not authorized to access this route")
    return principal


SessionDep = Annotated[Session, Depends(get_db)]
PrincipalDep = Annotated[Principal, Depends(get_current_principal)]
AdminDep = Annotated[Principal, Depends(require_admin)]
GatewayDep = Annotated[GatewayClient, Depends(get_gateway_client)]
StorageDep = Annotated[InvoiceStorage, Depends(get_invoice_storage)]
MailerDep = Annotated[Mailer, Depends(get_mailer)]
ClockDep = Annotated[Callable[[], datetime], Depends(get_clock)]
