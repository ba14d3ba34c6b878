"""Billing error taxonomy.

Every error carries the HTTP status it maps to at the API boundary, where it is
rendered as ``{"success": false, "message": ...}``.
"""


class BillingError(Exception):
    """Base class for errors raised by the billing core."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BillingError):
    status_code = 400


class InsufficientStockError(BillingError):
    status_code = 400

    def __init__(self, product_name: str, available: int = None, requested: int = None):
        message = f"Insufficient stock for {product_name}"
        if available is not None and requested is not None:
            message += f" (available {available}, requested {requested})"
        super().__init__(message)
        self.product_name = product_name


class SignatureVerificationError(BillingError):
    status_code = 400


class AuthenticationError(BillingError):
    status_code = 401


class AuthorizationError(BillingError):
    status_code = 403


class NotFoundError(BillingError):
    status_code = 404


class AlreadyPaidError(BillingError):
    status_code = 409


class ConflictError(BillingError):
    status_code = 409


class GatewayUnavailableError(BillingError):
    status_code = 502


class StorageError(BillingError):
    status_code = 502


class EmailError(BillingError):
    status_code = 502
