# Overview: Business error taxonomy shared by services and routes.

"""
Service errors.

Every expected business failure is one of three kinds and maps to one HTTP
status. Routes translate these into JSON; anything that is not a ServiceError
is an unexpected failure and is answered as a generic 500.

- NotFoundError   (404): a referenced entity does not exist
- ConflictError   (409): current state prevents the operation
- BadRequestError (400): malformed or logically invalid input
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for business errors raised by the service layer."""

    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class BadRequestError(ServiceError):
    status_code = 400


class InsufficientStockError(ConflictError):
    """Stock cannot cover an outgoing movement."""

    def __init__(self, *, product_id: int, product_name: str, required: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_name!r} (ID: {product_id}). "
            f"Required: {required}, Available: {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "required": required,
                "available": available,
            },
        )
        self.product_id = product_id
        self.required = required
        self.available = available


class InternalServiceError(ServiceError):
    """Generic answer for unexpected failures; the cause is only logged."""

    status_code = 500

    def __init__(self, message: str = "Internal server error", details: dict | None = None):
        super().__init__(message, details)


class LedgerImmutableError(RuntimeError):
    """Raised when code attempts to update or delete a ledger entry."""
