# Overview: Domain error taxonomy for the order and inventory engine.

"""
Order engine errors.

Every error carries a human-readable message, optional structured details and
the HTTP status a route should answer with. Routes catch OrderEngineError and
serialize it with to_dict(); anything else is an unexpected failure.
"""

from __future__ import annotations


class OrderEngineError(Exception):
    """Base class for business-rule failures raised by the service layer."""
    status_code = 400

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details if details is not None else {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailed(OrderEngineError):
    """Client-fixable input problems, itemized (insufficient stock, inactive product...)."""
    status_code = 400

    def __init__(self, errors: list[str], message: str = "Order validation failed"):
        super().__init__(message, details=list(errors))
        self.errors = list(errors)


class NotFound(OrderEngineError):
    """A referenced entity does not exist."""
    status_code = 404


class InvalidTransition(OrderEngineError):
    """Requested order status change is not in the transition table."""
    status_code = 400

    def __init__(self, from_status: str, to_status: str):
        super().__init__(
            f"Cannot change order status from {from_status} to {to_status}",
            details={"from_status": from_status, "to_status": to_status},
        )
        self.from_status = from_status
        self.to_status = to_status


class InsufficientStock(OrderEngineError):
    """
    Raised by the stock ledger when a debit would make stock negative.

    Distinct from the validator's pre-check: this is the authoritative check
    performed at debit time, inside the write transaction.
    """
    status_code = 400

    def __init__(self, variant_id: int, sku: str | None, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {sku or variant_id}. Available: {available}, requested: {requested}",
            details={
                "variant_id": variant_id,
                "sku": sku,
                "available": available,
                "requested": requested,
            },
        )
        self.variant_id = variant_id
        self.sku = sku
        self.available = available
        self.requested = requested


class DuplicateResource(OrderEngineError):
    """Number collision, or an invoice already exists for the order."""
    status_code = 409


class InternalError(OrderEngineError):
    """Unexpected persistence failure; the whole unit of work was rolled back."""
    status_code = 500
