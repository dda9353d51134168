# Overview: Domain error taxonomy shared by services and routes.

"""
Every error a transaction operation can raise derives from PapuError and
carries the HTTP status the routes answer with.

- ValidationError, AuthorizationError, NotFoundError, InvalidTransitionError
  and InsufficientStockError are raised before any write is kept.
- PersistenceError wraps store-level failures that survived retries.
- NotificationError never reaches a caller; the dispatcher logs it.
"""

from __future__ import annotations


class PapuError(Exception):
    """Base class for domain errors."""
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        payload.update(self.details)
        return payload


class ValidationError(PapuError):
    """400-level input problem (malformed or out-of-range)."""
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthorizationError(PapuError):
    """Caller lacks the role required for the action."""
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(PapuError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidTransitionError(PapuError):
    """Requested state change is not an edge of the transition graph."""
    status_code = 409
    code = "INVALID_TRANSITION"


class InsufficientStockError(PapuError):
    """Reservation would exceed available quantity."""
    status_code = 409
    code = "INSUFFICIENT_STOCK"


class InventoryError(PapuError):
    """
    Ledger misuse (e.g. releasing more than was reserved).

    This is a programmer error: it must fail loudly and is never clamped.
    """
    status_code = 500
    code = "INVENTORY_ERROR"


class PersistenceError(PapuError):
    status_code = 503
    code = "PERSISTENCE_ERROR"


class NotificationError(PapuError):
    """Notification sink failure. Logged by the dispatcher, never surfaced."""
    status_code = 502
    code = "NOTIFICATION_ERROR"
