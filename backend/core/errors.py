"""
Domain errors for the negotiation and deadline engine.

Raised by the service layer when a business rule is violated. The API
layer renders them through a single exception handler (see api/main.py),
so services never build HTTP responses themselves.
"""


class MarketplaceError(Exception):
    """Base class. ``code`` is stable for clients, ``status_code`` is the HTTP mapping."""

    code = "marketplace_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MarketplaceError):
    """Malformed, missing or out-of-range input. Never retried."""

    code = "validation_error"
    status_code = 400


class NotFound(MarketplaceError):
    code = "not_found"
    status_code = 404


class Forbidden(MarketplaceError):
    code = "forbidden"
    status_code = 403


class Conflict(MarketplaceError):
    """Duplicate bid for a (request, designer) pair."""

    code = "conflict"
    status_code = 409


class InvalidState(MarketplaceError):
    """Operation not valid for the current lifecycle stage."""

    code = "invalid_state"
    status_code = 400


class TransactionError(MarketplaceError):
    """The atomic unit failed or timed out. Nothing was persisted, so the call is safe to retry."""

    code = "transaction_error"
    status_code = 503
