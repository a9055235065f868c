"""
Error taxonomy shared by the order, payment and role-request workflows.

Every error carries a stable ``kind`` that API clients can branch on and
the HTTP status the API layer answers with.
"""

from typing import Any, Dict, Optional


class ServiceError(Exception):
    kind = "ServiceError"
    status_code = 500
    retryable = False

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message}


class NotFound(ServiceError):
    kind = "NotFound"
    status_code = 404


class InvalidArgument(ServiceError):
    kind = "InvalidArgument"
    status_code = 400


class InvalidState(ServiceError):
    kind = "InvalidState"
    status_code = 400


class InvalidTransition(ServiceError):
    kind = "InvalidTransition"
    status_code = 409


class Conflict(ServiceError):
    kind = "Conflict"
    status_code = 409


class PaymentNotVerified(ServiceError):
    kind = "PaymentNotVerified"
    status_code = 400


class PaymentProviderError(ServiceError):
    kind = "PaymentProviderError"
    status_code = 502

    def __init__(self, message: str, original_error: Optional[Exception] = None, **context: Any):
        super().__init__(message, **context)
        self.original_error = original_error


class Unavailable(ServiceError):
    """Upstream or store call failed or timed out. Safe for the caller to retry."""

    kind = "Unavailable"
    status_code = 503
    retryable = True
