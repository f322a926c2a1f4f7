"""
Domain error taxonomy for the decision engine.

Every error carries a short machine-readable `code` (used as the failure
reason in bulk results and as the `error` field of API responses) and the
HTTP status the API layer maps it to.
"""

from fastapi import status


class AdmissionError(Exception):
    code = "admission-error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str | None = None):
        self.message = message or self.code
        super().__init__(self.message)


class ValidationError(AdmissionError):
    """Illegal target status or a transition out of a terminal state."""

    code = "invalid-transition"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(AdmissionError):
    code = "not-found"
    status_code = status.HTTP_404_NOT_FOUND


class AuthorizationError(AdmissionError):
    """Actor does not own the institution referenced by the application."""

    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(AdmissionError):
    """
    Either the admission invariant would be violated (`already-admitted`) or a
    concurrent writer kept changing the competing set (`version-conflict`).
    """

    ALREADY_ADMITTED = "already-admitted"
    VERSION_CONFLICT = "version-conflict"

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        self.code = reason
        super().__init__(message or reason)

    def __str__(self) -> str:
        return self.reason


class StoreUnavailableError(AdmissionError):
    """Transient store failure that outlived the store-level retries."""

    code = "store-unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class TransitionTimeoutError(AdmissionError):
    code = "timeout"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
