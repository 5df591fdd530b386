"""Exception taxonomy of the SLA compliance engine.

Every error carries a machine-readable ``error_code`` and an HTTP status so the
API layer can render it directly; the sweep itself only branches on the class.
"""

from __future__ import annotations

from typing import Optional, Dict, Any


class SLAEngineException(Exception):
    """Base exception for all engine and API errors."""

    default_error_code: Optional[str] = None
    default_status_code: int = 400

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.status_code = status_code or self.default_status_code
        self.headers = headers
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


# ===== API EXCEPTIONS =====


class NotFoundError(SLAEngineException):
    default_error_code = "NOT_FOUND"
    default_status_code = 404

    def __init__(self, message: str = "not_found", *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class ConflictError(SLAEngineException):
    """Raised when a manual sweep is requested while another one is running."""

    default_error_code = "CONFLICT"
    default_status_code = 409

    def __init__(self, message: str = "conflict", *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class SchedulerUnavailableError(SLAEngineException):
    default_error_code = "SCHEDULER_UNAVAILABLE"
    default_status_code = 503


class RateLimitExceeded(SLAEngineException):
    default_error_code = "RATE_LIMIT"
    default_status_code = 429

    def __init__(self, *, retry_after: int, limit: int, window_seconds: int):
        super().__init__(
            "rate_limit_exceeded",
            details={"retry_after": retry_after, "limit": limit, "window_seconds": window_seconds},
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Window": str(window_seconds),
            },
        )


# ===== CONFIGURATION EXCEPTIONS =====


class InvalidConfigurationError(SLAEngineException):
    """Raised when calendar or scheduler configuration is unusable."""

    default_error_code = "INVALID_CONFIG"
    default_status_code = 500

    def __init__(self, message: str, setting: Optional[str] = None):
        super().__init__(message, details={"setting": setting} if setting else None)


# ===== EVALUATION EXCEPTIONS =====


class EvaluationException(SLAEngineException):
    """Base exception for errors confined to a single ticket's evaluation."""


class DataInconsistencyError(EvaluationException):
    """Raised when a ticket's status history cannot form a valid timeline."""

    default_error_code = "DATA_INCONSISTENCY"
    default_status_code = 422

    def __init__(self, message: str, *, ticket_id: Any = None, details: Optional[Dict[str, Any]] = None):
        payload = dict(details or {})
        if ticket_id is not None:
            payload["ticket_id"] = ticket_id
        super().__init__(message, details=payload)


class InvariantViolationError(EvaluationException):
    """Raised when a computed value breaks an engine invariant (negative elapsed time, empty target)."""

    default_error_code = "INVARIANT_VIOLATION"
    default_status_code = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


# ===== I/O EXCEPTIONS =====


class TransientStoreError(SLAEngineException):
    """Raised when a store read or write fails in a way worth retrying."""

    default_error_code = "STORE_UNAVAILABLE"
    default_status_code = 503

    def __init__(self, message: str = "store_unavailable", *, operation: Optional[str] = None):
        super().__init__(message, details={"operation": operation} if operation else None)


class NotificationDispatchError(SLAEngineException):
    default_error_code = "NOTIFICATION_DISPATCH_ERROR"
    default_status_code = 502

    def __init__(self, message: str, *, kind: Optional[str] = None, status_code: Optional[int] = None):
        details: Dict[str, Any] = {}
        if kind:
            details["kind"] = kind
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, details=details)
