"""
HTTP errors raised by the API layer.

Routers translate store and engine failures into these so clients never
see store error codes or messages. Each error logs itself on creation with
whatever keyword context the raiser passes.

    raise ValidationError("location_id must not be empty")
    raise ConfirmationRequiredError("Emergency reset", expected="t1/l1")
    raise ServiceUnavailableError("document store", scope="t1:l1", error=str(e))
"""

from typing import Any

from fastapi import HTTPException, status

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """HTTPException that logs ``detail`` plus context at ``log_level``."""

    log_level = "warning"

    def __init__(self, status_code: int, detail: str, **log_context: Any):
        getattr(logger, self.log_level)(detail, status_code=status_code, **log_context)
        super().__init__(status_code=status_code, detail=detail)


class ValidationError(AppException):
    """400: malformed path or body values."""

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(status.HTTP_400_BAD_REQUEST, detail, **log_context)


class ConfirmationRequiredError(ValidationError):
    """400: a destructive operation arrived without its confirmation."""

    def __init__(self, action: str, expected: str, **log_context: Any):
        super().__init__(
            f"{action} requires confirm=true and confirmScope='{expected}'",
            action=action,
            **log_context,
        )


class ConflictError(AppException):
    """409: the request conflicts with the current state (e.g. engine stopping)."""

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(status.HTTP_409_CONFLICT, detail, **log_context)


class ServiceUnavailableError(AppException):
    """503: a backing service stayed unavailable after retries."""

    log_level = "error"

    def __init__(self, service: str, **log_context: Any):
        super().__init__(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            f"{service} temporarily unavailable, try again later",
            service=service,
            **log_context,
        )
