"""
Utilities module: Exceptions, retry, health checks.
"""

from shared.utils.exceptions import (
    ValidationError,
    ConfirmationRequiredError,
    ConflictError,
    ServiceUnavailableError,
)
from shared.utils.retry import (
    RetryConfig,
    calculate_delay_with_jitter,
    retry_async,
)

__all__ = [
    # exceptions
    "ValidationError",
    "ConfirmationRequiredError",
    "ConflictError",
    "ServiceUnavailableError",
    # retry
    "RetryConfig",
    "calculate_delay_with_jitter",
    "retry_async",
]
