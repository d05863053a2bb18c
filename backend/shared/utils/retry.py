"""
Retry Utilities.

Exponential backoff with jitter for transient failures: call-site retries
of document store reads/writes and change-feed resubscription.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Final, TypeVar

from shared.config.logging import get_logger
from shared.config.settings import settings

logger = get_logger(__name__)

T = TypeVar("T")


# =============================================================================
# Constants
# =============================================================================


# Default jitter range: ±25% of calculated delay
DEFAULT_JITTER_FACTOR: Final[float] = 0.25

DEFAULT_BACKOFF_BASE: Final[float] = 2.0

DEFAULT_INITIAL_DELAY: Final[float] = 1.0


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        initial_delay: Base delay in seconds (default: 1.0).
        max_delay: Maximum delay cap in seconds (default: 30.0).
        backoff_base: Exponential backoff multiplier (default: 2.0).
        jitter_factor: Random jitter range as fraction (default: 0.25 = ±25%).
        max_attempts: Maximum attempts including the first one (default: 10).
    """

    initial_delay: float = DEFAULT_INITIAL_DELAY
    max_delay: float = 30.0
    backoff_base: float = DEFAULT_BACKOFF_BASE
    jitter_factor: float = DEFAULT_JITTER_FACTOR
    max_attempts: int = 10

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.initial_delay <= 0:
            raise ValueError("initial_delay must be positive")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.backoff_base < 1:
            raise ValueError("backoff_base must be >= 1")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


def calculate_delay_with_jitter(
    attempt: int,
    config: RetryConfig | None = None,
) -> float:
    """
    Calculate retry delay with exponential backoff and jitter.

    The delay is calculated as:
        base_delay = initial_delay * (backoff_base ^ attempt)
        capped_delay = min(base_delay, max_delay)
        final_delay = capped_delay * (1 ± jitter_factor)

    Args:
        attempt: Current attempt number (0-indexed).
        config: Retry configuration (uses defaults if None).

    Returns:
        Delay in seconds with jitter applied, never negative.
    """
    if config is None:
        config = RetryConfig()

    base_delay = config.initial_delay * (config.backoff_base ** attempt)
    capped_delay = min(base_delay, config.max_delay)

    jitter_range = capped_delay * config.jitter_factor
    jitter = random.uniform(-jitter_range, jitter_range)

    return max(0.0, capped_delay + jitter)


# =============================================================================
# Factory Functions
# =============================================================================


def create_store_retry_config() -> RetryConfig:
    """Retry config for call-site retries of document store operations."""
    return RetryConfig(
        initial_delay=settings.store_retry_initial_delay,
        max_delay=max(settings.store_retry_max_delay, settings.store_retry_initial_delay),
        backoff_base=2.0,
        jitter_factor=0.25,
        max_attempts=settings.store_retry_max_attempts,
    )


def create_feed_retry_config() -> RetryConfig:
    """Retry config for change-feed resubscription."""
    return RetryConfig(
        initial_delay=1.0,
        max_delay=30.0,
        backoff_base=2.0,
        jitter_factor=0.25,
        max_attempts=settings.feed_resubscribe_max_attempts,
    )


# =============================================================================
# Async Retry
# =============================================================================


async def retry_async(
    operation: Callable[..., Awaitable[T]],
    *args: Any,
    retry_on: tuple[type[BaseException], ...],
    config: RetryConfig | None = None,
    description: str = "operation",
    **kwargs: Any,
) -> T:
    """
    Await ``operation(*args, **kwargs)``, retrying on the given exception types.

    Exceptions not listed in ``retry_on`` propagate immediately. After
    ``config.max_attempts`` failed attempts the last error is re-raised.

    Usage:
        items = await retry_async(
            store.query, Collections.MENU_ITEMS, scope,
            retry_on=(TransientStoreError,),
            description="load menu items",
        )
    """
    if config is None:
        config = create_store_retry_config()

    attempt = 0
    while True:
        try:
            return await operation(*args, **kwargs)
        except retry_on as e:
            attempt += 1
            if attempt >= config.max_attempts:
                logger.error(
                    "Retries exhausted",
                    operation=description,
                    attempts=attempt,
                    error=str(e),
                )
                raise
            delay = calculate_delay_with_jitter(attempt - 1, config)
            logger.warning(
                "Transient failure, retrying",
                operation=description,
                attempt=attempt,
                max_attempts=config.max_attempts,
                delay_seconds=round(delay, 2),
                error=str(e),
            )
            await asyncio.sleep(delay)
