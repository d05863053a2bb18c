"""
Event publishing over Redis pub/sub.

publish_event() serializes and size-checks the event, then publishes with
bounded retries (exponential backoff with jitter) behind the process-wide
circuit breaker.
"""

from __future__ import annotations

import asyncio

import redis.asyncio as redis

from shared.config.settings import settings
from shared.config.logging import get_logger
from shared.utils.retry import RetryConfig, calculate_delay_with_jitter
from .circuit_breaker import get_event_circuit_breaker
from .event_schema import Event
from .event_types import MAX_EVENT_SIZE

logger = get_logger(__name__)


def _serialize(event: Event) -> str:
    payload = event.to_json()
    size = len(payload.encode("utf-8"))
    if size > MAX_EVENT_SIZE:
        raise ValueError(f"Event {event.type} is {size} bytes, limit is {MAX_EVENT_SIZE}")
    return payload


def _retry_config() -> RetryConfig:
    delay = settings.redis_publish_retry_delay
    return RetryConfig(
        initial_delay=delay,
        max_delay=max(2.0, delay),
        max_attempts=max(1, settings.redis_publish_max_retries),
    )


async def publish_event(redis_client: redis.Redis, channel: str, event: Event) -> int:
    """
    Publish ``event`` on ``channel``.

    Returns the number of subscribers that received it, or 0 without
    touching Redis while the circuit breaker is open.

    Raises:
        ValueError: the serialized event exceeds MAX_EVENT_SIZE.
        Exception: the last Redis error once every attempt failed.
    """
    payload = _serialize(event)

    breaker = get_event_circuit_breaker()
    if not breaker.can_execute():
        logger.warning("Circuit open, event dropped", channel=channel, event_type=event.type)
        return 0

    config = _retry_config()
    for attempt in range(config.max_attempts):
        try:
            receivers = await redis_client.publish(channel, payload)
        except Exception as e:
            if attempt + 1 >= config.max_attempts:
                breaker.record_failure()
                logger.error(
                    "Event publish failed",
                    channel=channel,
                    event_type=event.type,
                    attempts=attempt + 1,
                    error=str(e),
                )
                raise
            delay = calculate_delay_with_jitter(attempt, config)
            logger.warning(
                "Event publish failed, retrying",
                channel=channel,
                event_type=event.type,
                attempt=attempt + 1,
                delay_seconds=round(delay, 2),
                error=str(e),
            )
            await asyncio.sleep(delay)
        else:
            breaker.record_success()
            return receivers

    raise AssertionError("unreachable")
