"""
Dependency health checks.

A check is an async function returning optional details; decorating it with
``health_check_with_timeout`` turns timeouts and exceptions into an
unhealthy HealthCheckResult, so checks can be gathered without guards.

    @health_check_with_timeout(timeout=3.0, component="redis")
    async def check_redis_health():
        await pool.ping()
        return {"max_connections": 20}
"""

from __future__ import annotations

import asyncio
import functools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from shared.config.logging import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class HealthCheckResult:
    component: str
    status: HealthStatus
    latency_ms: float | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"status": self.status.value, "component": self.component}
        if self.latency_ms is not None:
            body["latency_ms"] = round(self.latency_ms, 2)
        if self.error:
            body["error"] = self.error
        if self.details:
            body["details"] = self.details
        return body


def health_check_with_timeout(timeout: float = 5.0, component: str | None = None):
    """
    Bound a check by ``timeout`` seconds and report instead of raising.

    ``component`` defaults to the function name stripped of its
    ``check_`` prefix and ``_health`` suffix.
    """
    def decorator(
        check: Callable[..., Awaitable[dict[str, Any] | None]],
    ) -> Callable[..., Awaitable[HealthCheckResult]]:
        name = component or check.__name__.removeprefix("check_").removesuffix("_health")

        @functools.wraps(check)
        async def run(*args: Any, **kwargs: Any) -> HealthCheckResult:
            started = time.perf_counter()

            def elapsed() -> float:
                return (time.perf_counter() - started) * 1000

            try:
                details = await asyncio.wait_for(check(*args, **kwargs), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Health check timed out", component=name, timeout=timeout)
                return HealthCheckResult(
                    name, HealthStatus.UNHEALTHY, elapsed(), error=f"timeout after {timeout}s"
                )
            except Exception as e:
                logger.warning("Health check failed", component=name, error=str(e))
                return HealthCheckResult(name, HealthStatus.UNHEALTHY, elapsed(), error=str(e))

            return HealthCheckResult(
                name,
                HealthStatus.HEALTHY,
                elapsed(),
                details=details if isinstance(details, dict) else {},
            )

        return run
    return decorator


async def aggregate_health_checks(checks: list[Awaitable[HealthCheckResult]]) -> dict[str, Any]:
    """
    Run ``checks`` concurrently.

    The overall status is "healthy" only if every component is; otherwise
    "degraded". Returns ``{"status": ..., "components": {name: result}}``.
    """
    outcomes = await asyncio.gather(*checks, return_exceptions=True)

    components: dict[str, dict[str, Any]] = {}
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            outcome = HealthCheckResult("unknown", HealthStatus.UNHEALTHY, error=str(outcome))
        components[outcome.component] = outcome.to_dict()

    healthy = all(c["status"] == HealthStatus.HEALTHY.value for c in components.values())
    return {
        "status": (HealthStatus.HEALTHY if healthy else HealthStatus.DEGRADED).value,
        "components": components,
    }
