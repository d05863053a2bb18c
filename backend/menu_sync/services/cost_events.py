"""
Menu catalog notifications.

Emitters publish "costs updated" after every committed propagation batch,
and catalog maintenance events after operator actions. Delivery is
fire-and-forget: callers log emitter failures and carry on.

- RedisCostEventEmitter: Redis pub/sub on the location menu channel
- LocalCostEventEmitter: in-process listeners (tests, single-node setups)
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Awaitable, Callable

import redis.asyncio as redis

from shared.config.logging import get_logger
from shared.infrastructure.events import (
    MENU_COSTS_UPDATED,
    Event,
    channel_location_menu,
    channel_tenant_menu,
    get_redis_pool,
    publish_event,
)
from menu_sync.schemas import CostUpdate
from menu_sync.store import Scope

logger = get_logger(__name__)

# Keeps MENU_COSTS_UPDATED well below MAX_EVENT_SIZE
MAX_UPDATES_PER_EVENT = 200

# Recent events kept by LocalCostEventEmitter for inspection
LOCAL_EVENT_HISTORY = 100

EventListener = Callable[[Event], Awaitable[None] | None]


def build_costs_updated_event(scope: Scope, updates: list[CostUpdate]) -> Event:
    summaries = [update.model_dump(by_alias=True, mode="json") for update in updates]
    entity: dict[str, Any] = {
        "updatedCount": len(updates),
        "updates": summaries[:MAX_UPDATES_PER_EVENT],
    }
    if len(summaries) > MAX_UPDATES_PER_EVENT:
        entity["truncated"] = True
    return Event(
        type=MENU_COSTS_UPDATED,
        tenant_id=scope.tenant_id,
        location_id=scope.location_id,
        entity=entity,
        actor={"service": "cost-sync"},
    )


class CostEventEmitter(ABC):
    """Destination for menu catalog notifications."""

    @abstractmethod
    async def emit(self, event: Event) -> None:
        """Deliver one event."""

    async def emit_costs_updated(self, scope: Scope, updates: list[CostUpdate]) -> None:
        if not updates:
            return
        await self.emit(build_costs_updated_event(scope, updates))

    async def emit_catalog_event(self, scope: Scope, event_type: str, entity: dict[str, Any]) -> None:
        await self.emit(Event(
            type=event_type,
            tenant_id=scope.tenant_id,
            location_id=scope.location_id,
            entity=entity,
            actor={"service": "maintenance"},
        ))


class RedisCostEventEmitter(CostEventEmitter):
    """
    Publish events on ``tenant:{t}:location:{l}:menu``.

    With ``tenant_fanout`` the event is also published on the tenant-wide
    menu channel.
    """

    def __init__(
        self,
        client_factory: Callable[[], Awaitable[redis.Redis]] = get_redis_pool,
        tenant_fanout: bool = False,
    ):
        self._client_factory = client_factory
        self._tenant_fanout = tenant_fanout

    async def emit(self, event: Event) -> None:
        client = await self._client_factory()
        channel = channel_location_menu(event.tenant_id, event.location_id)
        receivers = await publish_event(client, channel, event)
        if self._tenant_fanout:
            await publish_event(client, channel_tenant_menu(event.tenant_id), event)
        logger.debug(
            "Menu event published",
            event_type=event.type,
            channel=channel,
            receivers=receivers,
        )


class LocalCostEventEmitter(CostEventEmitter):
    """Fan events out to in-process listeners. Listener failures are logged."""

    def __init__(self, history_size: int = LOCAL_EVENT_HISTORY) -> None:
        self._listeners: list[EventListener] = []
        self._recent: deque[Event] = deque(maxlen=history_size)

    @property
    def events(self) -> list[Event]:
        """The most recent events, oldest first."""
        return list(self._recent)

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def emit(self, event: Event) -> None:
        self._recent.append(event)
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(
                    "Event listener failed",
                    event_type=event.type,
                    error=str(e),
                    exc_info=True,
                )


def build_emitter(backend: str) -> CostEventEmitter:
    """Create the emitter selected by ``EVENTS_BACKEND``."""
    if backend == "redis":
        return RedisCostEventEmitter()
    if backend == "local":
        return LocalCostEventEmitter()
    raise ValueError(f"Unknown events backend: {backend}")
