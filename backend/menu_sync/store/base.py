"""
Document store adapter interface.

The engine needs five capabilities from the store, over three logical
collections partitioned by (tenantId, locationId):
- point read / point write / point delete
- collection query with equality filters
- atomic multi-document batch
- change feed delivering the FULL current state of a filtered collection
  on every change (not a diff), in per-scope order, at least once
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal


Document = dict[str, Any]
Snapshot = list[Document]


@dataclass(frozen=True, slots=True)
class Scope:
    """A (tenantId, locationId) pair; unit of partitioning and engine ownership."""

    tenant_id: str
    location_id: str

    def __post_init__(self) -> None:
        for name in ("tenant_id", "location_id"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} must be a non-empty string")

    @property
    def key(self) -> str:
        return f"{self.tenant_id}:{self.location_id}"

    def stamp(self, doc_id: str, data: Document) -> Document:
        """Copy of ``data`` carrying the id and scope keys."""
        return {**data, "id": doc_id, "tenantId": self.tenant_id, "locationId": self.location_id}


@dataclass(slots=True)
class BatchOperation:
    """
    One write inside an atomic batch.

    kind:
        set    - create or overwrite the whole document
        update - merge fields into an existing document (missing doc fails the batch)
        delete - remove the document (missing doc is not an error)
    """

    kind: Literal["set", "update", "delete"]
    collection: str
    doc_id: str
    data: Document = field(default_factory=dict)

    @classmethod
    def set(cls, collection: str, doc_id: str, data: Document) -> "BatchOperation":
        return cls("set", collection, doc_id, data)

    @classmethod
    def update(cls, collection: str, doc_id: str, data: Document) -> "BatchOperation":
        return cls("update", collection, doc_id, data)

    @classmethod
    def delete(cls, collection: str, doc_id: str) -> "BatchOperation":
        return cls("delete", collection, doc_id)


def matches_filters(document: Document, filters: dict[str, Any] | None) -> bool:
    """Equality filter match on top-level document keys."""
    if not filters:
        return True
    return all(document.get(key) == value for key, value in filters.items())


class Subscription:
    """
    Change-feed subscription: an async iterator of full snapshots.

    Producers call ``push(snapshot)`` (or ``fail(error)`` to surface an error
    to the consumer); ``close()`` ends the iteration. Closing is idempotent
    and never waits for the consumer.

    Every snapshot is the full state, so a snapshot the consumer has not
    taken yet is replaced by a newer one instead of queueing behind it.
    """

    _CLOSED = object()

    def __init__(self, on_close: Callable[["Subscription"], Awaitable[None] | None] | None = None):
        self._pending: deque[Any] = deque()
        self._ready = asyncio.Event()
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _put(self, item: Any) -> None:
        self._pending.append(item)
        self._ready.set()

    def push(self, snapshot: Snapshot) -> None:
        if self._closed:
            return
        if self._pending and isinstance(self._pending[-1], list):
            self._pending[-1] = snapshot
        else:
            self._put(snapshot)

    def fail(self, error: BaseException) -> None:
        if not self._closed:
            self._put(error)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._put(self._CLOSED)
        if self._on_close is not None:
            result = self._on_close(self)
            if asyncio.iscoroutine(result):
                await result

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Snapshot:
        if self._closed and not self._pending:
            raise StopAsyncIteration
        while not self._pending:
            self._ready.clear()
            await self._ready.wait()
        item = self._pending.popleft()
        if item is self._CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class DocumentStore(ABC):
    """Async document store adapter."""

    @abstractmethod
    async def get(self, collection: str, scope: Scope, doc_id: str) -> Document | None:
        """Point read. Returns None when the document does not exist."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        scope: Scope,
        filters: dict[str, Any] | None = None,
    ) -> list[Document]:
        """All documents of ``collection`` in ``scope`` matching the equality filters."""

    @abstractmethod
    async def put(self, collection: str, scope: Scope, doc_id: str, data: Document) -> None:
        """Point write with overwrite semantics (last writer wins)."""

    @abstractmethod
    async def delete(self, collection: str, scope: Scope, doc_id: str) -> bool:
        """Point delete. Returns False when nothing was there (not an error)."""

    @abstractmethod
    async def commit_batch(self, scope: Scope, operations: list[BatchOperation]) -> None:
        """
        Apply all operations atomically or none of them.

        Raises:
            AtomicBatchFailure: the batch was rejected; nothing was applied.
            TransientStoreError: the store could not be reached.
        """

    @abstractmethod
    async def subscribe(self, collection: str, scope: Scope) -> Subscription:
        """
        Open a change feed on ``collection`` in ``scope``.

        The current state is delivered first, then the full state again after
        every change.
        """

    async def ping(self) -> None:
        """Raise if the store is unreachable."""

    async def close(self) -> None:
        """Release resources and close open subscriptions."""
