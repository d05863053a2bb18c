"""
In-process document store.

Used for development and tests. Writes notify subscribers synchronously with
a deep copy of the collection's full state, so deliveries are ordered per
scope exactly like the writes that caused them.
"""

from __future__ import annotations

import copy
from collections import defaultdict
from typing import Any

from shared.config.logging import get_logger
from .base import (
    BatchOperation,
    Document,
    DocumentStore,
    Scope,
    Subscription,
    matches_filters,
)
from .errors import AtomicBatchFailure, DocumentNotFoundError

logger = get_logger(__name__)

_Key = tuple[str, str, str]  # (collection, tenant_id, location_id)


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store with a native watch API."""

    def __init__(self) -> None:
        self._collections: dict[_Key, dict[str, Document]] = defaultdict(dict)
        self._subscribers: dict[_Key, list[Subscription]] = defaultdict(list)
        self.write_count = 0
        self.batch_count = 0

    @staticmethod
    def _key(collection: str, scope: Scope) -> _Key:
        return (collection, scope.tenant_id, scope.location_id)

    def _snapshot(self, key: _Key) -> list[Document]:
        return [copy.deepcopy(doc) for doc in self._collections[key].values()]

    def _notify(self, keys: set[_Key]) -> None:
        for key in keys:
            subscribers = self._subscribers.get(key)
            if not subscribers:
                continue
            snapshot = self._snapshot(key)
            for subscription in list(subscribers):
                subscription.push(copy.deepcopy(snapshot))

    async def get(self, collection: str, scope: Scope, doc_id: str) -> Document | None:
        doc = self._collections[self._key(collection, scope)].get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def query(
        self,
        collection: str,
        scope: Scope,
        filters: dict[str, Any] | None = None,
    ) -> list[Document]:
        return [
            doc
            for doc in self._snapshot(self._key(collection, scope))
            if matches_filters(doc, filters)
        ]

    async def put(self, collection: str, scope: Scope, doc_id: str, data: Document) -> None:
        key = self._key(collection, scope)
        self._collections[key][doc_id] = copy.deepcopy(scope.stamp(doc_id, data))
        self.write_count += 1
        self._notify({key})

    async def delete(self, collection: str, scope: Scope, doc_id: str) -> bool:
        key = self._key(collection, scope)
        existed = self._collections[key].pop(doc_id, None) is not None
        if existed:
            self.write_count += 1
            self._notify({key})
        return existed

    async def commit_batch(self, scope: Scope, operations: list[BatchOperation]) -> None:
        if not operations:
            return

        # Stage every operation against copies; publish only if all succeed
        staged: dict[_Key, dict[str, Document]] = {}
        for op in operations:
            key = self._key(op.collection, scope)
            if key not in staged:
                staged[key] = copy.deepcopy(self._collections[key])
            docs = staged[key]

            if op.kind == "set":
                docs[op.doc_id] = copy.deepcopy(scope.stamp(op.doc_id, op.data))
            elif op.kind == "update":
                if op.doc_id not in docs:
                    error = DocumentNotFoundError(op.collection, op.doc_id)
                    raise AtomicBatchFailure(str(error), operations=len(operations)) from error
                docs[op.doc_id] = {**docs[op.doc_id], **copy.deepcopy(op.data)}
            elif op.kind == "delete":
                docs.pop(op.doc_id, None)
            else:
                raise AtomicBatchFailure(f"Unknown batch operation '{op.kind}'", operations=len(operations))

        for key, docs in staged.items():
            self._collections[key] = docs
        self.write_count += len(operations)
        self.batch_count += 1
        self._notify(set(staged))

    async def subscribe(self, collection: str, scope: Scope) -> Subscription:
        key = self._key(collection, scope)

        def _unregister(subscription: Subscription) -> None:
            subscribers = self._subscribers.get(key, [])
            if subscription in subscribers:
                subscribers.remove(subscription)

        subscription = Subscription(on_close=_unregister)
        self._subscribers[key].append(subscription)
        subscription.push(self._snapshot(key))
        logger.debug("Change feed opened", collection=collection, scope=scope.key)
        return subscription

    async def close(self) -> None:
        for subscribers in list(self._subscribers.values()):
            for subscription in list(subscribers):
                await subscription.close()
        self._subscribers.clear()

    def subscriber_count(self, collection: str, scope: Scope) -> int:
        return len(self._subscribers.get(self._key(collection, scope), []))
