"""
Document store adapters.

- base: DocumentStore interface, Scope, BatchOperation, Subscription
- memory: in-process store with a native watch API
- sql: SQLAlchemy store with a polling change feed
- errors: store error taxonomy
"""

from shared.config.settings import Settings
from .base import (
    BatchOperation,
    Document,
    DocumentStore,
    Scope,
    Snapshot,
    Subscription,
    matches_filters,
)
from .errors import (
    AtomicBatchFailure,
    DocumentNotFoundError,
    StoreError,
    TransientStoreError,
)
from .memory import InMemoryDocumentStore
from .sql import SqlDocumentStore


def build_store(config: Settings) -> DocumentStore:
    """Create the store selected by ``STORE_BACKEND``."""
    if config.store_backend == "memory":
        return InMemoryDocumentStore()
    if config.store_backend == "sql":
        from shared.infrastructure.db import build_engine

        store = SqlDocumentStore(build_engine(config.database_url), config.change_feed_poll_interval)
        store.create_schema()
        return store
    raise ValueError(f"Unknown store backend: {config.store_backend}")


__all__ = [
    "AtomicBatchFailure",
    "BatchOperation",
    "Document",
    "DocumentNotFoundError",
    "DocumentStore",
    "InMemoryDocumentStore",
    "Scope",
    "Snapshot",
    "SqlDocumentStore",
    "StoreError",
    "Subscription",
    "TransientStoreError",
    "build_store",
    "matches_filters",
]
