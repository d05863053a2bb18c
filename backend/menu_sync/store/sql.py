"""
SQLAlchemy-backed document store.

Sync SQLAlchemy sessions run in worker threads via asyncio.to_thread so the
event loop never blocks on the database. Change feeds poll the partition's
version row and deliver the full collection state whenever it moves.

Error mapping:
- OperationalError / InterfaceError / pool timeout -> TransientStoreError
- a missing document in a batched update            -> AtomicBatchFailure
- any other SQLAlchemy failure inside a batch        -> AtomicBatchFailure
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
from collections.abc import Callable, Iterator
from typing import Any, TypeVar

from sqlalchemy import Engine, select, update
from sqlalchemy import delete as sql_delete
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.db import safe_commit
from menu_sync.models import Base, CollectionVersion, StoredDocument
from .base import (
    BatchOperation,
    Document,
    DocumentStore,
    Scope,
    Subscription,
    matches_filters,
)
from .errors import AtomicBatchFailure, StoreError, TransientStoreError

logger = get_logger(__name__)

T = TypeVar("T")

_TRANSIENT_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


class SqlDocumentStore(DocumentStore):
    """Document store persisted through SQLAlchemy."""

    def __init__(self, engine: Engine, poll_interval: float | None = None):
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
        self._poll_interval = (
            poll_interval if poll_interval is not None else settings.change_feed_poll_interval
        )
        # A SQLite connection must not be used from two threads at once
        self._lock = threading.Lock() if engine.dialect.name == "sqlite" else None
        self._subscriptions: set[Subscription] = set()

    def create_schema(self) -> None:
        """Create the store tables if they do not exist."""
        Base.metadata.create_all(self._engine)

    # =========================================================================
    # Session plumbing
    # =========================================================================

    @contextlib.contextmanager
    def _session(self) -> Iterator[Session]:
        lock = self._lock or contextlib.nullcontext()
        with lock:
            db = self._session_factory()
            try:
                yield db
            finally:
                db.close()

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except _TRANSIENT_ERRORS as e:
            raise TransientStoreError(str(e)) from e
        except StoreError:
            raise
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    @staticmethod
    def _bump_versions(db: Session, keys: set[tuple[str, str, str]]) -> None:
        """
        Increment each partition's version inside the writer's transaction.

        The increment is evaluated by the database so concurrent writers each
        get their own version; a poller can never see two commits as one.
        Keys are bumped in sorted order so writers lock rows consistently.
        """
        sqlite = db.get_bind().dialect.name == "sqlite"
        for collection, tenant_id, location_id in sorted(keys):
            bump = (
                update(CollectionVersion)
                .where(
                    CollectionVersion.collection == collection,
                    CollectionVersion.tenant_id == tenant_id,
                    CollectionVersion.location_id == location_id,
                )
                .values(version=CollectionVersion.version + 1)
                .execution_options(synchronize_session=False)
            )
            if db.execute(bump).rowcount:
                continue

            first = CollectionVersion(
                collection=collection,
                tenant_id=tenant_id,
                location_id=location_id,
                version=1,
            )
            if sqlite:
                # Writes are serialized by the store lock
                db.add(first)
                continue
            db.flush()
            try:
                with db.begin_nested():
                    db.add(first)
            except IntegrityError:
                # Another writer created the row first
                db.execute(bump)

    @staticmethod
    def _scoped_rows(db: Session, collection: str, scope: Scope) -> list[StoredDocument]:
        return list(db.scalars(
            select(StoredDocument)
            .where(
                StoredDocument.collection == collection,
                StoredDocument.tenant_id == scope.tenant_id,
                StoredDocument.location_id == scope.location_id,
            )
            .order_by(StoredDocument.doc_id)
        ).all())

    # =========================================================================
    # Reads
    # =========================================================================

    def _get_sync(self, collection: str, scope: Scope, doc_id: str) -> Document | None:
        with self._session() as db:
            row = db.get(StoredDocument, (collection, scope.tenant_id, scope.location_id, doc_id))
            return dict(row.data) if row is not None else None

    def _query_sync(self, collection: str, scope: Scope, filters: dict[str, Any] | None) -> list[Document]:
        with self._session() as db:
            docs = [dict(row.data) for row in self._scoped_rows(db, collection, scope)]
        # JSON equality is not portable across dialects; filter in Python
        return [doc for doc in docs if matches_filters(doc, filters)]

    def _read_state_sync(
        self, collection: str, scope: Scope, last_version: int | None
    ) -> tuple[int, list[Document] | None]:
        """Current version, plus the full state when it differs from ``last_version``."""
        with self._session() as db:
            row = db.get(CollectionVersion, (collection, scope.tenant_id, scope.location_id))
            version = row.version if row is not None else 0
            if last_version is not None and version == last_version:
                return version, None
            return version, [dict(r.data) for r in self._scoped_rows(db, collection, scope)]

    async def get(self, collection: str, scope: Scope, doc_id: str) -> Document | None:
        return await self._run(self._get_sync, collection, scope, doc_id)

    async def query(
        self,
        collection: str,
        scope: Scope,
        filters: dict[str, Any] | None = None,
    ) -> list[Document]:
        return await self._run(self._query_sync, collection, scope, filters)

    # =========================================================================
    # Writes
    # =========================================================================

    def _put_sync(self, collection: str, scope: Scope, doc_id: str, data: Document) -> None:
        with self._session() as db:
            key = (collection, scope.tenant_id, scope.location_id, doc_id)
            row = db.get(StoredDocument, key)
            stamped = scope.stamp(doc_id, data)
            if row is None:
                db.add(StoredDocument(
                    collection=collection,
                    tenant_id=scope.tenant_id,
                    location_id=scope.location_id,
                    doc_id=doc_id,
                    data=stamped,
                ))
            else:
                row.data = stamped
            self._bump_versions(db, {key[:3]})
            safe_commit(db)

    def _delete_sync(self, collection: str, scope: Scope, doc_id: str) -> bool:
        with self._session() as db:
            result = db.execute(
                sql_delete(StoredDocument).where(
                    StoredDocument.collection == collection,
                    StoredDocument.tenant_id == scope.tenant_id,
                    StoredDocument.location_id == scope.location_id,
                    StoredDocument.doc_id == doc_id,
                )
            )
            if not result.rowcount:
                db.rollback()
                return False
            self._bump_versions(db, {(collection, scope.tenant_id, scope.location_id)})
            safe_commit(db)
            return True

    def _commit_batch_sync(self, scope: Scope, operations: list[BatchOperation]) -> None:
        with self._session() as db:
            touched: set[tuple[str, str, str]] = set()
            try:
                for op in operations:
                    key = (op.collection, scope.tenant_id, scope.location_id, op.doc_id)
                    row = db.get(StoredDocument, key)

                    if op.kind == "set":
                        stamped = scope.stamp(op.doc_id, op.data)
                        if row is None:
                            db.add(StoredDocument(
                                collection=op.collection,
                                tenant_id=scope.tenant_id,
                                location_id=scope.location_id,
                                doc_id=op.doc_id,
                                data=stamped,
                            ))
                            db.flush()
                        else:
                            row.data = stamped
                    elif op.kind == "update":
                        if row is None:
                            raise AtomicBatchFailure(
                                f"{op.collection}/{op.doc_id} not found",
                                operations=len(operations),
                            )
                        row.data = {**row.data, **op.data}
                    elif op.kind == "delete":
                        if row is not None:
                            db.delete(row)
                    else:
                        raise AtomicBatchFailure(
                            f"Unknown batch operation '{op.kind}'",
                            operations=len(operations),
                        )
                    touched.add(key[:3])

                self._bump_versions(db, touched)
                safe_commit(db)
            except (AtomicBatchFailure, *_TRANSIENT_ERRORS):
                db.rollback()
                raise
            except SQLAlchemyError as e:
                db.rollback()
                raise AtomicBatchFailure(str(e), operations=len(operations)) from e

    async def put(self, collection: str, scope: Scope, doc_id: str, data: Document) -> None:
        await self._run(self._put_sync, collection, scope, doc_id, data)

    async def delete(self, collection: str, scope: Scope, doc_id: str) -> bool:
        return await self._run(self._delete_sync, collection, scope, doc_id)

    async def commit_batch(self, scope: Scope, operations: list[BatchOperation]) -> None:
        if not operations:
            return
        await self._run(self._commit_batch_sync, scope, operations)

    # =========================================================================
    # Change feed
    # =========================================================================

    async def subscribe(self, collection: str, scope: Scope) -> Subscription:
        version, docs = await self._run(self._read_state_sync, collection, scope, None)

        task: asyncio.Task | None = None

        async def _on_close(subscription: Subscription) -> None:
            self._subscriptions.discard(subscription)
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        subscription = Subscription(on_close=_on_close)
        subscription.push(docs or [])
        self._subscriptions.add(subscription)
        task = asyncio.create_task(
            self._poll(subscription, collection, scope, version),
            name=f"feed:{collection}:{scope.key}",
        )
        logger.debug(
            "Polling change feed opened",
            collection=collection,
            scope=scope.key,
            version=version,
        )
        return subscription

    async def _poll(self, subscription: Subscription, collection: str, scope: Scope, version: int) -> None:
        while not subscription.closed:
            await asyncio.sleep(self._poll_interval)
            try:
                new_version, docs = await self._run(self._read_state_sync, collection, scope, version)
            except StoreError as e:
                logger.warning(
                    "Change feed read failed",
                    collection=collection,
                    scope=scope.key,
                    error=str(e),
                )
                subscription.fail(e if isinstance(e, TransientStoreError) else TransientStoreError(str(e)))
                return
            if docs is not None and not subscription.closed:
                version = new_version
                subscription.push(docs)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _ping_sync(self) -> None:
        with self._session() as db:
            db.execute(select(1))

    async def ping(self) -> None:
        await self._run(self._ping_sync)

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            await subscription.close()
        self._subscriptions.clear()
