"""
Tables backing the SQL document store.

Documents are stored as JSON, one row per (collection, tenant, location, id).
Each (collection, tenant, location) partition has a version row bumped in the
same transaction as every write to it; the polling change feed compares
versions to decide when to re-read and deliver the full collection state.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, BigInteger, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class StoredDocument(Base):
    """One document of a logical collection, scoped to a tenant location."""

    __tablename__ = "stored_document"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    location_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    doc_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    data: Mapped[dict] = mapped_column(JSON, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_stored_document_scope", "collection", "tenant_id", "location_id"),
    )

    def __repr__(self) -> str:
        return f"<StoredDocument {self.collection}/{self.tenant_id}/{self.location_id}/{self.doc_id}>"


class CollectionVersion(Base):
    """Monotonic write counter per collection partition."""

    __tablename__ = "collection_version"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    location_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    version: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
