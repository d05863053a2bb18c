"""
SQLAlchemy ORM models for the SQL document store.

- base: Base class
- document: StoredDocument, CollectionVersion
"""

from .base import Base
from .document import CollectionVersion, StoredDocument

__all__ = [
    "Base",
    "StoredDocument",
    "CollectionVersion",
]
