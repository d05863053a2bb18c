"""
Database engine factory and session helpers for the SQL document store.
Uses SQLAlchemy 2.0 patterns.
"""

import os

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session


def _calculate_pool_size() -> int:
    """
    Pool size from CPU cores: (2 * cores) + 1, capped at 20.
    """
    cores = os.cpu_count() or 4
    return min(cores * 2 + 1, 20)


def build_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL.

    SQLite (development, tests) gets a thread-shareable connection because
    store calls run in worker threads; server databases get a sized pool
    with pre-ping and recycling.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=False,
        )

    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=_calculate_pool_size(),
        max_overflow=15,
        pool_timeout=30,  # Wait max 30s for connection from pool
        pool_recycle=1800,  # Recycle connections after 30 minutes
        echo=False,
    )


def safe_commit(db: Session) -> None:
    """
    Commit with automatic rollback on failure.

    Raises the original exception after rolling back.
    """
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
