"""Database connection management for the durable session tier.

Synchronous SQLAlchemy engine and session factory. The session manager
reaches the database through ``asyncio.to_thread`` so durable I/O never
blocks the event loop.

Usage:
    from taskrelay.db.connection import SessionLocal, init_db

    init_db()  # Create tables
    with SessionLocal() as db:
        ...
"""

import os
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import sessionmaker

from taskrelay.db.models import Base

DEFAULT_DATABASE_URL = "sqlite:///./taskrelay.db"


def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. TASKRELAY_DATABASE_URL
    2. DATABASE_URL
    3. sqlite:///./taskrelay.db
    """
    for name in ("TASKRELAY_DATABASE_URL", "DATABASE_URL"):
        database_url = os.environ.get(name, "").strip()
        if database_url:
            return database_url
    return DEFAULT_DATABASE_URL


def create_db_engine(database_url: str, **kwargs: Any) -> Engine:
    """Create an engine, applying SQLite pragmas for SQLite URLs.

    Args:
        database_url: SQLAlchemy database URL.
        **kwargs: Extra ``create_engine`` arguments (e.g. ``poolclass``).

    Returns:
        Configured Engine.
    """
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    db_engine = create_engine(
        database_url,
        echo=os.environ.get("SQL_ECHO", "").lower() == "true",
        **kwargs,
    )
    if is_sqlite:
        event.listen(db_engine, "connect", set_sqlite_pragma)
    return db_engine


def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Configure SQLite pragmas for correctness and concurrency.

    Enables:
    - foreign_keys=ON: Referential integrity (disabled by default in SQLite).
    - journal_mode=WAL: Concurrent readers with a single writer.
    - synchronous=NORMAL: Commits are durable after WAL fsync.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.close()


DATABASE_URL = get_database_url()

engine = create_db_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def init_db(db_engine: Engine | None = None) -> None:
    """Create all tables that do not exist yet.

    Args:
        db_engine: Engine to initialize. Defaults to the module engine.
    """
    Base.metadata.create_all(bind=db_engine or engine)
