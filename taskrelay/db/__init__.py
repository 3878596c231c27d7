"""Database module for durable session persistence."""

from taskrelay.db.connection import (
    DATABASE_URL,
    SessionLocal,
    create_db_engine,
    engine,
    init_db,
)
from taskrelay.db.models import Base, RelaySession, RelayTurn

__all__ = [
    # Models
    "Base",
    "RelaySession",
    "RelayTurn",
    # Connection
    "DATABASE_URL",
    "engine",
    "SessionLocal",
    "create_db_engine",
    "init_db",
]
