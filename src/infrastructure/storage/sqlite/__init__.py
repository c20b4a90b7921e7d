"""SQLite backend: pooled connections and the movement store."""

from src.infrastructure.storage.sqlite.connection import (
    ConnectionPool,
    close_pool,
    get_connection,
    get_pool,
    get_transaction,
)
from src.infrastructure.storage.sqlite.movement_store import SQLiteMovementStore

_movement_store: SQLiteMovementStore | None = None


def get_movement_store() -> SQLiteMovementStore:
    """Shared store; it keeps no state of its own beyond the global pool."""
    global _movement_store
    if _movement_store is None:
        _movement_store = SQLiteMovementStore()
    return _movement_store


__all__ = [
    "ConnectionPool",
    "SQLiteMovementStore",
    "close_pool",
    "get_connection",
    "get_movement_store",
    "get_pool",
    "get_transaction",
]
