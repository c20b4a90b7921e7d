"""Persistence for movements."""

from src.infrastructure.storage.sqlite import SQLiteMovementStore, get_movement_store

__all__ = ["SQLiteMovementStore", "get_movement_store"]
