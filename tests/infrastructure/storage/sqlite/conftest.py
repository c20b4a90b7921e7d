"""Pytest fixtures for SQLite storage tests."""

from pathlib import Path

import pytest

from src.infrastructure.storage.sqlite.movement_store import SQLiteMovementStore


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "pool.db"


@pytest.fixture
async def store(migrated_db: Path) -> SQLiteMovementStore:
    """Movement store over a freshly migrated database."""
    return SQLiteMovementStore()
