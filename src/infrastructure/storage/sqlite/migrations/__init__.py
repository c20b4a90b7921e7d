"""Versioned SQL schema for the movement store."""

from src.infrastructure.storage.sqlite.migrations.migrator import (
    REQUIRED_TABLES,
    MigrationResult,
    get_migration_status,
    run_migrations,
    verify_schema_integrity,
)

__all__ = [
    "REQUIRED_TABLES",
    "MigrationResult",
    "get_migration_status",
    "run_migrations",
    "verify_schema_integrity",
]
