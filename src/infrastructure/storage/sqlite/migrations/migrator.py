"""
Versioned schema migrations for the movement database.

Migration files live next to this module and are named ``vNNN_<name>.sql``.
Each one runs inside a single ``BEGIN IMMEDIATE`` transaction together with
its ``schema_migrations`` ledger row, so a failed script leaves neither
tables nor a ledger entry behind. A checksum is kept per version; editing a
file that was already applied stops the run instead of silently diverging.
"""

import hashlib
import re
import shutil
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import aiosqlite

from src.config import get_logger, get_settings

logger = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent
FILENAME_PATTERN = re.compile(r"v(?P<version>\d+)_(?P<name>.+)\.sql")

# Tables the movement store cannot run without, in creation order.
REQUIRED_TABLES = [
    "movements",
    "movement_lines",
    "movement_tasks",
    "movement_events",
    "schema_migrations",
]

LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    checksum TEXT NOT NULL,
    execution_time_ms INTEGER,
    applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
)
"""


@dataclass(frozen=True)
class MigrationInfo:
    """One migration file on disk."""

    version: str
    name: str
    path: Path
    checksum: str

    @property
    def number(self) -> int:
        return int(self.version)

    @classmethod
    def from_file(cls, path: Path) -> "MigrationInfo":
        match = FILENAME_PATTERN.fullmatch(path.name)
        if match is None:
            raise ValueError(f"Invalid migration filename: {path.name}")
        digest = hashlib.sha256(path.read_bytes()).hexdigest()
        return cls(
            version=match["version"],
            name=match["name"],
            path=path,
            checksum=digest[:16],
        )

    def script(self) -> str:
        return self.path.read_text(encoding="utf-8")


@dataclass
class MigrationResult:
    """What happened when one migration was attempted."""

    version: str
    name: str
    success: bool
    execution_time_ms: int
    error: str | None = None
    problems: list[str] = field(default_factory=list)


def discover_migrations(directory: Path = MIGRATIONS_DIR) -> list[MigrationInfo]:
    """Migration files sorted by numeric version; badly named files are skipped."""
    found: list[MigrationInfo] = []
    for path in directory.glob("v*.sql"):
        try:
            found.append(MigrationInfo.from_file(path))
        except ValueError:
            logger.warning("migration_file_ignored", path=str(path))
    return sorted(found, key=lambda m: m.number)


async def get_applied_migrations(conn: aiosqlite.Connection) -> dict[str, str]:
    """Applied version -> recorded checksum. Empty when the ledger is missing."""
    try:
        async with conn.execute("SELECT version, checksum FROM schema_migrations") as cursor:
            return {version: checksum async for version, checksum in cursor}
    except aiosqlite.OperationalError:
        return {}


async def get_current_version(conn: aiosqlite.Connection) -> str | None:
    applied = await get_applied_migrations(conn)
    if not applied:
        return None
    return max(applied, key=int)


@asynccontextmanager
async def _open(db_path: Path) -> AsyncIterator[aiosqlite.Connection]:
    async with aiosqlite.connect(db_path) as conn:
        await conn.execute("PRAGMA foreign_keys=ON")
        yield conn


async def _problems_after(conn: aiosqlite.Connection, migration: MigrationInfo) -> list[str]:
    problems = []
    async with conn.execute(
        "SELECT checksum FROM schema_migrations WHERE version = ?", (migration.version,)
    ) as cursor:
        row = await cursor.fetchone()
    if row is None or row[0] != migration.checksum:
        problems.append(f"ledger row for v{migration.version} missing or wrong")
    async with conn.execute("PRAGMA foreign_key_check") as cursor:
        violations = await cursor.fetchall()
    if violations:
        problems.append(f"{len(violations)} foreign key violation(s)")
    return problems


async def apply_migration(conn: aiosqlite.Connection, migration: MigrationInfo) -> MigrationResult:
    """Run one migration script and record it, all or nothing."""
    started = time.perf_counter()

    def elapsed() -> int:
        return int((time.perf_counter() - started) * 1000)

    try:
        await conn.executescript("BEGIN IMMEDIATE;\n" + migration.script())
        await conn.execute(
            "INSERT INTO schema_migrations (version, name, checksum, execution_time_ms) "
            "VALUES (?, ?, ?, ?)",
            (migration.version, migration.name, migration.checksum, elapsed()),
        )
        await conn.commit()
    except aiosqlite.Error as exc:
        if conn.in_transaction:
            await conn.rollback()
        logger.error("migration_failed", version=migration.version, error=str(exc))
        return MigrationResult(migration.version, migration.name, False, elapsed(), str(exc))

    result = MigrationResult(migration.version, migration.name, True, elapsed())
    result.problems = await _problems_after(conn, migration)
    if result.problems:
        result.success = False
        result.error = "; ".join(result.problems)
    logger.info(
        "migration_applied",
        version=migration.version,
        name=migration.name,
        execution_time_ms=result.execution_time_ms,
        problems=result.problems or None,
    )
    return result


def create_backup(db_path: Path) -> Path:
    """Copy the database file aside; returns the copy's path."""
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_path = db_path.with_suffix(f".backup_{stamp}.db")
    shutil.copy2(db_path, backup_path)
    logger.info("database_backup_created", backup_path=str(backup_path))
    return backup_path


def restore_backup(db_path: Path, backup_path: Path) -> None:
    shutil.copy2(backup_path, db_path)
    logger.warning("database_restored", backup_path=str(backup_path))


async def _migrate(conn: aiosqlite.Connection) -> list[MigrationResult]:
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute(LEDGER_DDL)
    await conn.commit()

    applied = await get_applied_migrations(conn)
    results: list[MigrationResult] = []
    for migration in discover_migrations():
        recorded = applied.get(migration.version)
        if recorded is not None:
            if recorded != migration.checksum:
                logger.error("migration_checksum_changed", version=migration.version)
                results.append(MigrationResult(
                    migration.version, migration.name, False, 0,
                    f"checksum changed: recorded {recorded}, file {migration.checksum}",
                ))
                break
            continue
        result = await apply_migration(conn, migration)
        results.append(result)
        if not result.success:
            break
    return results


async def initialize_database(
    db_path: Path | None = None,
    create_backup_before: bool = True,
) -> list[MigrationResult]:
    """
    Bring the database up to the newest schema version.

    Only migrations that actually ran (or were refused) are returned, so a
    database that is already current yields an empty list. A backup taken
    beforehand is dropped when every migration succeeded and restored when
    the run raises.
    """
    db_path = db_path or get_settings().storage.db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)

    backup_path = create_backup(db_path) if create_backup_before and db_path.exists() else None
    logger.info("database_migration_started", db_path=str(db_path))

    try:
        async with _open(db_path) as conn:
            results = await _migrate(conn)
    except Exception:
        logger.exception("database_migration_crashed", db_path=str(db_path))
        if backup_path is not None:
            restore_backup(db_path, backup_path)
        raise

    if backup_path is not None and all(r.success for r in results):
        backup_path.unlink()
    return results


run_migrations = initialize_database


async def get_migration_status(db_path: Path | None = None) -> dict:
    """Applied and pending versions; the file is not created when absent."""
    db_path = db_path or get_settings().storage.db_path
    known = discover_migrations()

    if not db_path.exists():
        return {
            "exists": False,
            "current_version": None,
            "applied_migrations": [],
            "pending_migrations": [m.version for m in known],
            "total_migrations": len(known),
        }

    async with _open(db_path) as conn:
        applied = await get_applied_migrations(conn)
        current = await get_current_version(conn)

    return {
        "exists": True,
        "current_version": current,
        "applied_migrations": sorted(applied, key=int),
        "pending_migrations": [m.version for m in known if m.version not in applied],
        "total_migrations": len(known),
    }


async def verify_schema_integrity(db_path: Path | None = None) -> list[dict]:
    """Foreign keys, page integrity and required tables, one check dict each."""
    db_path = db_path or get_settings().storage.db_path

    async with _open(db_path) as conn:
        async with conn.execute("PRAGMA foreign_key_check") as cursor:
            violations = len(await cursor.fetchall())
        async with conn.execute("PRAGMA integrity_check") as cursor:
            (integrity,) = await cursor.fetchone()
        async with conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'") as cursor:
            tables = {name async for (name,) in cursor}

    missing = [table for table in REQUIRED_TABLES if table not in tables]
    return [
        {"check": "foreign_keys", "status": "FAIL" if violations else "PASS", "violations": violations},
        {"check": "integrity", "status": "PASS" if integrity == "ok" else "FAIL", "result": integrity},
        {"check": "required_tables", "status": "FAIL" if missing else "PASS", "missing": missing},
    ]
