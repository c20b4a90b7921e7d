"""Liveness and database readiness checks."""

import time

import aiosqlite
from fastapi import APIRouter

from src.application.dto.responses import DatabaseHealthResponse, HealthResponse
from src.config import get_logger, get_settings

logger = get_logger(__name__)

router = APIRouter(tags=["health"])

_STARTED = time.monotonic()


def _uptime() -> float:
    return round(time.monotonic() - _STARTED, 3)


@router.get("/health")
async def liveness() -> dict[str, str]:
    """Container liveness check: answers without touching the database."""
    return {"status": "healthy", "version": get_settings().app_version}


@router.get("/api/health", response_model=HealthResponse)
async def service_health() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=get_settings().app_version,
        uptime_seconds=_uptime(),
    )


async def _check_database() -> DatabaseHealthResponse:
    from src.infrastructure.storage.sqlite import get_pool
    from src.infrastructure.storage.sqlite.migrations.migrator import get_migration_status

    started = time.perf_counter()
    try:
        pool = await get_pool()
        available = await pool.ping()
        latency_ms = round((time.perf_counter() - started) * 1000, 2)
        migrations = await get_migration_status(pool.db_path)
    except (aiosqlite.Error, OSError) as exc:
        logger.warning("database_check_failed", error=str(exc))
        return DatabaseHealthResponse(available=False, error=str(exc))

    return DatabaseHealthResponse(
        available=available,
        latency_ms=latency_ms,
        schema_version=migrations["current_version"],
        pending_migrations=migrations["pending_migrations"],
    )


@router.get("/api/health/db", response_model=HealthResponse)
async def database_health() -> HealthResponse:
    """
    Database readiness.

    ``unhealthy`` when SQLite cannot be reached, ``degraded`` when it answers
    but migrations are still pending.
    """
    database = await _check_database()
    if not database.available:
        status = "unhealthy"
    elif database.pending_migrations:
        status = "degraded"
    else:
        status = "healthy"
    return HealthResponse(
        status=status,
        version=get_settings().app_version,
        uptime_seconds=_uptime(),
        database=database,
    )
