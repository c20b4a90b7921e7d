"""
ASGI entry point for the movement service.

``create_app`` wires logging, middleware, exception handlers and routers;
the lifespan migrates the database (unless disabled) and owns the
connection pool.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.middleware import ErrorHandlerMiddleware, LoggingMiddleware
from src.api.middleware.error_handler import setup_exception_handlers
from src.api.routes import (
    health_router,
    movement_lines_router,
    movement_tasks_router,
    movements_router,
)
from src.config import Settings, configure_logging, get_logger, get_settings

logger = get_logger(__name__)


async def _prepare_database(settings: Settings) -> None:
    from src.infrastructure.storage.sqlite import get_pool
    from src.infrastructure.storage.sqlite.migrations.migrator import run_migrations

    if settings.api.run_migrations_on_startup:
        failed = [r for r in await run_migrations() if not r.success]
        if failed:
            raise RuntimeError(f"migration v{failed[0].version} failed: {failed[0].error}")
    await get_pool()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    from src.application.services import reset_services
    from src.infrastructure.storage.sqlite import close_pool

    settings = get_settings()
    await _prepare_database(settings)
    logger.info(
        "movement_service_started",
        db_path=str(settings.storage.db_path),
        allow_force_complete=settings.movement.allow_force_complete,
    )
    try:
        yield
    finally:
        await close_pool()
        reset_services()
        logger.info("movement_service_stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging()

    app = FastAPI(
        title=settings.app_name,
        description="Stock movement orchestration: movements, lines and tasks",
        version=settings.app_version,
        docs_url="/docs" if settings.api.debug else None,
        redoc_url="/redoc" if settings.api.debug else None,
        lifespan=lifespan,
    )

    # Added last runs first: logging wraps the error handler so failures
    # are logged with the request id already bound.
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(LoggingMiddleware)
    if settings.api.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.api.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Request-ID", "X-Response-Time"],
        )

    setup_exception_handlers(app)
    for router in (health_router, movements_router, movement_lines_router, movement_tasks_router):
        app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    api = get_settings().api
    uvicorn.run("src.api.main:app", host=api.host, port=api.port, reload=api.debug)
