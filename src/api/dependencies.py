"""
Dependency injection container for FastAPI.

Provides the gateway, query service and per-request context to route handlers.
"""

from functools import lru_cache

from fastapi import Header, Query, Request

from src.application.context import RequestContext
from src.application.gateway import ValidationGateway
from src.application.queries import MovementQueryService
from src.application.services import get_query_service, get_validation_gateway
from src.config import Settings, get_settings


@lru_cache
def get_app_settings() -> Settings:
    """Get cached application settings."""
    return get_settings()


async def get_gateway() -> ValidationGateway:
    """Get the validation gateway (all mutations go through it)."""
    return await get_validation_gateway()


async def get_queries() -> MovementQueryService:
    """Get movement query service."""
    return await get_query_service()


def get_request_context(
    request: Request,
    x_user_id: str | None = Header(default=None),
) -> RequestContext:
    """Acting user from the X-User-Id header plus the middleware request id."""
    return RequestContext(
        user_id=x_user_id.strip() if x_user_id and x_user_id.strip() else None,
        request_id=getattr(request.state, "request_id", None),
    )


def get_paging(
    page: int = Query(default=0, ge=0, description="Zero-based page index"),
    size: int | None = Query(default=None, ge=1, description="Page size"),
) -> tuple[int, int]:
    """Page index and size, clamped to the configured maximum."""
    api = get_app_settings().api
    return page, min(size or api.default_page_size, api.max_page_size)
