"""Movement endpoints: lifecycle commands, listing and derived views."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status

from src.api.dependencies import get_gateway, get_paging, get_queries, get_request_context
from src.application.context import RequestContext
from src.application.dto.requests import CreateMovementRequest, UpdateMovementRequest
from src.application.dto.responses import (
    ErrorResponse,
    MovementEventResponse,
    MovementProgressResponse,
    MovementResponse,
    MovementStatisticsResponse,
    MovementTypeStatisticsResponse,
    PageResponse,
)
from src.application.gateway import ValidationGateway
from src.application.mappers import (
    event_to_response,
    movement_to_response,
    progress_to_response,
)
from src.application.queries import MovementQueryService
from src.core.entities.movement import MovementStatus, MovementType
from src.core.interfaces.movement_store import MovementFilter

router = APIRouter(prefix="/api/v1/movements", tags=["movements"])

_COMMAND_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


# Queries (static paths before /{movement_id})


@router.get("", response_model=PageResponse[MovementResponse])
async def list_movements(
    warehouse_id: str | None = None,
    status_filter: MovementStatus | None = Query(default=None, alias="status"),
    type_filter: MovementType | None = Query(default=None, alias="type"),
    created_by: str | None = None,
    search: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    paging: tuple[int, int] = Depends(get_paging),
    queries: MovementQueryService = Depends(get_queries),
) -> PageResponse[MovementResponse]:
    """List movements, newest first."""
    page, size = paging
    result = await queries.list_movements(
        MovementFilter(
            warehouse_id=warehouse_id,
            status=status_filter,
            type=type_filter,
            created_by=created_by,
            search=search,
            start_date=start_date,
            end_date=end_date,
        ),
        page=page,
        size=size,
    )
    now = queries.now()
    return PageResponse.build(
        [movement_to_response(m, now) for m in result.items],
        result.total,
        page,
        size,
    )


@router.get("/overdue", response_model=list[MovementResponse])
async def overdue_movements(
    queries: MovementQueryService = Depends(get_queries),
) -> list[MovementResponse]:
    """Open movements past their expected date."""
    now = queries.now()
    return [movement_to_response(m, now) for m in await queries.overdue_movements()]


@router.get("/statistics", response_model=MovementStatisticsResponse)
async def movement_statistics(
    warehouse_id: str | None = None,
    queries: MovementQueryService = Depends(get_queries),
) -> MovementStatisticsResponse:
    """Movement counts per status."""
    stats = await queries.statistics(warehouse_id)
    return MovementStatisticsResponse(
        warehouse_id=stats.warehouse_id,
        total=stats.total,
        by_status=stats.by_status,
    )


@router.get(
    "/statistics/by-type",
    response_model=MovementTypeStatisticsResponse,
    responses={400: {"model": ErrorResponse}},
)
async def movement_type_statistics(
    warehouse_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    queries: MovementQueryService = Depends(get_queries),
) -> MovementTypeStatisticsResponse:
    """Movement counts per type with a movement date inside the window."""
    stats = await queries.statistics_by_type(warehouse_id, start_date, end_date)
    return MovementTypeStatisticsResponse(
        warehouse_id=stats.warehouse_id,
        start_date=stats.start_date,
        end_date=stats.end_date,
        total=stats.total,
        by_type=stats.by_type,
    )


@router.get(
    "/reference/{reference_number}",
    response_model=MovementResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_by_reference(
    reference_number: str,
    queries: MovementQueryService = Depends(get_queries),
) -> MovementResponse:
    movement = await queries.get_by_reference(reference_number)
    return movement_to_response(movement, queries.now())


@router.get(
    "/{movement_id}",
    response_model=MovementResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_movement(
    movement_id: str,
    queries: MovementQueryService = Depends(get_queries),
) -> MovementResponse:
    """Get a movement with its lines and tasks."""
    movement = await queries.get_movement(movement_id)
    return movement_to_response(movement, queries.now())


@router.get(
    "/{movement_id}/progress",
    response_model=MovementProgressResponse,
    responses={404: {"model": ErrorResponse}},
)
async def movement_progress(
    movement_id: str,
    queries: MovementQueryService = Depends(get_queries),
) -> MovementProgressResponse:
    """Line and task counters plus the status the lines imply."""
    progress, derived = await queries.progress(movement_id)
    return progress_to_response(progress, derived)


@router.get(
    "/{movement_id}/history",
    response_model=list[MovementEventResponse],
    responses={404: {"model": ErrorResponse}},
)
async def movement_history(
    movement_id: str,
    queries: MovementQueryService = Depends(get_queries),
) -> list[MovementEventResponse]:
    """Audit trail, oldest first."""
    return [event_to_response(e) for e in await queries.history(movement_id)]


# Commands


@router.post(
    "",
    response_model=MovementResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_COMMAND_ERRORS,
)
async def create_movement(
    request: CreateMovementRequest,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementResponse:
    """Create a movement together with its lines."""
    movement = await gateway.create_movement(request, ctx)
    return movement_to_response(movement, gateway.now())


@router.put("/{movement_id}", response_model=MovementResponse, responses=_COMMAND_ERRORS)
async def update_movement(
    movement_id: str,
    request: UpdateMovementRequest,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementResponse:
    """Edit header fields while DRAFT or PENDING."""
    movement = await gateway.update_movement(movement_id, request, ctx)
    return movement_to_response(movement, gateway.now())


@router.delete(
    "/{movement_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_COMMAND_ERRORS,
)
async def delete_movement(
    movement_id: str,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> None:
    await gateway.delete_movement(movement_id, ctx)


@router.post("/{movement_id}/start", response_model=MovementResponse, responses=_COMMAND_ERRORS)
async def start_movement(
    movement_id: str,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementResponse:
    movement = await gateway.start_movement(movement_id, ctx)
    return movement_to_response(movement, gateway.now())


@router.post(
    "/{movement_id}/complete", response_model=MovementResponse, responses=_COMMAND_ERRORS
)
async def complete_movement(
    movement_id: str,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementResponse:
    """Close a partially completed movement, or force-complete when enabled."""
    movement = await gateway.complete_movement(movement_id, ctx)
    return movement_to_response(movement, gateway.now())


@router.post("/{movement_id}/cancel", response_model=MovementResponse, responses=_COMMAND_ERRORS)
async def cancel_movement(
    movement_id: str,
    reason: str | None = Query(default=None),
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementResponse:
    """Cancel the movement and every open line and task."""
    movement = await gateway.cancel_movement(movement_id, reason, ctx)
    return movement_to_response(movement, gateway.now())


@router.post("/{movement_id}/hold", response_model=MovementResponse, responses=_COMMAND_ERRORS)
async def hold_movement(
    movement_id: str,
    reason: str | None = Query(default=None),
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementResponse:
    movement = await gateway.hold_movement(movement_id, reason, ctx)
    return movement_to_response(movement, gateway.now())


@router.post(
    "/{movement_id}/release", response_model=MovementResponse, responses=_COMMAND_ERRORS
)
async def release_movement(
    movement_id: str,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementResponse:
    """Resume a held movement in the status it was held from."""
    movement = await gateway.release_movement(movement_id, ctx)
    return movement_to_response(movement, gateway.now())
