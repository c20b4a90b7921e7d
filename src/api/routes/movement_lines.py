"""Movement line endpoints."""

from fastapi import APIRouter, Depends, Query, status

from src.api.dependencies import get_gateway, get_paging, get_queries, get_request_context
from src.application.context import RequestContext
from src.application.dto.requests import (
    AdvanceLineRequest,
    CompleteLineRequest,
    CreateMovementLineRequest,
    UpdateMovementLineRequest,
)
from src.application.dto.responses import ErrorResponse, MovementLineResponse, PageResponse
from src.application.gateway import ValidationGateway
from src.application.mappers import line_to_response
from src.application.queries import MovementQueryService
from src.core.entities.movement import LineStatus
from src.core.interfaces.movement_store import LineFilter

router = APIRouter(prefix="/api/v1/movement-lines", tags=["movement-lines"])

_COMMAND_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


@router.get("", response_model=PageResponse[MovementLineResponse])
async def list_lines(
    movement_id: str | None = None,
    item_id: str | None = None,
    status_filter: LineStatus | None = Query(default=None, alias="status"),
    paging: tuple[int, int] = Depends(get_paging),
    queries: MovementQueryService = Depends(get_queries),
) -> PageResponse[MovementLineResponse]:
    page, size = paging
    result = await queries.list_lines(
        LineFilter(movement_id=movement_id, item_id=item_id, status=status_filter),
        page=page,
        size=size,
    )
    return PageResponse.build(
        [line_to_response(line) for line in result.items], result.total, page, size
    )


@router.get("/variance", response_model=PageResponse[MovementLineResponse])
async def variance_lines(
    paging: tuple[int, int] = Depends(get_paging),
    queries: MovementQueryService = Depends(get_queries),
) -> PageResponse[MovementLineResponse]:
    """Lines whose recorded actual differs from the requested quantity."""
    page, size = paging
    result = await queries.variance_lines(page=page, size=size)
    return PageResponse.build(
        [line_to_response(line) for line in result.items], result.total, page, size
    )


@router.get("/short-picked", response_model=PageResponse[MovementLineResponse])
async def short_picked_lines(
    paging: tuple[int, int] = Depends(get_paging),
    queries: MovementQueryService = Depends(get_queries),
) -> PageResponse[MovementLineResponse]:
    """Lines recorded with less than the requested quantity."""
    page, size = paging
    result = await queries.short_picked_lines(page=page, size=size)
    return PageResponse.build(
        [line_to_response(line) for line in result.items], result.total, page, size
    )


@router.get(
    "/{line_id}",
    response_model=MovementLineResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_line(
    line_id: str,
    queries: MovementQueryService = Depends(get_queries),
) -> MovementLineResponse:
    return line_to_response(await queries.get_line(line_id))


@router.post(
    "",
    response_model=MovementLineResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_COMMAND_ERRORS,
)
async def add_line(
    request: CreateMovementLineRequest,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementLineResponse:
    """Append a line to a DRAFT or PENDING movement."""
    return line_to_response(await gateway.add_line(request, ctx))


@router.put("/{line_id}", response_model=MovementLineResponse, responses=_COMMAND_ERRORS)
async def update_line(
    line_id: str,
    request: UpdateMovementLineRequest,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementLineResponse:
    return line_to_response(await gateway.update_line(line_id, request, ctx))


@router.post(
    "/{line_id}/advance", response_model=MovementLineResponse, responses=_COMMAND_ERRORS
)
async def advance_line(
    line_id: str,
    request: AdvanceLineRequest,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementLineResponse:
    """Move the line forward, recording the actual quantity at most once."""
    line = await gateway.advance_line(line_id, request.status, request.actual_quantity, ctx)
    return line_to_response(line)


@router.post(
    "/{line_id}/complete", response_model=MovementLineResponse, responses=_COMMAND_ERRORS
)
async def complete_line(
    line_id: str,
    request: CompleteLineRequest | None = None,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementLineResponse:
    actual = request.actual_quantity if request else None
    return line_to_response(await gateway.complete_line(line_id, actual, ctx))


@router.post(
    "/{line_id}/cancel", response_model=MovementLineResponse, responses=_COMMAND_ERRORS
)
async def cancel_line(
    line_id: str,
    reason: str | None = Query(default=None),
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementLineResponse:
    return line_to_response(await gateway.cancel_line(line_id, reason, ctx))


@router.delete(
    "/{line_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_COMMAND_ERRORS,
)
async def delete_line(
    line_id: str,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> None:
    """Remove a line from a DRAFT or PENDING movement; later lines are renumbered."""
    await gateway.delete_line(line_id, ctx)
