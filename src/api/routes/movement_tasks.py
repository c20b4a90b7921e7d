"""Movement task endpoints: scheduling, claiming and execution."""

from fastapi import APIRouter, Depends, Query, status

from src.api.dependencies import get_gateway, get_paging, get_queries, get_request_context
from src.application.context import RequestContext
from src.application.dto.requests import (
    AssignTaskRequest,
    AutoAssignRequest,
    CompleteTaskRequest,
    CreateMovementTaskRequest,
    UpdateMovementTaskRequest,
)
from src.application.dto.responses import (
    AutoAssignmentResponse,
    AutoAssignResponse,
    ErrorResponse,
    MovementTaskResponse,
    PageResponse,
)
from src.application.gateway import ValidationGateway
from src.application.mappers import task_to_response
from src.application.queries import MovementQueryService, Page
from src.core.entities.movement import TaskStatus
from src.core.exceptions import ValidationError
from src.core.interfaces.movement_store import TaskFilter

router = APIRouter(prefix="/api/v1/movement-tasks", tags=["movement-tasks"])

_COMMAND_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def _page(result: Page, queries: MovementQueryService) -> PageResponse[MovementTaskResponse]:
    now = queries.now()
    return PageResponse.build(
        [task_to_response(t, now) for t in result.items],
        result.total,
        result.page,
        result.size,
    )


# Queries


@router.get("", response_model=PageResponse[MovementTaskResponse])
async def list_tasks(
    movement_id: str | None = None,
    assigned_user_id: str | None = None,
    status_filter: TaskStatus | None = Query(default=None, alias="status"),
    paging: tuple[int, int] = Depends(get_paging),
    queries: MovementQueryService = Depends(get_queries),
) -> PageResponse[MovementTaskResponse]:
    """List tasks in assignment order (most urgent first)."""
    page, size = paging
    result = await queries.list_tasks(
        TaskFilter(
            movement_id=movement_id,
            assigned_user_id=assigned_user_id,
            status=status_filter,
        ),
        page=page,
        size=size,
    )
    return _page(result, queries)


@router.get("/unassigned", response_model=PageResponse[MovementTaskResponse])
async def unassigned_tasks(
    warehouse_id: str | None = None,
    paging: tuple[int, int] = Depends(get_paging),
    queries: MovementQueryService = Depends(get_queries),
) -> PageResponse[MovementTaskResponse]:
    page, size = paging
    return _page(await queries.unassigned_tasks(warehouse_id, page, size), queries)


@router.get("/overdue", response_model=list[MovementTaskResponse])
async def overdue_tasks(
    queries: MovementQueryService = Depends(get_queries),
) -> list[MovementTaskResponse]:
    now = queries.now()
    return [task_to_response(t, now) for t in await queries.overdue_tasks()]


@router.get("/scheduled-today", response_model=PageResponse[MovementTaskResponse])
async def scheduled_today(
    warehouse_id: str | None = None,
    paging: tuple[int, int] = Depends(get_paging),
    queries: MovementQueryService = Depends(get_queries),
) -> PageResponse[MovementTaskResponse]:
    page, size = paging
    return _page(await queries.scheduled_today(warehouse_id, page, size), queries)


@router.get(
    "/my-tasks-today",
    response_model=PageResponse[MovementTaskResponse],
    responses={400: {"model": ErrorResponse}},
)
async def my_tasks_today(
    user_id: str | None = None,
    paging: tuple[int, int] = Depends(get_paging),
    ctx: RequestContext = Depends(get_request_context),
    queries: MovementQueryService = Depends(get_queries),
) -> PageResponse[MovementTaskResponse]:
    """Tasks assigned to a user and scheduled today; defaults to the acting user."""
    user_id = user_id or ctx.user_id
    if not user_id:
        raise ValidationError("user_id", "Pass user_id or the X-User-Id header")
    page, size = paging
    return _page(await queries.my_tasks_today(user_id, page, size), queries)


@router.get(
    "/{task_id}",
    response_model=MovementTaskResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_task(
    task_id: str,
    queries: MovementQueryService = Depends(get_queries),
) -> MovementTaskResponse:
    return task_to_response(await queries.get_task(task_id), queries.now())


# Commands


@router.post(
    "",
    response_model=MovementTaskResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_COMMAND_ERRORS,
)
async def create_task(
    request: CreateMovementTaskRequest,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementTaskResponse:
    task = await gateway.create_task(request, ctx)
    return task_to_response(task, gateway.now())


@router.post("/auto-assign", response_model=AutoAssignResponse, responses=_COMMAND_ERRORS)
async def auto_assign(
    request: AutoAssignRequest,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> AutoAssignResponse:
    """Round-robin unassigned tasks over the given users."""
    result = await gateway.auto_assign(request, ctx)
    return AutoAssignResponse(
        assigned=[
            AutoAssignmentResponse(task_id=task_id, user_id=user_id)
            for task_id, user_id in result.assigned
        ],
        skipped=result.skipped,
    )


@router.put("/{task_id}", response_model=MovementTaskResponse, responses=_COMMAND_ERRORS)
async def update_task(
    task_id: str,
    request: UpdateMovementTaskRequest,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementTaskResponse:
    task = await gateway.update_task(task_id, request, ctx)
    return task_to_response(task, gateway.now())


@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_COMMAND_ERRORS,
)
async def delete_task(
    task_id: str,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> None:
    await gateway.delete_task(task_id, ctx)


@router.post(
    "/{task_id}/assign", response_model=MovementTaskResponse, responses=_COMMAND_ERRORS
)
async def assign_task(
    task_id: str,
    request: AssignTaskRequest,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementTaskResponse:
    """Claim a PENDING task for a user. Exactly one concurrent claim wins."""
    task = await gateway.assign_task(task_id, request.user_id, ctx)
    return task_to_response(task, gateway.now())


@router.post(
    "/{task_id}/unassign", response_model=MovementTaskResponse, responses=_COMMAND_ERRORS
)
async def unassign_task(
    task_id: str,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementTaskResponse:
    task = await gateway.unassign_task(task_id, ctx)
    return task_to_response(task, gateway.now())


@router.post(
    "/{task_id}/start", response_model=MovementTaskResponse, responses=_COMMAND_ERRORS
)
async def start_task(
    task_id: str,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementTaskResponse:
    task = await gateway.start_task(task_id, ctx)
    return task_to_response(task, gateway.now())


@router.post(
    "/{task_id}/complete", response_model=MovementTaskResponse, responses=_COMMAND_ERRORS
)
async def complete_task(
    task_id: str,
    request: CompleteTaskRequest | None = None,
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementTaskResponse:
    task = await gateway.complete_task(task_id, ctx, notes=request.notes if request else None)
    return task_to_response(task, gateway.now())


@router.post(
    "/{task_id}/cancel", response_model=MovementTaskResponse, responses=_COMMAND_ERRORS
)
async def cancel_task(
    task_id: str,
    reason: str | None = Query(default=None),
    ctx: RequestContext = Depends(get_request_context),
    gateway: ValidationGateway = Depends(get_gateway),
) -> MovementTaskResponse:
    """Cancel the task; the reason is appended to its notes."""
    task = await gateway.cancel_task(task_id, reason, ctx)
    return task_to_response(task, gateway.now())
