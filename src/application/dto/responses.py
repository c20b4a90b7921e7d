"""Response DTOs for API endpoints.

Pydantic v2 models for API response serialization.
"""

import math
from datetime import UTC, datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


# --- Movements ---


class MovementLineResponse(BaseModel):
    """Movement line response DTO."""

    id: str
    movement_id: str | None
    line_number: int
    item_id: str
    requested_quantity: float
    actual_quantity: float | None = None
    variance: float | None = Field(default=None, description="actual - requested")
    uom: str | None = None
    lot_id: str | None = None
    serial_id: str | None = None
    from_location_id: str | None = None
    to_location_id: str | None = None
    status: str
    notes: str | None = None
    reason: str | None = None
    created_at: datetime
    updated_at: datetime


class MovementTaskResponse(BaseModel):
    """Movement task response DTO."""

    id: str
    movement_id: str | None
    movement_line_id: str | None = None
    task_type: str
    status: str
    priority: int
    assigned_user_id: str | None = None
    scheduled_start_time: datetime | None = None
    expected_completion_time: datetime | None = None
    actual_start_time: datetime | None = None
    actual_completion_time: datetime | None = None
    location_id: str | None = None
    instructions: str | None = None
    notes: str | None = None
    is_overdue: bool = False
    duration_minutes: int | None = None
    created_at: datetime
    updated_at: datetime


class MovementResponse(BaseModel):
    """Movement response DTO. Lines and tasks are omitted in list views."""

    id: str
    reference_number: str | None = None
    type: str
    status: str
    priority: str
    movement_date: datetime
    expected_date: datetime | None = None
    scheduled_date: datetime | None = None
    actual_date: datetime | None = None
    warehouse_id: str
    source_location_id: str | None = None
    destination_location_id: str | None = None
    source_user_id: str | None = None
    destination_user_id: str | None = None
    notes: str | None = None
    reason: str | None = None
    hold_previous_status: str | None = None
    is_overdue: bool = False
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_by: str | None = None
    completed_at: datetime | None = None
    version: int
    lines: list[MovementLineResponse] = Field(default_factory=list)
    tasks: list[MovementTaskResponse] = Field(default_factory=list)


class MovementProgressResponse(BaseModel):
    """Derived execution summary of a movement."""

    movement_id: str
    status: str
    derived_status: str | None = Field(
        default=None, description="Status implied by the lines, if any"
    )
    total_lines: int
    completed_lines: int
    cancelled_lines: int
    resolved_lines: int
    all_resolved: bool
    progress_percent: float
    total_tasks: int
    completed_tasks: int
    open_tasks: int
    overdue_tasks: int
    total_requested: float
    total_actual: float


class MovementEventResponse(BaseModel):
    """One audit trail entry."""

    id: int | None
    entity_type: str
    entity_id: str
    action: str
    from_status: str | None = None
    to_status: str | None = None
    actor_id: str | None = None
    reason: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime


class MovementStatisticsResponse(BaseModel):
    """Movement counts per status."""

    warehouse_id: str | None = None
    total: int
    by_status: dict[str, int]


class MovementTypeStatisticsResponse(BaseModel):
    """Movement counts per type, filtered on movement date."""

    warehouse_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    total: int
    by_type: dict[str, int]


class AutoAssignmentResponse(BaseModel):
    task_id: str
    user_id: str


class AutoAssignResponse(BaseModel):
    """Result of a batch assignment run."""

    assigned: list[AutoAssignmentResponse] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list, description="Task IDs claimed elsewhere")


# --- Common ---


class PageResponse(BaseModel, Generic[T]):
    """Paginated envelope: {content, totalElements, totalPages, size, number, first, last}."""

    model_config = ConfigDict(populate_by_name=True)

    content: list[T]
    total_elements: int = Field(..., serialization_alias="totalElements")
    total_pages: int = Field(..., serialization_alias="totalPages")
    size: int
    number: int = Field(..., description="Zero-based page index")
    first: bool
    last: bool

    @classmethod
    def build(cls, content: list, total: int, page: int, size: int) -> "PageResponse":
        total_pages = math.ceil(total / size) if size else 0
        return cls(
            content=content,
            total_elements=total,
            total_pages=total_pages,
            size=size,
            number=page,
            first=page == 0,
            last=page >= total_pages - 1,
        )


class DatabaseHealthResponse(BaseModel):
    name: str = "sqlite"
    available: bool
    latency_ms: float | None = None
    schema_version: str | None = None
    pending_migrations: list[str] = Field(default_factory=list)
    error: str | None = None


class HealthResponse(BaseModel):
    status: Literal["healthy", "degraded", "unhealthy"]
    version: str
    uptime_seconds: float
    database: DatabaseHealthResponse | None = None


class ErrorResponse(BaseModel):
    """Standardized error response DTO.

    Every error response includes:
    - error_code: machine-readable code (e.g. MOVEMENT_NOT_FOUND)
    - message: human-readable description
    - hint: suggested recovery action
    - path: request path that triggered the error
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error description")
    hint: str | None = Field(default=None, description="Suggested recovery action")
    detail: str | None = Field(default=None, description="Additional details")
    details: dict[str, Any] | None = Field(
        default=None, description="Structured context, e.g. current and attempted status"
    )
    path: str | None = Field(default=None, description="Request path")
    request_id: str | None = Field(default=None, description="Echo of the X-Request-ID header")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
