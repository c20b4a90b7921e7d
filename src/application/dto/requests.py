"""Request DTOs for API endpoints.

Pydantic v2 models for API request validation.
These are the ONLY contracts between API and the validation gateway.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from src.core.entities.movement import (
    LineStatus,
    MovementPriority,
    MovementStatus,
    MovementType,
    TaskType,
)

# --- Movements ---


class MovementLineInput(BaseModel):
    """One line supplied with a new movement."""

    item_id: str = Field(..., min_length=1, description="Item reference")
    requested_quantity: float = Field(..., gt=0, description="Quantity to move")
    uom: str | None = Field(default=None, description="Unit of measure", examples=["EA", "KG"])
    lot_id: str | None = None
    serial_id: str | None = None
    from_location_id: str | None = None
    to_location_id: str | None = None
    notes: str | None = None


class CreateMovementRequest(BaseModel):
    """Create a movement with its full line set."""

    reference_number: str | None = Field(
        default=None,
        description="Human-readable reference, unique when present",
        examples=["TRF-2024-0042"],
    )
    type: MovementType
    status: MovementStatus = Field(
        default=MovementStatus.DRAFT,
        description="Initial status: DRAFT or PENDING",
    )
    priority: MovementPriority = MovementPriority.NORMAL
    movement_date: datetime | None = None
    expected_date: datetime | None = None
    scheduled_date: datetime | None = None
    warehouse_id: str = Field(..., min_length=1)
    source_location_id: str | None = None
    destination_location_id: str | None = None
    source_user_id: str | None = None
    destination_user_id: str | None = None
    notes: str | None = None
    reason: str | None = None
    lines: list[MovementLineInput] = Field(
        ...,
        min_length=1,
        description="Lines are created atomically with the movement",
    )


class UpdateMovementRequest(BaseModel):
    """Header edits allowed while DRAFT or PENDING.

    Setting status to PENDING submits a DRAFT movement.
    """

    reference_number: str | None = None
    status: MovementStatus | None = None
    priority: MovementPriority | None = None
    movement_date: datetime | None = None
    expected_date: datetime | None = None
    scheduled_date: datetime | None = None
    warehouse_id: str | None = Field(default=None, min_length=1)
    source_location_id: str | None = None
    destination_location_id: str | None = None
    source_user_id: str | None = None
    destination_user_id: str | None = None
    notes: str | None = None
    reason: str | None = None


# --- Lines ---


class CreateMovementLineRequest(MovementLineInput):
    """Append a line to a DRAFT or PENDING movement."""

    movement_id: str = Field(..., min_length=1)


class UpdateMovementLineRequest(BaseModel):
    """Pre-activation line edits."""

    item_id: str | None = Field(default=None, min_length=1)
    requested_quantity: float | None = Field(default=None, gt=0)
    uom: str | None = None
    lot_id: str | None = None
    serial_id: str | None = None
    from_location_id: str | None = None
    to_location_id: str | None = None
    notes: str | None = None


class AdvanceLineRequest(BaseModel):
    """Move a line forward, optionally recording the actual quantity."""

    status: LineStatus
    actual_quantity: float | None = Field(
        default=None,
        description="Recorded once; cannot be overwritten",
    )


class CompleteLineRequest(BaseModel):
    actual_quantity: float | None = None


# --- Tasks ---


class CreateMovementTaskRequest(BaseModel):
    """Add a task to a non-terminal movement."""

    movement_id: str = Field(..., min_length=1)
    movement_line_id: str | None = None
    task_type: TaskType
    priority: int | None = Field(
        default=None,
        ge=1,
        le=10,
        description="1 (lowest) to 10 (most urgent); defaults from settings",
    )
    scheduled_start_time: datetime | None = None
    expected_completion_time: datetime | None = None
    location_id: str | None = None
    instructions: str | None = None
    notes: str | None = None


class UpdateMovementTaskRequest(BaseModel):
    """Descriptive task edits. Assignee and status change only via commands."""

    task_type: TaskType | None = None
    priority: int | None = Field(default=None, ge=1, le=10)
    scheduled_start_time: datetime | None = None
    expected_completion_time: datetime | None = None
    location_id: str | None = None
    instructions: str | None = None
    notes: str | None = None


class AssignTaskRequest(BaseModel):
    user_id: str = Field(..., min_length=1, description="Assignee")


class CompleteTaskRequest(BaseModel):
    notes: str | None = None


class AutoAssignRequest(BaseModel):
    """Distribute unassigned tasks over a pool of users."""

    user_ids: list[str] = Field(..., min_length=1)
    warehouse_id: str | None = None
    movement_id: str | None = None
    limit: int = Field(default=100, ge=1, le=1000)
