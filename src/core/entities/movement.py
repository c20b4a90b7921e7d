"""Stock movement domain entities.

A Movement owns an ordered set of lines and an optional set of tasks. Each
level carries its own closed status enum; derived values (variance, overdue,
duration) are computed on read, never stored.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import AfterValidator, BaseModel, Field


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def new_id() -> str:
    """Generate a unique entity identifier."""
    return str(uuid4())


def as_utc(value: datetime) -> datetime:
    # Naive timestamps are treated as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class MovementType(str, Enum):
    """Kinds of stock work."""

    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"
    TRANSFER = "TRANSFER"
    ADJUSTMENT = "ADJUSTMENT"
    RETURN = "RETURN"


class MovementStatus(str, Enum):
    """Movement lifecycle states."""

    DRAFT = "DRAFT"
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    PARTIALLY_COMPLETED = "PARTIALLY_COMPLETED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    ON_HOLD = "ON_HOLD"

    @property
    def is_terminal(self) -> bool:
        return self in (MovementStatus.COMPLETED, MovementStatus.CANCELLED)

    @property
    def is_editable(self) -> bool:
        """Header and line set may still change."""
        return self in (MovementStatus.DRAFT, MovementStatus.PENDING)


class MovementPriority(str, Enum):
    """Movement-level urgency."""

    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"


class LineStatus(str, Enum):
    """Per-line states, declared in their forward order."""

    PENDING = "PENDING"
    ALLOCATED = "ALLOCATED"
    PICKED = "PICKED"
    IN_TRANSIT = "IN_TRANSIT"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def rank(self) -> int:
        return _LINE_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self in (LineStatus.COMPLETED, LineStatus.CANCELLED)


_LINE_ORDER = list(LineStatus)


class TaskStatus(str, Enum):
    """Per-task states."""

    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)


class TaskType(str, Enum):
    """Kinds of physical work."""

    PICK = "PICK"
    PACK = "PACK"
    PUT_AWAY = "PUT_AWAY"
    COUNT = "COUNT"
    INSPECT = "INSPECT"
    LOAD = "LOAD"
    UNLOAD = "UNLOAD"
    STAGE = "STAGE"
    REPLENISH = "REPLENISH"


class MovementLine(BaseModel):
    """One item movement within a Movement."""

    id: str = Field(default_factory=new_id)
    movement_id: str | None = None
    line_number: int = Field(..., ge=1)
    item_id: str
    requested_quantity: float = Field(..., gt=0)
    actual_quantity: float | None = None
    uom: str | None = None
    lot_id: str | None = None
    serial_id: str | None = None
    from_location_id: str | None = None
    to_location_id: str | None = None
    status: LineStatus = LineStatus.PENDING
    notes: str | None = None
    reason: str | None = None
    created_at: UtcDatetime = Field(default_factory=utc_now)
    updated_at: UtcDatetime = Field(default_factory=utc_now)

    @property
    def variance(self) -> float | None:
        """actual - requested, once an actual quantity is recorded."""
        if self.actual_quantity is None:
            return None
        return self.actual_quantity - self.requested_quantity

    @property
    def is_resolved(self) -> bool:
        return self.status.is_terminal


class MovementTask(BaseModel):
    """An assignable unit of execution tied to a Movement."""

    id: str = Field(default_factory=new_id)
    movement_id: str | None = None
    movement_line_id: str | None = None
    task_type: TaskType
    status: TaskStatus = TaskStatus.PENDING
    priority: int = Field(default=5, ge=1, le=10)  # 10 = most urgent
    assigned_user_id: str | None = None
    scheduled_start_time: UtcDatetime | None = None
    expected_completion_time: UtcDatetime | None = None
    actual_start_time: UtcDatetime | None = None
    actual_completion_time: UtcDatetime | None = None
    location_id: str | None = None
    instructions: str | None = None
    notes: str | None = None
    sequence: int = 0  # creation order, assigned by storage
    created_at: UtcDatetime = Field(default_factory=utc_now)
    updated_at: UtcDatetime = Field(default_factory=utc_now)

    def is_overdue(self, now: datetime) -> bool:
        """Expected completion passed while the task is still open."""
        if self.expected_completion_time is None or self.status.is_terminal:
            return False
        return as_utc(now) > self.expected_completion_time

    @property
    def duration_minutes(self) -> int | None:
        if self.actual_start_time is None or self.actual_completion_time is None:
            return None
        delta = self.actual_completion_time - self.actual_start_time
        return int(delta.total_seconds() // 60)


class Movement(BaseModel):
    """A unit of stock work with its lines and tasks."""

    id: str = Field(default_factory=new_id)
    reference_number: str | None = None
    type: MovementType
    status: MovementStatus = MovementStatus.DRAFT
    priority: MovementPriority = MovementPriority.NORMAL
    movement_date: UtcDatetime = Field(default_factory=utc_now)
    expected_date: UtcDatetime | None = None
    scheduled_date: UtcDatetime | None = None
    actual_date: UtcDatetime | None = None
    warehouse_id: str
    source_location_id: str | None = None
    destination_location_id: str | None = None
    source_user_id: str | None = None
    destination_user_id: str | None = None
    notes: str | None = None
    reason: str | None = None
    hold_previous_status: MovementStatus | None = None
    created_by: str | None = None
    created_at: UtcDatetime = Field(default_factory=utc_now)
    updated_at: UtcDatetime = Field(default_factory=utc_now)
    completed_by: str | None = None
    completed_at: UtcDatetime | None = None
    version: int = 0

    lines: list[MovementLine] = Field(default_factory=list)
    tasks: list[MovementTask] = Field(default_factory=list)

    def get_line(self, line_id: str) -> MovementLine | None:
        return next((line for line in self.lines if line.id == line_id), None)

    def get_task(self, task_id: str) -> MovementTask | None:
        return next((task for task in self.tasks if task.id == task_id), None)

    @property
    def next_line_number(self) -> int:
        return max((line.line_number for line in self.lines), default=0) + 1

    def is_overdue(self, now: datetime) -> bool:
        """Expected date passed while the movement is still open."""
        if self.expected_date is None or self.status.is_terminal:
            return False
        return as_utc(now) > self.expected_date


class MovementEvent(BaseModel):
    """Audit record of a status change or assignment."""

    id: int | None = None
    movement_id: str
    entity_type: Literal["movement", "line", "task"]
    entity_id: str
    action: str
    from_status: str | None = None
    to_status: str | None = None
    actor_id: str | None = None
    reason: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    occurred_at: UtcDatetime = Field(default_factory=utc_now)
