"""Entity → response DTO conversion.

Derived values (variance, overdue, duration) are computed here at read time.
"""

from datetime import datetime

from src.application.dto.responses import (
    MovementEventResponse,
    MovementLineResponse,
    MovementProgressResponse,
    MovementResponse,
    MovementTaskResponse,
)
from src.core.entities.movement import (
    Movement,
    MovementEvent,
    MovementLine,
    MovementStatus,
    MovementTask,
)
from src.core.services.reconciliation import MovementProgress


def line_to_response(line: MovementLine) -> MovementLineResponse:
    return MovementLineResponse(
        id=line.id,
        movement_id=line.movement_id,
        line_number=line.line_number,
        item_id=line.item_id,
        requested_quantity=line.requested_quantity,
        actual_quantity=line.actual_quantity,
        variance=line.variance,
        uom=line.uom,
        lot_id=line.lot_id,
        serial_id=line.serial_id,
        from_location_id=line.from_location_id,
        to_location_id=line.to_location_id,
        status=line.status.value,
        notes=line.notes,
        reason=line.reason,
        created_at=line.created_at,
        updated_at=line.updated_at,
    )


def task_to_response(task: MovementTask, now: datetime) -> MovementTaskResponse:
    return MovementTaskResponse(
        id=task.id,
        movement_id=task.movement_id,
        movement_line_id=task.movement_line_id,
        task_type=task.task_type.value,
        status=task.status.value,
        priority=task.priority,
        assigned_user_id=task.assigned_user_id,
        scheduled_start_time=task.scheduled_start_time,
        expected_completion_time=task.expected_completion_time,
        actual_start_time=task.actual_start_time,
        actual_completion_time=task.actual_completion_time,
        location_id=task.location_id,
        instructions=task.instructions,
        notes=task.notes,
        is_overdue=task.is_overdue(now),
        duration_minutes=task.duration_minutes,
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


def movement_to_response(movement: Movement, now: datetime) -> MovementResponse:
    return MovementResponse(
        id=movement.id,
        reference_number=movement.reference_number,
        type=movement.type.value,
        status=movement.status.value,
        priority=movement.priority.value,
        movement_date=movement.movement_date,
        expected_date=movement.expected_date,
        scheduled_date=movement.scheduled_date,
        actual_date=movement.actual_date,
        warehouse_id=movement.warehouse_id,
        source_location_id=movement.source_location_id,
        destination_location_id=movement.destination_location_id,
        source_user_id=movement.source_user_id,
        destination_user_id=movement.destination_user_id,
        notes=movement.notes,
        reason=movement.reason,
        hold_previous_status=(
            movement.hold_previous_status.value if movement.hold_previous_status else None
        ),
        is_overdue=movement.is_overdue(now),
        created_by=movement.created_by,
        created_at=movement.created_at,
        updated_at=movement.updated_at,
        completed_by=movement.completed_by,
        completed_at=movement.completed_at,
        version=movement.version,
        lines=[line_to_response(line) for line in movement.lines],
        tasks=[task_to_response(task, now) for task in movement.tasks],
    )


def event_to_response(event: MovementEvent) -> MovementEventResponse:
    return MovementEventResponse(
        id=event.id,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        action=event.action,
        from_status=event.from_status,
        to_status=event.to_status,
        actor_id=event.actor_id,
        reason=event.reason,
        details=event.details,
        occurred_at=event.occurred_at,
    )


def progress_to_response(
    progress: MovementProgress, derived_status: MovementStatus | None
) -> MovementProgressResponse:
    return MovementProgressResponse(
        movement_id=progress.movement_id,
        status=progress.status.value,
        derived_status=derived_status.value if derived_status else None,
        total_lines=progress.total_lines,
        completed_lines=progress.completed_lines,
        cancelled_lines=progress.cancelled_lines,
        resolved_lines=progress.resolved_lines,
        all_resolved=progress.all_resolved,
        progress_percent=progress.progress_percent,
        total_tasks=progress.total_tasks,
        completed_tasks=progress.completed_tasks,
        open_tasks=progress.open_tasks,
        overdue_tasks=progress.overdue_tasks,
        total_requested=progress.total_requested,
        total_actual=progress.total_actual,
    )
