"""
Validation gateway.

Single entry point for every mutating command on movements, lines and tasks.
Each command:

1. Rejects structurally invalid input and unknown references.
2. Re-reads the aggregate and works on a private copy of it.
3. Delegates the transition to the engines, then reconciles if asked to.
4. Saves the aggregate against the version it read, retrying the whole
   read-modify-write on ConcurrentModificationError.

Task assignment additionally goes through the store's compare-and-set claim
so that two operators racing for one task cannot both win.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from src.application.context import RequestContext
from src.application.dto.requests import (
    AutoAssignRequest,
    CreateMovementLineRequest,
    CreateMovementRequest,
    CreateMovementTaskRequest,
    UpdateMovementLineRequest,
    UpdateMovementRequest,
    UpdateMovementTaskRequest,
)
from src.application.retry import conflict_retrying
from src.config import get_logger, get_settings
from src.config.settings import MovementSettings
from src.core.entities.movement import (
    LineStatus,
    Movement,
    MovementLine,
    MovementStatus,
    MovementTask,
    TaskStatus,
    as_utc,
)
from src.core.exceptions import (
    AlreadyTerminalError,
    DuplicateReferenceNumberError,
    InvalidTransitionError,
    MovementLineNotFoundError,
    MovementNotFoundError,
    MovementTaskNotFoundError,
    ReferenceNotFoundError,
    TaskAlreadyAssignedError,
    ValidationError,
)
from src.core.interfaces.clock import IClock, SystemClock
from src.core.interfaces.directory import IReferenceDirectory, ReferenceKind
from src.core.interfaces.movement_store import IMovementStore, TaskFilter
from src.core.services.outcome import Effect, Outcome, make_event
from src.core.services.reconciliation import ReconciliationEngine

logger = get_logger(__name__)

Command = Callable[[Movement, datetime], Outcome]

# Statuses a movement may be deleted from
_DELETABLE = (MovementStatus.DRAFT, MovementStatus.PENDING, MovementStatus.CANCELLED)


@dataclass
class AutoAssignResult:
    """Assignments made by a batch run and the tasks another caller won."""

    assigned: list[tuple[str, str]] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def _utc(value: datetime | None) -> datetime | None:
    return as_utc(value) if value is not None else None


def _require_reason(reason: str | None) -> str:
    if reason is None or not reason.strip():
        raise ValidationError("reason", "A reason is required")
    return reason.strip()


def _check_window(start: datetime | None, end: datetime | None, end_field: str) -> None:
    if start is not None and end is not None and as_utc(end) < as_utc(start):
        raise ValidationError(end_field, "Must not be earlier than the scheduled start", end)


class ValidationGateway:
    """Validates commands and applies them to the Movement aggregate."""

    def __init__(
        self,
        store: IMovementStore,
        directory: IReferenceDirectory | None = None,
        clock: IClock | None = None,
        settings: MovementSettings | None = None,
        reconciler: ReconciliationEngine | None = None,
    ):
        self.store = store
        self.directory = directory
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings().movement
        self.reconciler = reconciler or ReconciliationEngine()
        self.state_machine = self.reconciler.state_machine
        self.line_engine = self.state_machine.line_engine
        self.task_scheduler = self.state_machine.task_scheduler

    def now(self) -> datetime:
        return self.clock.now()

    # Shared plumbing

    async def _check_references(
        self, refs: list[tuple[ReferenceKind, str | None]]
    ) -> None:
        if self.directory is None:
            return
        for kind, ref_id in refs:
            if ref_id and not await self.directory.exists(kind, ref_id):
                raise ReferenceNotFoundError(kind.value, ref_id)

    async def _load(self, movement_id: str) -> Movement:
        movement = await self.store.get_movement(movement_id)
        if movement is None:
            raise MovementNotFoundError(movement_id)
        return movement

    async def _movement_id_for_line(self, line_id: str) -> str:
        movement_id = await self.store.find_movement_id_for_line(line_id)
        if movement_id is None:
            raise MovementLineNotFoundError(line_id)
        return movement_id

    async def _movement_id_for_task(self, task_id: str) -> str:
        movement_id = await self.store.find_movement_id_for_task(task_id)
        if movement_id is None:
            raise MovementTaskNotFoundError(task_id)
        return movement_id

    @staticmethod
    def _line_in(movement: Movement, line_id: str) -> MovementLine:
        line = movement.get_line(line_id)
        if line is None:
            raise MovementLineNotFoundError(line_id)
        return line

    @staticmethod
    def _task_in(movement: Movement, task_id: str) -> MovementTask:
        task = movement.get_task(task_id)
        if task is None:
            raise MovementTaskNotFoundError(task_id)
        return task

    async def _mutate(
        self, movement_id: str, command: Command, ctx: RequestContext
    ) -> Movement:
        """Read, apply, reconcile and version-checked save, retried on conflict."""
        async for attempt in conflict_retrying(self.settings):
            with attempt:
                current = await self._load(movement_id)
                working = current.model_copy(deep=True)
                now = self.clock.now()

                outcome = command(working, now)
                if Effect.RECONCILE in outcome.effects:
                    outcome.merge(self.reconciler.reconcile(working, now, ctx.user_id))

                working.updated_at = now
                return await self.store.save_movement(working, current.version, outcome.events)
        raise AssertionError("retry loop exited without a result")

    async def _line_command(
        self,
        line_id: str,
        ctx: RequestContext,
        apply: Callable[[Movement, MovementLine, datetime], Outcome],
    ) -> MovementLine:
        movement_id = await self._movement_id_for_line(line_id)

        def command(movement: Movement, now: datetime) -> Outcome:
            return apply(movement, self._line_in(movement, line_id), now)

        saved = await self._mutate(movement_id, command, ctx)
        return self._line_in(saved, line_id)

    async def _task_command(
        self,
        task_id: str,
        ctx: RequestContext,
        attempted: str,
        apply: Callable[[MovementTask, datetime], Outcome],
    ) -> MovementTask:
        movement_id = await self._movement_id_for_task(task_id)

        def command(movement: Movement, now: datetime) -> Outcome:
            self.state_machine.ensure_open(movement, attempted)
            return apply(self._task_in(movement, task_id), now)

        saved = await self._mutate(movement_id, command, ctx)
        return self._task_in(saved, task_id)

    # Movements

    async def create_movement(
        self, request: CreateMovementRequest, ctx: RequestContext
    ) -> Movement:
        """Create a movement in DRAFT or PENDING with its full line set."""
        if request.status not in (MovementStatus.DRAFT, MovementStatus.PENDING):
            raise ValidationError(
                "status", "New movements start as DRAFT or PENDING", request.status.value
            )

        refs: list[tuple[ReferenceKind, str | None]] = [
            (ReferenceKind.WAREHOUSE, request.warehouse_id),
            (ReferenceKind.LOCATION, request.source_location_id),
            (ReferenceKind.LOCATION, request.destination_location_id),
            (ReferenceKind.USER, request.source_user_id),
            (ReferenceKind.USER, request.destination_user_id),
        ]
        for line in request.lines:
            refs.extend(self._line_refs(line))
        await self._check_references(refs)

        if request.reference_number and await self.store.reference_number_taken(
            request.reference_number
        ):
            raise DuplicateReferenceNumberError(request.reference_number)

        now = self.clock.now()
        movement = Movement(
            reference_number=request.reference_number,
            type=request.type,
            status=request.status,
            priority=request.priority,
            movement_date=request.movement_date or now,
            expected_date=request.expected_date,
            scheduled_date=request.scheduled_date,
            warehouse_id=request.warehouse_id,
            source_location_id=request.source_location_id,
            destination_location_id=request.destination_location_id,
            source_user_id=request.source_user_id,
            destination_user_id=request.destination_user_id,
            notes=request.notes,
            reason=request.reason,
            created_by=ctx.user_id,
            created_at=now,
            updated_at=now,
        )
        movement.lines = [
            MovementLine(
                movement_id=movement.id,
                line_number=number,
                created_at=now,
                updated_at=now,
                **line.model_dump(),
            )
            for number, line in enumerate(request.lines, start=1)
        ]

        event = make_event(
            movement.id,
            "movement",
            movement.id,
            "create",
            None,
            movement.status.value,
            now,
            actor_id=ctx.user_id,
            lines=len(movement.lines),
        )
        created = await self.store.create_movement(movement, [event])
        logger.info(
            "movement_created",
            movement_id=created.id,
            type=created.type.value,
            status=created.status.value,
            lines=len(created.lines),
        )
        return created

    async def update_movement(
        self, movement_id: str, request: UpdateMovementRequest, ctx: RequestContext
    ) -> Movement:
        """Edit header fields while DRAFT/PENDING; status may only move DRAFT → PENDING."""
        changes = request.model_dump(exclude_unset=True, exclude={"status"})
        if "warehouse_id" in changes and not changes["warehouse_id"]:
            raise ValidationError("warehouse_id", "Warehouse cannot be cleared")

        await self._check_references([
            (ReferenceKind.WAREHOUSE, changes.get("warehouse_id")),
            (ReferenceKind.LOCATION, changes.get("source_location_id")),
            (ReferenceKind.LOCATION, changes.get("destination_location_id")),
            (ReferenceKind.USER, changes.get("source_user_id")),
            (ReferenceKind.USER, changes.get("destination_user_id")),
        ])
        reference = changes.get("reference_number")
        if reference and await self.store.reference_number_taken(reference, movement_id):
            raise DuplicateReferenceNumberError(reference)

        def command(movement: Movement, now: datetime) -> Outcome:
            self.state_machine.ensure_editable(movement, "update")
            for name, value in changes.items():
                setattr(movement, name, _utc(value) if isinstance(value, datetime) else value)

            outcome = Outcome()
            target = request.status
            if target is not None and target != movement.status:
                if target != MovementStatus.PENDING:
                    raise InvalidTransitionError(
                        "movement",
                        movement.id,
                        movement.status.value,
                        "update status",
                        target.value,
                    )
                outcome.merge(self.state_machine.submit(movement, now, ctx.user_id))
            return outcome

        return await self._mutate(movement_id, command, ctx)

    async def delete_movement(self, movement_id: str, ctx: RequestContext) -> None:
        movement = await self._load(movement_id)
        if movement.status not in _DELETABLE:
            raise InvalidTransitionError(
                "movement", movement_id, movement.status.value, "delete"
            )
        await self.store.delete_movement(movement_id)
        logger.info("movement_deleted", movement_id=movement_id, actor_id=ctx.user_id)

    async def start_movement(self, movement_id: str, ctx: RequestContext) -> Movement:
        return await self._mutate(
            movement_id,
            lambda m, now: self.state_machine.start(m, now, ctx.user_id),
            ctx,
        )

    async def hold_movement(
        self, movement_id: str, reason: str | None, ctx: RequestContext
    ) -> Movement:
        reason = _require_reason(reason)
        return await self._mutate(
            movement_id,
            lambda m, now: self.state_machine.hold(m, reason, now, ctx.user_id),
            ctx,
        )

    async def release_movement(self, movement_id: str, ctx: RequestContext) -> Movement:
        return await self._mutate(
            movement_id,
            lambda m, now: self.state_machine.release(m, now, ctx.user_id),
            ctx,
        )

    async def cancel_movement(
        self, movement_id: str, reason: str | None, ctx: RequestContext
    ) -> Movement:
        """Cancel the movement and, in the same commit, its open lines and tasks."""
        reason = _require_reason(reason)
        return await self._mutate(
            movement_id,
            lambda m, now: self.state_machine.cancel(m, reason, now, ctx.user_id),
            ctx,
        )

    async def complete_movement(self, movement_id: str, ctx: RequestContext) -> Movement:
        """Operator completion; see MovementStateMachine.force_complete."""
        allow = self.settings.allow_force_complete
        return await self._mutate(
            movement_id,
            lambda m, now: self.state_machine.force_complete(
                m, now, ctx.user_id, allow_unresolved=allow
            ),
            ctx,
        )

    # Lines

    @staticmethod
    def _line_refs(line) -> list[tuple[ReferenceKind, str | None]]:
        return [
            (ReferenceKind.ITEM, getattr(line, "item_id", None)),
            (ReferenceKind.LOT, getattr(line, "lot_id", None)),
            (ReferenceKind.SERIAL, getattr(line, "serial_id", None)),
            (ReferenceKind.LOCATION, getattr(line, "from_location_id", None)),
            (ReferenceKind.LOCATION, getattr(line, "to_location_id", None)),
        ]

    async def add_line(
        self, request: CreateMovementLineRequest, ctx: RequestContext
    ) -> MovementLine:
        """Append a line while the movement is DRAFT/PENDING."""
        await self._check_references(self._line_refs(request))
        fields = request.model_dump(exclude={"movement_id"})
        added: dict[str, str] = {}

        def command(movement: Movement, now: datetime) -> Outcome:
            self.state_machine.ensure_editable(movement, "add line")
            line = MovementLine(
                movement_id=movement.id,
                line_number=movement.next_line_number,
                created_at=now,
                updated_at=now,
                **fields,
            )
            movement.lines.append(line)
            added["id"] = line.id
            return Outcome(
                events=[
                    make_event(
                        movement.id,
                        "line",
                        line.id,
                        "create",
                        None,
                        line.status.value,
                        now,
                        actor_id=ctx.user_id,
                        line_number=line.line_number,
                    )
                ]
            )

        saved = await self._mutate(request.movement_id, command, ctx)
        return self._line_in(saved, added["id"])

    async def update_line(
        self, line_id: str, request: UpdateMovementLineRequest, ctx: RequestContext
    ) -> MovementLine:
        """Edit pre-activation line fields."""
        changes = request.model_dump(exclude_unset=True)
        for required in ("item_id", "requested_quantity"):
            if required in changes and changes[required] is None:
                raise ValidationError(required, "Cannot be cleared")
        await self._check_references(self._line_refs(request))

        def apply(movement: Movement, line: MovementLine, now: datetime) -> Outcome:
            self.state_machine.ensure_editable(movement, "update line")
            for name, value in changes.items():
                setattr(line, name, value)
            line.updated_at = now
            return Outcome()

        return await self._line_command(line_id, ctx, apply)

    async def advance_line(
        self,
        line_id: str,
        target: LineStatus,
        actual_quantity: float | None,
        ctx: RequestContext,
    ) -> MovementLine:
        if actual_quantity is not None and not math.isfinite(actual_quantity):
            raise ValidationError("actual_quantity", "Must be a finite number", actual_quantity)

        def apply(movement: Movement, line: MovementLine, now: datetime) -> Outcome:
            self.state_machine.ensure_executing(movement, "advance line")
            return self.line_engine.advance(line, target, now, actual_quantity, ctx.user_id)

        return await self._line_command(line_id, ctx, apply)

    async def complete_line(
        self, line_id: str, actual_quantity: float | None, ctx: RequestContext
    ) -> MovementLine:
        return await self.advance_line(line_id, LineStatus.COMPLETED, actual_quantity, ctx)

    async def cancel_line(
        self, line_id: str, reason: str | None, ctx: RequestContext
    ) -> MovementLine:
        reason = _require_reason(reason)

        def apply(movement: Movement, line: MovementLine, now: datetime) -> Outcome:
            self.state_machine.ensure_open(movement, "cancel line")
            return self.line_engine.cancel(line, reason, now, ctx.user_id)

        return await self._line_command(line_id, ctx, apply)

    async def delete_line(self, line_id: str, ctx: RequestContext) -> None:
        """Remove a line before activation and renumber the rest from 1."""
        movement_id = await self._movement_id_for_line(line_id)

        def command(movement: Movement, now: datetime) -> Outcome:
            self.state_machine.ensure_editable(movement, "delete line")
            line = self._line_in(movement, line_id)
            movement.lines.remove(line)
            movement.lines.sort(key=lambda remaining: remaining.line_number)
            for number, remaining in enumerate(movement.lines, start=1):
                if remaining.line_number != number:
                    remaining.line_number = number
                    remaining.updated_at = now
            for task in movement.tasks:
                if task.movement_line_id == line_id:
                    task.movement_line_id = None
            return Outcome(
                events=[
                    make_event(
                        movement.id,
                        "line",
                        line_id,
                        "delete",
                        line.status.value,
                        None,
                        now,
                        actor_id=ctx.user_id,
                        line_number=line.line_number,
                    )
                ]
            )

        await self._mutate(movement_id, command, ctx)
        logger.info("movement_line_deleted", line_id=line_id, actor_id=ctx.user_id)

    # Tasks

    async def create_task(
        self, request: CreateMovementTaskRequest, ctx: RequestContext
    ) -> MovementTask:
        """Add a task to any non-terminal movement."""
        _check_window(
            request.scheduled_start_time,
            request.expected_completion_time,
            "expected_completion_time",
        )
        await self._check_references([(ReferenceKind.LOCATION, request.location_id)])
        added: dict[str, str] = {}

        def command(movement: Movement, now: datetime) -> Outcome:
            self.state_machine.ensure_open(movement, "add task")
            if request.movement_line_id:
                self._line_in(movement, request.movement_line_id)

            task = MovementTask(
                movement_id=movement.id,
                movement_line_id=request.movement_line_id,
                task_type=request.task_type,
                priority=request.priority or self.settings.default_task_priority,
                scheduled_start_time=request.scheduled_start_time,
                expected_completion_time=request.expected_completion_time,
                location_id=request.location_id,
                instructions=request.instructions,
                notes=request.notes,
                created_at=now,
                updated_at=now,
            )
            movement.tasks.append(task)
            added["id"] = task.id
            return Outcome(
                events=[
                    make_event(
                        movement.id,
                        "task",
                        task.id,
                        "create",
                        None,
                        task.status.value,
                        now,
                        actor_id=ctx.user_id,
                        task_type=task.task_type.value,
                    )
                ]
            )

        saved = await self._mutate(request.movement_id, command, ctx)
        return self._task_in(saved, added["id"])

    async def update_task(
        self, task_id: str, request: UpdateMovementTaskRequest, ctx: RequestContext
    ) -> MovementTask:
        """Edit descriptive task fields; never the assignee or status."""
        changes = request.model_dump(exclude_unset=True)
        if "task_type" in changes and changes["task_type"] is None:
            raise ValidationError("task_type", "Cannot be cleared")
        if "priority" in changes and changes["priority"] is None:
            raise ValidationError("priority", "Cannot be cleared")
        await self._check_references([(ReferenceKind.LOCATION, changes.get("location_id"))])

        def apply(task: MovementTask, now: datetime) -> Outcome:
            if task.status.is_terminal:
                raise AlreadyTerminalError("task", task.id, task.status.value)
            for name, value in changes.items():
                setattr(task, name, _utc(value) if isinstance(value, datetime) else value)
            _check_window(
                task.scheduled_start_time,
                task.expected_completion_time,
                "expected_completion_time",
            )
            task.updated_at = now
            return Outcome()

        return await self._task_command(task_id, ctx, "update task", apply)

    async def delete_task(self, task_id: str, ctx: RequestContext) -> None:
        """Remove a PENDING task from a DRAFT/PENDING movement."""
        movement_id = await self._movement_id_for_task(task_id)

        def command(movement: Movement, now: datetime) -> Outcome:
            self.state_machine.ensure_editable(movement, "delete task")
            task = self._task_in(movement, task_id)
            if task.status != TaskStatus.PENDING:
                raise InvalidTransitionError("task", task_id, task.status.value, "delete")
            movement.tasks.remove(task)
            return Outcome(
                events=[
                    make_event(
                        movement.id,
                        "task",
                        task_id,
                        "delete",
                        task.status.value,
                        None,
                        now,
                        actor_id=ctx.user_id,
                    )
                ]
            )

        await self._mutate(movement_id, command, ctx)

    async def assign_task(
        self, task_id: str, user_id: str, ctx: RequestContext
    ) -> MovementTask:
        await self._check_references([(ReferenceKind.USER, user_id)])
        return await self._claim(task_id, user_id, ctx)

    async def _claim(self, task_id: str, user_id: str, ctx: RequestContext) -> MovementTask:
        """Assign through the task compare-and-set; exactly one racer wins."""
        movement_id = await self._movement_id_for_task(task_id)
        movement = await self._load(movement_id)
        self.state_machine.ensure_open(movement, "assign task")

        task = self._task_in(movement.model_copy(deep=True), task_id)
        outcome = self.task_scheduler.assign(task, user_id, self.clock.now(), ctx.user_id)

        if not await self.store.claim_task(task, outcome.events):
            latest = self._task_in(await self._load(movement_id), task_id)
            if latest.assigned_user_id:
                raise TaskAlreadyAssignedError(task_id, latest.assigned_user_id)
            raise InvalidTransitionError(
                "task", task_id, latest.status.value, "assign", TaskStatus.ASSIGNED.value
            )
        return task

    async def unassign_task(self, task_id: str, ctx: RequestContext) -> MovementTask:
        return await self._task_command(
            task_id,
            ctx,
            "unassign task",
            lambda task, now: self.task_scheduler.unassign(task, now, ctx.user_id),
        )

    async def start_task(self, task_id: str, ctx: RequestContext) -> MovementTask:
        return await self._task_command(
            task_id,
            ctx,
            "start task",
            lambda task, now: self.task_scheduler.start(task, now, ctx.user_id),
        )

    async def complete_task(
        self, task_id: str, ctx: RequestContext, notes: str | None = None
    ) -> MovementTask:
        return await self._task_command(
            task_id,
            ctx,
            "complete task",
            lambda task, now: self.task_scheduler.complete(task, now, ctx.user_id, notes),
        )

    async def cancel_task(
        self, task_id: str, reason: str | None, ctx: RequestContext
    ) -> MovementTask:
        return await self._task_command(
            task_id,
            ctx,
            "cancel task",
            lambda task, now: self.task_scheduler.cancel(task, reason, now, ctx.user_id),
        )

    async def auto_assign(
        self, request: AutoAssignRequest, ctx: RequestContext
    ) -> AutoAssignResult:
        """Round-robin unassigned tasks over users, most urgent first."""
        await self._check_references([(ReferenceKind.USER, u) for u in request.user_ids])

        candidates, _ = await self.store.list_tasks(
            TaskFilter(
                unassigned_only=True,
                warehouse_id=request.warehouse_id,
                movement_id=request.movement_id,
            ),
            limit=request.limit,
        )
        plan = self.task_scheduler.plan_assignments(candidates, request.user_ids)

        result = AutoAssignResult()
        for task, user_id in plan:
            try:
                await self._claim(task.id, user_id, ctx)
                result.assigned.append((task.id, user_id))
            except (
                TaskAlreadyAssignedError,
                InvalidTransitionError,
                MovementTaskNotFoundError,
            ) as e:
                logger.info("auto_assign_skipped", task_id=task.id, reason=e.code)
                result.skipped.append(task.id)

        logger.info(
            "auto_assign_complete",
            assigned=len(result.assigned),
            skipped=len(result.skipped),
            users=len(request.user_ids),
        )
        return result
