"""
Domain exceptions for the StockFlow movement service.

Every command fails with one of these kinds; the API layer maps them to
HTTP responses and only ConcurrentModificationError is retried.
"""

from typing import Any


class StockFlowError(Exception):
    """Base exception for all StockFlow errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# Validation Exceptions
class ValidationError(StockFlowError):
    """Input validation failed."""

    def __init__(self, field: str, message: str, value: Any = None):
        super().__init__(
            f"Validation error for '{field}': {message}",
            code="VALIDATION_ERROR",
            details={
                "field": field,
                "message": message,
                "value": str(value)[:100] if value is not None else None,
            },
        )


# Lookup Exceptions
class NotFoundError(StockFlowError):
    """Referenced entity does not exist."""

    pass


class MovementNotFoundError(NotFoundError):
    """Movement not found in storage."""

    def __init__(self, movement_id: str):
        super().__init__(
            f"Movement not found: {movement_id}",
            code="MOVEMENT_NOT_FOUND",
            details={"movement_id": movement_id},
        )


class MovementLineNotFoundError(NotFoundError):
    """Movement line not found in storage."""

    def __init__(self, line_id: str):
        super().__init__(
            f"Movement line not found: {line_id}",
            code="MOVEMENT_LINE_NOT_FOUND",
            details={"line_id": line_id},
        )


class MovementTaskNotFoundError(NotFoundError):
    """Movement task not found in storage."""

    def __init__(self, task_id: str):
        super().__init__(
            f"Movement task not found: {task_id}",
            code="MOVEMENT_TASK_NOT_FOUND",
            details={"task_id": task_id},
        )


class ReferenceNotFoundError(NotFoundError):
    """An item, lot, serial, location, warehouse or user reference is unknown."""

    def __init__(self, kind: str, ref_id: str):
        super().__init__(
            f"Unknown {kind} reference: {ref_id}",
            code="REFERENCE_NOT_FOUND",
            details={"kind": kind, "ref_id": ref_id},
        )


# Transition Exceptions
class TransitionError(StockFlowError):
    """Base exception for rejected state changes."""

    pass


class InvalidTransitionError(TransitionError):
    """Requested action is illegal from the current status."""

    def __init__(
        self,
        entity: str,
        entity_id: str,
        current_status: str,
        attempted: str,
        target_status: str | None = None,
    ):
        details = {
            "entity": entity,
            "entity_id": entity_id,
            "current_status": current_status,
            "attempted": attempted,
        }
        message = f"Cannot {attempted} {entity} {entity_id} in status {current_status}"
        if target_status is not None:
            details["target_status"] = target_status
            message += f" (target {target_status})"
        super().__init__(message, code="INVALID_TRANSITION", details=details)


class EmptyMovementError(TransitionError):
    """Movement has no lines and cannot be started."""

    def __init__(self, movement_id: str):
        super().__init__(
            f"Movement {movement_id} has no lines",
            code="EMPTY_MOVEMENT",
            details={"movement_id": movement_id},
        )


class QuantityOutOfRangeError(TransitionError):
    """Quantity outside its allowed range."""

    def __init__(self, line_id: str, quantity: float):
        super().__init__(
            f"Quantity {quantity} is out of range for line {line_id}",
            code="QUANTITY_OUT_OF_RANGE",
            details={"line_id": line_id, "quantity": quantity},
        )


class QuantityAlreadySetError(TransitionError):
    """Actual quantity is immutable once recorded."""

    def __init__(self, line_id: str, actual_quantity: float):
        super().__init__(
            f"Actual quantity already recorded for line {line_id}: {actual_quantity}",
            code="QUANTITY_ALREADY_SET",
            details={"line_id": line_id, "actual_quantity": actual_quantity},
        )


class TaskAlreadyAssignedError(TransitionError):
    """Task already holds an assignee."""

    def __init__(self, task_id: str, assigned_user_id: str | None):
        super().__init__(
            f"Task {task_id} is already assigned",
            code="TASK_ALREADY_ASSIGNED",
            details={"task_id": task_id, "assigned_user_id": assigned_user_id},
        )


class TaskNotAssignedError(TransitionError):
    """Task must be assigned before it can start."""

    def __init__(self, task_id: str, current_status: str):
        super().__init__(
            f"Task {task_id} is not assigned (status {current_status})",
            code="TASK_NOT_ASSIGNED",
            details={"task_id": task_id, "current_status": current_status},
        )


class AlreadyTerminalError(TransitionError):
    """Entity already reached a terminal status."""

    def __init__(self, entity: str, entity_id: str, current_status: str):
        super().__init__(
            f"{entity.capitalize()} {entity_id} is already {current_status}",
            code="ALREADY_TERMINAL",
            details={
                "entity": entity,
                "entity_id": entity_id,
                "current_status": current_status,
            },
        )


# Concurrency Exceptions
class ConcurrentModificationError(StockFlowError):
    """Optimistic-lock version mismatch; caller should re-fetch and retry."""

    def __init__(self, movement_id: str, expected_version: int):
        super().__init__(
            f"Movement {movement_id} was modified concurrently "
            f"(expected version {expected_version})",
            code="CONCURRENT_MODIFICATION",
            details={"movement_id": movement_id, "expected_version": expected_version},
        )


class DuplicateReferenceNumberError(StockFlowError):
    """Reference number already used by another movement."""

    def __init__(self, reference_number: str):
        super().__init__(
            f"Reference number already exists: {reference_number}",
            code="DUPLICATE_REFERENCE_NUMBER",
            details={"reference_number": reference_number},
        )


# Storage Exceptions
class StorageError(StockFlowError):
    """Base exception for storage operations."""

    pass


class DatabaseError(StorageError):
    """Database operation failed."""

    def __init__(self, operation: str, error: str):
        super().__init__(
            f"Database error during {operation}: {error}",
            code="DATABASE_ERROR",
            details={"operation": operation, "error": error},
        )


# Collaborator Exceptions
class DirectoryUnavailableError(StockFlowError):
    """A reference directory could not answer."""

    def __init__(self, kind: str, reason: str):
        super().__init__(
            f"Reference directory for {kind} unavailable: {reason}",
            code="DIRECTORY_UNAVAILABLE",
            details={"kind": kind, "reason": reason},
        )


class ConfigurationError(StockFlowError):
    """Configuration error."""

    pass
