"""Data Transfer Objects for API layer.

Request DTOs: Validate and parse incoming API requests.
Response DTOs: Structure and serialize API responses.

These are the ONLY contracts between API handlers and the application layer.
"""

from src.application.dto.requests import (
    AdvanceLineRequest,
    AssignTaskRequest,
    AutoAssignRequest,
    CompleteLineRequest,
    CompleteTaskRequest,
    CreateMovementLineRequest,
    CreateMovementRequest,
    CreateMovementTaskRequest,
    MovementLineInput,
    UpdateMovementLineRequest,
    UpdateMovementRequest,
    UpdateMovementTaskRequest,
)
from src.application.dto.responses import (
    AutoAssignmentResponse,
    AutoAssignResponse,
    ErrorResponse,
    HealthResponse,
    MovementEventResponse,
    MovementLineResponse,
    MovementProgressResponse,
    MovementResponse,
    MovementStatisticsResponse,
    MovementTaskResponse,
    MovementTypeStatisticsResponse,
    PageResponse,
    DatabaseHealthResponse,
)

__all__ = [
    # Requests
    "CreateMovementRequest",
    "UpdateMovementRequest",
    "MovementLineInput",
    "CreateMovementLineRequest",
    "UpdateMovementLineRequest",
    "AdvanceLineRequest",
    "CompleteLineRequest",
    "CreateMovementTaskRequest",
    "UpdateMovementTaskRequest",
    "AssignTaskRequest",
    "CompleteTaskRequest",
    "AutoAssignRequest",
    # Responses
    "MovementResponse",
    "MovementLineResponse",
    "MovementTaskResponse",
    "MovementProgressResponse",
    "MovementEventResponse",
    "MovementStatisticsResponse",
    "MovementTypeStatisticsResponse",
    "AutoAssignResponse",
    "AutoAssignmentResponse",
    "PageResponse",
    "HealthResponse",
    "DatabaseHealthResponse",
    "ErrorResponse",
]
