"""
Error responses.

Every failure leaves the API as an :class:`ErrorResponse` carrying a
machine-readable ``error_code``, a message, a recovery ``hint``, structured
``details`` (entity, current status, attempted action) when the domain
supplies them, and the request id.
"""

from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from src.application.dto.responses import ErrorResponse
from src.config import get_logger
from src.core.exceptions import (
    ConcurrentModificationError,
    DirectoryUnavailableError,
    DuplicateReferenceNumberError,
    NotFoundError,
    StockFlowError,
    StorageError,
    TransitionError,
    ValidationError,
)

logger = get_logger(__name__)

# Checked in order; the first isinstance match decides the status.
EXCEPTION_STATUS_MAP: dict[type[Exception], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    TransitionError: status.HTTP_409_CONFLICT,
    ConcurrentModificationError: status.HTTP_409_CONFLICT,
    DuplicateReferenceNumberError: status.HTTP_409_CONFLICT,
    DirectoryUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    StorageError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

HINTS: dict[str, str] = {
    "MOVEMENT_NOT_FOUND": "Check the movement ID or list movements with GET /api/v1/movements.",
    "MOVEMENT_LINE_NOT_FOUND": "Check the line ID; lines are listed on their movement.",
    "MOVEMENT_TASK_NOT_FOUND": "Check the task ID; tasks are listed on their movement.",
    "REFERENCE_NOT_FOUND": "An item, location, warehouse or user reference is unknown.",
    "INVALID_TRANSITION": "The action is not allowed from the current status.",
    "EMPTY_MOVEMENT": "Add at least one line before starting the movement.",
    "QUANTITY_OUT_OF_RANGE": "Quantities must be finite and zero or greater.",
    "QUANTITY_ALREADY_SET": "The actual quantity is recorded once and cannot be changed.",
    "TASK_ALREADY_ASSIGNED": "Another user claimed this task. Refresh and pick another one.",
    "TASK_NOT_ASSIGNED": "Assign the task before starting it.",
    "ALREADY_TERMINAL": "The entity is already completed or cancelled.",
    "CONCURRENT_MODIFICATION": "The movement kept changing while saving. Re-fetch and retry.",
    "DUPLICATE_REFERENCE_NUMBER": "Choose a different reference number.",
    "DIRECTORY_UNAVAILABLE": "A reference service is offline. Retry later.",
    "VALIDATION_ERROR": "Check the request body against the API schema.",
    "DATABASE_ERROR": "A database operation failed. Check server logs.",
}

HTTP_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
}


def status_for(exc: Exception) -> int:
    """HTTP status for an exception, 500 when unmapped."""
    for exc_type, code in EXCEPTION_STATUS_MAP.items():
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _respond(request: Request, status_code: int, body: ErrorResponse) -> JSONResponse:
    body.path = request.url.path
    body.request_id = getattr(request.state, "request_id", None)
    if body.hint is None:
        body.hint = HINTS.get(body.error_code)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def error_response(request: Request, exc: Exception) -> JSONResponse:
    """Translate a raised exception into its error response."""
    status_code = status_for(exc)

    if isinstance(exc, StockFlowError):
        body = ErrorResponse(error_code=exc.code, message=exc.message, details=exc.details or None)
    else:
        body = ErrorResponse(error_code="INTERNAL_ERROR", message="Internal server error")

    if status_code >= 500:
        logger.error("request_error", status=status_code, error_code=body.error_code, exc_info=exc)
    else:
        logger.info("request_rejected", status=status_code, error_code=body.error_code)
    return _respond(request, status_code, body)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Last line of defence for exceptions no handler claimed."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return error_response(request, exc)


async def _domain_error(request: Request, exc: StockFlowError) -> JSONResponse:
    return error_response(request, exc)


async def _schema_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]
    body = ErrorResponse(
        error_code="VALIDATION_ERROR",
        message="Request validation failed",
        detail="; ".join(problems),
    )
    return _respond(request, status.HTTP_422_UNPROCESSABLE_ENTITY, body)


async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
    body = ErrorResponse(
        error_code=HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
        message=str(exc.detail) if exc.detail else "An error occurred",
    )
    return _respond(request, exc.status_code, body)


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StockFlowError, _domain_error)
    app.add_exception_handler(RequestValidationError, _schema_error)
    app.add_exception_handler(HTTPException, _http_error)
