"""Per-request log context, access log line and timing headers."""

import time
import uuid
from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from src.config import get_logger, request_log_context

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
USER_HEADER = "X-User-Id"


def _request_id(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
    return incoming[:64] if incoming else uuid.uuid4().hex[:12]


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags the request with an id (reusing the caller's ``X-Request-ID`` when
    sent) and binds it, along with the acting user, to every event logged
    while the request is handled. Responses carry the id back together with
    ``X-Response-Time``.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = _request_id(request)
        request.state.request_id = request_id

        with request_log_context(
            request_id=request_id,
            user_id=request.headers.get(USER_HEADER) or None,
            method=request.method,
            path=request.url.path,
        ):
            started = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception:
                logger.exception(
                    "request_crashed",
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
                raise

            elapsed_ms = (time.perf_counter() - started) * 1000
            log = logger.warning if response.status_code >= 500 else logger.info
            log("request_handled", status=response.status_code, duration_ms=round(elapsed_ms, 2))

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"
        return response
