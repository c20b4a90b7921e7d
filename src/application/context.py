"""Per-request caller context passed explicitly to every command."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Who is acting, and under which request."""

    user_id: str | None = None
    request_id: str | None = None


SYSTEM_CONTEXT = RequestContext()
