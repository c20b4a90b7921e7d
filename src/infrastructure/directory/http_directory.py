"""
HTTP reference directory.

Resolves item, lot, serial, location, warehouse and user IDs against the
collaborator services that own them. A 200 means the reference exists, a 404
that it does not; anything else means the directory cannot answer.
"""

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config import get_logger, get_settings
from src.config.settings import DirectorySettings
from src.core.exceptions import DirectoryUnavailableError
from src.core.interfaces.directory import IReferenceDirectory, ReferenceKind

logger = get_logger(__name__)


def _log_retry(retry_state: RetryCallState) -> None:
    logger.warning(
        "directory_retry",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
    )


class HttpReferenceDirectory(IReferenceDirectory):
    """Looks references up over HTTP; unconfigured kinds are not checked."""

    def __init__(
        self,
        settings: DirectorySettings | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or get_settings().directory
        self._client = client

    def _url_for(self, kind: ReferenceKind, ref_id: str) -> str | None:
        s = self.settings
        routes = {
            ReferenceKind.ITEM: (s.product_service_url, s.item_path),
            ReferenceKind.LOT: (s.inventory_service_url, s.lot_path),
            ReferenceKind.SERIAL: (s.inventory_service_url, s.serial_path),
            ReferenceKind.LOCATION: (s.location_service_url, s.location_path),
            ReferenceKind.WAREHOUSE: (s.location_service_url, s.warehouse_path),
            ReferenceKind.USER: (s.user_service_url, s.user_path),
        }
        base, path = routes[kind]
        if not base:
            return None
        return base.rstrip("/") + path.format(id=ref_id)

    async def exists(self, kind: ReferenceKind, ref_id: str) -> bool:
        url = self._url_for(kind, ref_id)
        if url is None:
            return True

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.settings.max_retries + 1),
                wait=wait_exponential(multiplier=self.settings.retry_delay),
                retry=retry_if_exception_type(httpx.TransportError),
                before_sleep=_log_retry,
                reraise=True,
            ):
                with attempt:
                    response = await self._get(url)
        except httpx.TransportError as e:
            logger.error("directory_unreachable", kind=kind.value, url=url, error=str(e))
            raise DirectoryUnavailableError(kind.value, str(e)) from e

        if response.status_code == 200:
            return True
        if response.status_code == 404:
            logger.info("reference_missing", kind=kind.value, ref_id=ref_id)
            return False

        logger.error(
            "directory_error_response",
            kind=kind.value,
            status_code=response.status_code,
        )
        raise DirectoryUnavailableError(kind.value, f"HTTP {response.status_code}")

    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, timeout=self.settings.timeout)
        async with httpx.AsyncClient(timeout=self.settings.timeout) as client:
            return await client.get(url)
