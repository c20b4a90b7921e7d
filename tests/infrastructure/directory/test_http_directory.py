"""Tests for the HTTP reference directory."""

import httpx
import pytest

from src.config.settings import DirectorySettings
from src.core.exceptions import DirectoryUnavailableError
from src.core.interfaces.directory import ReferenceKind
from src.infrastructure.directory import HttpReferenceDirectory


def _settings(**overrides) -> DirectorySettings:
    fields = {
        "product_service_url": "http://products.test/",
        "location_service_url": "http://locations.test",
        "max_retries": 2,
        "retry_delay": 0,
    }
    fields.update(overrides)
    return DirectorySettings(**fields)


def _directory(handler, **overrides) -> HttpReferenceDirectory:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpReferenceDirectory(settings=_settings(**overrides), client=client)


async def test_known_and_unknown_references():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200 if request.url.path.endswith("/ITEM-1") else 404)

    directory = _directory(handler)

    assert await directory.exists(ReferenceKind.ITEM, "ITEM-1") is True
    assert await directory.exists(ReferenceKind.ITEM, "ITEM-404") is False
    assert seen[0] == "http://products.test/api/v1/items/ITEM-1"


async def test_routes_each_kind_to_its_service():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200)

    directory = _directory(handler)
    await directory.exists(ReferenceKind.WAREHOUSE, "WH-1")
    await directory.exists(ReferenceKind.LOCATION, "A-01")

    assert seen == [
        "http://locations.test/api/warehouses/WH-1",
        "http://locations.test/api/locations/A-01",
    ]


async def test_unconfigured_kind_is_not_checked():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    directory = _directory(handler)
    assert await directory.exists(ReferenceKind.USER, "anyone") is True
    assert await directory.exists(ReferenceKind.LOT, "LOT-1") is True


async def test_transport_errors_are_retried():
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200)

    assert await _directory(handler).exists(ReferenceKind.ITEM, "ITEM-1") is True
    assert attempts == 3


async def test_unreachable_after_retries():
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(DirectoryUnavailableError) as exc:
        await _directory(handler, max_retries=1).exists(ReferenceKind.ITEM, "ITEM-1")
    assert attempts == 2
    assert exc.value.details["kind"] == "item"


async def test_server_error_is_not_a_missing_reference():
    directory = _directory(lambda request: httpx.Response(503))
    with pytest.raises(DirectoryUnavailableError):
        await directory.exists(ReferenceKind.ITEM, "ITEM-1")
