"""Fixtures for API tests: the app wired to a temp database and a fixed clock."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from src.api.dependencies import get_gateway, get_queries
from src.api.main import app
from src.application.gateway import ValidationGateway
from src.application.queries import MovementQueryService
from src.config.settings import MovementSettings
from src.infrastructure.storage.sqlite.movement_store import SQLiteMovementStore

OPERATOR = {"X-User-Id": "operator-1"}


@pytest.fixture
def gateway(migrated_db: Path, clock) -> ValidationGateway:
    return ValidationGateway(
        store=SQLiteMovementStore(), clock=clock, settings=MovementSettings()
    )


@pytest.fixture
def queries(migrated_db: Path, clock) -> MovementQueryService:
    return MovementQueryService(store=SQLiteMovementStore(), clock=clock)


@pytest.fixture
async def api_client(gateway, queries) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_queries] = lambda: queries
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers=OPERATOR) as ac:
        yield ac
    app.dependency_overrides.pop(get_gateway, None)
    app.dependency_overrides.pop(get_queries, None)


@pytest.fixture
def movement_payload() -> dict:
    return {
        "type": "TRANSFER",
        "warehouse_id": "WH-1",
        "reference_number": "TRF-100",
        "lines": [
            {"item_id": "ITEM-1", "requested_quantity": 5},
            {"item_id": "ITEM-2", "requested_quantity": 2, "uom": "KG"},
        ],
    }
