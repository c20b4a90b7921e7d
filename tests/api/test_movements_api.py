"""API tests for movement endpoints."""

from httpx import AsyncClient

BASE = "/api/v1/movements"


async def _create(client: AsyncClient, payload: dict) -> dict:
    response = await client.post(BASE, json=payload)
    assert response.status_code == 201, response.text
    return response.json()


class TestCreate:
    async def test_create_returns_draft_with_lines(self, api_client, movement_payload):
        body = await _create(api_client, movement_payload)

        assert body["status"] == "DRAFT"
        assert body["version"] == 0
        assert body["created_by"] == "operator-1"
        assert [line["line_number"] for line in body["lines"]] == [1, 2]
        assert body["lines"][1]["uom"] == "KG"

    async def test_duplicate_reference_is_conflict(self, api_client, movement_payload):
        await _create(api_client, movement_payload)
        response = await api_client.post(BASE, json=movement_payload)

        assert response.status_code == 409
        assert response.json()["error_code"] == "DUPLICATE_REFERENCE_NUMBER"

    async def test_schema_violation_is_422(self, api_client, movement_payload):
        movement_payload["lines"][0]["requested_quantity"] = 0
        response = await api_client.post(BASE, json=movement_payload)

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    async def test_active_initial_status_is_bad_request(self, api_client, movement_payload):
        movement_payload["status"] = "IN_PROGRESS"
        response = await api_client.post(BASE, json=movement_payload)

        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "VALIDATION_ERROR"
        assert body["path"] == BASE


class TestLifecycle:
    async def test_start_hold_release(self, api_client, movement_payload):
        movement = await _create(api_client, movement_payload)
        url = f"{BASE}/{movement['id']}"

        started = await api_client.post(f"{url}/start")
        assert started.json()["status"] == "IN_PROGRESS"

        held = await api_client.post(f"{url}/hold", params={"reason": "dock blocked"})
        assert held.json()["status"] == "ON_HOLD"
        assert held.json()["hold_previous_status"] == "IN_PROGRESS"

        released = await api_client.post(f"{url}/release")
        assert released.json()["status"] == "IN_PROGRESS"
        assert released.json()["version"] == 3

    async def test_invalid_transition_is_conflict(self, api_client, movement_payload):
        movement = await _create(api_client, movement_payload)
        response = await api_client.post(f"{BASE}/{movement['id']}/release")

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "INVALID_TRANSITION"
        assert body["details"]["current_status"] == "DRAFT"

    async def test_cancel_without_reason_is_bad_request(self, api_client, movement_payload):
        movement = await _create(api_client, movement_payload)
        response = await api_client.post(f"{BASE}/{movement['id']}/cancel")
        assert response.status_code == 400

    async def test_cancel_cascades(self, api_client, movement_payload):
        movement = await _create(api_client, movement_payload)
        url = f"{BASE}/{movement['id']}"
        await api_client.post(f"{url}/start")

        response = await api_client.post(f"{url}/cancel", params={"reason": "order withdrawn"})

        body = response.json()
        assert body["status"] == "CANCELLED"
        assert {line["status"] for line in body["lines"]} == {"CANCELLED"}

    async def test_update_and_delete_draft(self, api_client, movement_payload):
        movement = await _create(api_client, movement_payload)
        url = f"{BASE}/{movement['id']}"

        updated = await api_client.put(url, json={"notes": "fragile", "status": "PENDING"})
        assert updated.json()["status"] == "PENDING"
        assert updated.json()["notes"] == "fragile"

        assert (await api_client.delete(url)).status_code == 204
        assert (await api_client.get(url)).status_code == 404


class TestQueries:
    async def test_unknown_movement(self, api_client):
        response = await api_client.get(f"{BASE}/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error_code"] == "MOVEMENT_NOT_FOUND"
        assert response.json()["request_id"] == response.headers["X-Request-ID"]

    async def test_list_is_paged(self, api_client, movement_payload):
        for n in range(3):
            movement_payload["reference_number"] = f"TRF-{n}"
            await _create(api_client, movement_payload)

        response = await api_client.get(BASE, params={"size": 2, "status": "DRAFT"})

        body = response.json()
        assert body["totalElements"] == 3
        assert body["totalPages"] == 2
        assert body["first"] is True
        assert body["last"] is False
        assert len(body["content"]) == 2

    async def test_by_reference_progress_history(self, api_client, movement_payload):
        movement = await _create(api_client, movement_payload)
        await api_client.post(f"{BASE}/{movement['id']}/start")

        by_ref = await api_client.get(f"{BASE}/reference/TRF-100")
        assert by_ref.json()["id"] == movement["id"]

        progress = (await api_client.get(f"{BASE}/{movement['id']}/progress")).json()
        assert progress["total_lines"] == 2
        assert progress["progress_percent"] == 0.0
        assert progress["derived_status"] is None

        history = (await api_client.get(f"{BASE}/{movement['id']}/history")).json()
        assert [e["action"] for e in history] == ["create", "submit", "start"]

    async def test_statistics(self, api_client, movement_payload):
        await _create(api_client, movement_payload)
        body = (await api_client.get(f"{BASE}/statistics")).json()

        assert body["total"] == 1
        assert body["by_status"]["DRAFT"] == 1

    async def test_statistics_by_type_within_dates(self, api_client, movement_payload):
        await _create(api_client, movement_payload)
        await _create(api_client, {**movement_payload, "type": "INBOUND", "reference_number": "INB-1"})

        inside = (await api_client.get(
            f"{BASE}/statistics/by-type",
            params={
                "warehouse_id": "WH-1",
                "start_date": "2024-06-01T00:00:00Z",
                "end_date": "2024-06-30T00:00:00Z",
            },
        )).json()
        assert inside["total"] == 2
        assert inside["by_type"]["TRANSFER"] == 1
        assert inside["by_type"]["INBOUND"] == 1
        assert inside["by_type"]["RETURN"] == 0

        before = (await api_client.get(
            f"{BASE}/statistics/by-type", params={"end_date": "2024-05-31T00:00:00Z"}
        )).json()
        assert before["total"] == 0

    async def test_statistics_by_type_inverted_window_is_bad_request(self, api_client):
        response = await api_client.get(
            f"{BASE}/statistics/by-type",
            params={"start_date": "2024-06-30T00:00:00Z", "end_date": "2024-06-01T00:00:00Z"},
        )
        assert response.status_code == 400
