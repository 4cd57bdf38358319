import base64

import pytest
from sqlalchemy import func, select

from agriadvisor.core.database import db_service
from agriadvisor.core.models import CropDiagnosisDB, UserDB

SYNC_URL = "/api/v1/sync"

DIAGNOSIS_BODY = {
    "type": "diagnosis",
    "data": {
        "crop": "Rice",
        "result": {"disease": "Bacterial Blight", "confidence": 0.78},
        "location": {"latitude": 10.5, "longitude": 76.2},
    },
    "timestamp": "2024-06-01T06:30:15.123Z",
}


async def _diagnosis_count() -> int:
    async with db_service.get_session() as session:
        result = await session.execute(select(func.count(CropDiagnosisDB.id)))
        return result.scalar_one()


@pytest.mark.asyncio
async def test_sync_requires_bearer_token(client):
    response = await client.post(SYNC_URL, json=DIAGNOSIS_BODY)

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_sync_rejects_invalid_token(client):
    response = await client.post(SYNC_URL, json=DIAGNOSIS_BODY, headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401
    assert response.json()["error_code"] == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_sync_validation_errors_are_400_with_details(client, auth_headers):
    response = await client.post(
        SYNC_URL, json={"type": "weather", "data": {}, "timestamp": "yesterday"}, headers=auth_headers
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error_code"] == "VALIDATION_ERROR"
    assert {detail["field"] for detail in body["details"]} == {"type", "timestamp"}


@pytest.mark.asyncio
async def test_diagnosis_replay_is_idempotent(client, auth_headers):
    first = await client.post(SYNC_URL, json=DIAGNOSIS_BODY, headers=auth_headers)
    second = await client.post(SYNC_URL, json=DIAGNOSIS_BODY, headers=auth_headers)

    assert first.status_code == 200
    assert first.json()["message"] == "Data synced successfully"
    assert first.json()["type"] == "diagnosis"
    assert first.json()["result"]["action"] == "created"

    assert second.status_code == 200
    assert second.json()["result"] == {
        "action": "skipped",
        "reason": "Diagnosis already exists",
        "id": first.json()["result"]["id"],
    }
    assert await _diagnosis_count() == 1


@pytest.mark.asyncio
async def test_single_sync_failure_is_sync_failed(client, auth_headers):
    body = dict(DIAGNOSIS_BODY, data={"result": {}})

    response = await client.post(SYNC_URL, json=body, headers=auth_headers)

    assert response.status_code == 500
    assert response.json()["error_code"] == "SYNC_FAILED"


@pytest.mark.asyncio
async def test_user_data_sync_updates_profile(client, auth_headers, farmer):
    body = {
        "type": "user_data",
        "data": {"preferences": {"language": "kn"}, "email": "ignored@example.com"},
        "timestamp": "2024-06-02T10:00:00Z",
    }

    response = await client.post(SYNC_URL, json=body, headers=auth_headers)

    assert response.json()["result"] == {"action": "updated", "fields": ["preferences"]}
    async with db_service.get_session() as session:
        user = await session.get(UserDB, farmer.id)
    assert user.preferences == {"language": "kn"}
    assert user.email == farmer.email
    assert user.last_sync is not None


@pytest.mark.asyncio
async def test_batch_reports_per_item_results(client, auth_headers):
    body = {
        "items": [
            DIAGNOSIS_BODY,
            {"type": "diagnosis", "data": {"result": {}}, "timestamp": "2024-06-01T07:00:00Z"},
            {"type": "irrigation", "data": {"crop": "Wheat"}, "timestamp": "2024-06-01T08:00:00Z"},
        ]
    }

    response = await client.post(f"{SYNC_URL}/batch", json=body, headers=auth_headers)

    assert response.status_code == 200
    payload = response.json()
    assert payload["message"] == "Batch sync completed"
    assert payload["summary"] == {"total": 3, "success": 2, "errors": 1}
    assert [item["type"] for item in payload["results"]] == ["diagnosis", "diagnosis", "irrigation"]
    assert payload["results"][1]["status"] == "error"
    assert payload["results"][2]["result"]["action"] == "logged"


@pytest.mark.asyncio
async def test_batch_with_invalid_item_is_rejected_whole(client, auth_headers):
    body = {"items": [DIAGNOSIS_BODY, {"type": "diagnosis", "data": {}}]}

    response = await client.post(f"{SYNC_URL}/batch", json=body, headers=auth_headers)

    assert response.status_code == 400
    assert await _diagnosis_count() == 0


@pytest.mark.asyncio
async def test_status_counts_recent_offline_items(client, auth_headers):
    await client.post(SYNC_URL, json=DIAGNOSIS_BODY, headers=auth_headers)

    response = await client.get(
        f"{SYNC_URL}/status", params={"since": "2024-05-01T00:00:00Z"}, headers=auth_headers
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Sync status retrieved successfully"
    assert body["pendingItems"] == {"diagnoses": 1}
    assert body["lastSync"].endswith("Z")
    assert body["serverTime"].endswith("Z")


@pytest.mark.asyncio
async def test_status_counts_online_and_offline_diagnoses(client, auth_headers):
    await client.post(SYNC_URL, json=DIAGNOSIS_BODY, headers=auth_headers)
    image = base64.b64encode(b"leaf photo").decode("ascii")
    online = await client.post("/api/v1/crops/diagnose", json={"crop": "Rice", "image": image}, headers=auth_headers)
    assert online.status_code == 200

    response = await client.get(
        f"{SYNC_URL}/status", params={"since": "2024-05-01T00:00:00Z"}, headers=auth_headers
    )

    assert response.json()["pendingItems"] == {"diagnoses": 2}


@pytest.mark.asyncio
async def test_clear_rejects_unknown_window(client, auth_headers):
    response = await client.delete(f"{SYNC_URL}/clear", params={"olderThan": "1y"}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "olderThan"


@pytest.mark.asyncio
async def test_clear_deletes_old_offline_diagnoses(client, auth_headers):
    await client.post(SYNC_URL, json=DIAGNOSIS_BODY, headers=auth_headers)

    response = await client.delete(f"{SYNC_URL}/clear", params={"olderThan": "7d"}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["message"] == "Old data cleared successfully"
    assert response.json()["deletedCount"] == 1
    assert await _diagnosis_count() == 0
