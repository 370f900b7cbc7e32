from __future__ import annotations

import json

from fastapi.testclient import TestClient

from apps.api_gateway.main import app
from council_tasks.common.errors import TaskDispatchError
from council_tasks.domain.enums import TaskStatus, TaskType
from council_tasks.services.task_service import get_task

ADMIN = {"X-API-Key": "admin-key"}
EDITOR = {"X-API-Key": "athens-key"}


def test_health() -> None:
    client = TestClient(app)
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_dispatch_and_guard(make_meeting, task_api) -> None:
    make_meeting()
    client = TestClient(app)
    url = "/v1/cities/city-1/meetings/meeting-1/tasks/transcribe"

    r = client.post(url, json={"requestBody": {"youtubeUrl": "https://y/1"}}, headers=ADMIN)
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "pending"
    assert body["type"] == "transcribe"

    r = client.post(url, json={"requestBody": {}}, headers=ADMIN)
    assert r.status_code == 409
    detail = r.json()["detail"]
    assert detail["code"] == "task_already_running"
    assert detail["details"]["existing_task_id"] == body["id"]

    r = client.post(url, json={"requestBody": {}, "force": True}, headers=ADMIN)
    assert r.status_code == 200
    assert len(task_api.calls) == 2


def test_dispatch_requires_auth_and_rights(make_meeting, task_api) -> None:
    make_meeting(city_id="city-2", meeting_id="m-2")
    client = TestClient(app)
    url = "/v1/cities/city-2/meetings/m-2/tasks/summarize"

    assert client.post(url, json={}).status_code == 401
    r = client.post(url, json={}, headers=EDITOR)
    assert r.status_code == 403
    assert r.json()["detail"]["code"] == "forbidden"
    assert task_api.calls == []


def test_dispatch_unsupported_type(make_meeting, task_api) -> None:
    make_meeting()
    client = TestClient(app)
    r = client.post("/v1/cities/city-1/meetings/meeting-1/tasks/explode", json={}, headers=ADMIN)
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "unsupported_task_type"


def test_dispatch_worker_failure_is_502(make_meeting, task_api) -> None:
    make_meeting()
    task_api.error = TaskDispatchError("Failed to start task: Bad Gateway (no response body)")
    client = TestClient(app)

    r = client.post(
        "/v1/cities/city-1/meetings/meeting-1/tasks/summarize", json={}, headers=EDITOR
    )
    assert r.status_code == 502
    assert r.json()["detail"]["code"] == "task_api_error"


def test_idempotency_endpoint(make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting()
    existing = make_task(city_id, meeting_id, TaskType.summarize, TaskStatus.succeeded)
    client = TestClient(app)
    base = f"/v1/cities/{city_id}/meetings/{meeting_id}/tasks"

    r = client.get(f"{base}/summarize/idempotency", headers=ADMIN)
    assert r.json() == {
        "taskType": "summarize",
        "guarded": True,
        "canProceed": False,
        "blockedReason": "already_succeeded",
        "existingTaskId": existing,
    }

    r = client.get(f"{base}/generateHighlight/idempotency", headers=ADMIN)
    assert r.json() == {"taskType": "generateHighlight", "guarded": False, "canProceed": True}


def test_reprocess_endpoint(make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting()
    task_id = make_task(
        city_id,
        meeting_id,
        TaskType.process_agenda,
        TaskStatus.succeeded,
        response_body=json.dumps({"subjects": [{"name": "Θέμα"}]}),
    )
    client = TestClient(app)

    r = client.post(f"/v1/tasks/{task_id}/reprocess", json={"force": True}, headers=EDITOR)
    assert r.status_code == 200
    assert r.json() == {"status": "reprocessed", "taskId": task_id, "type": "processAgenda"}

    assert client.post("/v1/tasks/missing/reprocess", json={}, headers=ADMIN).status_code == 404


# =============================================================================
# КОЛБЭКИ ВОРКЕРА
# =============================================================================
def test_callback_flow(make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting()
    task_id = make_task(city_id, meeting_id, TaskType.sync_elasticsearch)
    client = TestClient(app)
    url = f"/v1/cities/{city_id}/meetings/{meeting_id}/taskStatuses/{task_id}"

    r = client.post(url, json={"status": "processing", "stage": "indexing", "progressPercent": 50})
    assert r.json() == {"status": "applied"}

    r = client.put(url, json={"status": "success", "result": {"documentsIndexed": 3}})
    assert r.json() == {"status": "applied"}
    assert get_task(task_id).status == TaskStatus.succeeded

    r = client.post(url, json={"status": "processing", "stage": "late", "progressPercent": 99})
    assert r.json() == {"status": "ignored"}

    r = client.get(url, headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["status"] == "succeeded"
    assert r.json()["stage"] == "indexing"


def test_callback_unknown_task_and_scope(make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting()
    task_id = make_task(city_id, meeting_id, TaskType.transcribe)
    client = TestClient(app)

    r = client.post(
        f"/v1/cities/{city_id}/meetings/{meeting_id}/taskStatuses/nope",
        json={"status": "error", "error": "x"},
    )
    assert r.status_code == 200
    assert r.json() == {"status": "ignored"}

    r = client.post(
        f"/v1/cities/{city_id}/meetings/other/taskStatuses/{task_id}",
        json={"status": "error", "error": "x"},
    )
    assert r.json() == {"status": "ignored"}
    assert get_task(task_id).status == TaskStatus.pending

    r = client.get(f"/v1/cities/{city_id}/meetings/other/taskStatuses/{task_id}", headers=ADMIN)
    assert r.status_code == 404


def test_callback_malformed_payload(make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting()
    task_id = make_task(city_id, meeting_id, TaskType.transcribe)
    client = TestClient(app)

    r = client.post(
        f"/v1/cities/{city_id}/meetings/{meeting_id}/taskStatuses/{task_id}",
        json={"status": "exploded"},
    )
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "validation"
