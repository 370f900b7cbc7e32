"""
HTTP роуты запуска задач из админки.

- POST /v1/cities/{city_id}/meetings/{meeting_id}/tasks/{task_type}
- GET  /v1/cities/{city_id}/meetings/{meeting_id}/tasks/{task_type}/idempotency
- POST /v1/tasks/{task_id}/reprocess

Права: require_can_edit по городу встречи.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from apps.api_gateway.deps import auth_dep, http_error
from council_tasks.common.errors import AppError
from council_tasks.common.security import AuthContext, acting_as, require_can_edit
from council_tasks.contracts.http_api import ReprocessTaskRequest, StartTaskRequest
from council_tasks.handlers.registry import process_task_response
from council_tasks.services.task_service import (
    GUARDED_TASK_TYPES,
    check_task_idempotency,
    get_task,
    parse_task_type,
    start_task,
    task_to_dict,
)

router = APIRouter()


@router.post("/cities/{city_id}/meetings/{meeting_id}/tasks/{task_type}")
def dispatch_task(
    city_id: str,
    meeting_id: str,
    task_type: str,
    req: StartTaskRequest,
    ctx: AuthContext = Depends(auth_dep),
) -> dict[str, Any]:
    with acting_as(ctx):
        try:
            require_can_edit(city_id, meeting_id)
            task = start_task(task_type, req.request_body, meeting_id, city_id, force=req.force)
        except AppError as e:
            raise http_error(e) from e
    return task_to_dict(task)


@router.get("/cities/{city_id}/meetings/{meeting_id}/tasks/{task_type}/idempotency")
def task_idempotency(
    city_id: str,
    meeting_id: str,
    task_type: str,
    ctx: AuthContext = Depends(auth_dep),
) -> dict[str, Any]:
    try:
        ttype = parse_task_type(task_type)
    except AppError as e:
        raise http_error(e) from e

    guarded = ttype in GUARDED_TASK_TYPES
    if not guarded:
        return {"taskType": ttype.value, "guarded": False, "canProceed": True}

    check = check_task_idempotency(ttype, city_id, meeting_id)
    return {
        "taskType": ttype.value,
        "guarded": True,
        "canProceed": check.proceed,
        "blockedReason": check.blocked_reason.value if check.blocked_reason else None,
        "existingTaskId": check.existing_task.id if check.existing_task else None,
    }


@router.post("/tasks/{task_id}/reprocess")
def reprocess_task(
    task_id: str,
    req: ReprocessTaskRequest,
    ctx: AuthContext = Depends(auth_dep),
) -> dict[str, Any]:
    with acting_as(ctx):
        try:
            task = get_task(task_id)
            require_can_edit(task.city_id, task.meeting_id)
            process_task_response(task.type, task_id, force=req.force)
        except AppError as e:
            raise http_error(e) from e
    return {"status": "reprocessed", "taskId": task_id, "type": task.type}
