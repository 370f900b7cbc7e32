"""
HTTP роуты статусов задач.

- GET      /v1/cities/{city_id}/meetings/{meeting_id}/taskStatuses/{task_id}
- POST|PUT /v1/cities/{city_id}/meetings/{meeting_id}/taskStatuses/{task_id}  (колбэк воркера)

Колбэк не требует ключа: адрес с id задачи выдаётся только воркеру.
Неизвестная задача или чужая встреча -> 200 {"status": "ignored"},
чтобы воркер не ретраил бесконечно.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status

from apps.api_gateway.deps import auth_dep, http_error
from council_tasks.common.errors import AppError, ErrCode, NotFoundError
from council_tasks.common.logging import get_tasks_logger
from council_tasks.common.security import AuthContext
from council_tasks.contracts.task_updates import parse_task_update
from council_tasks.handlers.registry import handle_task_callback
from council_tasks.services.task_service import get_task, task_to_dict

log = get_tasks_logger()

router = APIRouter()

_PATH = "/cities/{city_id}/meetings/{meeting_id}/taskStatuses/{task_id}"


@router.get(_PATH)
def get_task_status(
    city_id: str,
    meeting_id: str,
    task_id: str,
    ctx: AuthContext = Depends(auth_dep),
) -> dict[str, Any]:
    try:
        task = get_task(task_id)
    except AppError as e:
        raise http_error(e) from e
    if task.city_id != city_id or task.meeting_id != meeting_id:
        raise http_error(NotFoundError("Task status not found", details={"task_id": task_id}))
    return task_to_dict(task)


def _apply_callback(city_id: str, meeting_id: str, task_id: str, payload: dict) -> dict:
    try:
        update = parse_task_update(payload)
    except AppError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": ErrCode.VALIDATION, "message": e.message, "details": e.details or {}},
        ) from e

    try:
        task = get_task(task_id)
    except NotFoundError:
        log.warning(
            "task_callback_unknown_task",
            extra={"payload": {"task_id": task_id, "city_id": city_id, "meeting_id": meeting_id}},
        )
        return {"status": "ignored"}

    if task.city_id != city_id or task.meeting_id != meeting_id:
        log.warning(
            "task_callback_scope_mismatch",
            extra={
                "payload": {
                    "task_id": task_id,
                    "path_city_id": city_id,
                    "path_meeting_id": meeting_id,
                    "task_city_id": task.city_id,
                    "task_meeting_id": task.meeting_id,
                }
            },
        )
        return {"status": "ignored"}

    outcome = handle_task_callback(task_id, update)
    return {"status": outcome}


@router.post(_PATH)
def post_task_status(
    city_id: str,
    meeting_id: str,
    task_id: str,
    payload: dict = Body(...),
) -> dict:
    return _apply_callback(city_id, meeting_id, task_id, payload)


@router.put(_PATH)
def put_task_status(
    city_id: str,
    meeting_id: str,
    task_id: str,
    payload: dict = Body(...),
) -> dict:
    return _apply_callback(city_id, meeting_id, task_id, payload)
