"""
Общее для обработчиков результатов задач.

Контракт обработчика: handler(task_id, result, *, force=False) -> None.
Обработчик сам открывает сессию и должен переживать повторный вызов
с тем же результатом (delete-then-recreate / upsert).
"""

from __future__ import annotations

import json
from typing import Any, Protocol

from sqlalchemy.orm import Session

from council_tasks.common.errors import NotFoundError, ValidationError
from council_tasks.storage.models import Task


class ResultHandler(Protocol):
    def __call__(self, task_id: str, result: Any, *, force: bool = False) -> None: ...


def load_task(session: Session, task_id: str) -> Task:
    task = session.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task not found", details={"task_id": task_id})
    return task


def request_body_of(task: Task) -> dict:
    try:
        data = json.loads(task.request_body or "{}")
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def require_list(result: Any, key: str) -> list:
    value = result.get(key) if isinstance(result, dict) else None
    if not isinstance(value, list):
        raise ValidationError(
            f"Invalid response format: {key} should be an array",
            details={"key": key},
        )
    return value
