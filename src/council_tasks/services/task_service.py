"""
Жизненный цикл задач внешнего воркера.

Назначение:
- проверка идемпотентности перед запуском (guard)
- запуск задачи: запись pending -> POST в воркер -> callbackUrl в request_body
- обработка колбэков processing / success / error с компенсирующим переходом
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from council_tasks.common.config import get_settings
from council_tasks.common.errors import (
    AppError,
    NotFoundError,
    TaskBlockedError,
    UnsupportedTaskTypeError,
)
from council_tasks.common.logging import get_tasks_logger
from council_tasks.common.metrics import (
    record_guard_block,
    record_task_dispatch,
    record_task_update,
)
from council_tasks.common.time import iso_or_none
from council_tasks.connectors.task_api.client import get_task_api_client
from council_tasks.contracts.task_updates import (
    ErrorUpdate,
    ProcessingUpdate,
    SuccessUpdate,
    parse_task_update,
)
from council_tasks.delivery.alerts import alert_task_completed, alert_task_failed, alert_task_started
from council_tasks.domain.enums import BlockedReason, TaskEvent, TaskStatus, TaskType
from council_tasks.domain.state_machine import transition
from council_tasks.storage.db import db_session
from council_tasks.storage.models import Task
from council_tasks.storage.repositories import TaskRepository

log = get_tasks_logger()

# Конвейерные задачи: успешно выполняются не более одного раза на встречу.
# Остальные (хайлайты, отпечатки, нарезка, опрос решений...) могут идти параллельно.
GUARDED_TASK_TYPES: frozenset[TaskType] = frozenset(
    {
        TaskType.transcribe,
        TaskType.fix_transcript,
        TaskType.human_review,
        TaskType.summarize,
        TaskType.process_agenda,
    }
)

ResultProcessor = Callable[[str, Any], None]


def parse_task_type(raw: str | TaskType) -> TaskType:
    if isinstance(raw, TaskType):
        return raw
    try:
        return TaskType(raw)
    except ValueError as e:
        raise UnsupportedTaskTypeError(str(raw)) from e


def task_to_dict(task: Task) -> dict[str, Any]:
    status = task.status.value if isinstance(task.status, TaskStatus) else str(task.status)
    return {
        "id": task.id,
        "type": task.type,
        "status": status,
        "cityId": task.city_id,
        "councilMeetingId": task.meeting_id,
        "stage": task.stage,
        "percentComplete": task.percent_complete,
        "version": task.version,
        "requestBody": task.request_body,
        "responseBody": task.response_body,
        "createdAt": iso_or_none(task.created_at),
        "updatedAt": iso_or_none(task.updated_at),
    }


# =============================================================================
# IDEMPOTENCY GUARD
# =============================================================================
@dataclass
class IdempotencyCheck:
    proceed: bool
    existing_task: Task | None = None
    blocked_reason: BlockedReason | None = None


def check_task_idempotency(
    task_type: TaskType,
    city_id: str,
    meeting_id: str,
    *,
    force: bool = False,
) -> IdempotencyCheck:
    """
    Можно ли запускать задачу этого типа для встречи.

    - force: всегда можно, хранилище не читается
    - есть succeeded: already_succeeded (in-flight уже не проверяется)
    - есть задача не в failed/succeeded: already_running
    """
    if force:
        return IdempotencyCheck(proceed=True)

    with db_session() as s:
        repo = TaskRepository(s)
        succeeded = repo.find_latest_succeeded(
            task_type=task_type, city_id=city_id, meeting_id=meeting_id
        )
        if succeeded is not None:
            return IdempotencyCheck(
                proceed=False,
                existing_task=succeeded,
                blocked_reason=BlockedReason.already_succeeded,
            )

        running = repo.find_in_flight(task_type=task_type, city_id=city_id, meeting_id=meeting_id)
        if running is not None:
            return IdempotencyCheck(
                proceed=False,
                existing_task=running,
                blocked_reason=BlockedReason.already_running,
            )

    return IdempotencyCheck(proceed=True)


def _legacy_duplicate_check(task_type: TaskType, city_id: str, meeting_id: str) -> bool:
    """
    Бывшая проверка "уже запущена" для всех типов. Оставлена как no-op:
    всегда разрешает запуск и не читает хранилище.
    """
    _ = (task_type, city_id, meeting_id)
    return True


# =============================================================================
# DISPATCH
# =============================================================================
def build_callback_url(*, city_id: str, meeting_id: str, task_id: str) -> str:
    base = (get_settings().public_url or "").rstrip("/")
    return f"{base}/v1/cities/{city_id}/meetings/{meeting_id}/taskStatuses/{task_id}"


def start_task(
    task_type: str | TaskType,
    request_body: dict[str, Any],
    meeting_id: str,
    city_id: str,
    *,
    force: bool = False,
) -> Task:
    """
    Создаёт задачу и отправляет её воркеру.

    Ошибки:
    - TaskBlockedError: guard отклонил запуск (запись не создаётся)
    - TaskDispatchError: воркер недоступен / не-2xx (запись остаётся failed)
    - любое другое исключение клиента тоже переводит запись в failed и пробрасывается
    """
    ttype = parse_task_type(task_type)

    if ttype in GUARDED_TASK_TYPES and not force:
        check = check_task_idempotency(ttype, city_id, meeting_id)
        if not check.proceed:
            reason = check.blocked_reason.value if check.blocked_reason else "blocked"
            existing_id = check.existing_task.id if check.existing_task else None
            record_guard_block(task_type=ttype.value, reason=reason)
            record_task_dispatch(task_type=ttype.value, result="blocked")
            log.info(
                "task_dispatch_blocked",
                extra={
                    "payload": {
                        "task_type": ttype.value,
                        "city_id": city_id,
                        "meeting_id": meeting_id,
                        "reason": reason,
                        "existing_task_id": existing_id,
                    }
                },
            )
            raise TaskBlockedError(
                task_type=ttype.value,
                blocked_reason=reason,
                existing_task_id=existing_id,
            )

    if not force:
        _legacy_duplicate_check(ttype, city_id, meeting_id)

    with db_session() as s:
        task = TaskRepository(s).create(
            task_type=ttype,
            city_id=city_id,
            meeting_id=meeting_id,
            request_body=json.dumps(request_body, ensure_ascii=False),
        )
    task_id = task.id

    callback_url = build_callback_url(city_id=city_id, meeting_id=meeting_id, task_id=task_id)
    full_body = {**request_body, "callbackUrl": callback_url}

    try:
        get_task_api_client().start_task(ttype.value, full_body)
    except Exception as e:
        with db_session() as s:
            failed = TaskRepository(s).get(task_id)
            if failed is not None:
                failed.status = TaskStatus.failed
        record_task_dispatch(task_type=ttype.value, result="failed")
        log.warning(
            "task_dispatch_failed",
            extra={
                "payload": {
                    "task_id": task_id,
                    "task_type": ttype.value,
                    "city_id": city_id,
                    "meeting_id": meeting_id,
                    "err": e.message if isinstance(e, AppError) else str(e)[:300],
                    "details": e.details if isinstance(e, AppError) else None,
                }
            },
        )
        raise

    with db_session() as s:
        task = TaskRepository(s).get(task_id)
        task.request_body = json.dumps(full_body, ensure_ascii=False)

    record_task_dispatch(task_type=ttype.value, result="started")
    log.info(
        "task_dispatched",
        extra={
            "payload": {
                "task_id": task_id,
                "task_type": ttype.value,
                "city_id": city_id,
                "meeting_id": meeting_id,
                "callback_url": callback_url,
            }
        },
    )
    alert_task_started(
        task_id=task_id, task_type=ttype.value, city_id=city_id, meeting_id=meeting_id
    )
    return task


# =============================================================================
# CALLBACKS
# =============================================================================
_EVENT_BY_UPDATE = {
    ProcessingUpdate: TaskEvent.progress,
    SuccessUpdate: TaskEvent.success,
    ErrorUpdate: TaskEvent.error,
}


def get_task(task_id: str) -> Task:
    with db_session() as s:
        task = TaskRepository(s).get(task_id)
    if task is None:
        raise NotFoundError("Задача не найдена", details={"task_id": task_id})
    return task


def handle_task_update(
    task_id: str,
    update: ProcessingUpdate | SuccessUpdate | ErrorUpdate | dict[str, Any],
    process_result: ResultProcessor,
) -> str:
    """
    Применяет колбэк воркера. Возвращает исход: applied | ignored | processing_failed.

    Отсутствующая задача и недопустимый переход не считаются ошибкой:
    воркер может повторять колбэки, это не должно ронять приём.
    """
    if isinstance(update, dict):
        update = parse_task_update(update)
    event = _EVENT_BY_UPDATE[type(update)]

    with db_session() as s:
        repo = TaskRepository(s)
        task = repo.get(task_id)
        if task is None:
            log.warning(
                "task_update_missing_task",
                extra={"payload": {"task_id": task_id, "status": update.status}},
            )
            record_task_update(task_type="unknown", status=update.status, outcome="ignored")
            return "ignored"

        tr = transition(TaskStatus(task.status), event)
        if not tr.ok:
            log.warning(
                "task_update_ignored",
                extra={
                    "payload": {
                        "task_id": task_id,
                        "current": TaskStatus(task.status).value,
                        "event": event.value,
                        "reason": tr.reason,
                    }
                },
            )
            record_task_update(task_type=task.type, status=update.status, outcome="ignored")
            return "ignored"

        task.status = tr.status
        if update.version is not None:
            task.version = update.version

        if isinstance(update, ProcessingUpdate):
            task.stage = update.stage
            task.percent_complete = update.progress_percent
        elif isinstance(update, SuccessUpdate):
            task.response_body = json.dumps(update.result, ensure_ascii=False)
        else:
            task.response_body = update.error

        task_type = task.type
        city_id = task.city_id
        meeting_id = task.meeting_id

    scope = {"task_id": task_id, "task_type": task_type, "city_id": city_id, "meeting_id": meeting_id}

    if isinstance(update, ProcessingUpdate):
        record_task_update(task_type=task_type, status=update.status, outcome="applied")
        return "applied"

    if isinstance(update, ErrorUpdate):
        log.info("task_failed", extra={"payload": {**scope, "err": update.error[:300]}})
        record_task_update(task_type=task_type, status=update.status, outcome="applied")
        alert_task_failed(**scope, error=update.error)
        return "applied"

    if update.result is None:
        log.info("task_succeeded_without_result", extra={"payload": scope})
    else:
        try:
            process_result(task_id, update.result)
        except Exception as e:
            log.exception("task_result_processing_failed", extra={"payload": scope})
            with db_session() as s:
                task = TaskRepository(s).get(task_id)
                tr = transition(TaskStatus(task.status), TaskEvent.result_processing_failed)
                if tr.ok:
                    task.status = tr.status
            record_task_update(task_type=task_type, status=update.status, outcome="processing_failed")
            alert_task_failed(**scope, error=str(e))
            return "processing_failed"

    log.info("task_succeeded", extra={"payload": scope})
    record_task_update(task_type=task_type, status=update.status, outcome="applied")
    alert_task_completed(**scope)
    return "applied"
