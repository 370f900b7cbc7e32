"""
Реестр обработчиков результатов по типу задачи.

- RESULT_HANDLERS: доменные обработчики
- pollDecisions / humanReview обрабатываются отдельно (опрос решений / без эффекта)
- при импорте проверяется, что у каждого TaskType есть обработчик
"""

from __future__ import annotations

import json
from typing import Any

from council_tasks.common.errors import NotFoundError, ValidationError
from council_tasks.common.logging import get_tasks_logger
from council_tasks.contracts.task_updates import ErrorUpdate, ProcessingUpdate, SuccessUpdate
from council_tasks.domain.enums import TaskType
from council_tasks.services.decisions_polling import handle_poll_decisions_result
from council_tasks.services.task_service import handle_task_update, parse_task_type
from council_tasks.storage.db import db_session
from council_tasks.storage.repositories import TaskRepository

from .agenda import handle_process_agenda_result, handle_summarize_result
from .base import ResultHandler
from .fix_transcript import handle_fix_transcript_result
from .media import (
    handle_generate_highlight_result,
    handle_generate_podcast_spec_result,
    handle_split_media_file_result,
)
from .search_index import handle_sync_elasticsearch_result
from .transcribe import handle_transcribe_result
from .voiceprint import handle_generate_voiceprint_result

log = get_tasks_logger()


def handle_human_review_result(task_id: str, result: Any, *, force: bool = False) -> None:
    """Ручная проверка не меняет данных."""


RESULT_HANDLERS: dict[TaskType, ResultHandler] = {
    TaskType.transcribe: handle_transcribe_result,
    TaskType.summarize: handle_summarize_result,
    TaskType.fix_transcript: handle_fix_transcript_result,
    TaskType.process_agenda: handle_process_agenda_result,
    TaskType.generate_podcast_spec: handle_generate_podcast_spec_result,
    TaskType.split_media_file: handle_split_media_file_result,
    TaskType.generate_voiceprint: handle_generate_voiceprint_result,
    TaskType.sync_elasticsearch: handle_sync_elasticsearch_result,
    TaskType.generate_highlight: handle_generate_highlight_result,
}

SPECIAL_HANDLERS: dict[TaskType, ResultHandler] = {
    TaskType.poll_decisions: handle_poll_decisions_result,
    TaskType.human_review: handle_human_review_result,
}


def _check_exhaustive() -> None:
    missing = set(TaskType) - set(RESULT_HANDLERS) - set(SPECIAL_HANDLERS)
    if missing:
        names = ", ".join(sorted(t.value for t in missing))
        raise RuntimeError(f"Result handler missing for task types: {names}")


_check_exhaustive()


def handler_for(task_type: str | TaskType) -> ResultHandler:
    ttype = parse_task_type(task_type)
    return RESULT_HANDLERS.get(ttype) or SPECIAL_HANDLERS[ttype]


def process_task_result(task_id: str, result: Any) -> None:
    """
    processResult для колбэков: тип берём из записи задачи.
    """
    with db_session() as s:
        task = TaskRepository(s).get(task_id)
        if task is None:
            raise NotFoundError("Task not found", details={"task_id": task_id})
        task_type = task.type
    handler_for(task_type)(task_id, result)


def handle_task_callback(
    task_id: str,
    update: ProcessingUpdate | SuccessUpdate | ErrorUpdate | dict[str, Any],
) -> str:
    return handle_task_update(task_id, update, process_task_result)


def process_task_response(task_type: str | TaskType, task_id: str, *, force: bool = False) -> None:
    """
    Повторно применяет сохранённый response_body задачи (reprocess / backfill).
    """
    ttype = parse_task_type(task_type)
    handler = handler_for(ttype)
    log.info(
        "task_response_reprocess",
        extra={"payload": {"task_id": task_id, "task_type": ttype.value, "force": force}},
    )

    with db_session() as s:
        task = TaskRepository(s).get(task_id)
        if task is None:
            raise NotFoundError("Task not found", details={"task_id": task_id})
        raw = task.response_body

    if not raw:
        raise ValidationError("Task has no response body", details={"task_id": task_id})
    try:
        result = json.loads(raw)
    except ValueError as e:
        raise ValidationError(
            "Task response body is not valid JSON", details={"task_id": task_id}
        ) from e

    handler(task_id, result, force=force)
