"""
Результат syncElasticsearch: отметка времени синхронизации поискового индекса.
"""

from __future__ import annotations

from typing import Any

from council_tasks.common.errors import NotFoundError
from council_tasks.common.logging import get_tasks_logger
from council_tasks.common.time import utc_now_naive
from council_tasks.storage.db import db_session
from council_tasks.storage.repositories import MeetingRepository

from .base import load_task

log = get_tasks_logger()


def handle_sync_elasticsearch_result(task_id: str, result: Any, *, force: bool = False) -> None:
    with db_session() as s:
        task = load_task(s, task_id)
        repo = MeetingRepository(s)
        meeting = repo.get(city_id=task.city_id, meeting_id=task.meeting_id)
        if meeting is None:
            raise NotFoundError(
                "Council meeting not found",
                details={"city_id": task.city_id, "meeting_id": task.meeting_id},
            )
        repo.stamp_search_synced(meeting, utc_now_naive())

    documents = result.get("documentsIndexed") if isinstance(result, dict) else None
    log.info(
        "search_index_synced",
        extra={"payload": {"task_id": task_id, "documents_indexed": documents}},
    )
