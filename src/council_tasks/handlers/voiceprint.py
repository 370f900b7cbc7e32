"""
Результат generateVoiceprint: эмбеддинг голоса, один на человека (upsert).
Кого и по какому отрезку считали, берём из request_body задачи.
"""

from __future__ import annotations

from typing import Any

from council_tasks.common.errors import NotFoundError, ValidationError
from council_tasks.common.logging import get_tasks_logger
from council_tasks.storage.db import db_session
from council_tasks.storage.models import Person, VoicePrint

from .base import load_task, request_body_of

log = get_tasks_logger()


def handle_generate_voiceprint_result(task_id: str, result: Any, *, force: bool = False) -> None:
    embedding = result.get("voiceprint")
    if not isinstance(embedding, list) or not embedding:
        raise ValidationError("Invalid response format: voiceprint should be a non-empty array")

    with db_session() as s:
        task = load_task(s, task_id)
        body = request_body_of(task)
        person_id = body.get("personId")

        person = s.get(Person, person_id) if person_id else None
        if person is None or person.city_id != task.city_id:
            raise NotFoundError(
                "Person not found",
                details={"task_id": task_id, "person_id": person_id},
            )

        voiceprint = s.query(VoicePrint).filter(VoicePrint.person_id == person.id).one_or_none()
        if voiceprint is None:
            voiceprint = VoicePrint(person_id=person.id)
            s.add(voiceprint)

        voiceprint.embedding = [float(x) for x in embedding]
        voiceprint.source_audio_url = result.get("audioUrl") or ""
        voiceprint.source_segment_id = body.get("segmentId")
        voiceprint.start_timestamp = body.get("startTimestamp")
        voiceprint.end_timestamp = body.get("endTimestamp")

    log.info(
        "voiceprint_saved",
        extra={"payload": {"task_id": task_id, "person_id": person_id, "dims": len(embedding)}},
    )
