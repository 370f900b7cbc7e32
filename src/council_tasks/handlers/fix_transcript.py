"""
Результат fixTranscript: правка текста реплик и флага неуверенности.
Отсутствующая реплика пропускается, остальные правки применяются.
"""

from __future__ import annotations

from typing import Any

from council_tasks.common.logging import get_tasks_logger
from council_tasks.storage.db import db_session
from council_tasks.storage.models import SpeakerSegment, Utterance

from .base import load_task, require_list

log = get_tasks_logger()

MODIFIED_BY_TASK = "task"


def handle_fix_transcript_result(task_id: str, result: Any, *, force: bool = False) -> None:
    corrections = require_list(result, "corrections")

    applied = 0
    missing: list[str] = []
    with db_session() as s:
        task = load_task(s, task_id)

        ids = [c.get("utteranceId") for c in corrections if isinstance(c, dict)]
        utterances = {
            u.id: u
            for u in s.query(Utterance)
            .join(SpeakerSegment, SpeakerSegment.id == Utterance.speaker_segment_id)
            .filter(
                Utterance.id.in_(ids),
                SpeakerSegment.city_id == task.city_id,
                SpeakerSegment.meeting_id == task.meeting_id,
            )
            .all()
        }

        for c in corrections:
            utterance = utterances.get(c.get("utteranceId"))
            if utterance is None:
                missing.append(str(c.get("utteranceId")))
                continue
            if c.get("correctedText") is not None:
                utterance.text = c["correctedText"]
                utterance.last_modified_by = MODIFIED_BY_TASK
            if c.get("markUncertain") is not None:
                utterance.uncertain = bool(c["markUncertain"])
            applied += 1

    if missing:
        log.warning(
            "fix_transcript_missing_utterances",
            extra={"payload": {"task_id": task_id, "utterance_ids": missing[:50]}},
        )
    log.info(
        "fix_transcript_result_applied",
        extra={"payload": {"task_id": task_id, "applied": applied, "missing": len(missing)}},
    )
