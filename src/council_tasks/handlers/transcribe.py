"""
Результат transcribe: медиа встречи, теги спикеров, сегменты и реплики.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from council_tasks.common.errors import NotFoundError
from council_tasks.common.ids import new_entity_id
from council_tasks.common.logging import get_tasks_logger
from council_tasks.storage.db import db_session
from council_tasks.storage.models import (
    HighlightedUtterance,
    PodcastPartUtterance,
    SpeakerSegment,
    SpeakerTag,
    Utterance,
)
from council_tasks.storage.repositories import MeetingRepository, PersonRepository

from .base import load_task

log = get_tasks_logger()


def delete_transcript(session: Session, *, city_id: str, meeting_id: str) -> None:
    segment_ids = select(SpeakerSegment.id).where(
        SpeakerSegment.city_id == city_id, SpeakerSegment.meeting_id == meeting_id
    )
    utterance_ids = select(Utterance.id).where(Utterance.speaker_segment_id.in_(segment_ids))
    tag_ids = [
        row[0]
        for row in session.query(SpeakerSegment.speaker_tag_id)
        .filter(SpeakerSegment.city_id == city_id, SpeakerSegment.meeting_id == meeting_id)
        .distinct()
        .all()
    ]

    session.query(HighlightedUtterance).filter(
        HighlightedUtterance.utterance_id.in_(utterance_ids)
    ).delete(synchronize_session=False)
    session.query(PodcastPartUtterance).filter(
        PodcastPartUtterance.utterance_id.in_(utterance_ids)
    ).delete(synchronize_session=False)
    session.query(Utterance).filter(Utterance.speaker_segment_id.in_(segment_ids)).delete(
        synchronize_session=False
    )
    session.query(SpeakerSegment).filter(
        SpeakerSegment.city_id == city_id, SpeakerSegment.meeting_id == meeting_id
    ).delete(synchronize_session=False)
    if tag_ids:
        session.query(SpeakerTag).filter(SpeakerTag.id.in_(tag_ids)).delete(
            synchronize_session=False
        )


def handle_transcribe_result(task_id: str, result: Any, *, force: bool = False) -> None:
    """
    force: прежний транскрипт встречи удаляется. Без force существующие сегменты
    не трогаем (повторная обработка может дать дубликаты).
    """
    transcription = (result.get("transcript") or {}).get("transcription") or {}
    utterances = transcription.get("utterances") or []
    speakers = transcription.get("speakers") or []

    with db_session() as s:
        task = load_task(s, task_id)
        city_id, meeting_id = task.city_id, task.meeting_id

        meeting = MeetingRepository(s).get(city_id=city_id, meeting_id=meeting_id)
        if meeting is None:
            raise NotFoundError(
                "Council meeting not found",
                details={"city_id": city_id, "meeting_id": meeting_id},
            )
        meeting.video_url = result.get("videoUrl") or meeting.video_url
        meeting.audio_url = result.get("audioUrl") or meeting.audio_url
        if result.get("muxPlaybackId"):
            meeting.mux_playback_id = result["muxPlaybackId"]

        if force:
            delete_transcript(s, city_id=city_id, meeting_id=meeting_id)

        matches = {
            sp.get("speaker"): sp.get("match")
            for sp in speakers
            if isinstance(sp, dict) and sp.get("match")
        }
        known_people = PersonRepository(s).ids_in_city(
            person_ids=list(matches.values()), city_id=city_id
        )
        for speaker, person_id in matches.items():
            if person_id not in known_people:
                log.warning(
                    "transcribe_unknown_person_match",
                    extra={"payload": {"task_id": task_id, "speaker": speaker, "person_id": person_id}},
                )

        tags: dict[Any, SpeakerTag] = {}
        segment: SpeakerSegment | None = None
        segments = 0
        for u in utterances:
            speaker = u.get("speaker")
            if speaker not in tags:
                person_id = matches.get(speaker)
                tags[speaker] = SpeakerTag(
                    id=new_entity_id(),
                    label=f"SPEAKER_{speaker}",
                    person_id=person_id if person_id in known_people else None,
                )
                s.add(tags[speaker])
                s.flush()

            tag = tags[speaker]
            if segment is None or segment.speaker_tag_id != tag.id:
                segment = SpeakerSegment(
                    id=new_entity_id(),
                    city_id=city_id,
                    meeting_id=meeting_id,
                    speaker_tag_id=tag.id,
                    start_timestamp=float(u.get("start") or 0),
                    end_timestamp=float(u.get("end") or 0),
                    topic_labels=[],
                )
                s.add(segment)
                s.flush()
                segments += 1

            segment.end_timestamp = float(u.get("end") or segment.end_timestamp)
            segment.utterances.append(
                Utterance(
                    id=new_entity_id(),
                    start_timestamp=float(u.get("start") or 0),
                    end_timestamp=float(u.get("end") or 0),
                    text=u.get("text") or "",
                    uncertain=bool(u.get("uncertain", False)),
                )
            )

    log.info(
        "transcribe_result_applied",
        extra={
            "payload": {
                "task_id": task_id,
                "speaker_tags": len(tags),
                "segments": segments,
                "utterances": len(utterances),
                "force": force,
            }
        },
    )
