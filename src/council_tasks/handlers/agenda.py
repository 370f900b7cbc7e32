"""
Результаты summarize и processAgenda.

Темы встречи заменяются целиком внутри одной транзакции (delete-then-recreate),
поэтому повторное применение того же результата не плодит дубликаты.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from council_tasks.common.ids import new_entity_id
from council_tasks.common.logging import get_tasks_logger
from council_tasks.services.meeting_notifications import create_notifications_for_meeting
from council_tasks.storage.db import db_session
from council_tasks.storage.models import (
    Decision,
    Highlight,
    HighlightedUtterance,
    Location,
    SpeakerSegment,
    Subject,
    Topic,
    Utterance,
)

from .base import load_task, require_list

log = get_tasks_logger()


def _delete_subjects(session: Session, *, city_id: str, meeting_id: str) -> None:
    subject_ids = select(Subject.id).where(
        Subject.city_id == city_id, Subject.meeting_id == meeting_id
    )
    highlight_ids = select(Highlight.id).where(Highlight.subject_id.in_(subject_ids))
    location_ids = [
        row[0]
        for row in session.query(Subject.location_id)
        .filter(
            Subject.city_id == city_id,
            Subject.meeting_id == meeting_id,
            Subject.location_id.is_not(None),
        )
        .all()
    ]

    session.query(HighlightedUtterance).filter(
        HighlightedUtterance.highlight_id.in_(highlight_ids)
    ).delete(synchronize_session=False)
    session.query(Highlight).filter(Highlight.subject_id.in_(subject_ids)).delete(
        synchronize_session=False
    )
    session.query(Decision).filter(Decision.subject_id.in_(subject_ids)).delete(
        synchronize_session=False
    )
    session.query(Subject).filter(
        Subject.city_id == city_id, Subject.meeting_id == meeting_id
    ).delete(synchronize_session=False)
    if location_ids:
        session.query(Location).filter(Location.id.in_(location_ids)).delete(
            synchronize_session=False
        )


def _location_from(payload: Any) -> Location | None:
    if not isinstance(payload, dict):
        return None
    coords = payload.get("coordinates")
    if not isinstance(coords, (list, tuple)) or len(coords) != 2:
        return None
    lat, lng = coords
    return Location(
        id=new_entity_id(),
        type="point",
        text=str(payload.get("text") or ""),
        lat=float(lat),
        lng=float(lng),
    )


def replace_subjects(
    session: Session,
    *,
    city_id: str,
    meeting_id: str,
    subjects: list[dict],
) -> int:
    """
    Удаляет темы встречи (с хайлайтами, решениями и локациями) и создаёт заново.
    Неизвестные темы-ярлыки и чужие/несуществующие реплики пропускаются.
    """
    _delete_subjects(session, city_id=city_id, meeting_id=meeting_id)

    topics = {t.name: t.id for t in session.query(Topic).all()}
    known_utterances = {
        row[0]
        for row in session.query(Utterance.id)
        .join(SpeakerSegment, SpeakerSegment.id == Utterance.speaker_segment_id)
        .filter(SpeakerSegment.city_id == city_id, SpeakerSegment.meeting_id == meeting_id)
        .all()
    }

    created = 0
    for payload in subjects:
        location = _location_from(payload.get("location"))
        if location is not None:
            session.add(location)
            session.flush()

        topic_label = payload.get("topicLabel")
        topic_id = topics.get(topic_label) if topic_label else None
        if topic_label and topic_id is None:
            log.info("subject_topic_not_found", extra={"payload": {"topic": topic_label}})

        subject = Subject(
            id=new_entity_id(),
            city_id=city_id,
            meeting_id=meeting_id,
            name=payload.get("name") or "",
            description=payload.get("description") or "",
            agenda_item_index=payload.get("agendaItemIndex"),
            topic_id=topic_id,
            location_id=location.id if location is not None else None,
        )
        session.add(subject)
        session.flush()
        created += 1

        utterance_ids = [
            uid for uid in (payload.get("highlightedUtteranceIds") or []) if uid in known_utterances
        ]
        if utterance_ids:
            highlight = Highlight(
                id=new_entity_id(),
                city_id=city_id,
                meeting_id=meeting_id,
                name=subject.name,
                subject_id=subject.id,
            )
            highlight.highlighted_utterances = [
                HighlightedUtterance(id=new_entity_id(), utterance_id=uid) for uid in utterance_ids
            ]
            session.add(highlight)

    session.flush()
    return created


def handle_summarize_result(task_id: str, result: Any, *, force: bool = False) -> None:
    summaries = result.get("speakerSegmentSummaries") or []

    with db_session() as s:
        task = load_task(s, task_id)
        city_id, meeting_id = task.city_id, task.meeting_id

        segments = {
            seg.id: seg
            for seg in s.query(SpeakerSegment)
            .filter(SpeakerSegment.city_id == city_id, SpeakerSegment.meeting_id == meeting_id)
            .all()
        }
        topic_names = {row[0] for row in s.query(Topic.name).all()}

        updated = 0
        for item in summaries:
            seg = segments.get(item.get("speakerSegmentId"))
            if seg is None:
                log.info(
                    "summarize_segment_not_found",
                    extra={"payload": {"task_id": task_id, "segment_id": item.get("speakerSegmentId")}},
                )
                continue
            seg.summary = item.get("summary") or ""
            labels = item.get("topicLabels")
            if labels is not None:
                seg.topic_labels = [x for x in labels if x in topic_names]
            updated += 1

        subjects_created = None
        if "subjects" in result:
            subjects_created = replace_subjects(
                s,
                city_id=city_id,
                meeting_id=meeting_id,
                subjects=require_list(result, "subjects"),
            )

    log.info(
        "summarize_result_applied",
        extra={
            "payload": {
                "task_id": task_id,
                "segments_updated": updated,
                "subjects_created": subjects_created,
            }
        },
    )


def handle_process_agenda_result(task_id: str, result: Any, *, force: bool = False) -> None:
    subjects = require_list(result, "subjects")

    with db_session() as s:
        task = load_task(s, task_id)
        city_id, meeting_id = task.city_id, task.meeting_id
        created = replace_subjects(s, city_id=city_id, meeting_id=meeting_id, subjects=subjects)

    log.info(
        "process_agenda_result_applied",
        extra={"payload": {"task_id": task_id, "subjects_created": created}},
    )

    try:
        create_notifications_for_meeting(city_id, meeting_id)
    except Exception:
        log.exception(
            "meeting_notifications_failed",
            extra={"payload": {"task_id": task_id, "city_id": city_id, "meeting_id": meeting_id}},
        )
