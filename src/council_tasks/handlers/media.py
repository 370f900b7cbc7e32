"""
Результаты медиа-задач: generatePodcastSpec, splitMediaFile, generateHighlight.
"""

from __future__ import annotations

from typing import Any

from council_tasks.common.errors import NotFoundError
from council_tasks.common.ids import new_entity_id
from council_tasks.common.logging import get_tasks_logger
from council_tasks.domain.enums import PodcastPartType
from council_tasks.storage.db import db_session
from council_tasks.storage.models import (
    Highlight,
    PodcastPart,
    PodcastPartUtterance,
    PodcastSpec,
    SpeakerSegment,
    Utterance,
)

from .base import load_task, require_list

log = get_tasks_logger()


def handle_generate_podcast_spec_result(task_id: str, result: Any, *, force: bool = False) -> None:
    parts = require_list(result, "parts")

    with db_session() as s:
        task = load_task(s, task_id)
        known_utterances = {
            row[0]
            for row in s.query(Utterance.id)
            .join(SpeakerSegment, SpeakerSegment.id == Utterance.speaker_segment_id)
            .filter(
                SpeakerSegment.city_id == task.city_id,
                SpeakerSegment.meeting_id == task.meeting_id,
            )
            .all()
        }

        spec = PodcastSpec(id=new_entity_id(), city_id=task.city_id, meeting_id=task.meeting_id)
        for index, part in enumerate(parts):
            if part.get("type") == "host":
                spec.parts.append(
                    PodcastPart(
                        id=new_entity_id(),
                        index=index,
                        type=PodcastPartType.host.value,
                        text=part.get("text") or "",
                    )
                )
                continue

            audio = PodcastPart(id=new_entity_id(), index=index, type=PodcastPartType.audio.value)
            audio.part_utterances = [
                PodcastPartUtterance(id=new_entity_id(), utterance_id=uid)
                for uid in (part.get("utteranceIds") or [])
                if uid in known_utterances
            ]
            spec.parts.append(audio)
        s.add(spec)
        spec_id = spec.id

    log.info(
        "podcast_spec_saved",
        extra={"payload": {"task_id": task_id, "podcast_spec_id": spec_id, "parts": len(parts)}},
    )


def handle_split_media_file_result(task_id: str, result: Any, *, force: bool = False) -> None:
    parts = require_list(result, "parts")

    updated = 0
    with db_session() as s:
        task = load_task(s, task_id)
        by_id = {
            p.id: p
            for p in s.query(PodcastPart)
            .join(PodcastSpec, PodcastSpec.id == PodcastPart.podcast_spec_id)
            .filter(
                PodcastPart.id.in_([x.get("id") for x in parts]),
                PodcastSpec.city_id == task.city_id,
                PodcastSpec.meeting_id == task.meeting_id,
            )
            .all()
        }
        for item in parts:
            part = by_id.get(item.get("id"))
            if part is None:
                raise NotFoundError(
                    "Podcast part not found",
                    details={"task_id": task_id, "part_id": item.get("id")},
                )
            part.audio_segment_url = item.get("audioUrl")
            part.duration = item.get("duration")
            part.start_timestamp = item.get("startTimestamp")
            part.end_timestamp = item.get("endTimestamp")
            updated += 1

    log.info("podcast_parts_updated", extra={"payload": {"task_id": task_id, "parts": updated}})


def handle_generate_highlight_result(task_id: str, result: Any, *, force: bool = False) -> None:
    # воркер получает по одному хайлайту за задачу: берём первую часть
    parts = require_list(result, "parts")
    if not parts:
        return
    part = parts[0]

    with db_session() as s:
        task = load_task(s, task_id)
        highlight = s.get(Highlight, part.get("id"))
        if (
            highlight is None
            or highlight.city_id != task.city_id
            or highlight.meeting_id != task.meeting_id
        ):
            raise NotFoundError(
                "Highlight not found",
                details={"task_id": task_id, "highlight_id": part.get("id")},
            )
        highlight.video_url = part.get("url")
        if part.get("muxPlaybackId"):
            highlight.mux_playback_id = part["muxPlaybackId"]

    log.info(
        "highlight_media_attached",
        extra={"payload": {"task_id": task_id, "highlight_id": part.get("id")}},
    )
