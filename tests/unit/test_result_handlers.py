from __future__ import annotations

import json

import pytest

from council_tasks.common.errors import NotFoundError, ValidationError
from council_tasks.domain.enums import NotificationBehavior, NotificationStatus, TaskType
from council_tasks.handlers.agenda import handle_process_agenda_result, handle_summarize_result
from council_tasks.handlers.fix_transcript import handle_fix_transcript_result
from council_tasks.handlers.media import (
    handle_generate_highlight_result,
    handle_generate_podcast_spec_result,
    handle_split_media_file_result,
)
from council_tasks.handlers.search_index import handle_sync_elasticsearch_result
from council_tasks.handlers.transcribe import handle_transcribe_result
from council_tasks.handlers.voiceprint import handle_generate_voiceprint_result
from council_tasks.storage.db import db_session
from council_tasks.storage.models import (
    CouncilMeeting,
    Decision,
    Highlight,
    HighlightedUtterance,
    Location,
    Notification,
    Person,
    PodcastPart,
    PodcastSpec,
    SpeakerSegment,
    SpeakerTag,
    Subject,
    Topic,
    Utterance,
    VoicePrint,
)


def _count(model) -> int:
    with db_session() as s:
        return s.query(model).count()


def _add(*objs) -> None:
    with db_session() as s:
        for obj in objs:
            s.add(obj)
            s.flush()


def _transcribe_result(person_id: str | None = None) -> dict:
    speakers = [{"speaker": 0, "match": person_id}, {"speaker": 1}]
    return {
        "videoUrl": "https://cdn.test/v.mp4",
        "audioUrl": "https://cdn.test/a.mp3",
        "muxPlaybackId": "mux-1",
        "transcript": {
            "transcription": {
                "speakers": speakers,
                "utterances": [
                    {"speaker": 0, "start": 0, "end": 1, "text": "Καλησπέρα σας"},
                    {"speaker": 0, "start": 1, "end": 2, "text": "Ξεκινάμε"},
                    {"speaker": 1, "start": 2, "end": 3, "text": "Ευχαριστώ", "uncertain": True},
                    {"speaker": 0, "start": 3, "end": 4, "text": "Πρώτο θέμα"},
                ],
            }
        },
    }


@pytest.fixture()
def transcribed(make_meeting, make_task):
    city_id, meeting_id = make_meeting()
    task_id = make_task(city_id, meeting_id, TaskType.transcribe)
    handle_transcribe_result(task_id, _transcribe_result())
    return city_id, meeting_id


def _utterance_ids() -> list[str]:
    with db_session() as s:
        return [u.id for u in s.query(Utterance).order_by(Utterance.start_timestamp).all()]


# =============================================================================
# TRANSCRIBE
# =============================================================================
def test_transcribe_builds_segments(make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting()
    _add(Person(id="p-1", city_id=city_id, name="Δήμαρχος"))
    task_id = make_task(city_id, meeting_id, TaskType.transcribe)

    handle_transcribe_result(task_id, _transcribe_result("p-1"))

    assert _count(SpeakerTag) == 2
    assert _count(SpeakerSegment) == 3
    assert _count(Utterance) == 4
    with db_session() as s:
        meeting = s.get(CouncilMeeting, (city_id, meeting_id))
        assert meeting.video_url == "https://cdn.test/v.mp4"
        assert meeting.mux_playback_id == "mux-1"
        tag = s.query(SpeakerTag).filter(SpeakerTag.label == "SPEAKER_0").one()
        assert tag.person_id == "p-1"
        assert s.query(Utterance).filter(Utterance.uncertain.is_(True)).count() == 1


def test_transcribe_ignores_person_from_other_city(make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting()
    make_meeting(city_id="city-2", meeting_id="m-2")
    _add(Person(id="p-foreign", city_id="city-2", name="Άλλος"))
    task_id = make_task(city_id, meeting_id, TaskType.transcribe)

    handle_transcribe_result(task_id, _transcribe_result("p-foreign"))

    with db_session() as s:
        assert all(t.person_id is None for t in s.query(SpeakerTag).all())


def test_transcribe_force_replaces_transcript(transcribed, make_task) -> None:
    city_id, meeting_id = transcribed
    task_id = make_task(city_id, meeting_id, TaskType.transcribe)

    handle_transcribe_result(task_id, _transcribe_result(), force=True)

    assert _count(SpeakerSegment) == 3
    assert _count(SpeakerTag) == 2
    assert _count(Utterance) == 4


def test_transcribe_without_force_appends(transcribed, make_task) -> None:
    city_id, meeting_id = transcribed
    task_id = make_task(city_id, meeting_id, TaskType.transcribe)

    handle_transcribe_result(task_id, _transcribe_result())
    assert _count(SpeakerSegment) == 6


# =============================================================================
# SUMMARIZE / PROCESS AGENDA
# =============================================================================
def _subjects_payload(utterance_ids: list[str]) -> list[dict]:
    return [
        {
            "name": "Ανάπλαση πλατείας",
            "description": "Έγκριση μελέτης",
            "agendaItemIndex": 1,
            "topicLabel": "Περιβάλλον",
            "location": {"text": "Πλατεία Συντάγματος", "coordinates": [37.97, 23.73]},
            "highlightedUtteranceIds": utterance_ids[:2] + ["missing-utterance"],
        },
        {
            "name": "Εκτός ημερησίας",
            "description": "",
            "topicLabel": "Άγνωστο",
        },
    ]


def test_summarize_updates_segments_and_subjects(transcribed, make_task) -> None:
    city_id, meeting_id = transcribed
    _add(Topic(name="Περιβάλλον"))
    with db_session() as s:
        segment_id = s.query(SpeakerSegment.id).order_by(SpeakerSegment.start_timestamp).first()[0]
    task_id = make_task(city_id, meeting_id, TaskType.summarize)

    handle_summarize_result(
        task_id,
        {
            "speakerSegmentSummaries": [
                {
                    "speakerSegmentId": segment_id,
                    "summary": "Έναρξη συνεδρίασης",
                    "topicLabels": ["Περιβάλλον", "Άγνωστο"],
                },
                {"speakerSegmentId": "foreign-segment", "summary": "x"},
            ],
            "subjects": _subjects_payload(_utterance_ids()),
        },
    )

    with db_session() as s:
        segment = s.get(SpeakerSegment, segment_id)
        assert segment.summary == "Έναρξη συνεδρίασης"
        assert segment.topic_labels == ["Περιβάλλον"]

        subjects = {x.name: x for x in s.query(Subject).all()}
        assert set(subjects) == {"Ανάπλαση πλατείας", "Εκτός ημερησίας"}
        assert subjects["Ανάπλαση πλατείας"].topic_id is not None
        assert subjects["Ανάπλαση πλατείας"].location_id is not None
        assert subjects["Εκτός ημερησίας"].topic_id is None
        assert subjects["Εκτός ημερησίας"].agenda_item_index is None
    assert _count(HighlightedUtterance) == 2


def test_process_agenda_replay_does_not_duplicate(transcribed, make_task) -> None:
    city_id, meeting_id = transcribed
    task_id = make_task(city_id, meeting_id, TaskType.process_agenda)
    result = {"subjects": _subjects_payload(_utterance_ids())}

    handle_process_agenda_result(task_id, result)
    handle_process_agenda_result(task_id, result)

    assert _count(Subject) == 2
    assert _count(Location) == 1
    assert _count(Highlight) == 1
    assert _count(HighlightedUtterance) == 2


def test_process_agenda_replacement_drops_old_decisions(
    make_meeting, make_subject, make_task
) -> None:
    city_id, meeting_id = make_meeting()
    old = make_subject(city_id, meeting_id, name="Παλιό θέμα")
    _add(Decision(subject_id=old, pdf_url="https://d/old.pdf"))
    task_id = make_task(city_id, meeting_id, TaskType.process_agenda)

    handle_process_agenda_result(task_id, {"subjects": [{"name": "Νέο θέμα"}]})

    assert _count(Decision) == 0
    with db_session() as s:
        assert [x.name for x in s.query(Subject).all()] == ["Νέο θέμα"]


def test_process_agenda_rejects_non_list(make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting()
    task_id = make_task(city_id, meeting_id, TaskType.process_agenda)

    with pytest.raises(ValidationError) as e:
        handle_process_agenda_result(task_id, {"subjects": "nope"})
    assert e.value.message == "Invalid response format: subjects should be an array"


def test_process_agenda_creates_pending_notification(make_meeting, make_task, alerts) -> None:
    city_id, meeting_id = make_meeting(behavior=NotificationBehavior.approval)
    task_id = make_task(city_id, meeting_id, TaskType.process_agenda)

    handle_process_agenda_result(task_id, {"subjects": []})
    handle_process_agenda_result(task_id, {"subjects": []})

    with db_session() as s:
        notifications = s.query(Notification).all()
        assert len(notifications) == 1
        assert notifications[0].status == NotificationStatus.pending
    assert alerts.kinds() == ["notifications_created"]


def test_process_agenda_auto_sends_notification(make_meeting, make_task, alerts) -> None:
    city_id, meeting_id = make_meeting(behavior=NotificationBehavior.auto)
    task_id = make_task(city_id, meeting_id, TaskType.process_agenda)

    handle_process_agenda_result(task_id, {"subjects": []})

    with db_session() as s:
        n = s.query(Notification).one()
        assert n.status == NotificationStatus.sent
        assert n.sent_at is not None
    assert alerts.kinds() == ["notifications_sent"]


def test_process_agenda_notifications_disabled(make_meeting, make_task, alerts) -> None:
    city_id, meeting_id = make_meeting()
    task_id = make_task(city_id, meeting_id, TaskType.process_agenda)

    handle_process_agenda_result(task_id, {"subjects": []})

    assert _count(Notification) == 0
    assert alerts.kinds() == []


def test_notification_failure_does_not_fail_agenda(monkeypatch, make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting(behavior=NotificationBehavior.approval)
    task_id = make_task(city_id, meeting_id, TaskType.process_agenda)

    def _boom(*args, **kwargs):
        raise RuntimeError("notifications down")

    monkeypatch.setattr("council_tasks.handlers.agenda.create_notifications_for_meeting", _boom)

    handle_process_agenda_result(task_id, {"subjects": [{"name": "Θέμα"}]})
    assert _count(Subject) == 1


# =============================================================================
# FIX TRANSCRIPT
# =============================================================================
def test_fix_transcript_applies_known_corrections(transcribed, make_task) -> None:
    city_id, meeting_id = transcribed
    first, second = _utterance_ids()[:2]
    task_id = make_task(city_id, meeting_id, TaskType.fix_transcript)

    handle_fix_transcript_result(
        task_id,
        {
            "corrections": [
                {"utteranceId": first, "correctedText": "Καλησπέρα σε όλους"},
                {"utteranceId": second, "markUncertain": True},
                {"utteranceId": "gone", "correctedText": "x"},
            ]
        },
    )

    with db_session() as s:
        u1 = s.get(Utterance, first)
        u2 = s.get(Utterance, second)
        assert u1.text == "Καλησπέρα σε όλους"
        assert u1.last_modified_by == "task"
        assert u2.uncertain is True
        assert u2.text == "Ξεκινάμε"


def test_fix_transcript_ignores_other_meeting(transcribed, make_meeting, make_task) -> None:
    _, other = make_meeting(meeting_id="other")
    first = _utterance_ids()[0]
    task_id = make_task("city-1", other, TaskType.fix_transcript)

    handle_fix_transcript_result(
        task_id, {"corrections": [{"utteranceId": first, "correctedText": "hijack"}]}
    )

    with db_session() as s:
        assert s.get(Utterance, first).text == "Καλησπέρα σας"


# =============================================================================
# MEDIA
# =============================================================================
def test_podcast_spec_parts(transcribed, make_task) -> None:
    city_id, meeting_id = transcribed
    ids = _utterance_ids()
    task_id = make_task(city_id, meeting_id, TaskType.generate_podcast_spec)

    handle_generate_podcast_spec_result(
        task_id,
        {
            "parts": [
                {"type": "host", "text": "Καλώς ήρθατε"},
                {"type": "audio", "utteranceIds": [ids[0], "missing"]},
            ]
        },
    )

    with db_session() as s:
        spec = s.query(PodcastSpec).one()
        assert [p.type for p in spec.parts] == ["HOST", "AUDIO"]
        assert spec.parts[0].text == "Καλώς ήρθατε"
        assert [x.utterance_id for x in spec.parts[1].part_utterances] == [ids[0]]


def test_split_media_file_updates_parts(transcribed, make_task) -> None:
    city_id, meeting_id = transcribed
    spec_task = make_task(city_id, meeting_id, TaskType.generate_podcast_spec)
    handle_generate_podcast_spec_result(spec_task, {"parts": [{"type": "audio", "utteranceIds": []}]})
    with db_session() as s:
        part_id = s.query(PodcastPart.id).one()[0]
    task_id = make_task(city_id, meeting_id, TaskType.split_media_file)

    handle_split_media_file_result(
        task_id,
        {
            "parts": [
                {
                    "id": part_id,
                    "audioUrl": "https://cdn.test/part.mp3",
                    "duration": 12.5,
                    "startTimestamp": 1.0,
                    "endTimestamp": 13.5,
                }
            ]
        },
    )

    with db_session() as s:
        part = s.get(PodcastPart, part_id)
        assert part.audio_segment_url == "https://cdn.test/part.mp3"
        assert part.duration == 12.5


def test_split_media_file_unknown_part(make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting()
    task_id = make_task(city_id, meeting_id, TaskType.split_media_file)

    with pytest.raises(NotFoundError):
        handle_split_media_file_result(task_id, {"parts": [{"id": "missing"}]})
    with pytest.raises(ValidationError):
        handle_split_media_file_result(task_id, {"parts": None})


def test_generate_highlight_uses_first_part(make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting()
    _add(Highlight(id="h-1", city_id=city_id, meeting_id=meeting_id, name="Στιγμιότυπο"))
    task_id = make_task(city_id, meeting_id, TaskType.generate_highlight)

    handle_generate_highlight_result(
        task_id,
        {
            "parts": [
                {"id": "h-1", "url": "https://cdn.test/h1.mp4", "muxPlaybackId": "mux-h1"},
                {"id": "h-2", "url": "https://cdn.test/h2.mp4"},
            ]
        },
    )

    with db_session() as s:
        h = s.get(Highlight, "h-1")
        assert h.video_url == "https://cdn.test/h1.mp4"
        assert h.mux_playback_id == "mux-h1"


def test_generate_highlight_empty_and_foreign(make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting()
    _, other = make_meeting(meeting_id="other")
    _add(Highlight(id="h-other", city_id=city_id, meeting_id=other, name="Ξένο"))
    task_id = make_task(city_id, meeting_id, TaskType.generate_highlight)

    handle_generate_highlight_result(task_id, {"parts": []})
    with pytest.raises(NotFoundError):
        handle_generate_highlight_result(task_id, {"parts": [{"id": "h-other", "url": "u"}]})


# =============================================================================
# VOICEPRINT / SEARCH INDEX
# =============================================================================
def _voiceprint_task(make_task, city_id: str, meeting_id: str, person_id: str) -> str:
    body = {
        "personId": person_id,
        "segmentId": "seg-1",
        "startTimestamp": 10.0,
        "endTimestamp": 25.0,
    }
    return make_task(
        city_id, meeting_id, TaskType.generate_voiceprint, request_body=json.dumps(body)
    )


def test_voiceprint_upsert_per_person(make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting()
    _add(Person(id="p-1", city_id=city_id, name="Πρόεδρος"))

    first = _voiceprint_task(make_task, city_id, meeting_id, "p-1")
    handle_generate_voiceprint_result(first, {"voiceprint": [0.1, 0.2], "audioUrl": "https://a/1"})
    second = _voiceprint_task(make_task, city_id, meeting_id, "p-1")
    handle_generate_voiceprint_result(second, {"voiceprint": [0.3, 0.4, 0.5], "audioUrl": "https://a/2"})

    with db_session() as s:
        vp = s.query(VoicePrint).one()
        assert vp.person_id == "p-1"
        assert vp.embedding == [0.3, 0.4, 0.5]
        assert vp.source_audio_url == "https://a/2"
        assert vp.source_segment_id == "seg-1"
        assert vp.start_timestamp == 10.0


def test_voiceprint_rejects_foreign_person_and_bad_embedding(make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting()
    make_meeting(city_id="city-2", meeting_id="m-2")
    _add(Person(id="p-2", city_id="city-2", name="Άλλος"))
    task_id = _voiceprint_task(make_task, city_id, meeting_id, "p-2")

    with pytest.raises(NotFoundError):
        handle_generate_voiceprint_result(task_id, {"voiceprint": [0.1], "audioUrl": "u"})
    with pytest.raises(ValidationError):
        handle_generate_voiceprint_result(task_id, {"voiceprint": [], "audioUrl": "u"})
    assert _count(VoicePrint) == 0


def test_sync_elasticsearch_stamps_meeting(make_meeting, make_task) -> None:
    city_id, meeting_id = make_meeting()
    task_id = make_task(city_id, meeting_id, TaskType.sync_elasticsearch)

    handle_sync_elasticsearch_result(task_id, {"documentsIndexed": 42})

    with db_session() as s:
        assert s.get(CouncilMeeting, (city_id, meeting_id)).search_synced_at is not None
