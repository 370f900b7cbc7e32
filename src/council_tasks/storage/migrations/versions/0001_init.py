"""
Инициальная миграция.

Создаёт таблицы:
- cities, administrative_bodies, council_meetings, people, topics, locations
- speaker_tags, speaker_segments, utterances
- subjects, highlights, highlighted_utterances
- podcast_specs, podcast_parts, podcast_part_utterances, voice_prints
- task_statuses, decisions, notifications
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _id() -> sa.Column:
    return sa.Column("id", sa.String(length=64), primary_key=True)


def _meeting_scope() -> list:
    return [
        sa.Column("city_id", sa.String(length=64), nullable=False),
        sa.Column("meeting_id", sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(
            ["city_id", "meeting_id"],
            ["council_meetings.city_id", "council_meetings.id"],
            ondelete="CASCADE",
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "cities",
        _id(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("diavgeia_uid", sa.String(length=64), nullable=True),
    )
    op.create_table(
        "administrative_bodies",
        _id(),
        sa.Column("city_id", sa.String(length=64), sa.ForeignKey("cities.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("diavgeia_unit_ids", sa.JSON(), nullable=False),
        sa.Column("notification_behavior", sa.String(length=32), nullable=False),
    )
    op.create_table(
        "council_meetings",
        sa.Column("city_id", sa.String(length=64), sa.ForeignKey("cities.id"), primary_key=True),
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("date_time", sa.DateTime(), nullable=False),
        sa.Column(
            "administrative_body_id",
            sa.String(length=64),
            sa.ForeignKey("administrative_bodies.id"),
            nullable=True,
        ),
        sa.Column("video_url", sa.Text(), nullable=True),
        sa.Column("audio_url", sa.Text(), nullable=True),
        sa.Column("mux_playback_id", sa.String(length=128), nullable=True),
        sa.Column("search_synced_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "people",
        _id(),
        sa.Column("city_id", sa.String(length=64), sa.ForeignKey("cities.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
    )
    op.create_table(
        "topics",
        _id(),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("color", sa.String(length=16), nullable=False),
    )
    op.create_table(
        "locations",
        _id(),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lng", sa.Float(), nullable=False),
    )

    op.create_table(
        "speaker_tags",
        _id(),
        sa.Column("label", sa.String(length=64), nullable=False),
        sa.Column("person_id", sa.String(length=64), sa.ForeignKey("people.id"), nullable=True),
    )
    op.create_table(
        "speaker_segments",
        _id(),
        *_meeting_scope(),
        sa.Column(
            "speaker_tag_id", sa.String(length=64), sa.ForeignKey("speaker_tags.id"), nullable=False
        ),
        sa.Column("start_timestamp", sa.Float(), nullable=False),
        sa.Column("end_timestamp", sa.Float(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("topic_labels", sa.JSON(), nullable=False),
    )
    op.create_index("ix_speaker_segments_meeting", "speaker_segments", ["city_id", "meeting_id"])
    op.create_table(
        "utterances",
        _id(),
        sa.Column(
            "speaker_segment_id",
            sa.String(length=64),
            sa.ForeignKey("speaker_segments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("start_timestamp", sa.Float(), nullable=False),
        sa.Column("end_timestamp", sa.Float(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("uncertain", sa.Boolean(), nullable=False),
        sa.Column("last_modified_by", sa.String(length=32), nullable=True),
    )

    op.create_table(
        "subjects",
        _id(),
        *_meeting_scope(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("agenda_item_index", sa.Integer(), nullable=True),
        sa.Column("topic_id", sa.String(length=64), sa.ForeignKey("topics.id"), nullable=True),
        sa.Column("location_id", sa.String(length=64), sa.ForeignKey("locations.id"), nullable=True),
    )
    op.create_index("ix_subjects_meeting", "subjects", ["city_id", "meeting_id"])
    op.create_table(
        "highlights",
        _id(),
        *_meeting_scope(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column(
            "subject_id",
            sa.String(length=64),
            sa.ForeignKey("subjects.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("video_url", sa.Text(), nullable=True),
        sa.Column("mux_playback_id", sa.String(length=128), nullable=True),
    )
    op.create_table(
        "highlighted_utterances",
        _id(),
        sa.Column(
            "highlight_id",
            sa.String(length=64),
            sa.ForeignKey("highlights.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "utterance_id",
            sa.String(length=64),
            sa.ForeignKey("utterances.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )

    op.create_table(
        "podcast_specs",
        _id(),
        *_meeting_scope(),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "podcast_parts",
        _id(),
        sa.Column(
            "podcast_spec_id",
            sa.String(length=64),
            sa.ForeignKey("podcast_specs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("index", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("text", sa.Text(), nullable=True),
        sa.Column("audio_segment_url", sa.Text(), nullable=True),
        sa.Column("duration", sa.Float(), nullable=True),
        sa.Column("start_timestamp", sa.Float(), nullable=True),
        sa.Column("end_timestamp", sa.Float(), nullable=True),
    )
    op.create_table(
        "podcast_part_utterances",
        _id(),
        sa.Column(
            "podcast_part_id",
            sa.String(length=64),
            sa.ForeignKey("podcast_parts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "utterance_id",
            sa.String(length=64),
            sa.ForeignKey("utterances.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    op.create_table(
        "voice_prints",
        _id(),
        sa.Column(
            "person_id", sa.String(length=64), sa.ForeignKey("people.id"), nullable=False, unique=True
        ),
        sa.Column("embedding", sa.JSON(), nullable=False),
        sa.Column("source_audio_url", sa.Text(), nullable=False),
        sa.Column("source_segment_id", sa.String(length=64), nullable=True),
        sa.Column("start_timestamp", sa.Float(), nullable=True),
        sa.Column("end_timestamp", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "task_statuses",
        _id(),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        *_meeting_scope(),
        sa.Column("request_body", sa.Text(), nullable=False),
        sa.Column("response_body", sa.Text(), nullable=True),
        sa.Column("stage", sa.String(length=128), nullable=True),
        sa.Column("percent_complete", sa.Float(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_task_statuses_scope_type_status",
        "task_statuses",
        ["city_id", "meeting_id", "type", "status"],
        unique=False,
    )
    op.create_table(
        "decisions",
        _id(),
        sa.Column(
            "subject_id",
            sa.String(length=64),
            sa.ForeignKey("subjects.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("pdf_url", sa.Text(), nullable=False),
        sa.Column("ada", sa.String(length=64), nullable=True),
        sa.Column("protocol_number", sa.String(length=64), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("issue_date", sa.DateTime(), nullable=True),
        sa.Column(
            "task_id",
            sa.String(length=64),
            sa.ForeignKey("task_statuses.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "notifications",
        _id(),
        *_meeting_scope(),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("decisions")
    op.drop_index("ix_task_statuses_scope_type_status", table_name="task_statuses")
    op.drop_table("task_statuses")
    op.drop_table("voice_prints")
    op.drop_table("podcast_part_utterances")
    op.drop_table("podcast_parts")
    op.drop_table("podcast_specs")
    op.drop_table("highlighted_utterances")
    op.drop_table("highlights")
    op.drop_index("ix_subjects_meeting", table_name="subjects")
    op.drop_table("subjects")
    op.drop_table("utterances")
    op.drop_index("ix_speaker_segments_meeting", table_name="speaker_segments")
    op.drop_table("speaker_segments")
    op.drop_table("speaker_tags")
    op.drop_table("locations")
    op.drop_table("topics")
    op.drop_table("people")
    op.drop_table("council_meetings")
    op.drop_table("administrative_bodies")
    op.drop_table("cities")
