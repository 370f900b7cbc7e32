"""
ORM-модели базы данных.

Назначение:
- Журнал задач внешнего воркера (task_statuses)
- Доменные сущности, которые меняют обработчики результатов
- Решения из реестра, найденные опросом
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from council_tasks.common.ids import new_entity_id, new_task_id
from council_tasks.common.time import utc_now_naive
from council_tasks.domain.enums import NotificationBehavior, NotificationStatus, TaskStatus


def _enum_values(enum_cls) -> list[str]:
    return [m.value for m in enum_cls]


def _meeting_fk() -> ForeignKeyConstraint:
    return ForeignKeyConstraint(
        ["city_id", "meeting_id"],
        ["council_meetings.city_id", "council_meetings.id"],
        ondelete="CASCADE",
    )


# =============================================================================
# BASE
# =============================================================================
class Base(DeclarativeBase):
    pass


# =============================================================================
# ГОРОД / ОРГАН / ЗАСЕДАНИЕ
# =============================================================================
class City(Base):
    __tablename__ = "cities"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), default="Europe/Athens", nullable=False)
    # идентификатор организации в реестре решений; None = опрос недоступен
    diavgeia_uid: Mapped[str | None] = mapped_column(String(64), nullable=True)


class AdministrativeBody(Base):
    __tablename__ = "administrative_bodies"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    city_id: Mapped[str] = mapped_column(ForeignKey("cities.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    diavgeia_unit_ids: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    notification_behavior: Mapped[NotificationBehavior] = mapped_column(
        Enum(
            NotificationBehavior,
            values_callable=_enum_values,
            native_enum=False,
            length=32,
        ),
        default=NotificationBehavior.disabled,
        nullable=False,
    )


class CouncilMeeting(Base):
    """
    Заседание совета. Ключ составной: (city_id, id).
    """

    __tablename__ = "council_meetings"

    city_id: Mapped[str] = mapped_column(ForeignKey("cities.id"), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    date_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    administrative_body_id: Mapped[str | None] = mapped_column(
        ForeignKey("administrative_bodies.id"), nullable=True
    )

    video_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    audio_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    mux_playback_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    search_synced_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, nullable=False)

    city: Mapped[City] = relationship()
    administrative_body: Mapped[AdministrativeBody | None] = relationship()


class Person(Base):
    __tablename__ = "people"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    city_id: Mapped[str] = mapped_column(ForeignKey("cities.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Topic(Base):
    __tablename__ = "topics"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    color: Mapped[str] = mapped_column(String(16), default="#888888", nullable=False)


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    type: Mapped[str] = mapped_column(String(16), default="point", nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)


# =============================================================================
# ТРАНСКРИПТ
# =============================================================================
class SpeakerTag(Base):
    __tablename__ = "speaker_tags"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    label: Mapped[str] = mapped_column(String(64), nullable=False)
    person_id: Mapped[str | None] = mapped_column(ForeignKey("people.id"), nullable=True)


class SpeakerSegment(Base):
    __tablename__ = "speaker_segments"
    __table_args__ = (
        _meeting_fk(),
        Index("ix_speaker_segments_meeting", "city_id", "meeting_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    city_id: Mapped[str] = mapped_column(String(64), nullable=False)
    meeting_id: Mapped[str] = mapped_column(String(64), nullable=False)
    speaker_tag_id: Mapped[str] = mapped_column(ForeignKey("speaker_tags.id"), nullable=False)

    start_timestamp: Mapped[float] = mapped_column(Float, nullable=False)
    end_timestamp: Mapped[float] = mapped_column(Float, nullable=False)

    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    topic_labels: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    utterances: Mapped[list[Utterance]] = relationship(
        back_populates="speaker_segment",
        cascade="all, delete-orphan",
        order_by="Utterance.start_timestamp",
    )


class Utterance(Base):
    __tablename__ = "utterances"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    speaker_segment_id: Mapped[str] = mapped_column(
        ForeignKey("speaker_segments.id", ondelete="CASCADE"), nullable=False
    )

    start_timestamp: Mapped[float] = mapped_column(Float, nullable=False)
    end_timestamp: Mapped[float] = mapped_column(Float, nullable=False)
    text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    uncertain: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_modified_by: Mapped[str | None] = mapped_column(String(32), nullable=True)

    speaker_segment: Mapped[SpeakerSegment] = relationship(back_populates="utterances")


# =============================================================================
# ТЕМЫ ПОВЕСТКИ / ХАЙЛАЙТЫ
# =============================================================================
class Subject(Base):
    __tablename__ = "subjects"
    __table_args__ = (
        _meeting_fk(),
        Index("ix_subjects_meeting", "city_id", "meeting_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    city_id: Mapped[str] = mapped_column(String(64), nullable=False)
    meeting_id: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    agenda_item_index: Mapped[int | None] = mapped_column(Integer, nullable=True)

    topic_id: Mapped[str | None] = mapped_column(ForeignKey("topics.id"), nullable=True)
    location_id: Mapped[str | None] = mapped_column(ForeignKey("locations.id"), nullable=True)

    decision: Mapped[Decision | None] = relationship(back_populates="subject", uselist=False)


class Highlight(Base):
    __tablename__ = "highlights"
    __table_args__ = (_meeting_fk(),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    city_id: Mapped[str] = mapped_column(String(64), nullable=False)
    meeting_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    subject_id: Mapped[str | None] = mapped_column(
        ForeignKey("subjects.id", ondelete="SET NULL"), nullable=True
    )

    video_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    mux_playback_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    highlighted_utterances: Mapped[list[HighlightedUtterance]] = relationship(
        cascade="all, delete-orphan",
    )


class HighlightedUtterance(Base):
    __tablename__ = "highlighted_utterances"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    highlight_id: Mapped[str] = mapped_column(
        ForeignKey("highlights.id", ondelete="CASCADE"), nullable=False
    )
    utterance_id: Mapped[str] = mapped_column(
        ForeignKey("utterances.id", ondelete="CASCADE"), nullable=False
    )


# =============================================================================
# ПОДКАСТ
# =============================================================================
class PodcastSpec(Base):
    __tablename__ = "podcast_specs"
    __table_args__ = (_meeting_fk(),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    city_id: Mapped[str] = mapped_column(String(64), nullable=False)
    meeting_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, nullable=False)

    parts: Mapped[list[PodcastPart]] = relationship(
        cascade="all, delete-orphan",
        order_by="PodcastPart.index",
    )


class PodcastPart(Base):
    __tablename__ = "podcast_parts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    podcast_spec_id: Mapped[str] = mapped_column(
        ForeignKey("podcast_specs.id", ondelete="CASCADE"), nullable=False
    )
    index: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)

    audio_segment_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    start_timestamp: Mapped[float | None] = mapped_column(Float, nullable=True)
    end_timestamp: Mapped[float | None] = mapped_column(Float, nullable=True)

    part_utterances: Mapped[list[PodcastPartUtterance]] = relationship(
        cascade="all, delete-orphan",
    )


class PodcastPartUtterance(Base):
    __tablename__ = "podcast_part_utterances"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    podcast_part_id: Mapped[str] = mapped_column(
        ForeignKey("podcast_parts.id", ondelete="CASCADE"), nullable=False
    )
    utterance_id: Mapped[str] = mapped_column(
        ForeignKey("utterances.id", ondelete="CASCADE"), nullable=False
    )


# =============================================================================
# ГОЛОСОВЫЕ ОТПЕЧАТКИ
# =============================================================================
class VoicePrint(Base):
    __tablename__ = "voice_prints"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    person_id: Mapped[str] = mapped_column(ForeignKey("people.id"), unique=True, nullable=False)
    embedding: Mapped[list] = mapped_column(JSON, nullable=False)
    source_audio_url: Mapped[str] = mapped_column(Text, nullable=False)
    source_segment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    start_timestamp: Mapped[float | None] = mapped_column(Float, nullable=True)
    end_timestamp: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now_naive, onupdate=utc_now_naive, nullable=False
    )


# =============================================================================
# РЕШЕНИЯ / УВЕДОМЛЕНИЯ
# =============================================================================
class Decision(Base):
    """
    Опубликованное решение по теме повестки. Одно на тему (upsert по subject_id).
    """

    __tablename__ = "decisions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    subject_id: Mapped[str] = mapped_column(
        ForeignKey("subjects.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    pdf_url: Mapped[str] = mapped_column(Text, nullable=False)
    ada: Mapped[str | None] = mapped_column(String(64), nullable=True)
    protocol_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    issue_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # источник: задача опроса или ручной ввод
    task_id: Mapped[str | None] = mapped_column(
        ForeignKey("task_statuses.id", ondelete="SET NULL"), nullable=True
    )
    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now_naive, onupdate=utc_now_naive, nullable=False
    )

    subject: Mapped[Subject] = relationship(back_populates="decision")


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (_meeting_fk(),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_entity_id)
    city_id: Mapped[str] = mapped_column(String(64), nullable=False)
    meeting_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[NotificationStatus] = mapped_column(
        Enum(NotificationStatus, values_callable=_enum_values, native_enum=False, length=16),
        default=NotificationStatus.pending,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


# =============================================================================
# ЗАДАЧИ ВНЕШНЕГО ВОРКЕРА
# =============================================================================
class Task(Base):
    """
    Одна попытка выполнения задачи во внешнем воркере. Никогда не удаляется.
    """

    __tablename__ = "task_statuses"
    __table_args__ = (
        _meeting_fk(),
        Index("ix_task_statuses_scope_type_status", "city_id", "meeting_id", "type", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_task_id)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[TaskStatus] = mapped_column(
        Enum(TaskStatus, values_callable=_enum_values, native_enum=False, length=16),
        default=TaskStatus.pending,
        nullable=False,
    )

    city_id: Mapped[str] = mapped_column(String(64), nullable=False)
    meeting_id: Mapped[str] = mapped_column(String(64), nullable=False)

    request_body: Mapped[str] = mapped_column(Text, default="{}", nullable=False)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)

    stage: Mapped[str | None] = mapped_column(String(128), nullable=True)
    percent_complete: Mapped[float | None] = mapped_column(Float, nullable=True)
    version: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now_naive, onupdate=utc_now_naive, nullable=False
    )
