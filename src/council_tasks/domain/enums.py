"""
Доменные перечисления (enum).

Используются во всей системе:
- типы задач внешнего воркера
- статус задачи и события колбэков
- политика уведомлений административного органа
"""

from __future__ import annotations

import enum


class TaskType(str, enum.Enum):
    """
    Тип задачи (значение = имя endpoint'а воркера).
    """

    transcribe = "transcribe"
    summarize = "summarize"
    fix_transcript = "fixTranscript"
    process_agenda = "processAgenda"
    generate_podcast_spec = "generatePodcastSpec"
    split_media_file = "splitMediaFile"
    generate_voiceprint = "generateVoiceprint"
    sync_elasticsearch = "syncElasticsearch"
    generate_highlight = "generateHighlight"
    poll_decisions = "pollDecisions"
    human_review = "humanReview"


class TaskStatus(str, enum.Enum):
    """
    Персистентный статус задачи.
    """

    pending = "pending"
    succeeded = "succeeded"
    failed = "failed"


class TaskEvent(str, enum.Enum):
    """
    События, двигающие задачу по машине состояний.
    """

    progress = "progress"
    success = "success"
    error = "error"
    result_processing_failed = "result_processing_failed"


class BlockedReason(str, enum.Enum):
    already_succeeded = "already_succeeded"
    already_running = "already_running"


class NotificationBehavior(str, enum.Enum):
    """
    Политика уведомлений административного органа после обработки повестки.
    """

    disabled = "NOTIFICATIONS_DISABLED"
    approval = "NOTIFICATIONS_APPROVAL"
    auto = "NOTIFICATIONS_AUTO"


class NotificationStatus(str, enum.Enum):
    pending = "pending"
    sent = "sent"


class PodcastPartType(str, enum.Enum):
    host = "HOST"
    audio = "AUDIO"
