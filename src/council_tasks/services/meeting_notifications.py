"""
Уведомления о заседании после обработки повестки.

Политика берётся из административного органа встречи:
- NOTIFICATIONS_APPROVAL: создаём pending-уведомление (ждёт одобрения)
- NOTIFICATIONS_AUTO: создаём и сразу помечаем отправленным
- NOTIFICATIONS_DISABLED / органа нет: ничего
"""

from __future__ import annotations

from council_tasks.common.logging import get_project_logger
from council_tasks.common.time import utc_now_naive
from council_tasks.delivery.alerts import alert_notifications_created, alert_notifications_sent
from council_tasks.domain.enums import NotificationBehavior, NotificationStatus
from council_tasks.storage.db import db_session
from council_tasks.storage.repositories import MeetingRepository, NotificationRepository

log = get_project_logger()


def create_notifications_for_meeting(city_id: str, meeting_id: str) -> str:
    """
    Возвращает исход: disabled | exists | created | sent.
    """
    with db_session() as s:
        meeting = MeetingRepository(s).get(city_id=city_id, meeting_id=meeting_id)
        body = meeting.administrative_body if meeting is not None else None
        behavior = body.notification_behavior if body is not None else NotificationBehavior.disabled

        if behavior == NotificationBehavior.disabled:
            return "disabled"

        repo = NotificationRepository(s)
        if repo.exists_for_meeting(city_id=city_id, meeting_id=meeting_id):
            log.info(
                "meeting_notifications_exist",
                extra={"payload": {"city_id": city_id, "meeting_id": meeting_id}},
            )
            return "exists"

        if behavior == NotificationBehavior.auto:
            repo.create(
                city_id=city_id,
                meeting_id=meeting_id,
                status=NotificationStatus.sent,
                sent_at=utc_now_naive(),
            )
            outcome = "sent"
        else:
            repo.create(city_id=city_id, meeting_id=meeting_id, status=NotificationStatus.pending)
            outcome = "created"

    log.info(
        "meeting_notifications_" + outcome,
        extra={"payload": {"city_id": city_id, "meeting_id": meeting_id}},
    )
    if outcome == "sent":
        alert_notifications_sent(city_id=city_id, meeting_id=meeting_id, count=1)
    else:
        alert_notifications_created(city_id=city_id, meeting_id=meeting_id, count=1)
    return outcome
