"""
Админ-алерты о жизненном цикле задач.

Назначение:
- Единый контракт канала алертов (Discord webhook / лог)
- fire_and_forget: ошибки алертов логируются и никогда не влияют на задачу
- Режим исполнения через ALERTS_MODE: thread (фоном) или inline (тесты)
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests

from council_tasks.common.config import get_settings
from council_tasks.common.errors import ErrCode, ProviderError
from council_tasks.common.logging import get_project_logger
from council_tasks.common.time import utc_now
from council_tasks.storage.db import db_session
from council_tasks.storage.repositories import MeetingRepository

log = get_project_logger()

# Discord ограничивает длину значения поля
_FIELD_LIMIT = 1024

COLOR_BLUE = 0x0099FF
COLOR_GREEN = 0x00FF00
COLOR_RED = 0xFF0000
COLOR_ORANGE = 0xF39C12


@dataclass
class AlertEvent:
    kind: str
    title: str
    description: str
    color: int
    fields: list[tuple[str, str, bool]] = field(default_factory=list)


class AlertSink(Protocol):
    def send(self, event: AlertEvent) -> None: ...


# =============================================================================
# SINKS
# =============================================================================
class DiscordWebhookSink:
    def __init__(self, *, webhook_url: str, timeout_sec: int = 10) -> None:
        self.webhook_url = webhook_url
        self.timeout_sec = timeout_sec

    def _payload(self, event: AlertEvent) -> dict[str, Any]:
        return {
            "embeds": [
                {
                    "title": event.title,
                    "description": event.description,
                    "color": event.color,
                    "fields": [
                        {"name": name, "value": value[:_FIELD_LIMIT], "inline": inline}
                        for name, value, inline in event.fields
                    ],
                    "timestamp": utc_now().isoformat(),
                }
            ]
        }

    def send(self, event: AlertEvent) -> None:
        try:
            resp = requests.post(
                self.webhook_url,
                json=self._payload(event),
                timeout=self.timeout_sec,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise ProviderError(
                ErrCode.ALERT_PROVIDER_ERROR,
                "Ошибка отправки алерта в Discord",
                details={"kind": event.kind, "err": str(e)[:200]},
            ) from e


class LogAlertSink:
    """
    Без DISCORD_WEBHOOK_URL алерты только пишутся в лог.
    """

    def send(self, event: AlertEvent) -> None:
        log.info(
            "admin_alert",
            extra={
                "payload": {
                    "kind": event.kind,
                    "title": event.title,
                    "description": event.description,
                }
            },
        )


_SINK: AlertSink | None = None


def get_alert_sink() -> AlertSink:
    global _SINK
    if _SINK is None:
        s = get_settings()
        if s.discord_webhook_url:
            _SINK = DiscordWebhookSink(
                webhook_url=s.discord_webhook_url,
                timeout_sec=s.alerts_timeout_sec,
            )
        else:
            _SINK = LogAlertSink()
    return _SINK


def set_alert_sink(sink: AlertSink | None) -> None:
    global _SINK
    _SINK = sink


# =============================================================================
# FIRE AND FORGET
# =============================================================================
def fire_and_forget(name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    """
    Запускает побочный эффект, не дожидаясь результата. Любое исключение
    ловится и логируется здесь, вызывающий код его не увидит.

    Фоновый поток только для Postgres: с sqlite (StaticPool, одно соединение)
    эффект выполняется inline.
    """

    def _run() -> None:
        try:
            fn(*args, **kwargs)
        except Exception as e:
            log.warning(
                "side_effect_failed",
                extra={"payload": {"name": name, "err": str(e)[:300]}},
            )

    s = get_settings()
    mode = (s.alerts_mode or "thread").lower().strip()
    if mode == "inline" or (s.postgres_dsn or "").startswith("sqlite"):
        _run()
        return
    threading.Thread(target=_run, name=f"alert-{name}", daemon=True).start()


# =============================================================================
# СОБЫТИЯ
# =============================================================================
def _meeting_labels(city_id: str, meeting_id: str) -> tuple[str, str]:
    with db_session() as s:
        meeting = MeetingRepository(s).get(city_id=city_id, meeting_id=meeting_id)
        if meeting is None:
            return city_id, meeting_id
        city_name = meeting.city.name if meeting.city is not None else city_id
        return city_name, meeting.name or meeting_id


def _admin_url(city_id: str, meeting_id: str) -> str:
    base = (get_settings().public_url or "").rstrip("/")
    return f"{base}/{city_id}/{meeting_id}/admin"


def _send_task_alert(
    kind: str,
    task_id: str,
    task_type: str,
    city_id: str,
    meeting_id: str,
    error: str | None = None,
) -> None:
    city_name, meeting_name = _meeting_labels(city_id, meeting_id)
    icon, verb, color = {
        "task_started": ("▶️", "Processing", COLOR_BLUE),
        "task_completed": ("✅", "Completed", COLOR_GREEN),
        "task_failed": ("❌", "Failed", COLOR_RED),
    }[kind]

    fields = [
        ("Task Type", task_type, True),
        ("Municipality", city_name, True),
        ("Meeting", meeting_name, False),
        ("Task ID", f"`{task_id}`", False),
    ]
    if error:
        fields.append(("Error", error, False))
    fields.append(("Admin Panel", f"[Open Meeting Admin]({_admin_url(city_id, meeting_id)})", False))

    get_alert_sink().send(
        AlertEvent(
            kind=kind,
            title=f"{icon} {task_type} - {city_id}",
            description=f"{verb}: {meeting_id}",
            color=color,
            fields=fields,
        )
    )


def alert_task_started(*, task_id: str, task_type: str, city_id: str, meeting_id: str) -> None:
    fire_and_forget(
        "task_started", _send_task_alert, "task_started", task_id, task_type, city_id, meeting_id
    )


def alert_task_completed(*, task_id: str, task_type: str, city_id: str, meeting_id: str) -> None:
    fire_and_forget(
        "task_completed",
        _send_task_alert,
        "task_completed",
        task_id,
        task_type,
        city_id,
        meeting_id,
    )


def alert_task_failed(
    *,
    task_id: str,
    task_type: str,
    city_id: str,
    meeting_id: str,
    error: str | None = None,
) -> None:
    fire_and_forget(
        "task_failed",
        _send_task_alert,
        "task_failed",
        task_id,
        task_type,
        city_id,
        meeting_id,
        error,
    )


def _send_notifications_alert(kind: str, city_id: str, meeting_id: str, count: int) -> None:
    city_name, meeting_name = _meeting_labels(city_id, meeting_id)
    verb = "created (awaiting approval)" if kind == "notifications_created" else "sent"
    get_alert_sink().send(
        AlertEvent(
            kind=kind,
            title=f"🔔 Notifications {verb} - {city_id}",
            description=f"{count} notification(s) for {meeting_name}",
            color=COLOR_ORANGE,
            fields=[
                ("Municipality", city_name, True),
                ("Meeting", meeting_name, False),
                ("Admin Panel", f"[Open Meeting Admin]({_admin_url(city_id, meeting_id)})", False),
            ],
        )
    )


def alert_notifications_created(*, city_id: str, meeting_id: str, count: int) -> None:
    fire_and_forget(
        "notifications_created",
        _send_notifications_alert,
        "notifications_created",
        city_id,
        meeting_id,
        count,
    )


def alert_notifications_sent(*, city_id: str, meeting_id: str, count: int) -> None:
    fire_and_forget(
        "notifications_sent",
        _send_notifications_alert,
        "notifications_sent",
        city_id,
        meeting_id,
        count,
    )
