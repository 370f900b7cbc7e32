from __future__ import annotations

import os

# Настройки читаются один раз при импорте council_tasks: окружение выставляем до него
os.environ["POSTGRES_DSN"] = "sqlite://"
os.environ["ALERTS_MODE"] = "inline"
os.environ["AUTH_MODE"] = "api_key"
os.environ["API_KEYS"] = "admin-key,athens-key:city-1"
os.environ["CRON_SECRET"] = "cron-secret"
os.environ["TASK_API_URL"] = "https://tasks.example.test"
os.environ["TASK_API_KEY"] = "worker-key"
os.environ["PUBLIC_URL"] = "https://council.example.test"
os.environ.pop("DISCORD_WEBHOOK_URL", None)

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import event  # noqa: E402

from council_tasks.common.security import AuthContext, acting_as  # noqa: E402
from council_tasks.common.time import utc_now_naive  # noqa: E402
from council_tasks.delivery.alerts import set_alert_sink  # noqa: E402
from council_tasks.domain.enums import NotificationBehavior, TaskStatus, TaskType  # noqa: E402
from council_tasks.storage.db import db_session, engine  # noqa: E402
from council_tasks.storage.models import (  # noqa: E402
    AdministrativeBody,
    Base,
    City,
    CouncilMeeting,
    Subject,
)
from council_tasks.storage.repositories import TaskRepository  # noqa: E402


class RecordingAlertSink:
    def __init__(self) -> None:
        self.events = []

    def send(self, event) -> None:
        self.events.append(event)

    def kinds(self) -> list[str]:
        return [e.kind for e in self.events]


class FakeTaskApiClient:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []
        self.error: Exception | None = None

    def start_task(self, task_type: str, body: dict) -> None:
        self.calls.append((task_type, body))
        if self.error is not None:
            raise self.error


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield


@pytest.fixture(autouse=True)
def alerts():
    sink = RecordingAlertSink()
    set_alert_sink(sink)
    try:
        yield sink
    finally:
        set_alert_sink(None)


@pytest.fixture()
def task_api(monkeypatch):
    client = FakeTaskApiClient()
    monkeypatch.setattr(
        "council_tasks.services.task_service.get_task_api_client",
        lambda: client,
    )
    return client


@pytest.fixture()
def admin():
    with acting_as(AuthContext(subject="service", auth_type="api_key")) as ctx:
        yield ctx


@pytest.fixture()
def query_counter():
    statements: list[str] = []

    def _before(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", _before)
    try:
        yield statements
    finally:
        event.remove(engine, "before_cursor_execute", _before)


@pytest.fixture()
def make_meeting():
    def _make(
        *,
        city_id: str = "city-1",
        meeting_id: str = "meeting-1",
        diavgeia_uid: str | None = "6104",
        behavior: NotificationBehavior = NotificationBehavior.disabled,
        unit_ids: list[str] | None = None,
        days_old: float = 3,
    ) -> tuple[str, str]:
        with db_session() as s:
            if s.get(City, city_id) is None:
                s.add(City(id=city_id, name=f"Δήμος {city_id}", diavgeia_uid=diavgeia_uid))
                s.flush()
            body = AdministrativeBody(
                id=f"body-{city_id}-{meeting_id}",
                city_id=city_id,
                name="Δημοτικό Συμβούλιο",
                diavgeia_unit_ids=unit_ids or [],
                notification_behavior=behavior,
            )
            s.add(body)
            s.flush()
            s.add(
                CouncilMeeting(
                    city_id=city_id,
                    id=meeting_id,
                    name=f"Συνεδρίαση {meeting_id}",
                    date_time=utc_now_naive() - timedelta(days=days_old),
                    administrative_body_id=body.id,
                )
            )
        return city_id, meeting_id

    return _make


@pytest.fixture()
def make_subject():
    def _make(
        city_id: str,
        meeting_id: str,
        *,
        name: str = "Έγκριση προϋπολογισμού",
        agenda_item_index: int | None = 1,
    ) -> str:
        with db_session() as s:
            subject = Subject(
                city_id=city_id,
                meeting_id=meeting_id,
                name=name,
                agenda_item_index=agenda_item_index,
            )
            s.add(subject)
            s.flush()
            return subject.id

    return _make


@pytest.fixture()
def make_task():
    def _make(
        city_id: str,
        meeting_id: str,
        task_type: TaskType,
        status: TaskStatus = TaskStatus.pending,
        *,
        request_body: str = "{}",
        response_body: str | None = None,
        created_at=None,
    ) -> str:
        with db_session() as s:
            task = TaskRepository(s).create(
                task_type=task_type,
                city_id=city_id,
                meeting_id=meeting_id,
                request_body=request_body,
            )
            task.status = status
            task.response_body = response_body
            if created_at is not None:
                task.created_at = created_at
            return task.id

    return _make
