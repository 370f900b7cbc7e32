"""
Опрос реестра решений (pollDecisions) поверх жизненного цикла задач.

Назначение:
- запуск pollDecisions для встречи (админ / cron / кнопка на теме)
- пакетный прогон по недавним встречам с backoff-политикой
- применение результата: upsert решений только для тем своей встречи
- история и статистика опроса для админки
"""

from __future__ import annotations

import json
import statistics
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from council_tasks.common.config import get_settings
from council_tasks.common.errors import NotFoundError, ValidationError
from council_tasks.common.logging import get_tasks_logger
from council_tasks.common.metrics import record_decisions_poll_run
from council_tasks.common.security import require_can_edit
from council_tasks.common.time import as_naive_utc, days_ago, days_between, iso_or_none, utc_now_naive
from council_tasks.contracts.worker_api import (
    PollDecisionsRequest,
    PollDecisionsResult,
    PollDecisionsSubject,
)
from council_tasks.domain.enums import TaskStatus, TaskType
from council_tasks.domain.polling_backoff import (
    BACKOFF_SCHEDULE,
    MAX_POLLING_DAYS,
    next_poll_eligible_at,
    should_skip_polling,
    tier_label,
)
from council_tasks.services.task_service import start_task
from council_tasks.storage.db import db_session
from council_tasks.storage.models import Task
from council_tasks.storage.repositories import (
    DecisionRepository,
    MeetingRepository,
    PollAggregate,
    SubjectRepository,
    TaskRepository,
)

log = get_tasks_logger()


# =============================================================================
# ЗАПУСК ДЛЯ ВСТРЕЧИ
# =============================================================================
def poll_decisions_for_meeting(
    city_id: str,
    meeting_id: str,
    subject_ids: list[str] | None = None,
) -> Task:
    """
    Строит запрос к воркеру и запускает pollDecisions. Права не проверяет:
    вызывается и из админки (после проверки), и из cron.
    """
    with db_session() as s:
        meeting = MeetingRepository(s).get(city_id=city_id, meeting_id=meeting_id)
        if meeting is None:
            raise NotFoundError(
                "Council meeting not found",
                details={"city_id": city_id, "meeting_id": meeting_id},
            )
        if not meeting.city.diavgeia_uid:
            raise ValidationError(
                "City does not have a Diavgeia UID configured",
                details={"city_id": city_id},
            )

        subjects = SubjectRepository(s).list_eligible(
            city_id=city_id, meeting_id=meeting_id, subject_ids=subject_ids
        )
        if not subjects:
            raise ValidationError(
                "No eligible subjects to poll (subjects must have agendaItemIndex)",
                details={"city_id": city_id, "meeting_id": meeting_id},
            )

        body = meeting.administrative_body
        unit_ids = list(body.diavgeia_unit_ids or []) if body is not None else []
        request = PollDecisionsRequest(
            meeting_date=meeting.date_time.date().isoformat(),
            diavgeia_uid=meeting.city.diavgeia_uid,
            diavgeia_unit_ids=unit_ids or None,
            subjects=[PollDecisionsSubject(subject_id=x.id, name=x.name) for x in subjects],
        )

    return start_task(TaskType.poll_decisions, request.to_body(), meeting_id, city_id)


def request_poll_decisions(
    city_id: str,
    meeting_id: str,
    subject_ids: list[str] | None = None,
) -> Task:
    require_can_edit(city_id, meeting_id)
    return poll_decisions_for_meeting(city_id, meeting_id, subject_ids)


# =============================================================================
# ПАКЕТНЫЙ ПРОГОН (CRON)
# =============================================================================
@dataclass
class MeetingPollOutcome:
    city_id: str
    meeting_id: str
    status: str  # started | skipped | error
    reason: str | None = None
    task_id: str | None = None


@dataclass
class PollBatchResult:
    meetings_processed: int = 0
    dispatched: int = 0
    skipped: int = 0
    failed: int = 0
    results: list[MeetingPollOutcome] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "meetingsProcessed": self.meetings_processed,
            "dispatched": self.dispatched,
            "skipped": self.skipped,
            "failed": self.failed,
            "results": [
                {
                    "cityId": r.city_id,
                    "meetingId": r.meeting_id,
                    "status": r.status,
                    "reason": r.reason,
                    "taskId": r.task_id,
                }
                for r in self.results
            ],
        }


def _is_max_window_reason(reason: str) -> bool:
    return f"{MAX_POLLING_DAYS}-day polling window" in reason


def _poll_aggregates(city_id: str | None = None, meeting_id: str | None = None):
    with db_session() as s:
        rows = TaskRepository(s).succeeded_aggregates(
            task_type=TaskType.poll_decisions, city_id=city_id, meeting_id=meeting_id
        )
    return {(r.city_id, r.meeting_id): r for r in rows}


def _candidate_scopes(*, now: datetime, limit: int | None) -> list[tuple[str, str]]:
    settings = get_settings()
    since = days_ago(settings.decisions_poll_lookback_days, now=now)
    with db_session() as s:
        meetings = MeetingRepository(s).list_poll_candidates(since=since, limit=limit)
        return [(m.city_id, m.id) for m in meetings]


def poll_decisions_for_recent_meetings(
    *,
    now: datetime | None = None,
    source: str = "cron",
) -> PollBatchResult:
    """
    Встречи за последние DECISIONS_POLL_LOOKBACK_DAYS с темами без решений.
    Кандидатов берём с запасом (FETCH_LIMIT) под пропуски backoff'а,
    запусков не больше MAX_DISPATCH. Ошибка одной встречи не прерывает прогон.
    """
    settings = get_settings()
    current = as_naive_utc(now) if now is not None else utc_now_naive()
    max_dispatch = max(0, int(settings.decisions_poll_max_dispatch))

    candidates = _candidate_scopes(now=current, limit=settings.decisions_poll_fetch_limit)
    aggregates = _poll_aggregates()

    out = PollBatchResult()
    skipped_backoff = 0
    skipped_max_window = 0

    for city_id, meeting_id in candidates:
        if out.dispatched >= max_dispatch:
            break

        agg = aggregates.get((city_id, meeting_id))
        reason = should_skip_polling(
            agg.first_poll_at if agg else None,
            agg.last_poll_at if agg else None,
            now=current,
        )
        if reason is not None:
            if _is_max_window_reason(reason):
                skipped_max_window += 1
            else:
                skipped_backoff += 1
            out.skipped += 1
            out.results.append(
                MeetingPollOutcome(city_id=city_id, meeting_id=meeting_id, status="skipped", reason=reason)
            )
            log.info(
                "decisions_poll_skipped",
                extra={"payload": {"city_id": city_id, "meeting_id": meeting_id, "reason": reason}},
            )
            continue

        try:
            with db_session() as s:
                unlinked = SubjectRepository(s).list_eligible(
                    city_id=city_id, meeting_id=meeting_id, only_unlinked=True
                )
                unlinked_ids = [x.id for x in unlinked]
            if not unlinked_ids:
                continue

            task = poll_decisions_for_meeting(city_id, meeting_id, unlinked_ids)
            out.dispatched += 1
            out.results.append(
                MeetingPollOutcome(
                    city_id=city_id, meeting_id=meeting_id, status="started", task_id=task.id
                )
            )
        except Exception as e:
            out.failed += 1
            out.results.append(
                MeetingPollOutcome(
                    city_id=city_id, meeting_id=meeting_id, status="error", reason=str(e)[:300]
                )
            )
            log.warning(
                "decisions_poll_meeting_failed",
                extra={"payload": {"city_id": city_id, "meeting_id": meeting_id, "err": str(e)[:300]}},
            )

    out.meetings_processed = len(out.results)
    record_decisions_poll_run(
        source=source,
        dispatched=out.dispatched,
        skipped_backoff=skipped_backoff,
        skipped_max_window=skipped_max_window,
        failed=out.failed,
    )
    log.info(
        "decisions_poll_batch_finished",
        extra={
            "payload": {
                "source": source,
                "candidates": len(candidates),
                "dispatched": out.dispatched,
                "skipped_backoff": skipped_backoff,
                "skipped_max_window": skipped_max_window,
                "failed": out.failed,
            }
        },
    )
    return out


# =============================================================================
# ОДНА ТЕМА (КНОПКА "НАЙТИ РЕШЕНИЕ")
# =============================================================================
def request_poll_decision_for_subject(subject_id: str, *, now: datetime | None = None) -> dict:
    """
    Лёгкий rate limit: если pending pollDecisions по этой встрече создан в пределах
    окна, возвращаем его. Иначе опрашиваем все темы встречи без решений, чтобы
    время последнего опроса было одинаковым для всех тем. Запрошенная тема
    перепроверяется, даже если решение у неё уже есть.
    """
    with db_session() as s:
        subject = SubjectRepository(s).get(subject_id)
        if subject is None:
            raise NotFoundError("Subject not found", details={"subject_id": subject_id})
        city_id, meeting_id = subject.city_id, subject.meeting_id

    require_can_edit(city_id, meeting_id)

    current = as_naive_utc(now) if now is not None else utc_now_naive()
    window = timedelta(seconds=get_settings().decisions_subject_rate_limit_sec)
    with db_session() as s:
        recent = TaskRepository(s).find_recent_pending(
            task_type=TaskType.poll_decisions,
            city_id=city_id,
            meeting_id=meeting_id,
            since=current - window,
        )
        if recent is not None:
            return {
                "status": "already_running",
                "taskId": recent.id,
                "cityId": city_id,
                "meetingId": meeting_id,
            }

        unlinked = SubjectRepository(s).list_eligible(
            city_id=city_id, meeting_id=meeting_id, only_unlinked=True
        )
        subject_ids = [x.id for x in unlinked]

    if subject_id not in subject_ids:
        subject_ids.append(subject_id)

    task = poll_decisions_for_meeting(city_id, meeting_id, subject_ids)
    return {"status": "started", "taskId": task.id, "cityId": city_id, "meetingId": meeting_id}


# =============================================================================
# РЕЗУЛЬТАТ
# =============================================================================
def _parse_issue_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return as_naive_utc(datetime.fromisoformat(value))
    except ValueError:
        log.warning("decision_issue_date_invalid", extra={"payload": {"value": value}})
        return None


def handle_poll_decisions_result(task_id: str, result: Any, *, force: bool = False) -> None:
    """
    Upsert решений. subjectId, не принадлежащий встрече задачи, пропускается.
    """
    _ = force
    parsed = PollDecisionsResult.model_validate(result)

    with db_session() as s:
        task = TaskRepository(s).get(task_id)
        if task is None:
            raise NotFoundError("Task not found", details={"task_id": task_id})

        valid_ids = SubjectRepository(s).ids_in_scope(
            subject_ids=[m.subject_id for m in parsed.matches],
            city_id=task.city_id,
            meeting_id=task.meeting_id,
        )
        decisions = DecisionRepository(s)

        processed = 0
        for match in parsed.matches:
            if match.subject_id not in valid_ids:
                log.warning(
                    "poll_decisions_invalid_subject",
                    extra={"payload": {"task_id": task_id, "subject_id": match.subject_id}},
                )
                continue

            decisions.upsert(
                subject_id=match.subject_id,
                pdf_url=match.pdf_url,
                ada=match.ada,
                protocol_number=match.protocol_number,
                title=match.decision_title,
                issue_date=_parse_issue_date(match.issue_date),
                task_id=task_id,
            )
            processed += 1

    log.info(
        "poll_decisions_applied",
        extra={
            "payload": {
                "task_id": task_id,
                "processed": processed,
                "unmatched": len(parsed.unmatched_subjects),
                "ambiguous": len(parsed.ambiguous_subjects),
            }
        },
    )


# =============================================================================
# ИСТОРИЯ / СТАТИСТИКА
# =============================================================================
def get_polling_history_for_meeting(
    city_id: str,
    meeting_id: str,
    *,
    now: datetime | None = None,
) -> dict:
    agg: PollAggregate | None = _poll_aggregates(city_id, meeting_id).get((city_id, meeting_id))
    first = agg.first_poll_at if agg else None
    last = agg.last_poll_at if agg else None
    return {
        "totalPolls": agg.total_polls if agg else 0,
        "firstPollAt": iso_or_none(first),
        "lastPollAt": iso_or_none(last),
        "currentTierLabel": tier_label(first, now=now),
        "nextPollEligible": iso_or_none(next_poll_eligible_at(first, last, now=now)),
    }


def get_last_poll_time_for_meeting(city_id: str, meeting_id: str) -> datetime | None:
    agg = _poll_aggregates(city_id, meeting_id).get((city_id, meeting_id))
    return agg.last_poll_at if agg else None


def _days(value: float | None) -> float | None:
    return round(value, 1) if value is not None else None


def _delay_stats(values: list[float]) -> dict[str, float | None]:
    if not values:
        return {"avgDays": None, "medianDays": None, "minDays": None, "maxDays": None}
    return {
        "avgDays": _days(statistics.fmean(values)),
        "medianDays": _days(statistics.median(values)),
        "minDays": _days(min(values)),
        "maxDays": _days(max(values)),
    }


def _json_or_none(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _recent_poll(task: Task) -> dict:
    request = _json_or_none(task.request_body) or {}
    response = _json_or_none(task.response_body) if task.status == TaskStatus.succeeded else None
    response = response if isinstance(response, dict) else None

    def _count(key: str) -> int | None:
        if response is None:
            return None
        value = response.get(key)
        return len(value) if isinstance(value, list) else 0

    return {
        "id": task.id,
        "createdAt": iso_or_none(task.created_at),
        "status": TaskStatus(task.status).value,
        "cityId": task.city_id,
        "councilMeetingId": task.meeting_id,
        "subjectsPolled": len(request.get("subjects") or []) if isinstance(request, dict) else 0,
        "matchesFound": _count("matches"),
        "unmatchedCount": _count("unmatchedSubjects"),
        "ambiguousCount": _count("ambiguousSubjects"),
    }


def get_polling_stats(*, now: datetime | None = None, recent_limit: int = 50) -> dict:
    current = as_naive_utc(now) if now is not None else utc_now_naive()
    aggregates = _poll_aggregates()

    discoveries: list[dict] = []
    discovery_delays: list[float] = []
    publish_delays: list[float] = []

    with db_session() as s:
        for decision, subject, meeting in DecisionRepository(s).list_discovered():
            agg = aggregates.get((meeting.city_id, meeting.id))
            discovered_at = decision.created_at
            first_poll_at = agg.first_poll_at if agg and agg.first_poll_at else discovered_at

            discovery_delay = (
                days_between(decision.issue_date, discovered_at) if decision.issue_date else None
            )
            publish_delay = (
                days_between(meeting.date_time, decision.issue_date) if decision.issue_date else None
            )
            if discovery_delay is not None:
                discovery_delays.append(discovery_delay)
            if publish_delay is not None:
                publish_delays.append(publish_delay)

            discoveries.append(
                {
                    "cityId": meeting.city_id,
                    "meetingId": meeting.id,
                    "meetingDate": iso_or_none(meeting.date_time),
                    "subjectId": subject.id,
                    "subjectName": subject.name,
                    "ada": decision.ada,
                    "issueDate": iso_or_none(decision.issue_date),
                    "discoveredAt": iso_or_none(discovered_at),
                    "firstPollAt": iso_or_none(first_poll_at),
                    "totalPollsForMeeting": agg.total_polls if agg else 0,
                    "discoveryDelayDays": _days(discovery_delay),
                    "pollingDurationDays": _days(days_between(first_poll_at, discovered_at)),
                    "publishDelayDays": _days(publish_delay),
                }
            )

        recent = TaskRepository(s).list_recent_of_type(
            task_type=TaskType.poll_decisions, limit=recent_limit
        )
        recent_polls = [_recent_poll(t) for t in recent]

    still_polling = 0
    for scope in _candidate_scopes(now=current, limit=None):
        agg = aggregates.get(scope)
        reason = should_skip_polling(
            agg.first_poll_at if agg else None,
            agg.last_poll_at if agg else None,
            now=current,
        )
        if reason is None or not _is_max_window_reason(reason):
            still_polling += 1

    return {
        "backoffSchedule": [
            {"afterDays": t.after_days, "minIntervalDays": t.min_interval_days}
            for t in BACKOFF_SCHEDULE
        ],
        "maxPollingDays": MAX_POLLING_DAYS,
        "summary": {
            "totalDiscoveries": len(discoveries),
            "meetingsStillPolling": still_polling,
            "discoveryDelay": _delay_stats(discovery_delays),
            "publishDelay": {
                "description": "From meeting to Diavgeia publication",
                **_delay_stats(publish_delays),
            },
        },
        "discoveries": discoveries,
        "recentPolls": recent_polls,
    }
