"""
Репозитории (DAO слой).

Правила:
- Никакой бизнес-логики
- Только CRUD и запросы
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, desc, func, select
from sqlalchemy.orm import Session

from council_tasks.domain.enums import NotificationStatus, TaskStatus, TaskType

from .models import (
    City,
    CouncilMeeting,
    Decision,
    Notification,
    Person,
    Subject,
    Task,
)


@dataclass
class PollAggregate:
    city_id: str
    meeting_id: str
    total_polls: int
    first_poll_at: datetime | None
    last_poll_at: datetime | None


# =============================================================================
# TASK REPOSITORY
# =============================================================================
class TaskRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, task_id: str) -> Task | None:
        return self.session.get(Task, task_id)

    def create(
        self,
        *,
        task_type: TaskType,
        city_id: str,
        meeting_id: str,
        request_body: str,
    ) -> Task:
        task = Task(
            type=task_type.value,
            status=TaskStatus.pending,
            city_id=city_id,
            meeting_id=meeting_id,
            request_body=request_body,
        )
        self.session.add(task)
        self.session.flush()
        return task

    def find_latest_succeeded(
        self, *, task_type: TaskType, city_id: str, meeting_id: str
    ) -> Task | None:
        return (
            self.session.query(Task)
            .filter(
                Task.city_id == city_id,
                Task.meeting_id == meeting_id,
                Task.type == task_type.value,
                Task.status == TaskStatus.succeeded,
            )
            .order_by(desc(Task.created_at))
            .first()
        )

    def find_in_flight(self, *, task_type: TaskType, city_id: str, meeting_id: str) -> Task | None:
        return (
            self.session.query(Task)
            .filter(
                Task.city_id == city_id,
                Task.meeting_id == meeting_id,
                Task.type == task_type.value,
                Task.status.notin_([TaskStatus.failed, TaskStatus.succeeded]),
            )
            .order_by(desc(Task.created_at))
            .first()
        )

    def find_recent_pending(
        self,
        *,
        task_type: TaskType,
        city_id: str,
        meeting_id: str,
        since: datetime,
    ) -> Task | None:
        return (
            self.session.query(Task)
            .filter(
                Task.city_id == city_id,
                Task.meeting_id == meeting_id,
                Task.type == task_type.value,
                Task.status == TaskStatus.pending,
                Task.created_at >= since,
            )
            .order_by(desc(Task.created_at))
            .first()
        )

    def list_recent_of_type(self, *, task_type: TaskType, limit: int = 50) -> list[Task]:
        return (
            self.session.query(Task)
            .filter(Task.type == task_type.value)
            .order_by(desc(Task.created_at))
            .limit(limit)
            .all()
        )

    def succeeded_aggregates(
        self,
        *,
        task_type: TaskType,
        city_id: str | None = None,
        meeting_id: str | None = None,
    ) -> list[PollAggregate]:
        """
        count/min/max(created_at) успешных задач, сгруппированные по встрече.
        """
        q = (
            self.session.query(
                Task.city_id,
                Task.meeting_id,
                func.count(Task.id),
                func.min(Task.created_at),
                func.max(Task.created_at),
            )
            .filter(Task.type == task_type.value, Task.status == TaskStatus.succeeded)
            .group_by(Task.city_id, Task.meeting_id)
        )
        if city_id is not None:
            q = q.filter(Task.city_id == city_id)
        if meeting_id is not None:
            q = q.filter(Task.meeting_id == meeting_id)
        return [
            PollAggregate(
                city_id=row[0],
                meeting_id=row[1],
                total_polls=int(row[2] or 0),
                first_poll_at=row[3],
                last_poll_at=row[4],
            )
            for row in q.all()
        ]


# =============================================================================
# MEETING REPOSITORY
# =============================================================================
class MeetingRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, *, city_id: str, meeting_id: str) -> CouncilMeeting | None:
        return self.session.get(CouncilMeeting, (city_id, meeting_id))

    def _unlinked_subject_exists(self):
        return (
            select(Subject.id)
            .outerjoin(Decision, Decision.subject_id == Subject.id)
            .where(
                Subject.city_id == CouncilMeeting.city_id,
                Subject.meeting_id == CouncilMeeting.id,
                Subject.agenda_item_index.is_not(None),
                Decision.id.is_(None),
            )
            .exists()
        )

    def list_poll_candidates(self, *, since: datetime, limit: int | None) -> list[CouncilMeeting]:
        """
        Встречи не старше since в городах с diavgeia_uid, у которых есть тема
        с agenda_item_index без связанного решения. Новые первыми.
        """
        q = (
            self.session.query(CouncilMeeting)
            .join(City, City.id == CouncilMeeting.city_id)
            .filter(
                CouncilMeeting.date_time >= since,
                City.diavgeia_uid.is_not(None),
                self._unlinked_subject_exists(),
            )
            .order_by(desc(CouncilMeeting.date_time))
        )
        if limit is not None:
            q = q.limit(limit)
        return q.all()

    def stamp_search_synced(self, meeting: CouncilMeeting, at: datetime) -> None:
        meeting.search_synced_at = at
        self.session.add(meeting)


# =============================================================================
# SUBJECT REPOSITORY
# =============================================================================
class SubjectRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, subject_id: str) -> Subject | None:
        return self.session.get(Subject, subject_id)

    def list_eligible(
        self,
        *,
        city_id: str,
        meeting_id: str,
        subject_ids: list[str] | None = None,
        only_unlinked: bool = False,
    ) -> list[Subject]:
        q = self.session.query(Subject).filter(
            Subject.city_id == city_id,
            Subject.meeting_id == meeting_id,
            Subject.agenda_item_index.is_not(None),
        )
        if subject_ids is not None:
            q = q.filter(Subject.id.in_(subject_ids))
        if only_unlinked:
            q = q.outerjoin(Decision, Decision.subject_id == Subject.id).filter(
                Decision.id.is_(None)
            )
        return q.order_by(Subject.agenda_item_index).all()

    def ids_in_scope(self, *, subject_ids: list[str], city_id: str, meeting_id: str) -> set[str]:
        if not subject_ids:
            return set()
        rows = (
            self.session.query(Subject.id)
            .filter(
                Subject.id.in_(subject_ids),
                Subject.city_id == city_id,
                Subject.meeting_id == meeting_id,
            )
            .all()
        )
        return {r[0] for r in rows}


# =============================================================================
# DECISION REPOSITORY
# =============================================================================
class DecisionRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get_for_subject(self, subject_id: str) -> Decision | None:
        return self.session.query(Decision).filter(Decision.subject_id == subject_id).one_or_none()

    def upsert(
        self,
        *,
        subject_id: str,
        pdf_url: str,
        ada: str | None = None,
        protocol_number: str | None = None,
        title: str | None = None,
        issue_date: datetime | None = None,
        task_id: str | None = None,
        created_by: str | None = None,
    ) -> Decision:
        """
        Upsert по subject_id. При обновлении источник (task_id / created_by) не меняется.
        """
        decision = self.get_for_subject(subject_id)
        if decision is None:
            decision = Decision(
                subject_id=subject_id,
                task_id=task_id,
                created_by=created_by,
            )
        decision.pdf_url = pdf_url
        decision.ada = ada
        decision.protocol_number = protocol_number
        decision.title = title
        decision.issue_date = issue_date
        self.session.add(decision)
        self.session.flush()
        return decision

    def list_discovered(self) -> list[tuple[Decision, Subject, CouncilMeeting]]:
        """
        Решения, найденные задачами опроса (task_id задан), с темой и встречей.
        """
        return (
            self.session.query(Decision, Subject, CouncilMeeting)
            .join(Subject, Subject.id == Decision.subject_id)
            .join(
                CouncilMeeting,
                and_(
                    CouncilMeeting.city_id == Subject.city_id,
                    CouncilMeeting.id == Subject.meeting_id,
                ),
            )
            .filter(Decision.task_id.is_not(None))
            .order_by(desc(Decision.created_at))
            .all()
        )


# =============================================================================
# PEOPLE / NOTIFICATIONS
# =============================================================================
class PersonRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def ids_in_city(self, *, person_ids: list[str], city_id: str) -> set[str]:
        if not person_ids:
            return set()
        rows = (
            self.session.query(Person.id)
            .filter(Person.id.in_(person_ids), Person.city_id == city_id)
            .all()
        )
        return {r[0] for r in rows}


class NotificationRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def exists_for_meeting(self, *, city_id: str, meeting_id: str) -> bool:
        return (
            self.session.query(Notification.id)
            .filter(Notification.city_id == city_id, Notification.meeting_id == meeting_id)
            .first()
            is not None
        )

    def create(
        self,
        *,
        city_id: str,
        meeting_id: str,
        status: NotificationStatus,
        sent_at: datetime | None = None,
    ) -> Notification:
        n = Notification(city_id=city_id, meeting_id=meeting_id, status=status, sent_at=sent_at)
        self.session.add(n)
        self.session.flush()
        return n
