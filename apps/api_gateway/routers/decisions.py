"""
HTTP роуты опроса решений.

- POST /v1/cities/{city_id}/meetings/{meeting_id}/decisions/poll
- GET  /v1/cities/{city_id}/meetings/{meeting_id}/decisions/polling-history
- GET  /v1/cities/{city_id}/meetings/{meeting_id}/decisions/last-poll
- POST /v1/subjects/{subject_id}/decisions/poll
- GET  /v1/decisions/polling-stats
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from apps.api_gateway.deps import auth_dep, http_error
from council_tasks.common.errors import AppError
from council_tasks.common.security import AuthContext, acting_as
from council_tasks.common.time import iso_or_none
from council_tasks.contracts.http_api import PollDecisionsHttpRequest
from council_tasks.services.decisions_polling import (
    get_last_poll_time_for_meeting,
    get_polling_history_for_meeting,
    get_polling_stats,
    request_poll_decision_for_subject,
    request_poll_decisions,
)
from council_tasks.services.task_service import task_to_dict

router = APIRouter()


@router.post("/cities/{city_id}/meetings/{meeting_id}/decisions/poll")
def poll_meeting_decisions(
    city_id: str,
    meeting_id: str,
    req: PollDecisionsHttpRequest,
    ctx: AuthContext = Depends(auth_dep),
) -> dict[str, Any]:
    with acting_as(ctx):
        try:
            task = request_poll_decisions(city_id, meeting_id, req.subject_ids)
        except AppError as e:
            raise http_error(e) from e
    return task_to_dict(task)


@router.get("/cities/{city_id}/meetings/{meeting_id}/decisions/polling-history")
def polling_history(
    city_id: str,
    meeting_id: str,
    ctx: AuthContext = Depends(auth_dep),
) -> dict[str, Any]:
    return get_polling_history_for_meeting(city_id, meeting_id)


@router.get("/cities/{city_id}/meetings/{meeting_id}/decisions/last-poll")
def last_poll(
    city_id: str,
    meeting_id: str,
    ctx: AuthContext = Depends(auth_dep),
) -> dict[str, Any]:
    return {"lastPollAt": iso_or_none(get_last_poll_time_for_meeting(city_id, meeting_id))}


@router.post("/subjects/{subject_id}/decisions/poll")
def poll_subject_decision(
    subject_id: str,
    ctx: AuthContext = Depends(auth_dep),
) -> dict[str, Any]:
    with acting_as(ctx):
        try:
            return request_poll_decision_for_subject(subject_id)
        except AppError as e:
            raise http_error(e) from e


@router.get("/decisions/polling-stats")
def polling_stats(ctx: AuthContext = Depends(auth_dep)) -> dict[str, Any]:
    return get_polling_stats()
