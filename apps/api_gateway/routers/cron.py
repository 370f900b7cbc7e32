"""
Cron-роуты (внешний планировщик).

- POST /v1/cron/poll-decisions  (Bearer CRON_SECRET или API ключ без ограничения городов)
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from apps.api_gateway.deps import cron_auth_dep
from council_tasks.common.security import AuthContext
from council_tasks.jobs.decisions_poll_job import run as run_decisions_poll

router = APIRouter()


@router.post("/cron/poll-decisions")
def cron_poll_decisions(ctx: AuthContext = Depends(cron_auth_dep)) -> dict[str, Any]:
    result = run_decisions_poll(source="cron")
    if result is None:
        return {"status": "disabled"}
    return {"status": "ok", **result.to_dict()}
