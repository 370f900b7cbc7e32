"""
Decisions poll job.

Назначение:
- периодический опрос реестра решений по недавним встречам
- backoff и лимиты задаются в decisions_polling / настройках
"""

from __future__ import annotations

from council_tasks.common.config import get_settings
from council_tasks.common.logging import get_project_logger
from council_tasks.services.decisions_polling import (
    PollBatchResult,
    poll_decisions_for_recent_meetings,
)

log = get_project_logger()


def run(*, source: str = "job") -> PollBatchResult | None:
    settings = get_settings()
    if not settings.decisions_poll_enabled:
        log.info("decisions_poll_job_skipped", extra={"payload": {"reason": "disabled"}})
        return None

    log.info(
        "decisions_poll_job_started",
        extra={
            "payload": {
                "fetch_limit": settings.decisions_poll_fetch_limit,
                "max_dispatch": settings.decisions_poll_max_dispatch,
            }
        },
    )
    result = poll_decisions_for_recent_meetings(source=source)
    log.info(
        "decisions_poll_job_finished",
        extra={
            "payload": {
                "meetings_processed": result.meetings_processed,
                "dispatched": result.dispatched,
                "skipped": result.skipped,
                "failed": result.failed,
            }
        },
    )
    return result
