"""
Worker Decisions Poll.

Назначение:
- периодически запускать decisions_poll_job
- новые решения по темам недавних заседаний подтягиваются без участия админа
"""

from __future__ import annotations

import time

from council_tasks.common.config import get_settings
from council_tasks.common.logging import get_project_logger, setup_logging
from council_tasks.jobs.decisions_poll_job import run as run_decisions_poll

log = get_project_logger()


def main() -> None:
    setup_logging()
    settings = get_settings()
    interval_sec = max(60, int(settings.decisions_poll_interval_sec))

    log.info(
        "worker_decisions_poll_started",
        extra={
            "payload": {
                "enabled": bool(settings.decisions_poll_enabled),
                "interval_sec": interval_sec,
            }
        },
    )

    while True:
        try:
            run_decisions_poll(source="worker")
        except Exception as e:
            log.error(
                "worker_decisions_poll_error",
                extra={"payload": {"err": str(e)[:300]}},
            )
        time.sleep(interval_sec)


if __name__ == "__main__":
    main()
