"""
Клиент внешнего воркера задач.

Назначение:
- POST {TASK_API_URL}/{taskType} с Bearer-ключом
- любая ошибка транспорта или не-2xx -> TaskDispatchError
- тело успешного ответа игнорируется: результат приходит колбэком
"""

from __future__ import annotations

from typing import Any

import requests

from council_tasks.common.config import get_settings
from council_tasks.common.errors import TaskDispatchError
from council_tasks.common.logging import get_tasks_logger

log = get_tasks_logger()


def _error_text(resp: requests.Response) -> str | None:
    try:
        data = resp.json()
    except ValueError:
        text = (resp.text or "").strip()
        return text[:500] or None
    if isinstance(data, dict) and data.get("error") is not None:
        return str(data["error"])
    return str(data)[:500]


class TaskApiClient:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout_sec: float | None = None,
    ) -> None:
        s = get_settings()
        self.base_url = (base_url or s.task_api_url or "").rstrip("/")
        self.api_key = (api_key or s.task_api_key or "").strip()
        self.timeout_sec = timeout_sec if timeout_sec is not None else s.task_api_timeout_sec

    def start_task(self, task_type: str, body: dict[str, Any]) -> None:
        if not self.base_url:
            raise TaskDispatchError(
                "TASK_API_URL не настроен",
                details={"task_type": task_type},
            )

        url = f"{self.base_url}/{task_type}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        log.info("task_api_call", extra={"payload": {"task_type": task_type, "url": url}})

        try:
            resp = requests.post(url, json=body, headers=headers, timeout=self.timeout_sec)
        except requests.RequestException as e:
            raise TaskDispatchError(
                f"Failed to start task: {e.__class__.__name__}",
                details={"task_type": task_type, "status": None, "err": str(e)},
            ) from e

        if not resp.ok:
            error = _error_text(resp)
            raise TaskDispatchError(
                f"Failed to start task: {resp.reason} ({error or 'no response body'})",
                details={"task_type": task_type, "status": resp.status_code, "body": error},
            )


def get_task_api_client() -> TaskApiClient:
    return TaskApiClient()
