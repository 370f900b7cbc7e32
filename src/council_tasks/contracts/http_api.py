"""
HTTP API контракты (Pydantic-модели).

Назначение:
- валидация входа на уровне FastAPI
- camelCase на проводе, snake_case в коде
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# =============================================================================
# ЗАДАЧИ
# =============================================================================
class StartTaskRequest(_CamelModel):
    request_body: dict[str, Any] = Field(default_factory=dict, alias="requestBody")
    # Обойти проверку идемпотентности (осознанный перезапуск из админки)
    force: bool = False


class ReprocessTaskRequest(_CamelModel):
    force: bool = False


# =============================================================================
# РЕШЕНИЯ
# =============================================================================
class PollDecisionsHttpRequest(_CamelModel):
    subject_ids: list[str] | None = Field(default=None, alias="subjectIds")
