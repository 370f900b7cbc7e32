"""
Контракт колбэков внешнего воркера (TaskUpdate).

Форма тела:
- {"status": "processing", "stage": ..., "progressPercent": ..., "version"?: ...}
- {"status": "success", "result": {...}, "version"?: ...}
- {"status": "error", "error": "...", "version"?: ...}
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from council_tasks.common.errors import ValidationError


class _UpdateBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: int | None = None


class ProcessingUpdate(_UpdateBase):
    status: Literal["processing"] = "processing"
    stage: str
    progress_percent: float = Field(default=0, alias="progressPercent")


class SuccessUpdate(_UpdateBase):
    status: Literal["success"] = "success"
    result: Any = None


class ErrorUpdate(_UpdateBase):
    status: Literal["error"] = "error"
    error: str


TaskUpdate = Annotated[
    ProcessingUpdate | SuccessUpdate | ErrorUpdate,
    Field(discriminator="status"),
]

_ADAPTER: TypeAdapter[TaskUpdate] = TypeAdapter(TaskUpdate)


def parse_task_update(payload: Any) -> ProcessingUpdate | SuccessUpdate | ErrorUpdate:
    """
    Разбор тела колбэка. Некорректный payload -> ValidationError (AppError).
    """
    try:
        return _ADAPTER.validate_python(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            "Некорректное тело обновления задачи",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e
