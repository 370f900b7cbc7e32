"""
Единые ошибки и коды ошибок.

Назначение:
- предсказуемые коды для HTTP/колбэков/фоновых job
- единый стиль исключений по проекту
"""

from __future__ import annotations

from dataclasses import dataclass


class ErrCode:
    # Общие
    UNKNOWN = "unknown"
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"

    # Задачи
    TASK_ALREADY_SUCCEEDED = "task_already_succeeded"
    TASK_ALREADY_RUNNING = "task_already_running"
    UNSUPPORTED_TASK_TYPE = "unsupported_task_type"

    # Провайдеры
    TASK_API_ERROR = "task_api_error"
    ALERT_PROVIDER_ERROR = "alert_provider_error"

    # Инфра/хранилища
    DB_ERROR = "db_error"


@dataclass
class AppError(Exception):
    """
    Базовая ошибка приложения.
    - code: стабильный код ошибки
    - message: безопасное сообщение
    - details: доп. данные (без секретов/PII)
    """

    code: str
    message: str
    details: dict | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"


class ValidationError(AppError):
    def __init__(self, message: str = "Ошибка валидации", details: dict | None = None) -> None:
        super().__init__(ErrCode.VALIDATION, message, details)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Не авторизован", details: dict | None = None) -> None:
        super().__init__(ErrCode.UNAUTHORIZED, message, details)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Доступ запрещён", details: dict | None = None) -> None:
        super().__init__(ErrCode.FORBIDDEN, message, details)


class NotFoundError(AppError):
    def __init__(self, message: str = "Не найдено", details: dict | None = None) -> None:
        super().__init__(ErrCode.NOT_FOUND, message, details)


class ConflictError(AppError):
    def __init__(self, message: str = "Конфликт", details: dict | None = None) -> None:
        super().__init__(ErrCode.CONFLICT, message, details)


class ProviderError(AppError):
    def __init__(self, code: str, message: str, details: dict | None = None) -> None:
        super().__init__(code, message, details)


# =============================================================================
# ЗАДАЧИ
# =============================================================================
class TaskBlockedError(ConflictError):
    """
    Повторный запуск задачи отклонён проверкой идемпотентности.
    Вызывающая сторона не должна ретраить автоматически.
    """

    def __init__(self, *, task_type: str, blocked_reason: str, existing_task_id: str | None) -> None:
        human = blocked_reason.replace("_", " ")
        super().__init__(
            f"Task {task_type} {human} for this council meeting",
            details={
                "task_type": task_type,
                "blocked_reason": blocked_reason,
                "existing_task_id": existing_task_id,
            },
        )
        self.code = (
            ErrCode.TASK_ALREADY_SUCCEEDED
            if blocked_reason == "already_succeeded"
            else ErrCode.TASK_ALREADY_RUNNING
        )
        self.blocked_reason = blocked_reason
        self.existing_task_id = existing_task_id


class TaskDispatchError(ProviderError):
    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(ErrCode.TASK_API_ERROR, message, details)


class UnsupportedTaskTypeError(AppError):
    def __init__(self, task_type: str) -> None:
        super().__init__(
            ErrCode.UNSUPPORTED_TASK_TYPE,
            f"Unsupported task type: {task_type}",
            details={"task_type": task_type},
        )
