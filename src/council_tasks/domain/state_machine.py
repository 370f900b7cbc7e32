"""
Машина состояний задачи внешнего воркера.

Назначение:
- Централизованное управление переходами pending/succeeded/failed
- Предсказуемое поведение при повторных и запоздалых колбэках
- Компенсирующий переход succeeded -> failed при ошибке обработки результата
"""

from __future__ import annotations

from dataclasses import dataclass

from .enums import TaskEvent, TaskStatus


# =============================================================================
# РЕЗУЛЬТАТ ПЕРЕХОДА
# =============================================================================
@dataclass
class TransitionResult:
    ok: bool
    status: TaskStatus | None = None
    reason: str | None = None


# =============================================================================
# ТАБЛИЦА ПЕРЕХОДОВ
# =============================================================================
_TRANSITIONS: dict[tuple[TaskStatus, TaskEvent], TaskStatus] = {
    (TaskStatus.pending, TaskEvent.progress): TaskStatus.pending,
    (TaskStatus.pending, TaskEvent.success): TaskStatus.succeeded,
    (TaskStatus.pending, TaskEvent.error): TaskStatus.failed,
    # повторный success: обработчик результата применяется ещё раз
    (TaskStatus.succeeded, TaskEvent.success): TaskStatus.succeeded,
    (TaskStatus.succeeded, TaskEvent.result_processing_failed): TaskStatus.failed,
    (TaskStatus.failed, TaskEvent.error): TaskStatus.failed,
}


def is_terminal(status: TaskStatus) -> bool:
    return status in (TaskStatus.succeeded, TaskStatus.failed)


def transition(current: TaskStatus, event: TaskEvent) -> TransitionResult:
    """
    Правила перехода:
    - pending принимает progress (без смены статуса), success и error
    - из терминальных статусов назад в pending не возвращаемся
    - succeeded -> failed только компенсирующим событием
    """
    target = _TRANSITIONS.get((current, event))
    if target is None:
        reason = "terminal_state" if is_terminal(current) else "invalid_transition"
        return TransitionResult(ok=False, status=current, reason=reason)
    return TransitionResult(ok=True, status=target)
