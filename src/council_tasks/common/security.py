"""
Утилиты безопасности и авторизации.

Поддерживаемые режимы (AUTH_MODE):
- api_key: проверка X-API-Key (или Bearer с тем же ключом)
- none:    без авторизации (ТОЛЬКО dev)

Формат API_KEYS: через запятую, "<key>" (все города) или "<key>:<city1>|<city2>"
(редактор ограничен перечисленными городами).

Проверка права редактирования: чистый предикат can_edit(city_id, meeting_id)
поверх текущей личности, привязанной через acting_as(...).
"""

from __future__ import annotations

import hmac
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass

from .config import get_settings
from .errors import ForbiddenError, UnauthorizedError


@dataclass(frozen=True)
class AuthContext:
    subject: str
    auth_type: str
    # None = доступ ко всем городам
    city_ids: frozenset[str] | None = None


_CURRENT_ACTOR: ContextVar[AuthContext | None] = ContextVar("council_actor", default=None)


def _parse_api_keys(raw: str) -> dict[str, frozenset[str] | None]:
    """
    Разбор строки API_KEYS из ENV: ключ -> разрешённые города.
    """
    out: dict[str, frozenset[str] | None] = {}
    for item in (raw or "").split(","):
        item = item.strip()
        if not item:
            continue
        key, _, scope = item.partition(":")
        cities = frozenset(c.strip() for c in scope.split("|") if c.strip())
        out[key.strip()] = cities or None
    return out


def _extract_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    prefix = "bearer "
    if authorization.lower().startswith(prefix):
        return authorization[len(prefix) :].strip()
    return None


def _is_prod_env(app_env: str | None) -> bool:
    env = (app_env or "").strip().lower()
    return env in {"prod", "production"}


def require_auth(*, authorization: str | None, x_api_key: str | None) -> AuthContext:
    """
    Универсальная проверка авторизации:
    - AUTH_MODE=none: без проверки (dev)
    - AUTH_MODE=api_key: X-API-Key или Bearer <api key>
    """
    settings = get_settings()
    mode = (settings.auth_mode or "api_key").lower().strip()

    if mode == "none":
        if _is_prod_env(getattr(settings, "app_env", None)):
            raise UnauthorizedError("AUTH_MODE=none запрещён в APP_ENV=prod")
        return AuthContext(subject="anonymous", auth_type="none")

    if mode != "api_key":
        raise UnauthorizedError("Неизвестный режим авторизации")

    presented = (x_api_key or _extract_bearer(authorization) or "").strip()
    keys = _parse_api_keys(settings.api_keys)
    if not presented or presented not in keys:
        raise UnauthorizedError("Неверный API ключ")

    scope = keys[presented]
    subject = "service" if scope is None else "editor"
    return AuthContext(subject=subject, auth_type="api_key", city_ids=scope)


def require_cron_auth(*, authorization: str | None, x_api_key: str | None) -> AuthContext:
    """
    Cron-вызовы: Bearer CRON_SECRET или полноценный API ключ.
    """
    secret = (get_settings().cron_secret or "").strip()
    token = _extract_bearer(authorization)
    if secret and token and hmac.compare_digest(token, secret):
        return AuthContext(subject="cron", auth_type="cron_secret")
    ctx = require_auth(authorization=authorization, x_api_key=x_api_key)
    if ctx.city_ids is not None:
        raise UnauthorizedError("Cron требует ключ без ограничения по городам")
    return ctx


# =============================================================================
# ТЕКУЩАЯ ЛИЧНОСТЬ И ПРАВО РЕДАКТИРОВАНИЯ
# =============================================================================
@contextmanager
def acting_as(ctx: AuthContext) -> Iterator[AuthContext]:
    token = _CURRENT_ACTOR.set(ctx)
    try:
        yield ctx
    finally:
        _CURRENT_ACTOR.reset(token)


def current_actor() -> AuthContext | None:
    return _CURRENT_ACTOR.get()


def can_edit(city_id: str, meeting_id: str | None = None) -> bool:
    """
    Может ли текущая личность менять данные города/встречи.
    Права задаются на уровне города, meeting_id оставлен для симметрии контракта.
    """
    _ = meeting_id
    actor = current_actor()
    if actor is None:
        return False
    if actor.auth_type == "none":
        return True
    if actor.city_ids is None:
        return True
    return city_id in actor.city_ids


def require_can_edit(city_id: str, meeting_id: str | None = None) -> None:
    if not can_edit(city_id, meeting_id):
        actor = current_actor()
        raise ForbiddenError(
            "Нет прав на редактирование города",
            details={
                "city_id": city_id,
                "meeting_id": meeting_id,
                "subject": actor.subject if actor else None,
            },
        )
