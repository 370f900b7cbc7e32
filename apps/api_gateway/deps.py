"""
FastAPI Depends.

Сюда выносим:
- проверку авторизации (X-API-Key / Bearer) с аудит-логом
- cron-авторизацию (CRON_SECRET)
- перевод AppError в HTTPException
"""

from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from council_tasks.common.errors import (
    AppError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ProviderError,
    TaskBlockedError,
    UnauthorizedError,
    UnsupportedTaskTypeError,
    ValidationError,
)
from council_tasks.common.logging import get_project_logger
from council_tasks.common.security import AuthContext, require_auth, require_cron_auth

log = get_project_logger()


def _request_meta(request: Request | None) -> tuple[str, str, str | None]:
    if request is None:
        return "unknown", "UNKNOWN", None
    endpoint = request.url.path
    method = request.method
    client_ip = request.client.host if request.client else None
    return endpoint, method, client_ip


def _audit_allow(
    *,
    request: Request | None,
    ctx: AuthContext,
    reason: str,
) -> None:
    endpoint, method, client_ip = _request_meta(request)
    log.info(
        "security_audit_allow",
        extra={
            "payload": {
                "endpoint": endpoint,
                "method": method,
                "subject": ctx.subject,
                "auth_type": ctx.auth_type,
                "reason": reason,
                "client_ip": client_ip,
            }
        },
    )


def _audit_deny(
    *,
    request: Request | None,
    status_code: int,
    reason: str,
    error_code: str,
) -> None:
    endpoint, method, client_ip = _request_meta(request)
    log.warning(
        "security_audit_deny",
        extra={
            "payload": {
                "endpoint": endpoint,
                "method": method,
                "status_code": status_code,
                "reason": reason,
                "error_code": error_code,
                "client_ip": client_ip,
            }
        },
    )


def _unauthorized(request: Request, e: UnauthorizedError) -> HTTPException:
    _audit_deny(
        request=request,
        status_code=status.HTTP_401_UNAUTHORIZED,
        reason=e.message,
        error_code=e.code,
    )
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": e.code, "message": e.message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def auth_dep(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> AuthContext:
    """
    Проверка авторизации для HTTP. Личность привязывается в роуте через acting_as(ctx).
    """
    try:
        ctx = require_auth(authorization=authorization, x_api_key=x_api_key)
    except UnauthorizedError as e:
        raise _unauthorized(request, e) from e
    _audit_allow(request=request, ctx=ctx, reason="auth_ok")
    return ctx


def cron_auth_dep(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> AuthContext:
    try:
        ctx = require_cron_auth(authorization=authorization, x_api_key=x_api_key)
    except UnauthorizedError as e:
        raise _unauthorized(request, e) from e
    _audit_allow(request=request, ctx=ctx, reason="cron_auth_ok")
    return ctx


# =============================================================================
# ОШИБКИ -> HTTP
# =============================================================================
def _status_for(e: AppError) -> int:
    if isinstance(e, TaskBlockedError | ConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(e, ProviderError):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(e, ForbiddenError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(e, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(e, UnauthorizedError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(e, ValidationError | UnsupportedTaskTypeError):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def http_error(e: AppError) -> HTTPException:
    return HTTPException(
        status_code=_status_for(e),
        detail={"code": e.code, "message": e.message, "details": e.details or {}},
    )
