"""
API Gateway (FastAPI).

Функции:
- /health
- /metrics
- колбэки воркера (taskStatuses)
- запуск задач и опрос решений из админки
- cron-эндпоинт пакетного опроса решений
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from apps.api_gateway.routers.cron import router as cron_router
from apps.api_gateway.routers.decisions import router as decisions_router
from apps.api_gateway.routers.task_statuses import router as task_statuses_router
from apps.api_gateway.routers.tasks import router as tasks_router
from council_tasks.common.config import get_settings
from council_tasks.common.logging import get_project_logger, setup_logging
from council_tasks.common.metrics import setup_metrics_endpoint

log = get_project_logger()


def _parse_origins(raw: str) -> list[str]:
    origins = [o.strip() for o in (raw or "").split(",") if o.strip()]
    return origins or ["*"]


def _is_prod_env(app_env: str | None) -> bool:
    env = (app_env or "").strip().lower()
    return env in {"prod", "production"}


def _cors_params() -> tuple[list[str], bool]:
    settings = get_settings()
    allow_origins = _parse_origins(settings.cors_allowed_origins)
    allow_credentials = bool(settings.cors_allow_credentials)

    if _is_prod_env(settings.app_env) and "*" in allow_origins:
        raise RuntimeError("CORS wildcard '*' запрещён в APP_ENV=prod")

    # '*' нельзя использовать вместе с credentials=true
    if "*" in allow_origins:
        allow_credentials = False

    return allow_origins, allow_credentials


def _create_app() -> FastAPI:
    app = FastAPI(title="Council Tasks", version="0.1.0")
    allow_origins, allow_credentials = _cors_params()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=allow_credentials,
    )

    setup_metrics_endpoint(app)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True}

    app.include_router(task_statuses_router, prefix="/v1")
    app.include_router(tasks_router, prefix="/v1")
    app.include_router(decisions_router, prefix="/v1")
    app.include_router(cron_router, prefix="/v1")

    return app


setup_logging()
log.info("api_gateway_starting", extra={"payload": {"service": get_settings().service_name}})

app = _create_app()
