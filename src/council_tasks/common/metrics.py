"""
Метрики Prometheus для сервиса.

Назначение:
- Экспорт /metrics
- Счётчики жизненного цикла задач (dispatch / callback / guard)
- Счётчики планировщика опроса решений
"""

from __future__ import annotations

import time

from fastapi import FastAPI, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# =============================================================================
# СЧЁТЧИКИ И МЕТРИКИ
# =============================================================================

# Общее количество HTTP-запросов
REQUESTS_TOTAL = Counter(
    "council_requests_total",
    "Общее количество HTTP запросов",
    ["service", "route", "method", "status"],
)

HTTP_REQUEST_LATENCY_MS = Histogram(
    "council_http_request_latency_ms",
    "Задержка HTTP запроса (мс)",
    ["service", "route", "method"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)

TASK_DISPATCH_TOTAL = Counter(
    "council_task_dispatch_total",
    "Запуски задач во внешнем воркере",
    ["task_type", "result"],  # started|failed|blocked
)

TASK_GUARD_BLOCKS_TOTAL = Counter(
    "council_task_guard_blocks_total",
    "Отказы проверки идемпотентности",
    ["task_type", "reason"],
)

TASK_UPDATES_TOTAL = Counter(
    "council_task_updates_total",
    "Колбэки воркера по задачам",
    ["task_type", "status", "outcome"],  # outcome: applied|ignored|processing_failed
)

DECISIONS_POLL_RUNS_TOTAL = Counter(
    "council_decisions_poll_runs_total",
    "Запуски пакетного опроса решений",
    ["source", "result"],
)

DECISIONS_POLL_SKIPS_TOTAL = Counter(
    "council_decisions_poll_skips_total",
    "Встречи, пропущенные backoff-политикой",
    ["reason"],  # backoff|max_window
)

DECISIONS_POLL_LAST_DISPATCHED = Gauge(
    "council_decisions_poll_last_dispatched",
    "Количество pollDecisions задач, запущенных последним прогоном",
)


def record_task_dispatch(*, task_type: str, result: str) -> None:
    TASK_DISPATCH_TOTAL.labels(task_type=task_type, result=result).inc()


def record_guard_block(*, task_type: str, reason: str) -> None:
    TASK_GUARD_BLOCKS_TOTAL.labels(task_type=task_type, reason=reason).inc()


def record_task_update(*, task_type: str, status: str, outcome: str) -> None:
    TASK_UPDATES_TOTAL.labels(task_type=task_type, status=status, outcome=outcome).inc()


def record_decisions_poll_run(
    *,
    source: str,
    dispatched: int,
    skipped_backoff: int,
    skipped_max_window: int,
    failed: int,
) -> None:
    result = "failed" if failed > 0 else "ok"
    DECISIONS_POLL_RUNS_TOTAL.labels(source=source, result=result).inc()
    DECISIONS_POLL_LAST_DISPATCHED.set(max(0, dispatched))
    if skipped_backoff:
        DECISIONS_POLL_SKIPS_TOTAL.labels(reason="backoff").inc(skipped_backoff)
    if skipped_max_window:
        DECISIONS_POLL_SKIPS_TOTAL.labels(reason="max_window").inc(skipped_max_window)


# =============================================================================
# ENDPOINT /metrics
# =============================================================================
def setup_metrics_endpoint(app: FastAPI, *, service: str = "api-gateway") -> None:
    """
    Регистрирует endpoint /metrics для Prometheus.
    """

    @app.middleware("http")
    async def http_metrics(request: Request, call_next):
        route = request.url.path
        method = request.method
        started = time.perf_counter()

        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        status_code = str(response.status_code)

        REQUESTS_TOTAL.labels(
            service=service,
            route=route,
            method=method,
            status=status_code,
        ).inc()
        HTTP_REQUEST_LATENCY_MS.labels(
            service=service,
            route=route,
            method=method,
        ).observe(elapsed_ms)
        return response

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
