from __future__ import annotations

from contextlib import contextmanager
from time import perf_counter

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

REQUESTS_TOTAL = Counter(
    "total_requests",
    "Total HTTP requests",
    labelnames=("method", "path", "status"),
)
REQUEST_LATENCY_SECONDS = Histogram(
    "request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path"),
)
DB_QUERY_DURATION_SECONDS = Histogram(
    "db_query_duration_seconds",
    "Database query duration in seconds",
    labelnames=("operation",),
)
REDIS_LATENCY_SECONDS = Histogram(
    "redis_latency_seconds",
    "Redis command latency in seconds",
    labelnames=("operation",),
)
PUBLISH_JOBS_ENQUEUED_TOTAL = Counter(
    "publish_jobs_enqueued_total",
    "Number of destination publish jobs handed to the queue",
    labelnames=("platform",),
)
PUBLISH_ATTEMPTS_TOTAL = Counter(
    "publish_attempts_total",
    "Number of publish attempts executed by workers",
    labelnames=("platform",),
)
PUBLISH_FAILURES_TOTAL = Counter(
    "publish_failures_total",
    "Number of failed publish attempts in workers",
    labelnames=("platform", "retryable"),
)
RATE_LIMIT_REJECTIONS_TOTAL = Counter(
    "platform_rate_limit_rejections_total",
    "Number of publish attempts rejected by the platform rate limiter",
    labelnames=("platform",),
)
SCHEDULED_POSTS_CHECKED_TOTAL = Counter(
    "scheduled_posts_checked_total",
    "Number of due scheduled posts found by the sweep",
)


def record_request(method: str, path: str, status_code: int, duration_seconds: float) -> None:
    REQUESTS_TOTAL.labels(method=method, path=path, status=str(status_code)).inc()
    REQUEST_LATENCY_SECONDS.labels(method=method, path=path).observe(duration_seconds)


def observe_db_query(duration_seconds: float, operation: str = "sql") -> None:
    DB_QUERY_DURATION_SECONDS.labels(operation=operation).observe(duration_seconds)


def observe_redis_latency(duration_seconds: float, operation: str) -> None:
    REDIS_LATENCY_SECONDS.labels(operation=operation).observe(duration_seconds)


@contextmanager
def measure_redis(operation: str):
    started_at = perf_counter()
    try:
        yield
    finally:
        observe_redis_latency(perf_counter() - started_at, operation=operation)


def metrics_response() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
