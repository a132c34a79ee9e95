import asyncio
import logging
from dataclasses import asdict
from functools import lru_cache

from celery.exceptions import MaxRetriesExceededError

from app.application.errors import RateLimitExceededError, is_retryable_error
from app.application.services.billing_service import UsageRecorder
from app.application.services.publish_worker import PublishWorker
from app.application.services.scheduler_service import publish_due_posts
from app.core.config import settings
from app.domain.models.failed_job import FailedJob
from app.domain.publish_job import PublishJob
from app.infrastructure.cache.redis_client import get_redis_client
from app.infrastructure.db.session import SessionLocal, session_scope
from app.infrastructure.observability.metrics import measure_redis
from app.integrations.platform_rate_limit_service import PlatformRateLimiter, RedisWindowCounter
from app.integrations.publish_job_lock import RedisJobLock
from app.integrations.publish_queue import get_publish_queue, pending_job_key
from workers.celery_app import celery_app

logger = logging.getLogger(__name__)

REDACTED = "[redacted]"


@lru_cache(maxsize=1)
def get_publish_worker() -> PublishWorker:
    redis_client = get_redis_client()
    return PublishWorker(
        session_factory=SessionLocal,
        rate_limiter=PlatformRateLimiter(RedisWindowCounter(redis_client)),
        job_lock=RedisJobLock(redis_client, ttl_seconds=settings.publish_job_lock_ttl_seconds),
        usage_recorder=UsageRecorder(SessionLocal),
    )


def compute_retry_countdown(backoff_seconds: int, attempt: int, exc: BaseException | None = None) -> int:
    countdown = max(1, backoff_seconds) * (2 ** (max(1, attempt) - 1))
    if isinstance(exc, RateLimitExceededError):
        countdown = max(countdown, exc.retry_after_seconds)
    return countdown


def redact_payload(payload: dict) -> dict:
    redacted = dict(payload)
    if redacted.get("access_token"):
        redacted["access_token"] = REDACTED
    return redacted


def _record_failed_job(*, job_key: str, payload: dict, attempts: int, error_message: str) -> None:
    with session_scope(SessionLocal) as db:
        db.add(
            FailedJob(
                job_type="publish_destination",
                job_key=job_key,
                attempts=attempts,
                payload=redact_payload(payload),
                error_message=error_message,
            )
        )


def _release_pending(job_key: str) -> None:
    try:
        with measure_redis("publish_job_pending_release"):
            get_redis_client().delete(pending_job_key(job_key))
    except Exception:
        logger.exception("publish_job_pending_release_failed job_key=%s", job_key)


@celery_app.task(bind=True, name="workers.tasks.publish_destination", acks_late=True)
def publish_destination(
    self,
    payload: dict,
    max_attempts: int = settings.publish_max_attempts,
    backoff_seconds: int = settings.publish_backoff_seconds,
) -> dict:
    attempt = self.request.retries + 1
    job = PublishJob.from_payload(payload)

    try:
        outcome = asyncio.run(get_publish_worker().process(job, attempt=attempt, max_attempts=max_attempts))
    except Exception as exc:
        error_message = str(exc) or exc.__class__.__name__
        if is_retryable_error(exc) and attempt < max_attempts:
            countdown = compute_retry_countdown(backoff_seconds, attempt, exc)
            logger.warning(
                "publish_destination_retry job_key=%s attempt=%s countdown=%s error=%s",
                job.key,
                attempt,
                countdown,
                error_message,
            )
            try:
                raise self.retry(exc=exc, countdown=countdown, max_retries=max_attempts - 1)
            except MaxRetriesExceededError:
                logger.exception("publish_destination_max_retries job_key=%s", job.key)

        _record_failed_job(job_key=job.key, payload=payload, attempts=attempt, error_message=error_message)
        _release_pending(job.key)
        return {"status": "failed", "job_key": job.key, "attempt": attempt, "error": error_message}

    if outcome.reason != "lock_not_acquired":
        _release_pending(job.key)
    return asdict(outcome)


@celery_app.task(name="workers.tasks.schedule_due_posts")
def schedule_due_posts() -> dict:
    result = publish_due_posts(SessionLocal, get_publish_queue())
    return {
        "checked": result.checked,
        "published": len(result.published),
        "failed": len(result.failed),
    }
