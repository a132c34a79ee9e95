import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Protocol

from redis import Redis

from app.application.errors import is_retryable_error
from app.core.config import settings
from app.domain.publish_job import PublishJob
from app.infrastructure.cache.redis_client import get_redis_client
from app.infrastructure.observability.metrics import PUBLISH_JOBS_ENQUEUED_TOTAL, measure_redis

logger = logging.getLogger(__name__)

DeliveryHandler = Callable[..., Awaitable[object]]


def pending_job_key(job_key: str) -> str:
    return f"publish_job:pending:{job_key}"


class PublishQueue(Protocol):
    def enqueue(self, job_key: str, payload: dict, *, attempts: int, backoff_seconds: int) -> bool:
        """Accept a job unless one with the same key is still pending. Returns ``False`` on dedupe."""
        ...


class CeleryPublishQueue:
    def __init__(self, redis_client: Redis, *, pending_ttl_seconds: int) -> None:
        self._redis = redis_client
        self._pending_ttl_seconds = pending_ttl_seconds

    def enqueue(self, job_key: str, payload: dict, *, attempts: int, backoff_seconds: int) -> bool:
        from workers.tasks import publish_destination  # local import to avoid import cycle

        with measure_redis("publish_job_pending_set"):
            accepted = self._redis.set(pending_job_key(job_key), "1", nx=True, ex=self._pending_ttl_seconds)
        if not accepted:
            logger.info("publish_job_enqueue_skipped_pending job_key=%s", job_key)
            return False

        try:
            publish_destination.apply_async(
                kwargs={
                    "payload": payload,
                    "max_attempts": attempts,
                    "backoff_seconds": backoff_seconds,
                },
                task_id=job_key,
            )
        except Exception:
            logger.exception("publish_job_enqueue_failed job_key=%s", job_key)
            with measure_redis("publish_job_pending_release"):
                self._redis.delete(pending_job_key(job_key))
            raise
        PUBLISH_JOBS_ENQUEUED_TOTAL.labels(platform=str(payload.get("platform") or "unknown")).inc()
        logger.info(
            "publish_job_enqueued job_key=%s platform=%s attempts=%s backoff_seconds=%s",
            job_key,
            payload.get("platform"),
            attempts,
            backoff_seconds,
        )
        return True


@dataclass
class QueuedJob:
    job_key: str
    payload: dict
    attempts: int
    backoff_seconds: int
    attempt: int = 1


@dataclass
class DeliveryRecord:
    job_key: str
    attempt: int
    error: str | None = None


@dataclass
class InMemoryPublishQueue:
    """Single-process queue for tests.

    Nothing is delivered until ``drain`` is awaited: it hands jobs to the registered
    handler and replays retryable failures until their attempts run out. Backoff
    delays are recorded, not slept.
    """

    pending: deque[QueuedJob] = field(default_factory=deque)
    deliveries: list[DeliveryRecord] = field(default_factory=list)
    retry_delays: list[int] = field(default_factory=list)
    _handler: DeliveryHandler | None = None

    def on_deliver(self, handler: DeliveryHandler) -> None:
        self._handler = handler

    def enqueue(self, job_key: str, payload: dict, *, attempts: int, backoff_seconds: int) -> bool:
        if any(queued.job_key == job_key for queued in self.pending):
            logger.info("publish_job_enqueue_skipped_pending job_key=%s", job_key)
            return False
        self.pending.append(
            QueuedJob(job_key=job_key, payload=dict(payload), attempts=attempts, backoff_seconds=backoff_seconds)
        )
        return True

    @property
    def job_keys(self) -> list[str]:
        return [queued.job_key for queued in self.pending]

    async def drain(self) -> int:
        if self._handler is None:
            raise RuntimeError("No delivery handler registered")
        delivered = 0
        while self.pending:
            queued = self.pending.popleft()
            delivered += 1
            job = PublishJob.from_payload(queued.payload)
            try:
                await self._handler(job, attempt=queued.attempt, max_attempts=queued.attempts)
            except Exception as exc:
                self.deliveries.append(DeliveryRecord(job_key=queued.job_key, attempt=queued.attempt, error=str(exc)))
                if is_retryable_error(exc) and queued.attempt < queued.attempts:
                    self.retry_delays.append(queued.backoff_seconds * 2 ** (queued.attempt - 1))
                    queued.attempt += 1
                    self.pending.append(queued)
                continue
            self.deliveries.append(DeliveryRecord(job_key=queued.job_key, attempt=queued.attempt))
        return delivered


@lru_cache(maxsize=1)
def get_publish_queue() -> PublishQueue:
    backend = settings.publish_queue_backend.strip().lower()
    if backend == "memory":
        logger.warning("publish_queue_memory_backend jobs are only delivered when drained in-process")
        return InMemoryPublishQueue()
    if backend == "celery":
        return CeleryPublishQueue(get_redis_client(), pending_ttl_seconds=settings.publish_job_pending_ttl_seconds)
    raise ValueError(f"Unsupported publish queue backend '{settings.publish_queue_backend}'")
