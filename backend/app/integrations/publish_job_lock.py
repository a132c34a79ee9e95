import logging
from typing import Protocol
from uuid import uuid4

from redis import Redis

from app.infrastructure.observability.metrics import measure_redis

logger = logging.getLogger(__name__)

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class JobLock(Protocol):
    def acquire(self, job_key: str) -> str | None: ...

    def release(self, job_key: str, token: str) -> None: ...


class RedisJobLock:
    """Keeps a single execution of a given job key in flight across all workers."""

    def __init__(self, redis_client: Redis, *, ttl_seconds: int) -> None:
        self._redis = redis_client
        self._ttl_seconds = ttl_seconds

    @staticmethod
    def _lock_key(job_key: str) -> str:
        return f"lock:publish_job:{job_key}"

    def acquire(self, job_key: str) -> str | None:
        token = str(uuid4())
        with measure_redis("publish_job_lock_acquire"):
            acquired = self._redis.set(self._lock_key(job_key), token, nx=True, ex=self._ttl_seconds)
        if not acquired:
            return None
        return token

    def release(self, job_key: str, token: str) -> None:
        try:
            with measure_redis("publish_job_lock_release"):
                self._redis.eval(_RELEASE_SCRIPT, 1, self._lock_key(job_key), token)
        except Exception:
            logger.exception("publish_job_lock_release_failed job_key=%s", job_key)
