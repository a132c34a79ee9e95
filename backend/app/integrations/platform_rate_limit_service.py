from dataclasses import dataclass
from typing import Protocol

from redis import Redis

from app.application.errors import RateLimitExceededError
from app.core.config import settings
from app.infrastructure.observability.metrics import RATE_LIMIT_REJECTIONS_TOTAL, measure_redis

# INCR and the first-hit EXPIRE run as one script so a crash between them cannot leave an immortal key.
_INCREMENT_WINDOW_SCRIPT = """
local current = redis.call("incr", KEYS[1])
if current == 1 then
    redis.call("expire", KEYS[1], ARGV[1])
end
local ttl = redis.call("ttl", KEYS[1])
return {current, ttl}
"""


@dataclass(frozen=True)
class PlatformRateLimitResult:
    platform: str
    limit: int
    current: int
    allowed: bool
    retry_after_seconds: int


class WindowCounter(Protocol):
    def increment(self, key: str, window_seconds: int) -> tuple[int, int]:
        """Atomically bump ``key`` and return ``(value, seconds_left_in_window)``."""
        ...


class RedisWindowCounter:
    def __init__(self, redis_client: Redis) -> None:
        self._redis = redis_client
        self._script = redis_client.register_script(_INCREMENT_WINDOW_SCRIPT)

    def increment(self, key: str, window_seconds: int) -> tuple[int, int]:
        with measure_redis("platform_rate_limit_incr"):
            current, ttl = self._script(keys=[key], args=[window_seconds])
        return int(current), int(ttl)


class PlatformRateLimiter:
    def __init__(
        self,
        counter: WindowCounter,
        *,
        limits: dict[str, int] | None = None,
        default_limit: int | None = None,
        window_seconds: int | None = None,
    ) -> None:
        self._counter = counter
        self._limits = dict(limits if limits is not None else settings.platform_rate_limits)
        self._default_limit = default_limit or settings.rate_limit_default_per_minute
        self._window_seconds = window_seconds or settings.rate_limit_window_seconds

    def limit_for(self, platform: str) -> int:
        return max(1, int(self._limits.get(platform, self._default_limit)))

    def check(self, platform: str) -> PlatformRateLimitResult:
        normalized_platform = platform.strip().lower()
        limit = self.limit_for(normalized_platform)
        current, ttl = self._counter.increment(f"rate_limit:{normalized_platform}", self._window_seconds)
        return PlatformRateLimitResult(
            platform=normalized_platform,
            limit=limit,
            current=current,
            allowed=current <= limit,
            retry_after_seconds=ttl if ttl > 0 else self._window_seconds,
        )

    def enforce(self, platform: str) -> PlatformRateLimitResult:
        result = self.check(platform)
        if not result.allowed:
            RATE_LIMIT_REJECTIONS_TOTAL.labels(platform=result.platform).inc()
            raise RateLimitExceededError(
                platform=result.platform,
                limit=result.limit,
                retry_after_seconds=result.retry_after_seconds,
            )
        return result
