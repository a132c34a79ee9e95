from uuid import UUID


class PublishingError(Exception):
    """Base class for precondition failures raised to the caller before any job is enqueued."""

    error_code = "publishing_error"


class PostNotFoundError(PublishingError):
    error_code = "post_not_found"

    def __init__(self, post_id: UUID) -> None:
        self.post_id = post_id
        super().__init__(f'Post with id "{post_id}" not found')


class PostStateConflictError(PublishingError):
    error_code = "post_state_conflict"

    def __init__(self, *, action: str, status: str) -> None:
        self.action = action
        self.status = status
        super().__init__(f'Cannot {action} post with status "{status}"')


class InvalidScheduleError(PublishingError):
    error_code = "invalid_schedule"


class RateLimitExceededError(RuntimeError):
    """Raised by the worker when the platform window is full; the queue retries it."""

    retryable = True
    error_code = "platform_rate_limited"

    def __init__(self, *, platform: str, limit: int, retry_after_seconds: int) -> None:
        self.platform = platform
        self.limit = limit
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Rate limit exceeded for {platform}. Please try again later "
            f"(limit={limit}/window, retry_after={retry_after_seconds}s)"
        )


def is_retryable_error(exc: BaseException) -> bool:
    return bool(getattr(exc, "retryable", False))
