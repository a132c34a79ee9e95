"""Post lifecycle transitions and the destination -> post status reduction."""

from collections.abc import Iterable
from datetime import UTC, datetime

from app.application.errors import InvalidScheduleError, PostStateConflictError
from app.domain.models.post import PUBLISHABLE_STATUSES, Post, PostStatus
from app.domain.models.post_destination import PostDestinationStatus


def ensure_publishable(post: Post) -> None:
    if post.status not in PUBLISHABLE_STATUSES:
        raise PostStateConflictError(action="publish", status=post.status)


def mark_publishing(post: Post) -> None:
    ensure_publishable(post)
    post.status = PostStatus.PUBLISHING.value


def mark_scheduled(post: Post, scheduled_at: datetime, *, now: datetime | None = None) -> None:
    if post.status != PostStatus.DRAFT.value:
        raise PostStateConflictError(action="schedule", status=post.status)
    current = now or datetime.now(UTC)
    if scheduled_at.tzinfo is None:
        scheduled_at = scheduled_at.replace(tzinfo=UTC)
    if scheduled_at <= current:
        raise InvalidScheduleError("Scheduled time must be in the future")
    post.status = PostStatus.SCHEDULED.value
    post.scheduled_at = scheduled_at


def mark_cancelled(post: Post) -> None:
    if post.status != PostStatus.SCHEDULED.value:
        raise PostStateConflictError(action="cancel", status=post.status)
    post.status = PostStatus.DRAFT.value
    post.scheduled_at = None


def reduce_destination_statuses(statuses: Iterable[str]) -> PostStatus | None:
    """Derive the post status from its destination statuses.

    Returns ``None`` when the post should keep its current status (work still in flight).
    Rows still in ``draft`` were never dispatched and take no part in the reduction.
    """
    values = [value for value in statuses if value != PostDestinationStatus.DRAFT.value]
    if not values:
        return None
    if all(value == PostDestinationStatus.PUBLISHED.value for value in values):
        return PostStatus.PUBLISHED
    any_failed = any(value == PostDestinationStatus.FAILED.value for value in values)
    any_publishing = any(value == PostDestinationStatus.PUBLISHING.value for value in values)
    if any_failed and not any_publishing:
        return PostStatus.FAILED
    return None
