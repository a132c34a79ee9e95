import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from app.application.services.publishing_service import publish_post
from app.core.config import settings
from app.domain.models.post import Post, PostStatus
from app.infrastructure.observability.metrics import SCHEDULED_POSTS_CHECKED_TOTAL
from app.integrations.publish_queue import PublishQueue

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    checked: int = 0
    published: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)


def publish_due_posts(
    session_factory: sessionmaker,
    queue: PublishQueue,
    *,
    now: datetime | None = None,
    limit: int | None = None,
) -> SweepResult:
    """Hand every scheduled post whose time has come to the publishing orchestrator.

    Each post runs in its own session so one failure does not stop the sweep.
    """
    current = now or datetime.now(UTC)
    with session_factory() as db:
        due = db.execute(
            select(Post.id, Post.tenant_id)
            .where(
                Post.status == PostStatus.SCHEDULED.value,
                Post.scheduled_at.is_not(None),
                Post.scheduled_at <= current,
            )
            .order_by(Post.scheduled_at.asc())
            .limit(limit or settings.scheduler_batch_size)
        ).all()

    result = SweepResult(checked=len(due))
    SCHEDULED_POSTS_CHECKED_TOTAL.inc(len(due))

    for post_id, tenant_id in due:
        with session_factory() as db:
            try:
                publish_post(db, queue, tenant_id=tenant_id, post_id=post_id)
            except Exception:
                db.rollback()
                result.failed.append(post_id)
                logger.exception("scheduled_publish_failed tenant_id=%s post_id=%s", tenant_id, post_id)
                continue
        result.published.append(post_id)

    logger.info(
        "scheduler_run completed checked=%s published=%s failed=%s due_checked_at=%s",
        result.checked,
        len(result.published),
        len(result.failed),
        current.isoformat(),
    )
    return result
