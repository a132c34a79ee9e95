import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from app.application.errors import is_retryable_error
from app.application.services.billing_service import UsageRecorder
from app.application.services.post_state import reduce_destination_statuses
from app.core.security import reveal_secret
from app.domain.models.post import Post, PostStatus
from app.domain.models.post_destination import PostDestination, PostDestinationStatus
from app.domain.models.usage_event import UsageEventType
from app.domain.publish_job import PublishJob
from app.infrastructure.db.session import session_scope
from app.infrastructure.logging.context import reset_job_key, set_job_key
from app.infrastructure.observability.metrics import PUBLISH_ATTEMPTS_TOTAL, PUBLISH_FAILURES_TOTAL
from app.integrations.channel_adapters import (
    AdapterAuthError,
    BaseChannelAdapter,
    PublishResult,
    get_channel_adapter,
)
from app.integrations.platform_rate_limit_service import PlatformRateLimiter
from app.integrations.publish_job_lock import JobLock

logger = logging.getLogger(__name__)

AdapterResolver = Callable[..., BaseChannelAdapter]


@dataclass(frozen=True)
class PublishOutcome:
    job_key: str
    status: str
    reason: str | None = None
    external_post_id: str | None = None
    post_url: str | None = None
    post_status: str | None = None


def refresh_post_status(db: Session, post_id: UUID) -> str | None:
    """Recompute the post status from its destination rows.

    Returns the new status when it changed, ``None`` otherwise.
    """
    db.flush()
    post = db.execute(select(Post).where(Post.id == post_id).with_for_update()).scalar_one_or_none()
    if post is None:
        return None
    statuses = db.execute(select(PostDestination.status).where(PostDestination.post_id == post_id)).scalars().all()
    next_status = reduce_destination_statuses(statuses)
    if next_status is None or post.status == next_status.value:
        return None
    post.status = next_status.value
    return post.status


class PublishWorker:
    def __init__(
        self,
        *,
        session_factory: sessionmaker,
        rate_limiter: PlatformRateLimiter,
        job_lock: JobLock,
        usage_recorder: UsageRecorder,
        adapter_resolver: AdapterResolver = get_channel_adapter,
    ) -> None:
        self._session_factory = session_factory
        self._rate_limiter = rate_limiter
        self._job_lock = job_lock
        self._usage_recorder = usage_recorder
        self._adapter_resolver = adapter_resolver

    async def process(self, job: PublishJob, *, attempt: int = 1, max_attempts: int = 3) -> PublishOutcome:
        context_token = set_job_key(job.key)
        lock_token = self._job_lock.acquire(job.key)
        if lock_token is None:
            logger.info("publish_job_skipped_locked job_key=%s attempt=%s", job.key, attempt)
            reset_job_key(context_token)
            return PublishOutcome(job_key=job.key, status="skipped", reason="lock_not_acquired")

        try:
            if self._already_published(job):
                logger.info("publish_job_skipped_already_published job_key=%s", job.key)
                return PublishOutcome(job_key=job.key, status="skipped", reason="already_published")

            PUBLISH_ATTEMPTS_TOTAL.labels(platform=job.platform.value).inc()
            try:
                result = await self._publish(job)
            except Exception as exc:
                final = not is_retryable_error(exc) or attempt >= max_attempts
                self._record_failure(job, exc, attempt=attempt, final=final)
                raise
            return self._record_success(job, result, attempt=attempt)
        finally:
            self._job_lock.release(job.key, lock_token)
            reset_job_key(context_token)

    def _already_published(self, job: PublishJob) -> bool:
        with self._session_factory() as db:
            status = db.execute(
                select(PostDestination.status).where(
                    PostDestination.post_id == UUID(job.post_id),
                    PostDestination.destination_id == UUID(job.destination_id),
                )
            ).scalar_one_or_none()
        return status == PostDestinationStatus.PUBLISHED.value

    async def _publish(self, job: PublishJob) -> PublishResult:
        self._rate_limiter.enforce(job.platform.value)
        try:
            access_token = reveal_secret(job.access_token)
        except ValueError as exc:
            raise AdapterAuthError(f"{job.platform.value} access token cannot be decrypted") from exc

        adapter = self._adapter_resolver(job.platform)
        return await adapter.publish(
            access_token=access_token,
            caption=job.caption,
            media_urls=list(job.media_urls),
            media_mime_types=list(job.media_mime_types),
            platform_address=job.platform_address,
        )

    @staticmethod
    def _load_row(db: Session, job: PublishJob) -> PostDestination | None:
        return db.execute(
            select(PostDestination).where(
                PostDestination.post_id == UUID(job.post_id),
                PostDestination.destination_id == UUID(job.destination_id),
            )
        ).scalar_one_or_none()

    def _record_success(self, job: PublishJob, result: PublishResult, *, attempt: int) -> PublishOutcome:
        with session_scope(self._session_factory) as db:
            row = self._load_row(db, job)
            if row is not None:
                row.status = PostDestinationStatus.PUBLISHED.value
                row.external_post_id = result.external_post_id
                row.post_url = result.post_url
                row.error = None
                row.published_at = datetime.now(UTC)
            transition = refresh_post_status(db, UUID(job.post_id))
            post = db.get(Post, UUID(job.post_id))
            post_status = post.status if post is not None else None
            tenant_id = post.tenant_id if post is not None else None
            client_id = post.client_id if post is not None else None
            destination_count = len(post.destinations) if post is not None else 0

        logger.info(
            "publish_job_completed job_key=%s platform=%s attempt=%s external_post_id=%s post_status=%s",
            job.key,
            job.platform.value,
            attempt,
            result.external_post_id,
            post_status,
        )
        if transition == PostStatus.PUBLISHED.value and tenant_id is not None:
            self._usage_recorder.record_usage(
                tenant_id=tenant_id,
                client_id=client_id,
                event_type=UsageEventType.POST_PUBLISHED.value,
                quantity=1,
                metadata={"post_id": job.post_id, "destinations": destination_count},
            )
        return PublishOutcome(
            job_key=job.key,
            status="published",
            external_post_id=result.external_post_id,
            post_url=result.post_url,
            post_status=post_status,
        )

    def _record_failure(self, job: PublishJob, exc: Exception, *, attempt: int, final: bool) -> None:
        message = str(exc) or exc.__class__.__name__
        PUBLISH_FAILURES_TOTAL.labels(platform=job.platform.value, retryable=str(not final).lower()).inc()
        with session_scope(self._session_factory) as db:
            row = self._load_row(db, job)
            if row is not None:
                row.error = message
                if final:
                    row.status = PostDestinationStatus.FAILED.value
            refresh_post_status(db, UUID(job.post_id))

        log = logger.error if final else logger.warning
        log(
            "publish_job_failed job_key=%s platform=%s attempt=%s final=%s error_code=%s error=%s",
            job.key,
            job.platform.value,
            attempt,
            final,
            getattr(exc, "error_code", exc.__class__.__name__),
            message,
        )
