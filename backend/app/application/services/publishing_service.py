import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.application.errors import InvalidScheduleError, PostNotFoundError
from app.application.services.audit_service import log_audit_event
from app.application.services.link_generation_service import append_link_to_caption, build_product_link
from app.application.services.post_state import (
    mark_cancelled,
    mark_publishing,
    mark_scheduled,
    reduce_destination_statuses,
)
from app.core.config import settings
from app.domain.models.destination import Destination
from app.domain.models.media import Media, PostMedia
from app.domain.models.post import Post
from app.domain.models.post_destination import PostDestination, PostDestinationStatus
from app.domain.models.product import PostProduct
from app.domain.platforms import ADDRESSED_PLATFORMS, Platform, platform_for_destination_type
from app.domain.publish_job import PublishJob
from app.integrations.media_resolver import resolve_media_url
from app.integrations.publish_queue import PublishQueue

logger = logging.getLogger(__name__)


class DestinationSkipped(Exception):
    """A destination could not be turned into a job; the message is stored on its row."""


class CaptionMissing(DestinationSkipped):
    """No caption for the destination's platform. The row is left out of the run untouched."""


def load_post_for_publishing(db: Session, *, tenant_id: UUID, post_id: UUID) -> Post:
    post = db.execute(
        select(Post)
        .where(Post.id == post_id, Post.tenant_id == tenant_id)
        .options(
            selectinload(Post.captions),
            selectinload(Post.media).selectinload(PostMedia.media),
            selectinload(Post.products).selectinload(PostProduct.product),
            selectinload(Post.destinations)
            .selectinload(PostDestination.destination)
            .selectinload(Destination.integration),
        )
    ).scalar_one_or_none()
    if post is None:
        raise PostNotFoundError(post_id)
    return post


def primary_product_slug(post: Post) -> str | None:
    for link in post.products:
        if link.is_primary and link.product is not None:
            return link.product.slug
    return None


def build_caption(post: Post, platform: Platform, product_slug: str | None) -> str:
    caption_row = next((row for row in post.captions if row.platform == platform.value), None)
    if caption_row is None:
        raise CaptionMissing(f"No caption configured for platform '{platform.value}'")

    text = caption_row.caption or ""
    if caption_row.hashtags:
        text = f"{text}\n\n{caption_row.hashtags}"
    if caption_row.include_link and product_slug:
        text = append_link_to_caption(text, build_product_link(product_slug, platform.value), platform.value)
    return text


def _override_media(db: Session, *, tenant_id: UUID, media_ids: list) -> list[Media]:
    wanted = [UUID(str(media_id)) for media_id in media_ids]
    rows = db.execute(select(Media).where(Media.id.in_(wanted), Media.tenant_id == tenant_id)).scalars().all()
    by_id = {row.id: row for row in rows}
    missing = [str(media_id) for media_id in wanted if media_id not in by_id]
    if missing:
        logger.warning("publish_media_override_missing tenant_id=%s media_ids=%s", tenant_id, ",".join(missing))
    if wanted and not by_id:
        raise DestinationSkipped(f"None of the selected media ({', '.join(missing)}) exist for this tenant")
    return [by_id[media_id] for media_id in wanted if media_id in by_id]


def collect_media(db: Session, post: Post, post_destination: PostDestination) -> tuple[list[str], list[str]]:
    if post_destination.media_ids:
        media = _override_media(db, tenant_id=post.tenant_id, media_ids=post_destination.media_ids)
    else:
        media = [link.media for link in post.media if link.media is not None]

    urls: list[str] = []
    mime_types: list[str] = []
    for item in media:
        try:
            urls.append(resolve_media_url(item.storage_reference))
        except ValueError as exc:
            raise DestinationSkipped(f"Media {item.id} cannot be resolved: {exc}") from exc
        mime_types.append(item.mime_type or "")
    return urls, mime_types


def build_publish_job(db: Session, post: Post, post_destination: PostDestination, product_slug: str | None) -> PublishJob:
    destination = post_destination.destination
    try:
        platform = platform_for_destination_type(destination.type)
    except ValueError as exc:
        raise DestinationSkipped(str(exc)) from exc

    caption = build_caption(post, platform, product_slug)
    media_urls, media_mime_types = collect_media(db, post, post_destination)

    access_token = destination.access_token or (destination.integration.access_token if destination.integration else None)
    if not access_token:
        raise DestinationSkipped(f"No access token available for destination {destination.id}")

    return PublishJob(
        post_id=str(post.id),
        destination_id=str(destination.id),
        platform=platform,
        caption=caption,
        access_token=access_token,
        integration_id=str(destination.integration_id),
        media_urls=media_urls,
        media_mime_types=media_mime_types,
        platform_address=destination.external_id if platform in ADDRESSED_PLATFORMS else None,
    )


def apply_aggregate_status(post: Post) -> str | None:
    next_status = reduce_destination_statuses(row.status for row in post.destinations)
    if next_status is None or post.status == next_status.value:
        return None
    post.status = next_status.value
    return post.status


def publish_post(
    db: Session,
    queue: PublishQueue,
    *,
    tenant_id: UUID,
    post_id: UUID,
    actor_id: UUID | None = None,
) -> Post:
    post = load_post_for_publishing(db, tenant_id=tenant_id, post_id=post_id)
    mark_publishing(post)
    db.flush()

    product_slug = primary_product_slug(post)
    jobs: list[tuple[PostDestination, PublishJob]] = []
    skipped = 0
    uncaptioned = 0
    for post_destination in post.destinations:
        if (
            post_destination.status == PostDestinationStatus.PUBLISHED.value
            and post_destination.external_post_id
        ):
            skipped += 1
            continue
        try:
            job = build_publish_job(db, post, post_destination, product_slug)
        except CaptionMissing as exc:
            uncaptioned += 1
            logger.warning(
                "publish_destination_uncaptioned post_id=%s destination_id=%s reason=%s",
                post.id,
                post_destination.destination_id,
                exc,
            )
            continue
        except DestinationSkipped as exc:
            post_destination.status = PostDestinationStatus.FAILED.value
            post_destination.error = str(exc)
            logger.warning(
                "publish_destination_skipped post_id=%s destination_id=%s reason=%s",
                post.id,
                post_destination.destination_id,
                exc,
            )
            continue

        post_destination.status = PostDestinationStatus.PUBLISHING.value
        post_destination.external_post_id = None
        post_destination.post_url = None
        post_destination.error = None
        jobs.append((post_destination, job))

    log_audit_event(
        db,
        tenant_id=tenant_id,
        user_id=actor_id,
        action="post.publish",
        entity_type="post",
        entity_id=post.id,
        metadata={"destinations": len(jobs), "already_published": skipped, "uncaptioned": uncaptioned},
    )
    if not jobs:
        apply_aggregate_status(post)
    # Rows must be committed before workers can see them.
    db.commit()

    for _, job in jobs:
        queue.enqueue(
            job.key,
            job.to_payload(),
            attempts=settings.publish_max_attempts,
            backoff_seconds=settings.publish_backoff_seconds,
        )

    logger.info(
        "publish_post_enqueued tenant_id=%s post_id=%s jobs=%s already_published=%s",
        tenant_id,
        post.id,
        len(jobs),
        skipped,
    )
    return post


def parse_scheduled_at(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError) as exc:
        raise InvalidScheduleError(f"Invalid scheduled time: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def schedule_post(
    db: Session,
    *,
    tenant_id: UUID,
    post_id: UUID,
    scheduled_at: str | datetime,
    actor_id: UUID | None = None,
    now: datetime | None = None,
) -> Post:
    post = load_post_for_publishing(db, tenant_id=tenant_id, post_id=post_id)
    when = parse_scheduled_at(scheduled_at)
    mark_scheduled(post, when, now=now)
    log_audit_event(
        db,
        tenant_id=tenant_id,
        user_id=actor_id,
        action="post.schedule",
        entity_type="post",
        entity_id=post.id,
        metadata={"scheduled_at": when.isoformat()},
    )
    db.commit()
    logger.info("post_scheduled tenant_id=%s post_id=%s scheduled_at=%s", tenant_id, post.id, when.isoformat())
    return post


def cancel_post(
    db: Session,
    *,
    tenant_id: UUID,
    post_id: UUID,
    actor_id: UUID | None = None,
) -> Post:
    post = load_post_for_publishing(db, tenant_id=tenant_id, post_id=post_id)
    mark_cancelled(post)
    log_audit_event(
        db,
        tenant_id=tenant_id,
        user_id=actor_id,
        action="post.cancel",
        entity_type="post",
        entity_id=post.id,
    )
    db.commit()
    logger.info("post_schedule_cancelled tenant_id=%s post_id=%s", tenant_id, post.id)
    return post
