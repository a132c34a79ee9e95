import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.application.services.publishing_service import (
    cancel_post,
    load_post_for_publishing,
    publish_post,
    schedule_post,
)
from app.domain.models.post import Post
from app.infrastructure.db.session import get_db
from app.integrations.publish_queue import PublishQueue
from app.interfaces.api.deps import get_actor_id, get_queue, require_tenant_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["posts"])


class SchedulePostRequest(BaseModel):
    scheduled_at: str


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _serialize_post(post: Post) -> dict:
    return {
        "id": str(post.id),
        "tenant_id": str(post.tenant_id),
        "client_id": str(post.client_id),
        "status": post.status,
        "scheduled_at": _isoformat(post.scheduled_at),
        "destinations": [
            {
                "destination_id": str(row.destination_id),
                "status": row.status,
                "external_post_id": row.external_post_id,
                "post_url": row.post_url,
                "error": row.error,
                "published_at": _isoformat(row.published_at),
            }
            for row in post.destinations
        ],
        "created_at": _isoformat(post.created_at),
        "updated_at": _isoformat(post.updated_at),
    }


@router.get("/{post_id}", status_code=status.HTTP_200_OK)
def get_post(
    post_id: UUID,
    db: Session = Depends(get_db),
    tenant_id: UUID = Depends(require_tenant_id),
) -> dict:
    return _serialize_post(load_post_for_publishing(db, tenant_id=tenant_id, post_id=post_id))


@router.post("/{post_id}/publish", status_code=status.HTTP_202_ACCEPTED)
def publish_post_endpoint(
    post_id: UUID,
    db: Session = Depends(get_db),
    tenant_id: UUID = Depends(require_tenant_id),
    actor_id: UUID | None = Depends(get_actor_id),
    queue: PublishQueue = Depends(get_queue),
) -> dict:
    post = publish_post(db, queue, tenant_id=tenant_id, post_id=post_id, actor_id=actor_id)
    return _serialize_post(post)


@router.post("/{post_id}/schedule", status_code=status.HTTP_200_OK)
def schedule_post_endpoint(
    post_id: UUID,
    payload: SchedulePostRequest,
    db: Session = Depends(get_db),
    tenant_id: UUID = Depends(require_tenant_id),
    actor_id: UUID | None = Depends(get_actor_id),
) -> dict:
    post = schedule_post(db, tenant_id=tenant_id, post_id=post_id, scheduled_at=payload.scheduled_at, actor_id=actor_id)
    return _serialize_post(post)


@router.post("/{post_id}/cancel", status_code=status.HTTP_200_OK)
def cancel_post_endpoint(
    post_id: UUID,
    db: Session = Depends(get_db),
    tenant_id: UUID = Depends(require_tenant_id),
    actor_id: UUID | None = Depends(get_actor_id),
) -> dict:
    post = cancel_post(db, tenant_id=tenant_id, post_id=post_id, actor_id=actor_id)
    return _serialize_post(post)
