from uuid import UUID

from fastapi import Header, HTTPException, status

from app.core.tenant import get_current_tenant
from app.integrations.publish_queue import PublishQueue, get_publish_queue


def require_tenant_id() -> UUID:
    tenant_id = get_current_tenant()
    if tenant_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing X-Tenant-ID header",
        )
    return tenant_id


def get_actor_id(x_user_id: str | None = Header(default=None, alias="X-User-ID")) -> UUID | None:
    if not x_user_id:
        return None
    try:
        return UUID(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid X-User-ID header") from exc


def get_queue() -> PublishQueue:
    return get_publish_queue()
