import logging
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from app.domain.models.usage_event import UsageEvent

logger = logging.getLogger(__name__)


def record_usage_event(
    db: Session,
    *,
    tenant_id: UUID,
    client_id: UUID,
    event_type: str,
    quantity: int = 1,
    metadata: dict | None = None,
) -> UsageEvent:
    event = UsageEvent(
        tenant_id=tenant_id,
        client_id=client_id,
        event_type=event_type,
        quantity=quantity,
        metadata_json=metadata or {},
    )
    db.add(event)
    return event


class UsageRecorder:
    """Best-effort usage notifications written in their own session.

    Failures are logged and swallowed so they never change a publish outcome.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def record_usage(
        self,
        *,
        tenant_id: UUID,
        client_id: UUID,
        event_type: str,
        quantity: int = 1,
        metadata: dict | None = None,
    ) -> bool:
        try:
            with self._session_factory() as db:
                record_usage_event(
                    db,
                    tenant_id=tenant_id,
                    client_id=client_id,
                    event_type=event_type,
                    quantity=quantity,
                    metadata=metadata,
                )
                db.commit()
        except Exception:
            logger.exception(
                "usage_event_record_failed tenant_id=%s client_id=%s event_type=%s",
                tenant_id,
                client_id,
                event_type,
            )
            return False
        return True
