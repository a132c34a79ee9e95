from app.domain.models.audit_log import AuditLog
from app.domain.models.destination import Destination
from app.domain.models.failed_job import FailedJob
from app.domain.models.integration import Integration
from app.domain.models.media import Media, PostMedia
from app.domain.models.post import Post, PostStatus
from app.domain.models.post_caption import PostCaption
from app.domain.models.post_destination import PostDestination, PostDestinationStatus
from app.domain.models.product import PostProduct, Product
from app.domain.models.usage_event import UsageEvent, UsageEventType

__all__ = [
    "AuditLog",
    "Destination",
    "FailedJob",
    "Integration",
    "Media",
    "Post",
    "PostCaption",
    "PostDestination",
    "PostDestinationStatus",
    "PostMedia",
    "PostProduct",
    "PostStatus",
    "Product",
    "UsageEvent",
    "UsageEventType",
]
