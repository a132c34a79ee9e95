import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import CheckConstraint, DateTime, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.infrastructure.db.base import Base


class PostStatus(StrEnum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    FAILED = "failed"


PUBLISHABLE_STATUSES = frozenset(
    {PostStatus.DRAFT, PostStatus.SCHEDULED, PostStatus.FAILED, PostStatus.PUBLISHING}
)


class Post(Base):
    __tablename__ = "posts"
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'scheduled', 'publishing', 'published', 'failed')",
            name="ck_posts_status_values",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    client_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=PostStatus.DRAFT.value, index=True)
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    captions: Mapped[list["PostCaption"]] = relationship(
        back_populates="post", cascade="all, delete-orphan", order_by="PostCaption.position"
    )
    media: Mapped[list["PostMedia"]] = relationship(
        back_populates="post", cascade="all, delete-orphan", order_by="PostMedia.position"
    )
    products: Mapped[list["PostProduct"]] = relationship(back_populates="post", cascade="all, delete-orphan")
    destinations: Mapped[list["PostDestination"]] = relationship(
        back_populates="post", cascade="all, delete-orphan", order_by="PostDestination.created_at"
    )
