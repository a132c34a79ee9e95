"""add publishing pipeline tables

Revision ID: 0001_publishing_pipeline
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_publishing_pipeline"
down_revision = None
branch_labels = None
depends_on = None


def _id_column() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False)


def _created_at_column() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))


def upgrade() -> None:
    op.create_table(
        "integrations",
        _id_column(),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("external_id", sa.String(length=255), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_integrations_tenant_id", "integrations", ["tenant_id"], unique=False)
    op.create_index("ix_integrations_client_id", "integrations", ["client_id"], unique=False)

    op.create_table(
        "destinations",
        _id_column(),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("integration_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("external_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True),
        _created_at_column(),
        sa.ForeignKeyConstraint(["integration_id"], ["integrations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("integration_id", "external_id", name="uq_destinations_integration_external"),
    )
    op.create_index("ix_destinations_tenant_id", "destinations", ["tenant_id"], unique=False)
    op.create_index("ix_destinations_client_id", "destinations", ["client_id"], unique=False)
    op.create_index("ix_destinations_integration_id", "destinations", ["integration_id"], unique=False)

    op.create_table(
        "posts",
        _id_column(),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        _created_at_column(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_check_constraint(
        "ck_posts_status_values",
        "posts",
        "status IN ('draft', 'scheduled', 'publishing', 'published', 'failed')",
    )
    op.create_index("ix_posts_tenant_id", "posts", ["tenant_id"], unique=False)
    op.create_index("ix_posts_client_id", "posts", ["client_id"], unique=False)
    op.create_index("ix_posts_status", "posts", ["status"], unique=False)
    op.create_index("ix_posts_scheduled_at", "posts", ["scheduled_at"], unique=False)

    op.create_table(
        "post_destinations",
        _id_column(),
        sa.Column("post_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("destination_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("external_post_id", sa.String(length=255), nullable=True),
        sa.Column("post_url", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("media_ids", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        _created_at_column(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["destination_id"], ["destinations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("post_id", "destination_id", name="uq_post_destinations_post_destination"),
    )
    op.create_check_constraint(
        "ck_post_destinations_status_values",
        "post_destinations",
        "status IN ('draft', 'publishing', 'published', 'failed')",
    )
    op.create_index("ix_post_destinations_post_id", "post_destinations", ["post_id"], unique=False)
    op.create_index("ix_post_destinations_destination_id", "post_destinations", ["destination_id"], unique=False)

    op.create_table(
        "post_captions",
        _id_column(),
        sa.Column("post_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("platform", sa.String(length=32), nullable=False),
        sa.Column("caption", sa.Text(), nullable=False, server_default=""),
        sa.Column("hashtags", sa.Text(), nullable=True),
        sa.Column("include_link", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("post_id", "platform", name="uq_post_captions_post_platform"),
    )
    op.create_index("ix_post_captions_post_id", "post_captions", ["post_id"], unique=False)

    op.create_table(
        "media",
        _id_column(),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("storage_reference", sa.Text(), nullable=False),
        sa.Column("mime_type", sa.String(length=128), nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_media_tenant_id", "media", ["tenant_id"], unique=False)

    op.create_table(
        "post_media",
        _id_column(),
        sa.Column("post_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("media_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["media_id"], ["media.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_post_media_post_id", "post_media", ["post_id"], unique=False)
    op.create_index("ix_post_media_media_id", "post_media", ["media_id"], unique=False)

    op.create_table(
        "products",
        _id_column(),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "slug", name="uq_products_tenant_slug"),
    )
    op.create_index("ix_products_tenant_id", "products", ["tenant_id"], unique=False)

    op.create_table(
        "post_products",
        _id_column(),
        sa.Column("post_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("post_id", "product_id", name="uq_post_products_post_product"),
    )
    op.create_index("ix_post_products_post_id", "post_products", ["post_id"], unique=False)

    op.create_table(
        "audit_logs",
        _id_column(),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("metadata_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default="{}"),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"], unique=False)

    op.create_table(
        "usage_events",
        _id_column(),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("metadata_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default="{}"),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_usage_events_tenant_id", "usage_events", ["tenant_id"], unique=False)
    op.create_index("ix_usage_events_client_id", "usage_events", ["client_id"], unique=False)
    op.create_index("ix_usage_events_event_type", "usage_events", ["event_type"], unique=False)

    op.create_table(
        "failed_jobs",
        _id_column(),
        sa.Column("job_type", sa.String(length=64), nullable=False),
        sa.Column("job_key", sa.String(length=255), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default="{}"),
        sa.Column("error_message", sa.Text(), nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_failed_jobs_job_type", "failed_jobs", ["job_type"], unique=False)
    op.create_index("ix_failed_jobs_job_key", "failed_jobs", ["job_key"], unique=False)


def downgrade() -> None:
    op.drop_table("failed_jobs")
    op.drop_table("usage_events")
    op.drop_table("audit_logs")
    op.drop_table("post_products")
    op.drop_table("products")
    op.drop_table("post_media")
    op.drop_table("media")
    op.drop_table("post_captions")
    op.drop_table("post_destinations")
    op.drop_table("posts")
    op.drop_table("destinations")
    op.drop_table("integrations")
