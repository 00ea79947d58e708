"""create pantry ingest tables

Revision ID: 5c1e9a7d2b40
Revises:
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c1e9a7d2b40"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.String(128), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("normalized_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False, server_default="0"),
        sa.Column("unit", sa.String(50), nullable=False, server_default="unit"),
        sa.Column("category", sa.String(100), nullable=False, server_default="uncategorized"),
        sa.Column("location", sa.String(100), nullable=True),
        sa.Column("brand", sa.String(255), nullable=True),
        sa.Column("low_stock_threshold", sa.Float(), nullable=False, server_default="1"),
        sa.Column("expiration", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *timestamp_columns(),
        sa.UniqueConstraint(
            "user_id", "normalized_name", name="uq_inventory_user_normalized_name"
        ),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.String(128), nullable=False, index=True),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("item_ids", sa.JSON(), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        *timestamp_columns(),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.String(128), nullable=False, index=True),
        sa.Column("slug", sa.String(50), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        *timestamp_columns(),
        sa.UniqueConstraint("user_id", "slug", name="uq_category_user_slug"),
    )

    op.create_table(
        "grocery_lists",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.String(128), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False, server_default="Shopping List"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active", index=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        *timestamp_columns(),
    )

    op.create_table(
        "uploads",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False, index=True),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("original_filename", sa.String(1024), nullable=False),
        sa.Column("content_type", sa.String(255), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("source_type", sa.String(20), nullable=False, server_default="unknown"),
        sa.Column("storage_path", sa.String(1024), nullable=False),
        sa.Column("bucket", sa.String(255), nullable=False),
        sa.Column(
            "status", sa.String(20), nullable=False, server_default="awaiting_upload", index=True
        ),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("processing_job_id", sa.String(64), nullable=True),
        sa.Column("ingestion_job_id", sa.String(64), nullable=True),
        sa.Column("text_preview", sa.Text(), nullable=True),
        *timestamp_columns(),
    )

    op.create_table(
        "upload_jobs",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("upload_id", sa.String(64), nullable=False, unique=True, index=True),
        sa.Column("user_id", sa.String(128), nullable=False, index=True),
        sa.Column("storage_path", sa.String(1024), nullable=False),
        sa.Column("bucket", sa.String(255), nullable=False),
        sa.Column("content_type", sa.String(255), nullable=False),
        sa.Column("source_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="queued", index=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        *timestamp_columns(),
    )

    op.create_table(
        "ingestion_jobs",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False, index=True),
        sa.Column("text", sa.Text(), nullable=False, server_default=""),
        sa.Column("upload_id", sa.String(64), nullable=True, index=True),
        sa.Column("job_metadata", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("agent_response", sa.Text(), nullable=True),
        sa.Column("result_summary", sa.JSON(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *timestamp_columns(),
    )

    op.create_table(
        "tool_invocations",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("run_id", sa.String(64), nullable=False, index=True),
        sa.Column("user_id", sa.String(128), nullable=False, index=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="in_progress"),
        sa.Column("arguments", sa.JSON(), nullable=True),
        sa.Column("output", sa.JSON(), nullable=True),
        *timestamp_columns(),
    )

    op.create_table(
        "agent_interactions",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.String(128), nullable=False, index=True),
        sa.Column("input", sa.Text(), nullable=False, server_default=""),
        sa.Column("agent", sa.String(50), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("used_fallback", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("latency_ms", sa.Float(), nullable=False, server_default="0"),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False, index=True),
    )

    op.create_table(
        "agent_metrics",
        sa.Column("key", sa.String(20), primary_key=True),
        sa.Column("total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("success_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fallback_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("latency_sum", sa.Float(), nullable=False, server_default="0"),
        sa.Column("confidence_sum", sa.Float(), nullable=False, server_default="0"),
        sa.Column("latency_buckets", sa.JSON(), nullable=False),
        sa.Column("confidence_buckets", sa.JSON(), nullable=False),
        *timestamp_columns(),
    )


def downgrade() -> None:
    op.drop_table("agent_metrics")
    op.drop_table("agent_interactions")
    op.drop_table("tool_invocations")
    op.drop_table("ingestion_jobs")
    op.drop_table("upload_jobs")
    op.drop_table("uploads")
    op.drop_table("grocery_lists")
    op.drop_table("categories")
    op.drop_table("audit_logs")
    op.drop_table("inventory_items")
