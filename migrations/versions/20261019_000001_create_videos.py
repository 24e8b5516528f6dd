from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    processing_status_enum = sa.Enum("processing", "completed", "failed", name="processingstatus")

    op.create_table(
        "videos",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("original_path", sa.String(length=1024), nullable=False),
        sa.Column("qualities", sa.JSON(), nullable=False),
        sa.Column("thumbnail_path", sa.String(length=1024), nullable=False),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("source_width", sa.Integer(), nullable=True),
        sa.Column("source_height", sa.Integer(), nullable=True),
        sa.Column("processing_status", processing_status_enum, nullable=False, server_default="processing"),
        sa.Column("processing_error", sa.Text(), nullable=True),
        sa.Column("uploader_id", sa.String(length=128), nullable=True),
        sa.Column("uploader_name", sa.String(length=255), nullable=True),
        sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_videos_created_at", "videos", ["created_at"])
    op.create_index("ix_videos_processing_status", "videos", ["processing_status"])


def downgrade() -> None:
    op.drop_index("ix_videos_processing_status", table_name="videos")
    op.drop_index("ix_videos_created_at", table_name="videos")
    op.drop_table("videos")

    sa.Enum(name="processingstatus").drop(op.get_bind(), checkfirst=False)
