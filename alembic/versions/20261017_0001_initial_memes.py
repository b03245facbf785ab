"""Initial meme records schema."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "memes",
        sa.Column("meme_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), server_default="default_user", nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("style", sa.String(), server_default="", nullable=False),
        sa.Column("task_id", sa.String(), server_default="", nullable=False),
        sa.Column("status", sa.String(), server_default="pending", nullable=False),
        sa.Column("image_url", sa.String(), server_default="", nullable=False),
        sa.Column("is_public", sa.Boolean(), server_default=sa.text("1"), nullable=False),
        sa.Column("generation_time_ms", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("meme_id"),
    )
    op.create_index("ix_memes_user_id", "memes", ["user_id"], unique=False)
    op.create_index("ix_memes_task_id", "memes", ["task_id"], unique=False)
    op.create_index("ix_memes_status", "memes", ["status"], unique=False)
    op.create_index("ix_memes_is_public", "memes", ["is_public"], unique=False)
    op.create_index(
        "idx_memes_status_updated",
        "memes",
        ["status", "updated_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_memes_status_updated", table_name="memes")
    op.drop_index("ix_memes_is_public", table_name="memes")
    op.drop_index("ix_memes_status", table_name="memes")
    op.drop_index("ix_memes_task_id", table_name="memes")
    op.drop_index("ix_memes_user_id", table_name="memes")
    op.drop_table("memes")
