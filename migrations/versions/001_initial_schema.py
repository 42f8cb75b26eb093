"""initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates the videos table. For databases created with
`python -m api.database`, use 'alembic stamp 001' to mark as current.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the videos table."""
    op.create_table(
        "videos",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("thumbnail_url", sa.Text, nullable=True),
        sa.Column("video_url", sa.Text, nullable=True),
    )
    op.create_index("ix_videos_user_id", "videos", ["user_id"])
    op.create_index("ix_videos_created_at", "videos", ["created_at"])


def downgrade() -> None:
    """Drop the videos table."""
    op.drop_index("ix_videos_created_at", table_name="videos")
    op.drop_index("ix_videos_user_id", table_name="videos")
    op.drop_table("videos")
