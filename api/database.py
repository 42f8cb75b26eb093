import uuid
from datetime import datetime, timezone
from typing import List, Optional

import sqlalchemy as sa
from databases import Database

from config import DATABASE_URL

# Create database instance - works with PostgreSQL or SQLite
database = Database(DATABASE_URL)
metadata = sa.MetaData()


videos = sa.Table(
    "videos",
    metadata,
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), nullable=False),  # owner; only they may change media URLs
    sa.Column("title", sa.String(255), nullable=False),
    sa.Column("description", sa.Text, default=""),
    sa.Column("created_at", sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)),
    sa.Column("thumbnail_url", sa.Text, nullable=True),
    sa.Column("video_url", sa.Text, nullable=True),
    sa.Index("ix_videos_user_id", "user_id"),
    sa.Index("ix_videos_created_at", "created_at"),
)

# Columns a caller may overwrite through update_video
MUTABLE_COLUMNS = ("title", "description", "thumbnail_url", "video_url")


async def get_video(video_id: str) -> Optional[dict]:
    """Fetch a video record by id, or None if it doesn't exist."""
    row = await database.fetch_one(videos.select().where(videos.c.id == video_id))
    return dict(row) if row is not None else None


async def update_video(video: dict) -> None:
    """
    Persist a full video record.

    Handlers read the record, change fields on the dict and write the whole
    thing back. Ownership and created_at are never rewritten here.
    """
    values = {column: video.get(column) for column in MUTABLE_COLUMNS}
    await database.execute(videos.update().where(videos.c.id == video["id"]).values(**values))


async def create_video(user_id: str, title: str, description: str = "") -> dict:
    """Insert a draft video record owned by user_id and return it."""
    now = datetime.now(timezone.utc)
    record = {
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "title": title,
        "description": description,
        "created_at": now,
        "thumbnail_url": None,
        "video_url": None,
    }
    await database.execute(videos.insert().values(**record))
    return record


async def list_videos_for_user(user_id: str) -> List[dict]:
    """All videos owned by user_id, newest first."""
    rows = await database.fetch_all(
        videos.select().where(videos.c.user_id == user_id).order_by(videos.c.created_at.desc())
    )
    return [dict(row) for row in rows]


async def delete_video(video_id: str) -> None:
    await database.execute(videos.delete().where(videos.c.id == video_id))


def create_tables():
    """
    Create database tables directly using SQLAlchemy metadata.
    This creates all tables if they don't exist.
    """
    engine = sa.create_engine(DATABASE_URL)
    metadata.create_all(engine)
    engine.dispose()


if __name__ == "__main__":
    create_tables()
    print("Database tables created successfully!")
