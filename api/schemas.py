from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from api.common import ensure_utc


class VideoCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=5000)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v


class VideoResponse(BaseModel):
    id: str
    user_id: str
    title: str
    description: str = ""
    created_at: Optional[datetime] = None
    thumbnail_url: Optional[str] = None
    video_url: Optional[str] = None

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, v):
        return v if v is not None else ""

    @field_validator("created_at", mode="before")
    @classmethod
    def normalize_created_at(cls, v):
        # SQLite hands back naive datetimes
        return ensure_utc(v) if isinstance(v, datetime) else v


class VideoListResponse(BaseModel):
    videos: List[VideoResponse]
    total: int