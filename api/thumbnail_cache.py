"""
In-process thumbnail store used when VIDVAULT_THUMBNAIL_STORAGE=memory.

Unbounded and never evicted: entries live until the process exits or the
video is deleted. One instance is created per app and kept on app.state.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class CachedThumbnail:
    data: bytes
    media_type: str


class ThumbnailCache:
    """Lock-guarded mapping of video id to thumbnail bytes and media type."""

    def __init__(self):
        self._entries: Dict[str, CachedThumbnail] = {}
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        # Created lazily so the lock binds to the loop that serves requests
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def put(self, video_id: str, data: bytes, media_type: str) -> None:
        async with self._get_lock():
            self._entries[video_id] = CachedThumbnail(data=data, media_type=media_type)

    async def get(self, video_id: str) -> Optional[CachedThumbnail]:
        async with self._get_lock():
            return self._entries.get(video_id)

    async def discard(self, video_id: str) -> None:
        async with self._get_lock():
            self._entries.pop(video_id, None)

    def __len__(self) -> int:
        return len(self._entries)
