"""
Centralized enums for values used throughout the application.
Using str-based enums so values serialize directly into JSON and storage keys.
"""

from enum import Enum


class AspectRatio(str, Enum):
    """Orientation bucket of a probed video. Used as the object storage key prefix."""

    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    OTHER = "other"


class ThumbnailStorageMode(str, Enum):
    """Where uploaded thumbnails are kept."""

    DISK = "disk"  # written under the assets directory, served from /assets
    MEMORY = "memory"  # kept in the in-process cache, served from /api/thumbnails/{id}


class UploadKind(str, Enum):
    """Upload type label for metrics and logging."""

    THUMBNAIL = "thumbnail"
    VIDEO = "video"
