"""
Local asset handling for uploads.

Uploaded files land in the assets directory under random names so concurrent
uploads never collide. Thumbnails stay there and are served from /assets;
videos only pass through on their way to object storage.
"""

import base64
import logging
import secrets
from pathlib import Path
from typing import Optional

from fastapi import Request, UploadFile

from api.errors import BadRequestError

logger = logging.getLogger(__name__)

RANDOM_NAME_BYTES = 32


def random_asset_name() -> str:
    """URL-safe base64 of 32 random bytes, without padding."""
    return base64.urlsafe_b64encode(secrets.token_bytes(RANDOM_NAME_BYTES)).decode("ascii").rstrip("=")


def random_hex_name() -> str:
    """Hex encoding of 32 random bytes."""
    return secrets.token_hex(RANDOM_NAME_BYTES)


def media_type_to_ext(media_type: str) -> str:
    """
    Derive a file extension from a media type's subtype.

    "image/png" -> ".png", "image/svg+xml" -> ".svg". Unknown or malformed
    types fall back to ".bin".
    """
    parts = (media_type or "").split(";")[0].strip().split("/")
    if len(parts) != 2 or not parts[1]:
        return ".bin"
    subtype = parts[1].split("+")[0].lower()
    if not subtype.isalnum():
        return ".bin"
    return f".{subtype}"


def asset_path(assets_dir: Path, file_name: str) -> Path:
    return assets_dir / file_name


def asset_url(host: str, port: int, file_name: str) -> str:
    return f"http://{host}:{port}/assets/{file_name}"


def asset_name_from_url(url: Optional[str], host: str, port: int) -> Optional[str]:
    """
    File name behind a URL built by asset_url, or None for any other URL.

    Names containing a path separator or starting with a dot are refused so
    the result can be joined onto the assets directory.
    """
    prefix = asset_url(host, port, "")
    if not url or not url.startswith(prefix):
        return None
    name = url[len(prefix):]
    if not name or "/" in name or "\\" in name or name.startswith("."):
        return None
    return name


def format_size_limit(max_size: int) -> str:
    """Human-readable cap for error messages ("10 MB", "1 GB")."""
    if max_size >= 1 << 30 and max_size % (1 << 30) == 0:
        return f"{max_size >> 30} GB"
    if max_size >= 1 << 20:
        return f"{max_size / (1 << 20):.0f} MB"
    return f"{max_size} bytes"


def validate_content_length(request: Request, max_size: int, overhead: int) -> None:
    """
    Reject a request whose declared body is already larger than max_size plus
    multipart framing, before the body is read.
    """
    content_length = request.headers.get("content-length")
    if not content_length:
        return
    try:
        declared = int(content_length)
    except ValueError:
        return  # Invalid Content-Length header, rely on the streaming check
    if declared > max_size + overhead:
        raise BadRequestError(f"File too large. Maximum size is {format_size_limit(max_size)}")


def check_upload_size(file: UploadFile, max_size: int) -> None:
    """Reject an upload whose known size exceeds max_size."""
    size: Optional[int] = getattr(file, "size", None)
    if size is not None and size > max_size:
        raise BadRequestError(f"File too large. Maximum size is {format_size_limit(max_size)}")


async def save_upload_with_size_limit(file: UploadFile, upload_path: Path, max_size: int, chunk_size: int) -> int:
    """
    Stream an upload to disk, enforcing max_size while copying.

    Returns the number of bytes written. The partial file is removed if the
    cap is exceeded or the write fails.
    """
    total_size = 0
    upload_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(upload_path, "wb") as f:
            while chunk := await file.read(chunk_size):
                total_size += len(chunk)
                if total_size > max_size:
                    raise BadRequestError(f"File too large. Maximum size is {format_size_limit(max_size)}")
                f.write(chunk)
    except BaseException:
        upload_path.unlink(missing_ok=True)
        raise

    return total_size


async def read_upload_with_size_limit(file: UploadFile, max_size: int, chunk_size: int) -> bytes:
    """Read an upload into memory, enforcing max_size while reading."""
    buffer = bytearray()
    while chunk := await file.read(chunk_size):
        buffer.extend(chunk)
        if len(buffer) > max_size:
            raise BadRequestError(f"File too large. Maximum size is {format_size_limit(max_size)}")
    return bytes(buffer)


def remove_file(path: Optional[Path]) -> None:
    """Best-effort delete of a temporary file. Failures are logged, not raised."""
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to remove temporary file {path.name}: {e}")
