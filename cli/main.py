#!/usr/bin/env python3
"""
VidVault CLI - Command line interface for video records and uploads.
"""

import argparse
import mimetypes
import os
import sys
from datetime import timedelta
from pathlib import Path

import httpx
from rich.progress import (
    BarColumn,
    FileSizeColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TotalFileSizeColumn,
    TransferSpeedColumn,
)

from api.auth import make_jwt
from api.errors import truncate_error
from config import (
    ERROR_DETAIL_MAX_LENGTH,
    ERROR_SUMMARY_MAX_LENGTH,
    JWT_ALGORITHM,
    JWT_EXPIRY_MINUTES,
    JWT_SECRET,
    MAX_THUMBNAIL_UPLOAD_SIZE,
    MAX_VIDEO_UPLOAD_SIZE,
    PORT,
    VIDEO_MEDIA_TYPE,
)

# Default timeout for API requests (30 seconds)
DEFAULT_API_TIMEOUT = int(os.getenv("VIDVAULT_API_TIMEOUT", "30"))

# Upload timeout in seconds (default 2 hours, configurable via environment)
# Very long timeout for large uploads, but not infinite to prevent hanging
UPLOAD_TIMEOUT = int(os.getenv("VIDVAULT_UPLOAD_TIMEOUT", "7200"))

_default_api_url = f"http://localhost:{PORT}"
API_BASE = os.getenv("VIDVAULT_API_URL", _default_api_url).rstrip("/") + "/api"


class CLIError(Exception):
    """Custom exception for CLI errors."""

    pass


class ProgressFileWrapper:
    """Wrapper for file objects that reports upload progress."""

    def __init__(self, file, progress, task_id):
        self.file = file
        self.progress = progress
        self.task_id = task_id

    def read(self, size=-1):
        """
        Read from the file and update progress.

        Empty reads at EOF don't advance progress as no bytes were transferred.
        """
        data = self.file.read(size)
        if data:
            self.progress.update(self.task_id, advance=len(data))
        return data

    def seek(self, *args, **kwargs):
        return self.file.seek(*args, **kwargs)

    def tell(self):
        return self.file.tell()

    def close(self):
        """Does not close the underlying file as it's managed externally."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, *args):
        pass


def safe_json_response(response, default_error="Request failed"):
    """
    Safely parse JSON response with proper error handling.

    Args:
        response: httpx.Response object
        default_error: Default error message if response has no detail

    Returns:
        Parsed JSON data if successful, None for 204 No Content

    Raises:
        CLIError: If response status is not successful or JSON parsing fails
    """
    if not response.is_success:
        try:
            detail = response.json().get("detail", response.text)
        except (ValueError, AttributeError, httpx.ResponseNotRead):
            detail = truncate_error(response.text, ERROR_DETAIL_MAX_LENGTH) if response.text else default_error
        raise CLIError(f"API error ({response.status_code}): {detail}")

    if response.status_code == 204:
        return None

    try:
        return response.json()
    except (ValueError, httpx.ResponseNotRead):
        raise CLIError(f"Invalid JSON response: {truncate_error(response.text, ERROR_SUMMARY_MAX_LENGTH)}")


def validate_file(file_path: Path, max_size: int) -> int:
    """
    Validate file exists, is readable, non-empty and within max_size.

    Returns:
        int: File size in bytes

    Raises:
        CLIError: If any check fails
    """
    if not file_path.exists():
        raise CLIError(f"File not found: {file_path}")

    if not file_path.is_file():
        raise CLIError(f"Path is not a file: {file_path}")

    if not os.access(file_path, os.R_OK):
        raise CLIError(f"File is not readable: {file_path}")

    file_size = file_path.stat().st_size
    if file_size == 0:
        raise CLIError(f"File is empty: {file_path}")

    if file_size > max_size:
        raise CLIError(f"File too large ({file_size / (1024 * 1024):.1f} MB). Maximum is {max_size / (1024 * 1024):.0f} MB")

    return file_size


def get_token(args) -> str:
    """Bearer token from --token or VIDVAULT_TOKEN."""
    token = getattr(args, "token", None) or os.getenv("VIDVAULT_TOKEN")
    if not token:
        raise CLIError("No access token. Pass --token or set VIDVAULT_TOKEN (see 'vidvault token').")
    return token


def get_auth_headers(args) -> dict:
    return {"Authorization": f"Bearer {get_token(args)}"}


def fail(message: str):
    print(f"Error: {message}")
    sys.exit(1)


def handle_request_error(e: Exception):
    """Print a friendly message for a failed API call and exit."""
    if isinstance(e, httpx.ConnectError):
        print(f"Error: Could not connect to API at {API_BASE}")
        print("Make sure the server is running.")
    elif isinstance(e, httpx.TimeoutException):
        print(f"Error: Request timed out while talking to {API_BASE}")
    else:
        print(f"Error: {e}")
    sys.exit(1)


def print_video(video: dict):
    print(f"  ID:          {video['id']}")
    print(f"  Title:       {video['title']}")
    if video.get("description"):
        print(f"  Description: {video['description']}")
    print(f"  Owner:       {video['user_id']}")
    print(f"  Created:     {(video.get('created_at') or '-')[:19]}")
    print(f"  Thumbnail:   {video.get('thumbnail_url') or '-'}")
    print(f"  Video:       {video.get('video_url') or '-'}")


def cmd_token(args):
    """Mint a development access token for a user id."""
    if not JWT_SECRET:
        fail("VIDVAULT_JWT_SECRET is not set")
    token = make_jwt(args.user_id, JWT_SECRET, timedelta(minutes=args.minutes), JWT_ALGORITHM)
    print(token)


def cmd_create(args):
    """Create a video record."""
    try:
        response = httpx.post(
            f"{API_BASE}/videos",
            json={"title": args.title, "description": args.description or ""},
            headers=get_auth_headers(args),
            timeout=DEFAULT_API_TIMEOUT,
        )
        video = safe_json_response(response)
        print("Created video:")
        print_video(video)
    except (httpx.ConnectError, httpx.TimeoutException, CLIError) as e:
        handle_request_error(e)


def cmd_list(args):
    """List the caller's videos."""
    try:
        response = httpx.get(f"{API_BASE}/videos", headers=get_auth_headers(args), timeout=DEFAULT_API_TIMEOUT)
        result = safe_json_response(response)
        videos_list = result.get("videos", [])

        if not videos_list:
            print("No videos found.")
            return

        print(f"{'ID':<38} {'Created':<20} {'Title':<30} {'Media':<6}")
        print("-" * 96)
        for v in videos_list:
            title = v["title"][:28] + ".." if len(v["title"]) > 30 else v["title"]
            created = (v.get("created_at") or "-")[:19]
            media = ("T" if v.get("thumbnail_url") else "-") + ("V" if v.get("video_url") else "-")
            print(f"{v['id']:<38} {created:<20} {title:<30} {media:<6}")
    except (httpx.ConnectError, httpx.TimeoutException, CLIError) as e:
        handle_request_error(e)


def cmd_get(args):
    """Show one video."""
    try:
        response = httpx.get(
            f"{API_BASE}/videos/{args.video_id}", headers=get_auth_headers(args), timeout=DEFAULT_API_TIMEOUT
        )
        print_video(safe_json_response(response))
    except (httpx.ConnectError, httpx.TimeoutException, CLIError) as e:
        handle_request_error(e)


def cmd_delete(args):
    """Delete a video."""
    try:
        response = httpx.delete(
            f"{API_BASE}/videos/{args.video_id}", headers=get_auth_headers(args), timeout=DEFAULT_API_TIMEOUT
        )
        safe_json_response(response)
        print(f"Video {args.video_id} deleted.")
    except (httpx.ConnectError, httpx.TimeoutException, CLIError) as e:
        handle_request_error(e)


def upload_with_progress(url: str, field: str, file_path: Path, file_size: int, media_type: str, headers: dict):
    """POST file_path as a multipart field while drawing a progress bar."""
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        FileSizeColumn(),
        TextColumn("/"),
        TotalFileSizeColumn(),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
    ) as progress:
        task_id = progress.add_task("Uploading...", total=file_size)

        with open(file_path, "rb") as f:
            wrapped_file = ProgressFileWrapper(f, progress, task_id)
            files = {field: (file_path.name, wrapped_file, media_type)}

            with httpx.Client(timeout=httpx.Timeout(UPLOAD_TIMEOUT)) as client:
                return client.post(url, files=files, headers=headers)


def cmd_upload_thumbnail(args):
    """Upload a thumbnail image for a video."""
    try:
        file_path = Path(args.file)
        file_size = validate_file(file_path, MAX_THUMBNAIL_UPLOAD_SIZE)
        media_type = args.type or mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"

        print(f"Uploading thumbnail: {file_path.name} ({media_type})")
        response = upload_with_progress(
            f"{API_BASE}/thumbnail_upload/{args.video_id}",
            "thumbnail",
            file_path,
            file_size,
            media_type,
            get_auth_headers(args),
        )
        video = safe_json_response(response)
        print("Success! Thumbnail updated.")
        print_video(video)
    except (httpx.ConnectError, httpx.TimeoutException, CLIError) as e:
        handle_request_error(e)


def cmd_upload_video(args):
    """Upload an MP4 for a video."""
    try:
        file_path = Path(args.file)
        file_size = validate_file(file_path, MAX_VIDEO_UPLOAD_SIZE)
        if file_path.suffix.lower() != ".mp4":
            print(f"Warning: '{file_path.suffix}' is not .mp4; the server only accepts {VIDEO_MEDIA_TYPE}")

        print(f"Uploading video: {file_path.name}")
        response = upload_with_progress(
            f"{API_BASE}/video_upload/{args.video_id}",
            "video",
            file_path,
            file_size,
            VIDEO_MEDIA_TYPE,
            get_auth_headers(args),
        )
        video = safe_json_response(response)
        print("Success! Video processed and stored.")
        print_video(video)
    except httpx.TimeoutException:
        print(f"Error: Upload timed out (exceeded {UPLOAD_TIMEOUT}s timeout)")
        print("You can increase the timeout with VIDVAULT_UPLOAD_TIMEOUT environment variable")
        sys.exit(1)
    except (httpx.ConnectError, CLIError) as e:
        handle_request_error(e)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vidvault", description="VidVault CLI - Manage videos and uploads")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Shared --token option for authenticated commands
    auth_parent = argparse.ArgumentParser(add_help=False)
    auth_parent.add_argument("--token", help="Bearer token (default: $VIDVAULT_TOKEN)")

    token_parser = subparsers.add_parser("token", help="Mint a development access token")
    token_parser.add_argument("user_id", help="User id to put in the token subject")
    token_parser.add_argument(
        "-m", "--minutes", type=int, default=JWT_EXPIRY_MINUTES, help="Lifetime in minutes"
    )
    token_parser.set_defaults(func=cmd_token)

    create_parser = subparsers.add_parser("create", parents=[auth_parent], help="Create a video record")
    create_parser.add_argument("title", help="Video title")
    create_parser.add_argument("-d", "--description", help="Video description")
    create_parser.set_defaults(func=cmd_create)

    list_parser = subparsers.add_parser("list", parents=[auth_parent], help="List your videos")
    list_parser.set_defaults(func=cmd_list)

    get_parser = subparsers.add_parser("get", parents=[auth_parent], help="Show a video")
    get_parser.add_argument("video_id", help="Video ID")
    get_parser.set_defaults(func=cmd_get)

    del_parser = subparsers.add_parser("delete", parents=[auth_parent], help="Delete a video")
    del_parser.add_argument("video_id", help="Video ID to delete")
    del_parser.set_defaults(func=cmd_delete)

    thumb_parser = subparsers.add_parser(
        "upload-thumbnail", parents=[auth_parent], help="Upload a thumbnail image"
    )
    thumb_parser.add_argument("video_id", help="Video ID")
    thumb_parser.add_argument("file", help="Image file")
    thumb_parser.add_argument("--type", help="Media type (default: guessed from file name)")
    thumb_parser.set_defaults(func=cmd_upload_thumbnail)

    video_parser = subparsers.add_parser("upload-video", parents=[auth_parent], help="Upload an MP4 video")
    video_parser.add_argument("video_id", help="Video ID")
    video_parser.add_argument("file", help="MP4 file")
    video_parser.set_defaults(func=cmd_upload_video)

    return parser


def main():
    args = build_parser().parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
