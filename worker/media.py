"""
Media inspection and fast-start remuxing over ffprobe/ffmpeg.

Both tools run as one-shot subprocesses. The exit code is the failure signal;
stderr is kept (truncated) for the error message. There is no retry.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from api.enums import AspectRatio
from api.errors import MediaToolError, truncate_error
from api.metrics import MEDIA_TOOL_DURATION_SECONDS, MEDIA_TOOL_FAILURES_TOTAL
from config import (
    ERROR_DETAIL_MAX_LENGTH,
    FFMPEG_PATH,
    FFMPEG_REMUX_TIMEOUT,
    FFPROBE_PATH,
    FFPROBE_TIMEOUT,
    LANDSCAPE_MIN_RATIO,
    PORTRAIT_MAX_RATIO,
)

logger = logging.getLogger(__name__)

PROCESSED_SUFFIX = ".processed"


@dataclass(frozen=True)
class VideoDimensions:
    width: int
    height: int

    @property
    def ratio(self) -> float:
        return self.width / self.height


def classify_aspect_ratio(
    width: int,
    height: int,
    landscape_min: float = LANDSCAPE_MIN_RATIO,
    portrait_max: float = PORTRAIT_MAX_RATIO,
) -> AspectRatio:
    """
    Classify a frame size by width/height.

    A ratio of at least landscape_min (1.7, so 16:9 qualifies) is landscape, a
    ratio of at most portrait_max (0.6, so 9:16 qualifies) is portrait, and
    anything between is other. Both boundaries are inclusive.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid dimensions {width}x{height}")
    ratio = width / height
    if ratio >= landscape_min:
        return AspectRatio.LANDSCAPE
    if ratio <= portrait_max:
        return AspectRatio.PORTRAIT
    return AspectRatio.OTHER


def processed_path_for(path: Path) -> Path:
    """Remux output sits next to the input with a .processed suffix appended."""
    return path.with_name(path.name + PROCESSED_SUFFIX)


class MediaInspector(ABC):
    """Reads video dimensions and rewrites containers for progressive playback."""

    @abstractmethod
    async def probe_dimensions(self, path: Path) -> VideoDimensions:
        """Return the width and height of the first video stream."""

    @abstractmethod
    async def remux_fast_start(self, path: Path) -> Path:
        """Write a fast-start copy of path and return the new file's path."""


class FFmpegMediaInspector(MediaInspector):
    def __init__(
        self,
        ffprobe_path: str = FFPROBE_PATH,
        ffmpeg_path: str = FFMPEG_PATH,
        probe_timeout: float = FFPROBE_TIMEOUT,
        remux_timeout: float = FFMPEG_REMUX_TIMEOUT,
    ):
        self.ffprobe_path = ffprobe_path
        self.ffmpeg_path = ffmpeg_path
        # 0 means wait as long as the tool takes
        self.probe_timeout = probe_timeout or None
        self.remux_timeout = remux_timeout or None

    async def _run(self, tool: str, cmd: List[str], timeout: Optional[float]) -> Tuple[bytes, bytes]:
        """Run cmd to completion, returning buffered (stdout, stderr)."""
        start = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            MEDIA_TOOL_FAILURES_TOTAL.labels(tool=tool, reason="exit_code").inc()
            raise MediaToolError(f"{tool} could not be started: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            MEDIA_TOOL_FAILURES_TOTAL.labels(tool=tool, reason="timeout").inc()
            raise MediaToolError(f"{tool} timed out after {timeout}s")
        finally:
            MEDIA_TOOL_DURATION_SECONDS.labels(tool=tool).observe(time.monotonic() - start)

        if process.returncode != 0:
            MEDIA_TOOL_FAILURES_TOTAL.labels(tool=tool, reason="exit_code").inc()
            message = truncate_error(stderr.decode("utf-8", errors="ignore"), ERROR_DETAIL_MAX_LENGTH)
            raise MediaToolError(f"{tool} failed with exit code {process.returncode}: {message}")

        return stdout, stderr

    async def probe_dimensions(self, path: Path) -> VideoDimensions:
        cmd = [
            self.ffprobe_path,
            "-v",
            "error",
            "-select_streams",
            "v:0",
            "-show_entries",
            "stream=width,height",
            "-of",
            "json",
            "-show_streams",
            str(path),
        ]
        stdout, _ = await self._run("ffprobe", cmd, self.probe_timeout)

        try:
            data = json.loads(stdout.decode("utf-8", errors="ignore"))
        except json.JSONDecodeError as e:
            MEDIA_TOOL_FAILURES_TOTAL.labels(tool="ffprobe", reason="output").inc()
            raise MediaToolError(f"ffprobe returned invalid JSON: {e}") from e

        streams = data.get("streams") or []
        if not streams:
            MEDIA_TOOL_FAILURES_TOTAL.labels(tool="ffprobe", reason="output").inc()
            raise MediaToolError("No video stream found")

        stream = streams[0]
        try:
            width = int(stream.get("width") or 0)
            height = int(stream.get("height") or 0)
        except (TypeError, ValueError):
            width = height = 0
        if width <= 0 or height <= 0:
            MEDIA_TOOL_FAILURES_TOTAL.labels(tool="ffprobe", reason="output").inc()
            raise MediaToolError(f"Could not determine video dimensions ({stream.get('width')}x{stream.get('height')})")

        logger.debug(f"Probed {path.name}: {width}x{height}")
        return VideoDimensions(width=width, height=height)

    async def remux_fast_start(self, path: Path) -> Path:
        output_path = processed_path_for(path)
        cmd = [
            self.ffmpeg_path,
            "-i",
            str(path),
            "-movflags",
            "faststart",
            "-map_metadata",
            "0",
            "-codec",
            "copy",
            "-f",
            "mp4",
            str(output_path),
        ]
        try:
            await self._run("ffmpeg", cmd, self.remux_timeout)
        except MediaToolError:
            # ffmpeg may leave a partial output behind
            output_path.unlink(missing_ok=True)
            raise

        logger.debug(f"Remuxed {path.name} for fast start")
        return output_path
