"""
Prometheus metrics for the VidVault API.

Metrics are exposed at /metrics in Prometheus text format.
"""

from prometheus_client import Counter, Histogram, Info, generate_latest

# Application info
APP_INFO = Info("vidvault", "VidVault application information")

# =============================================================================
# HTTP Metrics
# =============================================================================

HTTP_REQUESTS_TOTAL = Counter(
    "vidvault_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "vidvault_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 120.0],
)

# =============================================================================
# Upload Metrics
# =============================================================================

UPLOADS_TOTAL = Counter(
    "vidvault_uploads_total",
    "Total media uploads",
    ["kind", "result"],  # kind: thumbnail, video. result: success, rejected, failed
)

UPLOAD_BYTES_TOTAL = Counter(
    "vidvault_upload_bytes_total",
    "Total bytes accepted from uploads",
    ["kind"],
)

VIDEOS_BY_ASPECT_RATIO_TOTAL = Counter(
    "vidvault_videos_by_aspect_ratio_total",
    "Processed videos by aspect ratio classification",
    ["aspect_ratio"],  # landscape, portrait, other
)

# =============================================================================
# Media Tool Metrics
# =============================================================================

MEDIA_TOOL_DURATION_SECONDS = Histogram(
    "vidvault_media_tool_duration_seconds",
    "ffprobe/ffmpeg invocation duration in seconds",
    ["tool"],  # ffprobe, ffmpeg
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0],
)

MEDIA_TOOL_FAILURES_TOTAL = Counter(
    "vidvault_media_tool_failures_total",
    "Failed ffprobe/ffmpeg invocations",
    ["tool", "reason"],  # reason: exit_code, timeout, output
)

# =============================================================================
# Storage Metrics
# =============================================================================

STORAGE_OPERATIONS_TOTAL = Counter(
    "vidvault_storage_operations_total",
    "Total storage operations",
    ["backend", "result"],  # backend: disk, memory, s3. result: success, failed
)

STORAGE_BYTES_WRITTEN = Counter(
    "vidvault_storage_bytes_written_total",
    "Total bytes written to storage",
    ["backend"],
)


def get_metrics() -> bytes:
    """Generate Prometheus metrics in text format."""
    return generate_latest()


def init_app_info(version: str = "0.1.0"):
    """Initialize application info metric."""
    APP_INFO.info({"version": version, "app": "vidvault"})
