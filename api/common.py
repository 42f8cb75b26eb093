"""
Shared HTTP utilities: middleware, client IP resolution, rate limit responses
and health checks.
"""

import asyncio
import contextvars
import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from api.database import database
from api.metrics import HTTP_REQUEST_DURATION_SECONDS, HTTP_REQUESTS_TOTAL
from config import STORAGE_CHECK_TIMEOUT, TRUSTED_PROXIES

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Request id of the request being served, for log correlation
request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is timezone-aware UTC.

    SQLite doesn't store timezone info, so datetimes retrieved from the database
    may be timezone-naive even though they were stored as UTC.

    Examples:
        >>> ensure_utc(None)
        None
        >>> ensure_utc(datetime(2024, 1, 1, 12, 0, 0))  # naive
        datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        # Assume naive datetimes from SQLite are UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def get_real_ip(request: Request) -> str:
    """
    Get the real client IP address, respecting X-Forwarded-For header only from trusted proxies.

    Configure VIDVAULT_TRUSTED_PROXIES with your proxy IPs (e.g., "127.0.0.1,10.0.0.1").
    """
    client_ip = get_remote_address(request)

    if TRUSTED_PROXIES and client_ip in TRUSTED_PROXIES:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            # The first entry is the original client
            return forwarded.split(",")[0].strip()

    return client_ip


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        response.headers["Content-Security-Policy"] = "default-src 'self'; frame-ancestors 'none'"
        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tag every request with an id and record HTTP metrics.

    A client-supplied X-Request-ID is kept; otherwise a UUID4 is generated.
    The id is echoed back in the response headers.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        route = request.scope.get("route")
        # Route templates keep label cardinality bounded
        endpoint = getattr(route, "path", "unmatched")
        HTTP_REQUESTS_TOTAL.labels(method=request.method, endpoint=endpoint, status_code=response.status_code).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=request.method, endpoint=endpoint).observe(
            time.perf_counter() - start
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Handle rate limit exceeded errors with a proper JSON response."""
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded",
            "error": str(exc.detail),
        },
    )


def _check_assets_dir_sync(assets_dir: Path) -> bool:
    """Verify the assets directory exists and is writable."""
    try:
        if not assets_dir.is_dir():
            return False
        test_file = assets_dir / f".health_check_{uuid.uuid4().hex}"
        test_file.write_text("health check")
        test_file.unlink()
        return True
    except OSError:
        return False


async def check_health(assets_dir: Path) -> dict:
    """
    Perform health checks for the database and the assets directory.

    Returns a dict with:
        - checks: dict of individual check results
        - healthy: bool indicating overall health
        - status_code: HTTP status code (200 if healthy, 503 if not)
    """
    checks = {
        "database": False,
        "storage": False,
    }

    try:
        await database.fetch_one("SELECT 1")
        checks["database"] = True
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")

    # A stale network mount would otherwise hang the check
    try:
        loop = asyncio.get_running_loop()
        checks["storage"] = await asyncio.wait_for(
            loop.run_in_executor(None, _check_assets_dir_sync, assets_dir),
            timeout=STORAGE_CHECK_TIMEOUT,
        )
    except asyncio.TimeoutError:
        logger.warning("Storage health check timed out")
    except Exception as e:
        logger.warning(f"Storage health check failed: {e}")

    healthy = all(checks.values())
    return {
        "checks": checks,
        "healthy": healthy,
        "status_code": 200 if healthy else 503,
        "checked_at": datetime.now(timezone.utc).isoformat(),
    }
