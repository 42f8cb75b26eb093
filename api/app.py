"""
VidVault API - video records plus thumbnail and video uploads.
Runs on port 8091 by default.
"""

import logging
from contextlib import asynccontextmanager, contextmanager

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.datastructures import UploadFile as StarletteUploadFile

from api.assets import (
    asset_name_from_url,
    asset_path,
    asset_url,
    check_upload_size,
    media_type_to_ext,
    random_asset_name,
    random_hex_name,
    read_upload_with_size_limit,
    remove_file,
    save_upload_with_size_limit,
    validate_content_length,
)
from api.auth import authenticate_request
from api.common import (
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
    check_health,
    get_real_ip,
    rate_limit_exceeded_handler,
)
from api.database import (
    create_video,
    database,
    delete_video,
    get_video,
    list_videos_for_user,
    update_video,
)
from api.enums import ThumbnailStorageMode, UploadKind
from api.errors import APIError, BadRequestError, ForbiddenError, NotFoundError
from api.exception_utils import handle_api_exceptions
from api.metrics import (
    STORAGE_BYTES_WRITTEN,
    STORAGE_OPERATIONS_TOTAL,
    UPLOAD_BYTES_TOTAL,
    UPLOADS_TOTAL,
    VIDEOS_BY_ASPECT_RATIO_TOTAL,
    get_metrics,
    init_app_info,
)
from api.object_storage import S3ObjectStorage
from api.schemas import VideoCreate, VideoListResponse, VideoResponse
from api.thumbnail_cache import ThumbnailCache
from config import (
    ASSETS_DIR,
    CORS_ALLOWED_ORIGINS,
    HOST,
    JWT_ALGORITHM,
    JWT_SECRET,
    MAX_THUMBNAIL_UPLOAD_SIZE,
    MAX_VIDEO_UPLOAD_SIZE,
    MULTIPART_OVERHEAD_ALLOWANCE,
    PORT,
    PUBLIC_HOST,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_ENABLED,
    RATE_LIMIT_STORAGE_URL,
    RATE_LIMIT_UPLOAD,
    S3_BUCKET,
    S3_ENDPOINT_URL,
    S3_REGION,
    THUMBNAIL_MEDIA_TYPES,
    THUMBNAIL_STORAGE,
    UPLOAD_CHUNK_SIZE,
    VIDEO_MEDIA_TYPE,
)
from worker.media import FFmpegMediaInspector, classify_aspect_ratio, processed_path_for

logger = logging.getLogger(__name__)

# Initialize rate limiter
# Uses in-memory storage by default, can be configured to use Redis
limiter = Limiter(
    key_func=get_real_ip,
    storage_uri=RATE_LIMIT_STORAGE_URL if RATE_LIMIT_ENABLED else None,
    enabled=RATE_LIMIT_ENABLED,
)


def resolve_thumbnail_mode(value: str) -> ThumbnailStorageMode:
    try:
        return ThumbnailStorageMode(value)
    except ValueError:
        logger.warning(f"Unknown thumbnail storage mode '{value}', using '{ThumbnailStorageMode.DISK.value}'")
        return ThumbnailStorageMode.DISK


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown."""
    if RATE_LIMIT_ENABLED and RATE_LIMIT_STORAGE_URL == "memory://":
        logger.warning(
            "Rate limiting is using in-memory storage. "
            "For production deployments with multiple instances, configure Redis: "
            "VIDVAULT_RATE_LIMIT_STORAGE_URL=redis://localhost:6379"
        )
    if not JWT_SECRET:
        logger.warning("VIDVAULT_JWT_SECRET is not set; every authenticated request will be rejected")

    app.state.thumbnail_storage = resolve_thumbnail_mode(THUMBNAIL_STORAGE)
    app.state.thumbnail_cache = ThumbnailCache()
    app.state.media_inspector = FFmpegMediaInspector()
    app.state.object_storage = S3ObjectStorage(S3_BUCKET, S3_REGION, S3_ENDPOINT_URL)
    init_app_info()

    await database.connect()
    yield
    await database.disconnect()


app = FastAPI(title="VidVault", description="Video record and media upload API", lifespan=lifespan)

# Register rate limiter with the app
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    """Render domain errors as {"detail": ...} with their status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIDMiddleware)

# If CORS_ALLOWED_ORIGINS is empty, allow same-origin only (no CORS headers)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS if CORS_ALLOWED_ORIGINS else [],
    allow_credentials=bool(CORS_ALLOWED_ORIGINS),
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
    expose_headers=["X-Request-ID"],
)

# Thumbnails written in disk mode; the directory may not exist yet in tests
app.mount("/assets", StaticFiles(directory=str(ASSETS_DIR), check_dir=False), name="assets")


def require_video_id(video_id: str) -> str:
    if not video_id or not video_id.strip():
        raise BadRequestError("Invalid video ID")
    return video_id.strip()


def current_user(request: Request) -> str:
    return authenticate_request(request, JWT_SECRET, JWT_ALGORITHM)


async def load_video(video_id: str) -> dict:
    video = await get_video(video_id)
    if video is None:
        raise NotFoundError("Couldn't find video")
    return video


def require_owner(video: dict, user_id: str) -> None:
    if video["user_id"] != user_id:
        logger.warning(f"User {user_id} attempted to modify video {video['id']} owned by another user")
        raise ForbiddenError("Not authorized to update this video")


@contextmanager
def track_upload(kind: UploadKind):
    """Count an upload as success, rejected (4xx) or failed."""
    try:
        yield
    except (APIError, HTTPException) as e:
        result = "rejected" if e.status_code < 500 else "failed"
        UPLOADS_TOTAL.labels(kind=kind.value, result=result).inc()
        raise
    except Exception:
        UPLOADS_TOTAL.labels(kind=kind.value, result="failed").inc()
        raise
    UPLOADS_TOTAL.labels(kind=kind.value, result="success").inc()


async def refreshed_response(video_id: str) -> VideoResponse:
    return VideoResponse(**await load_video(video_id))


# ============ Uploads ============


@app.post("/api/thumbnail_upload/{video_id}", response_model=VideoResponse)
@limiter.limit(RATE_LIMIT_UPLOAD)
@handle_api_exceptions("thumbnail_upload", "Failed to upload thumbnail")
async def upload_thumbnail(request: Request, video_id: str):
    """
    Store a thumbnail for a video and point the record's thumbnail_url at it.

    Expects a multipart form with a `thumbnail` file field. Re-uploading
    replaces the previous URL.
    """
    with track_upload(UploadKind.THUMBNAIL):
        video_id = require_video_id(video_id)
        user_id = current_user(request)
        video = await load_video(video_id)

        # Early rejection based on Content-Length header (if provided)
        validate_content_length(request, MAX_THUMBNAIL_UPLOAD_SIZE, MULTIPART_OVERHEAD_ALLOWANCE)

        async with request.form() as form:
            thumbnail = form.get("thumbnail")
            if not isinstance(thumbnail, StarletteUploadFile):
                raise BadRequestError("Thumbnail file missing")
            check_upload_size(thumbnail, MAX_THUMBNAIL_UPLOAD_SIZE)

            media_type = (thumbnail.content_type or "").split(";")[0].strip().lower()
            if THUMBNAIL_MEDIA_TYPES and media_type not in THUMBNAIL_MEDIA_TYPES:
                raise BadRequestError(
                    f"Invalid thumbnail type '{media_type or 'unknown'}'. "
                    f"Allowed: {', '.join(sorted(THUMBNAIL_MEDIA_TYPES))}"
                )

            require_owner(video, user_id)
            logger.info(f"Uploading thumbnail for video {video_id} by user {user_id}")

            if request.app.state.thumbnail_storage == ThumbnailStorageMode.MEMORY:
                data = await read_upload_with_size_limit(thumbnail, MAX_THUMBNAIL_UPLOAD_SIZE, UPLOAD_CHUNK_SIZE)
                await request.app.state.thumbnail_cache.put(video_id, data, media_type)
                written = len(data)
                stored_path = None
                video["thumbnail_url"] = f"http://{PUBLIC_HOST}:{PORT}/api/thumbnails/{video_id}"
            else:
                file_name = random_asset_name() + media_type_to_ext(media_type)
                stored_path = asset_path(ASSETS_DIR, file_name)
                written = await save_upload_with_size_limit(
                    thumbnail, stored_path, MAX_THUMBNAIL_UPLOAD_SIZE, UPLOAD_CHUNK_SIZE
                )
                video["thumbnail_url"] = asset_url(PUBLIC_HOST, PORT, file_name)

        backend = request.app.state.thumbnail_storage.value
        STORAGE_OPERATIONS_TOTAL.labels(backend=backend, result="success").inc()
        STORAGE_BYTES_WRITTEN.labels(backend=backend).inc(written)
        UPLOAD_BYTES_TOTAL.labels(kind=UploadKind.THUMBNAIL.value).inc(written)

        try:
            await update_video(video)
        except Exception:
            # Don't leave an unreferenced asset behind
            remove_file(stored_path)
            raise

        return await refreshed_response(video_id)


@app.get("/api/thumbnails/{video_id}")
async def get_thumbnail(request: Request, video_id: str):
    """Serve a thumbnail held in the in-memory cache."""
    video_id = require_video_id(video_id)
    await load_video(video_id)

    thumbnail = await request.app.state.thumbnail_cache.get(video_id)
    if thumbnail is None:
        raise NotFoundError("Thumbnail not found")

    return Response(
        content=thumbnail.data,
        media_type=thumbnail.media_type,
        headers={"Cache-Control": "no-store"},
    )


@app.post("/api/video_upload/{video_id}", response_model=VideoResponse)
@limiter.limit(RATE_LIMIT_UPLOAD)
@handle_api_exceptions("video_upload", "Failed to upload video")
async def upload_video(request: Request, video_id: str):
    """
    Upload an MP4 for a video: probe, remux for fast start, push to S3.

    Expects a multipart form with a `video` file field of type video/mp4.
    The object key is prefixed with the aspect ratio classification.
    """
    with track_upload(UploadKind.VIDEO):
        video_id = require_video_id(video_id)
        user_id = current_user(request)
        video = await load_video(video_id)
        require_owner(video, user_id)

        validate_content_length(request, MAX_VIDEO_UPLOAD_SIZE, MULTIPART_OVERHEAD_ALLOWANCE)

        async with request.form() as form:
            upload = form.get("video")
            if not isinstance(upload, StarletteUploadFile):
                raise BadRequestError("Video file missing")
            check_upload_size(upload, MAX_VIDEO_UPLOAD_SIZE)

            media_type = (upload.content_type or "").split(";")[0].strip().lower()
            if media_type != VIDEO_MEDIA_TYPE:
                raise BadRequestError(f"Invalid file type '{media_type or 'unknown'}'. Only MP4 videos are allowed")

            logger.info(f"Uploading video for video {video_id} by user {user_id}")

            temp_path = asset_path(ASSETS_DIR, random_hex_name() + ".mp4")
            try:
                written = await save_upload_with_size_limit(upload, temp_path, MAX_VIDEO_UPLOAD_SIZE, UPLOAD_CHUNK_SIZE)
                UPLOAD_BYTES_TOTAL.labels(kind=UploadKind.VIDEO.value).inc(written)

                inspector = request.app.state.media_inspector
                dimensions = await inspector.probe_dimensions(temp_path)
                aspect_ratio = classify_aspect_ratio(dimensions.width, dimensions.height)
                processed_path = await inspector.remux_fast_start(temp_path)

                storage = request.app.state.object_storage
                key = f"{aspect_ratio.value}/{temp_path.name}"
                try:
                    await storage.upload_file(processed_path, key, media_type)
                except Exception:
                    STORAGE_OPERATIONS_TOTAL.labels(backend="s3", result="failed").inc()
                    raise
                STORAGE_OPERATIONS_TOTAL.labels(backend="s3", result="success").inc()
                STORAGE_BYTES_WRITTEN.labels(backend="s3").inc(processed_path.stat().st_size)
                VIDEOS_BY_ASPECT_RATIO_TOTAL.labels(aspect_ratio=aspect_ratio.value).inc()
            finally:
                remove_file(temp_path)
                remove_file(processed_path_for(temp_path))

        video["video_url"] = storage.public_url(key)
        await update_video(video)
        logger.info(f"Video {video_id} uploaded as {key} ({dimensions.width}x{dimensions.height}, {aspect_ratio.value})")

        return await refreshed_response(video_id)


# ============ Video records ============


@app.post("/api/videos", response_model=VideoResponse, status_code=201)
@limiter.limit(RATE_LIMIT_DEFAULT)
async def create_video_record(request: Request, data: VideoCreate):
    """Create a draft video owned by the caller."""
    user_id = current_user(request)
    video = await create_video(user_id, data.title, data.description)
    logger.info(f"Created video {video['id']} for user {user_id}")
    return await refreshed_response(video["id"])


@app.get("/api/videos", response_model=VideoListResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
async def list_video_records(request: Request):
    """List the caller's videos, newest first."""
    user_id = current_user(request)
    rows = await list_videos_for_user(user_id)
    return VideoListResponse(videos=[VideoResponse(**row) for row in rows], total=len(rows))


@app.get("/api/videos/{video_id}", response_model=VideoResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_video_record(request: Request, video_id: str):
    video_id = require_video_id(video_id)
    current_user(request)
    return VideoResponse(**await load_video(video_id))


@app.delete("/api/videos/{video_id}", status_code=204)
@limiter.limit(RATE_LIMIT_DEFAULT)
async def delete_video_record(request: Request, video_id: str):
    """Delete a video record. Only the owner may do this."""
    video_id = require_video_id(video_id)
    user_id = current_user(request)
    video = await load_video(video_id)
    require_owner(video, user_id)

    await delete_video(video_id)
    await request.app.state.thumbnail_cache.discard(video_id)
    thumbnail_file = asset_name_from_url(video.get("thumbnail_url"), PUBLIC_HOST, PORT)
    if thumbnail_file:
        remove_file(asset_path(ASSETS_DIR, thumbnail_file))
    logger.info(f"Deleted video {video_id} for user {user_id}")
    return Response(status_code=204)


# ============ Operations ============


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns 503 if the database or the assets directory is unavailable.
    """
    result = await check_health(ASSETS_DIR)
    return JSONResponse(
        status_code=result["status_code"],
        content={
            "status": "healthy" if result["healthy"] else "unhealthy",
            "checks": result["checks"],
            "checked_at": result["checked_at"],
        },
    )


@app.get("/metrics")
async def metrics():
    """Prometheus metrics in text exposition format."""
    return Response(content=get_metrics(), media_type="text/plain; version=0.0.4; charset=utf-8")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=HOST, port=PORT)
