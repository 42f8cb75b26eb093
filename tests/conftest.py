"""
Pytest fixtures for VidVault tests.
Provides a per-test SQLite database, assets directory, tokens and test clients.

ffprobe/ffmpeg and S3 are replaced with fakes so the upload flow runs
without external tools or credentials.
"""

import os
import shutil
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import sqlalchemy as sa

# Set up test mode BEFORE importing config
os.environ["VIDVAULT_TEST_MODE"] = "1"
os.environ.setdefault("VIDVAULT_RATE_LIMIT_ENABLED", "false")

from api.auth import make_jwt  # noqa: E402
from api.database import metadata, videos  # noqa: E402
from api.errors import MediaToolError  # noqa: E402
from api.object_storage import S3ObjectStorage  # noqa: E402
from fixtures.sample_media import OTHER_USER_ID, OWNER_ID  # noqa: E402
from worker.media import MediaInspector, VideoDimensions, processed_path_for  # noqa: E402

TEST_JWT_SECRET = "test-jwt-secret-for-vidvault-0123456789"
TEST_BUCKET = "test-bucket"
TEST_REGION = "us-east-1"


class FakeMediaInspector(MediaInspector):
    """Stands in for ffprobe/ffmpeg. Remux copies the input and appends a marker."""

    def __init__(self, width: int = 1920, height: int = 1080):
        self.width = width
        self.height = height
        self.probe_error = None
        self.remux_error = None
        self.probed = []
        self.remuxed = []

    async def probe_dimensions(self, path: Path) -> VideoDimensions:
        self.probed.append(path)
        if self.probe_error:
            raise MediaToolError(self.probe_error)
        return VideoDimensions(width=self.width, height=self.height)

    async def remux_fast_start(self, path: Path) -> Path:
        self.remuxed.append(path)
        if self.remux_error:
            raise MediaToolError(self.remux_error)
        output = processed_path_for(path)
        shutil.copyfile(path, output)
        with open(output, "ab") as f:
            f.write(b"faststart")
        return output


def make_fake_s3_client():
    """MagicMock boto3 client whose upload_file captures what was sent."""
    client = MagicMock()
    client.uploads = []

    def upload_file(filename, bucket, key, ExtraArgs=None):
        client.uploads.append(
            {
                "filename": filename,
                "bucket": bucket,
                "key": key,
                "extra_args": ExtraArgs,
                "data": Path(filename).read_bytes(),
            }
        )

    client.upload_file.side_effect = upload_file
    return client


def _create_tables(db_url: str) -> None:
    """Create all tables in the test database."""
    engine = sa.create_engine(db_url)
    metadata.create_all(engine)
    engine.dispose()


def _insert_video(db_url: str, user_id: str, title: str, created_at: datetime) -> dict:
    record = {
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "title": title,
        "description": f"{title} description",
        "created_at": created_at,
        "thumbnail_url": None,
        "video_url": None,
    }
    engine = sa.create_engine(db_url)
    with engine.begin() as conn:
        conn.execute(videos.insert().values(**record))
    engine.dispose()
    return record


@pytest.fixture(scope="function")
def test_db_url(tmp_path: Path) -> str:
    """SQLite database file with all tables created."""
    db_url = f"sqlite:///{tmp_path / 'vidvault_test.db'}"
    _create_tables(db_url)
    return db_url


@pytest.fixture(scope="function")
def test_assets_dir(tmp_path: Path) -> Path:
    assets_dir = tmp_path / "assets"
    assets_dir.mkdir(parents=True, exist_ok=True)
    return assets_dir


@pytest.fixture(scope="function")
def sample_video(test_db_url: str) -> dict:
    """A video owned by OWNER_ID."""
    return _insert_video(test_db_url, OWNER_ID, "Owner Video", datetime.now(timezone.utc))


@pytest.fixture(scope="function")
def other_users_video(test_db_url: str) -> dict:
    """A video owned by OTHER_USER_ID."""
    return _insert_video(test_db_url, OTHER_USER_ID, "Someone Else's Video", datetime.now(timezone.utc))


@pytest.fixture(scope="function")
def make_token():
    """Factory for signed access tokens."""

    def _make(user_id: str = OWNER_ID, expires_in: timedelta = timedelta(hours=1), secret: str = TEST_JWT_SECRET):
        return make_jwt(user_id, secret, expires_in)

    return _make


@pytest.fixture(scope="function")
def owner_headers(make_token) -> dict:
    return {"Authorization": f"Bearer {make_token(OWNER_ID)}"}


@pytest.fixture(scope="function")
def other_user_headers(make_token) -> dict:
    return {"Authorization": f"Bearer {make_token(OTHER_USER_ID)}"}


@pytest.fixture(scope="function")
async def record_store(test_db_url: str, monkeypatch):
    """
    The api.database module bound to the test database and connected.
    """
    import importlib
    import sys

    import config

    monkeypatch.setattr(config, "DATABASE_URL", test_db_url)
    module = importlib.reload(sys.modules["api.database"])

    await module.database.connect()
    yield module
    await module.database.disconnect()


def _build_client(monkeypatch, test_db_url: str, assets_dir: Path, **overrides):
    """
    Patch config, reload the app modules and return the app.

    Reloading creates a new Database instance bound to the test URL and
    re-reads every config constant the app imported by name.
    """
    import importlib
    import sys

    import config

    monkeypatch.setattr(config, "ASSETS_DIR", assets_dir)
    monkeypatch.setattr(config, "DATABASE_URL", test_db_url)
    monkeypatch.setattr(config, "JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(config, "RATE_LIMIT_ENABLED", False)
    monkeypatch.setattr(config, "S3_BUCKET", TEST_BUCKET)
    monkeypatch.setattr(config, "S3_REGION", TEST_REGION)
    for name, value in overrides.items():
        monkeypatch.setattr(config, name, value)

    for module_name in ("api.database", "api.common", "api.app"):
        if module_name in sys.modules:
            importlib.reload(sys.modules[module_name])

    from api.app import app

    return app


def _install_fakes(app):
    app.state.media_inspector = FakeMediaInspector()
    app.state.object_storage = S3ObjectStorage(TEST_BUCKET, TEST_REGION, client=make_fake_s3_client())


@pytest.fixture(scope="function")
def client(test_db_url: str, test_assets_dir: Path, monkeypatch):
    """
    Test client for the API in the default (disk) thumbnail mode.
    The app manages its own database connection through its lifespan.
    """
    from fastapi.testclient import TestClient

    app = _build_client(monkeypatch, test_db_url, test_assets_dir, THUMBNAIL_STORAGE="disk")

    with TestClient(app, raise_server_exceptions=True) as test_client:
        _install_fakes(app)
        yield test_client


@pytest.fixture(scope="function")
def memory_client(test_db_url: str, test_assets_dir: Path, monkeypatch):
    """Test client with thumbnails kept in the in-process cache."""
    from fastapi.testclient import TestClient

    app = _build_client(monkeypatch, test_db_url, test_assets_dir, THUMBNAIL_STORAGE="memory")

    with TestClient(app, raise_server_exceptions=True) as test_client:
        _install_fakes(app)
        yield test_client


@pytest.fixture(scope="function")
def small_limits_client(test_db_url: str, test_assets_dir: Path, monkeypatch):
    """Test client with tiny upload caps for size checks."""
    from fastapi.testclient import TestClient

    app = _build_client(
        monkeypatch,
        test_db_url,
        test_assets_dir,
        THUMBNAIL_STORAGE="disk",
        MAX_THUMBNAIL_UPLOAD_SIZE=1024,
        MAX_VIDEO_UPLOAD_SIZE=2048,
        UPLOAD_CHUNK_SIZE=256,
    )

    with TestClient(app, raise_server_exceptions=True) as test_client:
        _install_fakes(app)
        yield test_client
