"""Tests for local asset naming, size-capped writes and Content-Length checks."""

import base64
import io
import re

import pytest
from starlette.datastructures import Headers, UploadFile
from starlette.requests import Request

from api.assets import (
    asset_name_from_url,
    asset_url,
    check_upload_size,
    format_size_limit,
    media_type_to_ext,
    random_asset_name,
    random_hex_name,
    read_upload_with_size_limit,
    remove_file,
    save_upload_with_size_limit,
    validate_content_length,
)
from api.errors import BadRequestError


def make_upload(data: bytes, content_type: str = "image/png", size=None) -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data),
        size=len(data) if size is None else size,
        filename="upload.bin",
        headers=Headers({"content-type": content_type}),
    )


def make_request(content_length=None) -> Request:
    headers = []
    if content_length is not None:
        headers.append((b"content-length", str(content_length).encode()))
    return Request({"type": "http", "method": "POST", "path": "/", "headers": headers})


class TestNames:
    def test_random_asset_name_is_urlsafe_base64_of_32_bytes(self):
        name = random_asset_name()
        assert re.fullmatch(r"[A-Za-z0-9_-]+", name)
        padded = name + "=" * (-len(name) % 4)
        assert len(base64.urlsafe_b64decode(padded)) == 32

    def test_random_hex_name(self):
        name = random_hex_name()
        assert re.fullmatch(r"[0-9a-f]{64}", name)

    def test_names_do_not_repeat(self):
        assert len({random_asset_name() for _ in range(50)}) == 50


class TestMediaTypeToExt:
    @pytest.mark.parametrize(
        "media_type, ext",
        [
            ("image/png", ".png"),
            ("image/jpeg", ".jpeg"),
            ("image/svg+xml", ".svg"),
            ("video/mp4", ".mp4"),
            ("image/png; charset=binary", ".png"),
            ("IMAGE/PNG", ".png"),
            ("", ".bin"),
            ("png", ".bin"),
            ("image/", ".bin"),
            ("image/../x", ".bin"),
        ],
    )
    def test_mapping(self, media_type, ext):
        assert media_type_to_ext(media_type) == ext


class TestAssetUrl:
    def test_format(self):
        assert asset_url("localhost", 8091, "abc.png") == "http://localhost:8091/assets/abc.png"

    def test_name_from_own_url(self):
        assert asset_name_from_url("http://localhost:8091/assets/abc.png", "localhost", 8091) == "abc.png"

    @pytest.mark.parametrize(
        "url",
        [
            None,
            "",
            "http://localhost:8091/api/thumbnails/v1",
            "http://elsewhere:8091/assets/abc.png",
            "http://localhost:8091/assets/",
            "http://localhost:8091/assets/../config.py",
            "http://localhost:8091/assets/.health_check",
        ],
    )
    def test_foreign_or_unsafe_urls(self, url):
        assert asset_name_from_url(url, "localhost", 8091) is None


class TestFormatSizeLimit:
    def test_units(self):
        assert format_size_limit(1 << 30) == "1 GB"
        assert format_size_limit(10 << 20) == "10 MB"
        assert format_size_limit(512) == "512 bytes"


class TestValidateContentLength:
    def test_missing_header_passes(self):
        validate_content_length(make_request(), 1024, 100)

    def test_within_allowance_passes(self):
        validate_content_length(make_request(1124), 1024, 100)

    def test_over_allowance_rejected(self):
        with pytest.raises(BadRequestError, match="File too large"):
            validate_content_length(make_request(1125), 1024, 100)

    def test_invalid_header_ignored(self):
        validate_content_length(make_request("abc"), 1024, 100)


class TestCheckUploadSize:
    def test_over_limit_rejected(self):
        with pytest.raises(BadRequestError):
            check_upload_size(make_upload(b"x" * 11), 10)

    def test_at_limit_accepted(self):
        check_upload_size(make_upload(b"x" * 10), 10)


class TestSaveUploadWithSizeLimit:
    @pytest.mark.asyncio
    async def test_writes_all_bytes(self, tmp_path):
        data = b"0123456789" * 100
        path = tmp_path / "out.png"

        written = await save_upload_with_size_limit(make_upload(data), path, max_size=len(data), chunk_size=64)

        assert written == len(data)
        assert path.read_bytes() == data

    @pytest.mark.asyncio
    async def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "out.bin"
        await save_upload_with_size_limit(make_upload(b"abc"), path, max_size=10, chunk_size=2)
        assert path.read_bytes() == b"abc"

    @pytest.mark.asyncio
    async def test_oversize_rejected_and_partial_removed(self, tmp_path):
        """The cap holds even when the declared size understates the body."""
        path = tmp_path / "out.bin"
        upload = make_upload(b"x" * 100, size=1)

        with pytest.raises(BadRequestError, match="File too large"):
            await save_upload_with_size_limit(upload, path, max_size=50, chunk_size=16)

        assert not path.exists()


class TestReadUploadWithSizeLimit:
    @pytest.mark.asyncio
    async def test_reads_bytes(self):
        assert await read_upload_with_size_limit(make_upload(b"hello"), 10, 2) == b"hello"

    @pytest.mark.asyncio
    async def test_oversize_rejected(self):
        with pytest.raises(BadRequestError):
            await read_upload_with_size_limit(make_upload(b"x" * 20), 10, 4)


class TestRemoveFile:
    def test_removes_existing(self, tmp_path):
        path = tmp_path / "f"
        path.write_bytes(b"1")
        remove_file(path)
        assert not path.exists()

    def test_missing_and_none_are_ignored(self, tmp_path):
        remove_file(tmp_path / "missing")
        remove_file(None)
