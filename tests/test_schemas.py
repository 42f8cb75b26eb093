"""Tests for request/response models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from api.schemas import VideoCreate, VideoListResponse, VideoResponse


class TestVideoCreate:
    def test_title_stripped(self):
        assert VideoCreate(title="  Hello  ").title == "Hello"

    def test_description_defaults_to_empty(self):
        assert VideoCreate(title="Hello").description == ""

    @pytest.mark.parametrize("title", ["", "   ", "x" * 256])
    def test_invalid_titles(self, title):
        with pytest.raises(ValidationError):
            VideoCreate(title=title)

    def test_description_length_capped(self):
        with pytest.raises(ValidationError):
            VideoCreate(title="ok", description="x" * 5001)


class TestVideoResponse:
    def test_naive_created_at_becomes_utc(self):
        video = VideoResponse(id="v1", user_id="u1", title="t", created_at=datetime(2024, 1, 1, 12, 0, 0))
        assert video.created_at == datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def test_no_modification_timestamp(self):
        assert "updated_at" not in VideoResponse.model_fields

    def test_null_description_becomes_empty(self):
        assert VideoResponse(id="v1", user_id="u1", title="t", description=None).description == ""

    def test_media_urls_optional(self):
        video = VideoResponse(id="v1", user_id="u1", title="t")
        assert video.thumbnail_url is None
        assert video.video_url is None

    def test_list_response(self):
        listing = VideoListResponse(videos=[VideoResponse(id="v1", user_id="u1", title="t")], total=1)
        assert listing.model_dump()["videos"][0]["id"] == "v1"
