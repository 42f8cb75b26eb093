"""Tests for the video record store."""

import asyncio

import pytest

from fixtures.sample_media import OTHER_USER_ID, OWNER_ID


class TestVideoRecordStore:
    @pytest.mark.asyncio
    async def test_get_existing(self, record_store, sample_video):
        video = await record_store.get_video(sample_video["id"])
        assert video["id"] == sample_video["id"]
        assert video["user_id"] == OWNER_ID
        assert video["thumbnail_url"] is None

    @pytest.mark.asyncio
    async def test_get_missing(self, record_store):
        assert await record_store.get_video("does-not-exist") is None

    @pytest.mark.asyncio
    async def test_create_then_get(self, record_store):
        created = await record_store.create_video("u-1", "Title", "Desc")
        fetched = await record_store.get_video(created["id"])
        assert fetched["title"] == "Title"
        assert fetched["description"] == "Desc"
        assert fetched["user_id"] == "u-1"

    @pytest.mark.asyncio
    async def test_update_writes_mutable_columns(self, record_store, sample_video):
        video = await record_store.get_video(sample_video["id"])
        video["thumbnail_url"] = "http://localhost:8091/assets/x.png"
        video["video_url"] = "https://b.s3.us-east-1.amazonaws.com/other/x.mp4"
        await record_store.update_video(video)

        fetched = await record_store.get_video(sample_video["id"])
        assert fetched["thumbnail_url"] == "http://localhost:8091/assets/x.png"
        assert fetched["video_url"] == "https://b.s3.us-east-1.amazonaws.com/other/x.mp4"

    @pytest.mark.asyncio
    async def test_update_never_changes_owner(self, record_store, sample_video):
        video = await record_store.get_video(sample_video["id"])
        video["user_id"] = OTHER_USER_ID
        await record_store.update_video(video)

        fetched = await record_store.get_video(sample_video["id"])
        assert fetched["user_id"] == OWNER_ID

    @pytest.mark.asyncio
    async def test_list_newest_first_and_scoped_to_owner(self, record_store, other_users_video):
        first = await record_store.create_video("lister", "First")
        await asyncio.sleep(0.01)
        second = await record_store.create_video("lister", "Second")

        listed = await record_store.list_videos_for_user("lister")
        assert [v["id"] for v in listed] == [second["id"], first["id"]]

    @pytest.mark.asyncio
    async def test_delete(self, record_store, sample_video):
        await record_store.delete_video(sample_video["id"])
        assert await record_store.get_video(sample_video["id"]) is None
