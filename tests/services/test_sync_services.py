"""
Tests for the Facebook/Instagram sync services.

Fetchers are AsyncMocks; storage is the in-memory Supabase double.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from factories import (
    FB_PAGE_ID,
    SECOND_PAGE_ID,
    InMemorySupabase,
    facebook_message,
    instagram_message,
    make_settings,
)
from inbox.core.exceptions import ConfigurationError, ExternalAPIError, NotFoundError
from inbox.repositories.deps import create_message_repo
from inbox.services.sync import FacebookSyncService, InstagramSyncService, SyncResult

CONFIG = make_settings()


def fb_client(page_id, conversations=None, error=None):
    client = MagicMock()
    client.page_id = page_id
    if error:
        client.get_conversations = AsyncMock(side_effect=error)
    else:
        client.get_conversations = AsyncMock(return_value=conversations or [])
    client.get_conversation_messages = AsyncMock(return_value=[])
    return client


def fb_conversation(conversation_id, messages):
    return {"id": conversation_id, "messages": {"data": messages}}


@pytest.fixture
def db():
    return InMemorySupabase()


@pytest.fixture
def fb_repo(db):
    return create_message_repo("facebook", db, CONFIG)


@pytest.fixture
def ig_repo(db):
    return create_message_repo("instagram", db, CONFIG)


class TestFacebookSync:

    @pytest.mark.asyncio
    async def test_syncs_every_page(self, fb_repo, db):
        page_1 = fb_client(FB_PAGE_ID, [
            fb_conversation("t_1", [facebook_message("m_1", "u1", "2024-05-01T10:00:00+0000")]),
        ])
        page_2 = fb_client(SECOND_PAGE_ID, [
            fb_conversation("t_2", [
                facebook_message("m_2", "u2", "2024-05-01T10:00:00+0000", recipient_id=SECOND_PAGE_ID),
                facebook_message("m_3", SECOND_PAGE_ID, "2024-05-01T10:01:00+0000"),
            ]),
        ])
        service = FacebookSyncService([page_1, page_2], fb_repo, 30)

        result = await service.sync_messages()

        assert result.conversations == 2
        assert result.messages == 3
        assert result.failures == 0
        assert len(db.rows("facebook_messages")) == 3
        assert service.last_result is result
        assert service.last_sync_at is not None

    @pytest.mark.asyncio
    async def test_failing_page_does_not_stop_others(self, fb_repo, db):
        broken = fb_client(FB_PAGE_ID, error=ExternalAPIError("token expired", service="facebook", status_code=401))
        healthy = fb_client(SECOND_PAGE_ID, [
            fb_conversation("t_2", [facebook_message("m_2", "u2", "2024-05-01T10:00:00+0000")]),
        ])
        service = FacebookSyncService([broken, healthy], fb_repo, 30)

        result = await service.sync_messages()

        assert result.failures == 1
        assert result.conversations == 1
        assert [r["message_id"] for r in db.rows("facebook_messages")] == ["m_2"]

    @pytest.mark.asyncio
    async def test_failing_conversation_does_not_stop_others(self, fb_repo, db):
        page = fb_client(FB_PAGE_ID, [
            fb_conversation("t_1", [facebook_message("m_1", "u1", "2024-05-01T10:00:00+0000")]),
            fb_conversation("t_2", [facebook_message("m_2", "u2", "2024-05-01T10:00:00+0000")]),
        ])
        service = FacebookSyncService([page], fb_repo, 30)
        real_store = fb_repo.store_messages

        async def flaky_store(messages, conversation_id):
            if conversation_id == "t_1":
                raise RuntimeError("boom")
            return await real_store(messages, conversation_id)

        fb_repo.store_messages = flaky_store

        result = await service.sync_messages()

        assert result.failures == 1
        assert result.conversations == 1
        assert "t_1: boom" in result.errors[0]

    @pytest.mark.asyncio
    async def test_no_pages_is_a_noop(self, fb_repo):
        service = FacebookSyncService([], fb_repo, 30)

        result = await service.sync_messages()

        assert result.conversations == 0
        assert service.has_fetchers is False

    @pytest.mark.asyncio
    async def test_sync_conversation_falls_back_across_pages(self, fb_repo, db):
        first = fb_client(FB_PAGE_ID)
        first.get_conversation_messages = AsyncMock(
            side_effect=ExternalAPIError("not found", service="facebook", status_code=400)
        )
        second = fb_client(SECOND_PAGE_ID)
        second.get_conversation_messages = AsyncMock(return_value=[
            facebook_message("m_9", "u9", "2024-05-01T10:00:00+0000", recipient_id=SECOND_PAGE_ID),
        ])
        service = FacebookSyncService([first, second], fb_repo, 30)

        count = await service.sync_conversation("t_9")

        assert count == 1
        assert db.rows("facebook_messages")[0]["conversation_id"] == "t_9"

    @pytest.mark.asyncio
    async def test_sync_conversation_on_given_page_only(self, fb_repo):
        first = fb_client(FB_PAGE_ID)
        second = fb_client(SECOND_PAGE_ID)
        service = FacebookSyncService([first, second], fb_repo, 30)

        await service.sync_conversation("t_1", page_id=SECOND_PAGE_ID)

        first.get_conversation_messages.assert_not_called()
        second.get_conversation_messages.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sync_conversation_not_found_anywhere(self, fb_repo):
        page = fb_client(FB_PAGE_ID)
        page.get_conversation_messages = AsyncMock(side_effect=RuntimeError("gone"))
        service = FacebookSyncService([page], fb_repo, 30)

        with pytest.raises(NotFoundError):
            await service.sync_conversation("t_missing")


class TestInstagramSync:

    @pytest.mark.asyncio
    async def test_syncs_conversations(self, ig_repo, db):
        client = MagicMock()
        client.get_conversations = AsyncMock(return_value=[{"id": "ig_t_1"}, {"id": "ig_t_2"}])
        client.get_messages = AsyncMock(side_effect=[
            [instagram_message("ig_1", "c1", "2024-05-01T10:00:00+0000")],
            [instagram_message("ig_2", "c2", "2024-05-01T10:00:00+0000")],
        ])
        service = InstagramSyncService(client, ig_repo, 30)

        result = await service.sync_messages()

        assert result.conversations == 2
        assert result.messages == 2
        client.get_messages.assert_any_await("ig_t_1", 25)

    @pytest.mark.asyncio
    async def test_failing_conversation_is_isolated(self, ig_repo, db):
        client = MagicMock()
        client.get_conversations = AsyncMock(return_value=[{"id": "ig_t_1"}, {"id": "ig_t_2"}])
        client.get_messages = AsyncMock(side_effect=[
            ExternalAPIError("rate limited", service="instagram", status_code=429),
            [instagram_message("ig_2", "c2", "2024-05-01T10:00:00+0000")],
        ])
        service = InstagramSyncService(client, ig_repo, 30)

        result = await service.sync_messages()

        assert result.failures == 1
        assert result.conversations == 1
        assert [r["message_id"] for r in db.rows("instagram_messages")] == ["ig_2"]

    @pytest.mark.asyncio
    async def test_listing_failure_propagates(self, ig_repo):
        client = MagicMock()
        client.get_conversations = AsyncMock(
            side_effect=ExternalAPIError("down", service="instagram", status_code=503)
        )
        service = InstagramSyncService(client, ig_repo, 30)

        with pytest.raises(ExternalAPIError):
            await service.sync_messages()

    @pytest.mark.asyncio
    async def test_without_credentials(self, ig_repo):
        service = InstagramSyncService(None, ig_repo, 30)

        result = await service.sync_messages()

        assert result.conversations == 0
        with pytest.raises(ConfigurationError):
            await service.fetch_conversation("ig_t_1")

    @pytest.mark.asyncio
    async def test_sync_conversation_uses_larger_page(self, ig_repo):
        client = MagicMock()
        client.get_messages = AsyncMock(return_value=[
            instagram_message("ig_1", "c1", "2024-05-01T10:00:00+0000"),
        ])
        service = InstagramSyncService(client, ig_repo, 30)

        assert await service.sync_conversation("ig_t_1") == 1
        client.get_messages.assert_awaited_once_with("ig_t_1", 100)


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_runs_pass_and_stop_cancels(self, fb_repo):
        service = FacebookSyncService([fb_client(FB_PAGE_ID)], fb_repo, 30)
        service.sync_messages = AsyncMock(return_value=SyncResult())

        assert service.start() is True
        await asyncio.sleep(0.01)

        assert service.is_running
        service.sync_messages.assert_awaited_once()

        assert service.stop() is True
        assert service.is_running is False

    @pytest.mark.asyncio
    async def test_start_twice_is_ignored(self, fb_repo):
        service = FacebookSyncService([fb_client(FB_PAGE_ID)], fb_repo, 30)
        service.sync_messages = AsyncMock(return_value=SyncResult())

        assert service.start() is True
        assert service.start() is False

        service.stop()

    def test_stop_when_not_running(self, fb_repo):
        service = FacebookSyncService([], fb_repo, 30)
        assert service.stop() is False

    @pytest.mark.asyncio
    async def test_start_with_interval(self, fb_repo):
        service = FacebookSyncService([fb_client(FB_PAGE_ID)], fb_repo, 30)
        service.sync_messages = AsyncMock(return_value=SyncResult())

        service.start(60)
        assert service.status()["interval_seconds"] == 60
        service.stop()

    @pytest.mark.asyncio
    async def test_run_pass_swallows_errors_and_calls_hook(self, fb_repo):
        service = FacebookSyncService([fb_client(FB_PAGE_ID)], fb_repo, 30)
        service.after_pass = AsyncMock()

        result = await service.run_pass()
        service.after_pass.assert_awaited_once_with(result)

        service.sync_messages = AsyncMock(side_effect=RuntimeError("boom"))
        assert await service.run_pass() is None

    def test_independent_instances(self, fb_repo):
        a = FacebookSyncService([], fb_repo, 30)
        b = FacebookSyncService([], fb_repo, 30)

        assert a is not b
        assert a.status()["is_running"] is False

    def test_status_shape(self, fb_repo):
        service = FacebookSyncService([fb_client(FB_PAGE_ID), fb_client(SECOND_PAGE_ID)], fb_repo, 30)

        status = service.status()

        assert status == {
            "is_running": False,
            "has_fetchers": True,
            "page_count": 2,
            "interval_seconds": 30,
            "last_sync_at": None,
            "last_result": None,
        }
