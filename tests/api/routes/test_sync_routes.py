"""
Tests for /api/{platform}/sync.
"""
from unittest.mock import AsyncMock

from inbox.core.exceptions import NotFoundError
from inbox.services.sync import SyncResult


class TestSyncControl:

    def test_default_action_runs_one_pass(self, client, api_container):
        api_container.facebook_sync.sync_messages = AsyncMock(
            return_value=SyncResult(conversations=2, messages=7)
        )

        response = client.post("/api/facebook/sync", json={})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["conversations"] == 2
        assert data["messages"] == 7

    def test_start_and_stop(self, client, api_container):
        started = client.post("/api/instagram/sync", json={"action": "start", "intervalSeconds": 60}).json()

        assert started["message"] == "Sync started"
        assert started["status"]["is_running"] is True
        assert started["status"]["interval_seconds"] == 60

        again = client.post("/api/instagram/sync", json={"action": "start"}).json()
        assert again["message"] == "Sync already running"

        stopped = client.post("/api/instagram/sync", json={"action": "stop"}).json()
        assert stopped["message"] == "Sync stopped"
        assert stopped["status"]["is_running"] is False

    def test_stop_when_idle(self, client):
        body = client.post("/api/facebook/sync", json={"action": "stop"}).json()

        assert body["message"] == "Sync was not running"

    def test_interval_below_minimum_is_rejected(self, client):
        response = client.post("/api/facebook/sync", json={"action": "start", "intervalSeconds": 1})

        assert response.status_code == 400

    def test_sync_conversation(self, client, api_container):
        api_container.facebook_sync.sync_conversation = AsyncMock(return_value=4)

        body = client.post("/api/facebook/sync", json={
            "action": "sync_conversation", "conversationId": "t_1", "pageId": "page_2",
        }).json()

        assert body["data"] == {"conversationId": "t_1", "messages": 4}
        api_container.facebook_sync.sync_conversation.assert_awaited_once_with("t_1", "page_2")

    def test_sync_conversation_requires_id(self, client):
        response = client.post("/api/facebook/sync", json={"action": "sync_conversation"})

        assert response.status_code == 400

    def test_sync_conversation_not_found(self, client, api_container):
        api_container.facebook_sync.sync_conversation = AsyncMock(
            side_effect=NotFoundError("Conversation", "t_x")
        )

        response = client.post("/api/facebook/sync", json={
            "action": "sync_conversation", "conversationId": "t_x",
        })

        assert response.status_code == 404

    def test_status(self, client):
        response = client.get("/api/facebook/sync")

        assert response.status_code == 200
        status = response.json()["status"]
        assert status["is_running"] is False
        assert status["page_count"] == 2

    def test_unknown_platform(self, client):
        assert client.get("/api/gmail/sync").status_code == 404
