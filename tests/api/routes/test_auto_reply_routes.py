"""
Tests for /api/ai: auto-reply runs and the AI toggle.
"""
from unittest.mock import AsyncMock

from inbox.services.auto_reply import AutoReplyReport


class TestAutoReplyRun:

    def test_recent_pass_returns_report(self, client, api_container):
        api_container.auto_reply.run = AsyncMock(return_value=AutoReplyReport(processed=2, skipped=1))

        response = client.post("/api/ai/auto-reply", json={"mode": "recent"})

        assert response.status_code == 200
        assert response.json()["data"] == {"processed": 2, "skipped": 1, "failed": 0, "errors": []}
        api_container.auto_reply.run.assert_awaited_once_with("recent")

    def test_recent_pass_on_empty_store(self, client):
        response = client.post("/api/ai/auto-reply", json={})

        assert response.json()["data"]["processed"] == 0

    def test_backlog_runs_in_background(self, client, api_container):
        api_container.auto_reply.run = AsyncMock(return_value=AutoReplyReport())

        response = client.post("/api/ai/auto-reply", json={"mode": "backlog"})

        assert response.status_code == 200
        assert response.json()["message"] == "Backlog processing started"

    def test_invalid_mode(self, client):
        assert client.post("/api/ai/auto-reply", json={"mode": "everything"}).status_code == 400

    def test_status(self, client):
        data = client.get("/api/ai/auto-reply").json()["data"]

        assert data == {
            "enabled": False,
            "webhookConfigured": True,
            "reactiveWindowMinutes": 10,
            "catchupWindowHours": 24,
        }


class TestToggle:

    def test_enable_notifies_and_starts_backlog(self, client, api_container):
        api_container.auto_reply.run = AsyncMock(return_value=AutoReplyReport())

        response = client.post("/api/ai/toggle", json={"enabled": True})

        assert response.status_code == 200
        assert response.json()["data"] == {"enabled": True, "webhookNotified": True, "backlogStarted": True}
        assert api_container.ai_enabled is True
        api_container.auto_reply.notify_toggle.assert_awaited_once_with(True)

    def test_enable_without_backlog(self, client, api_container):
        data = client.post("/api/ai/toggle", json={"enabled": True, "processBacklog": False}).json()["data"]

        assert data["backlogStarted"] is False
        assert api_container.ai_enabled is True

    def test_disable(self, client, api_container):
        api_container.ai_enabled = True
        api_container.auto_reply.notify_toggle = AsyncMock(return_value=False)

        data = client.post("/api/ai/toggle", json={"enabled": False}).json()["data"]

        assert data == {"enabled": False, "webhookNotified": False, "backlogStarted": False}
        assert api_container.ai_enabled is False

    def test_enabled_is_required(self, client):
        assert client.post("/api/ai/toggle", json={}).status_code == 400
