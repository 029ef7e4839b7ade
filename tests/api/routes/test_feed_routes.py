"""
Tests for the unified feed, GET /api/messages.
"""
from unittest.mock import AsyncMock, MagicMock

from factories import FB_PAGE_ID, facebook_message, instagram_message
from inbox.core.exceptions import DatabaseError, ExternalAPIError


def seed(container, platform, messages, conversation_id):
    repo = container.repositories[platform]
    rows = [repo.normalize(m, conversation_id).to_dict() for m in messages]
    repo.db.table(repo.table_name).upsert(rows, on_conflict="message_id").execute()


def connect_gmail(container, emails=None, error=None):
    gmail = MagicMock()
    if error:
        gmail.fetch_emails = AsyncMock(side_effect=error)
    else:
        gmail.fetch_emails = AsyncMock(return_value=emails or [])
    container.gmail = gmail
    return gmail


class TestUnifiedFeed:

    def test_merges_platforms_newest_first(self, client, api_container):
        seed(api_container, "facebook", [
            facebook_message("fb_1", "u1", "2024-05-01T10:00:00+0000"),
            facebook_message("fb_2", FB_PAGE_ID, "2024-05-01T10:30:00+0000", recipient_id="u1"),
        ], "c1")
        seed(api_container, "instagram", [
            instagram_message("ig_1", "c1", "2024-05-01T10:15:00+0000"),
        ], "ig_t_1")
        connect_gmail(api_container, [{
            "id": "abc", "threadId": "thr_1", "senderEmail": "ana@example.com",
            "status": "unread", "timestamp": "2024-05-01T10:45:00+00:00",
        }])

        response = client.get("/api/messages")

        assert response.status_code == 200
        body = response.json()
        assert body["errors"] == []
        data = body["data"]
        assert [m["id"] for m in data["messages"]] == ["gmail_abc", "fb_2", "ig_1", "fb_1"]
        assert data["unreadCounts"] == {"facebook": 1, "instagram": 1, "gmail": 1}
        assert data["totalUnread"] == 3

    def test_without_gmail(self, client, api_container):
        seed(api_container, "facebook", [
            facebook_message("fb_1", "u1", "2024-05-01T10:00:00+0000"),
        ], "c1")

        data = client.get("/api/messages").json()["data"]

        assert [m["platform"] for m in data["messages"]] == ["facebook"]
        assert data["unreadCounts"]["gmail"] == 0

    def test_limit(self, client, api_container):
        seed(api_container, "facebook", [
            facebook_message(f"fb_{i}", "u1", f"2024-05-01T10:0{i}:00+0000") for i in range(5)
        ], "c1")

        data = client.get("/api/messages", params={"limit": 2}).json()["data"]

        assert [m["id"] for m in data["messages"]] == ["fb_4", "fb_3"]

    def test_failing_gmail_is_reported(self, client, api_container):
        seed(api_container, "instagram", [
            instagram_message("ig_1", "c1", "2024-05-01T10:15:00+0000"),
        ], "ig_t_1")
        connect_gmail(api_container, error=ExternalAPIError("token expired", service="gmail", status_code=401))

        body = client.get("/api/messages").json()

        assert body["errors"] == ["gmail"]
        assert [m["id"] for m in body["data"]["messages"]] == ["ig_1"]

    def test_failing_store_is_reported(self, client, api_container):
        api_container.facebook_repo.get_all_messages = AsyncMock(side_effect=DatabaseError("down"))
        seed(api_container, "instagram", [
            instagram_message("ig_1", "c1", "2024-05-01T10:15:00+0000"),
        ], "ig_t_1")

        body = client.get("/api/messages").json()

        assert body["success"] is True
        assert body["errors"] == ["facebook"]
        assert len(body["data"]["messages"]) == 1
