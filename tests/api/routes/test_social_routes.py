"""
Tests for /api/{platform}/messages.

The app runs on the in-memory container; sends go through AsyncMock senders.
"""
from unittest.mock import AsyncMock

from factories import FB_PAGE_ID, IG_ACCOUNT_ID, SECOND_PAGE_ID, facebook_message, instagram_message
from inbox.services.platforms.base import SendResult


def seed(container, platform, messages, conversation_id):
    """Store platform messages synchronously through the repository normalizer."""
    repo = container.repositories[platform]
    rows = [repo.normalize(m, conversation_id).to_dict() for m in messages]
    repo.db.table(repo.table_name).upsert(rows, on_conflict="message_id").execute()


class TestListMessages:

    def test_serves_stored_messages_and_refreshes(self, client, api_container):
        seed(api_container, "facebook", [
            facebook_message("m1", "u1", "2024-05-01T10:00:00+0000"),
            facebook_message("m2", FB_PAGE_ID, "2024-05-01T10:05:00+0000", recipient_id="u1"),
        ], "c1")

        response = client.get("/api/facebook/messages")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["source"] == "database"
        data = body["data"]
        assert [m["id"] for m in data["messages"]] == ["m2", "m1"]
        assert data["stats"] == {"totalMessages": 2, "totalConversations": 1, "unreadMessages": 1}
        assert data["conversations"][0]["conversationId"] == "c1"

    def test_limit_applies_to_messages(self, client, api_container):
        seed(api_container, "facebook", [
            facebook_message("m1", "u1", "2024-05-01T10:00:00+0000"),
            facebook_message("m2", "u1", "2024-05-01T10:05:00+0000"),
        ], "c1")

        body = client.get("/api/facebook/messages", params={"limit": 1}).json()

        assert len(body["data"]["messages"]) == 1
        assert body["data"]["stats"]["totalMessages"] == 2

    def test_messages_are_ordered_by_instant_not_text(self, client, api_container):
        seed(api_container, "facebook", [
            facebook_message("m1", "u1", "2024-05-01T10:00:00+0000"),
            facebook_message("m2", "u1", "2024-05-01T11:30:00+0200"),
            facebook_message("m3", FB_PAGE_ID, "2024-05-01T10:15:00+00:00", recipient_id="u1"),
        ], "c1")

        body = client.get("/api/facebook/messages").json()

        assert [m["id"] for m in body["data"]["messages"]] == ["m3", "m1", "m2"]
        assert body["data"]["conversations"][0]["lastMessage"]["message_id"] == "m3"

    def test_empty_store_reads_live(self, client, api_container):
        response = client.get("/api/instagram/messages")

        assert response.status_code == 200
        assert response.json()["source"] == "api"
        api_container.instagram_sync.sync_messages.assert_awaited_once()

    def test_conversation_filter(self, client, api_container):
        seed(api_container, "instagram", [
            instagram_message("ig_1", "c1", "2024-05-01T10:00:00+0000"),
        ], "ig_t_1")
        seed(api_container, "instagram", [
            instagram_message("ig_2", "c2", "2024-05-01T10:00:00+0000"),
        ], "ig_t_2")

        body = client.get("/api/instagram/messages", params={"conversationId": "ig_t_2"}).json()

        assert [m["id"] for m in body["data"]["messages"]] == ["ig_2"]

    def test_empty_conversation_is_fetched_live(self, client, api_container):
        api_container.instagram_sync.fetch_conversation = AsyncMock(return_value=[
            api_container.instagram_repo.normalize(
                instagram_message("ig_9", "c9", "2024-05-01T10:00:00+0000"), "ig_t_9"
            ),
        ])

        body = client.get("/api/instagram/messages", params={"conversationId": "ig_t_9"}).json()

        assert body["source"] == "api"
        assert [m["id"] for m in body["data"]["messages"]] == ["ig_9"]
        api_container.instagram_sync.fetch_conversation.assert_awaited_once_with("ig_t_9")

    def test_unknown_platform_is_404(self, client):
        response = client.get("/api/whatsapp/messages")

        assert response.status_code == 404
        assert response.json()["success"] is False
        assert response.json()["error"] == "NotFoundError"


class TestSendMessage:

    def test_send_success(self, client, api_container):
        response = client.post("/api/facebook/messages", json={
            "recipientId": "u1", "message": "See you at 3pm", "pageId": SECOND_PAGE_ID,
        })

        assert response.status_code == 200
        assert response.json()["data"] == {"success": True, "messageId": "sent_facebook_1", "error": None}
        api_container.senders["facebook"].send_message.assert_awaited_once_with(
            "u1", "See you at 3pm", page_id=SECOND_PAGE_ID
        )

    def test_sent_message_is_stored_in_thread(self, client, memory_db):
        client.post("/api/instagram/messages", json={
            "recipientId": "ig_cust_1", "message": "Thanks!", "conversationId": "ig_t_1",
        })

        rows = memory_db.rows("instagram_messages")
        assert len(rows) == 1
        assert rows[0]["message_id"] == "sent_instagram_1"
        assert rows[0]["sender_id"] == IG_ACCOUNT_ID
        assert rows[0]["conversation_id"] == "ig_t_1"
        assert rows[0]["is_replied"] is True

    def test_missing_fields_are_rejected(self, client, api_container):
        response = client.post("/api/facebook/messages", json={"recipientId": "u1", "message": "   "})

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"
        api_container.senders["facebook"].send_message.assert_not_called()

    def test_unconfigured_platform(self, client, api_container):
        del api_container.senders["instagram"]

        response = client.post("/api/instagram/messages", json={"recipientId": "u1", "message": "Hi"})

        assert response.status_code == 400
        assert "not configured" in response.json()["message"]

    def test_permission_error_is_403(self, client, api_container):
        api_container.senders["instagram"].send_message = AsyncMock(return_value=SendResult(
            success=False, error="App missing required permissions", status_code=400,
        ))

        response = client.post("/api/instagram/messages", json={"recipientId": "u1", "message": "Hi"})

        assert response.status_code == 403
        assert response.json()["error"] == "PermissionDeniedError"

    def test_upstream_error_keeps_client_status(self, client, api_container):
        api_container.senders["facebook"].send_message = AsyncMock(return_value=SendResult(
            success=False, error="Invalid recipient ID", status_code=400,
        ))

        response = client.post("/api/facebook/messages", json={"recipientId": "bad", "message": "Hi"})

        assert response.status_code == 400
        assert response.json()["error"] == "ExternalAPIError"

    def test_upstream_server_error_is_502(self, client, api_container):
        api_container.senders["facebook"].send_message = AsyncMock(return_value=SendResult(
            success=False, error="Graph is down", status_code=500,
        ))

        response = client.post("/api/facebook/messages", json={"recipientId": "u1", "message": "Hi"})

        assert response.status_code == 502


class TestUpdateMessages:

    def test_mark_read(self, client, api_container, memory_db):
        seed(api_container, "facebook", [
            facebook_message("m1", "u1", "2024-05-01T10:00:00+0000"),
        ], "c1")

        response = client.put("/api/facebook/messages", json={"action": "mark_read", "conversationId": "c1"})

        assert response.status_code == 200
        assert memory_db.rows("facebook_messages")[0]["is_replied"] is True

    def test_mark_read_requires_conversation(self, client):
        response = client.put("/api/facebook/messages", json={"action": "mark_read"})

        assert response.status_code == 400

    def test_mark_replied(self, client, api_container, memory_db):
        seed(api_container, "facebook", [
            facebook_message("m1", "u1", "2024-05-01T10:00:00+0000"),
        ], "c1")

        client.put("/api/facebook/messages", json={
            "action": "mark_replied", "messageId": "m1", "replyMessageId": "r1",
        })

        row = memory_db.rows("facebook_messages")[0]
        assert row["replied_by"] == "human"
        assert row["reply_message_id"] == "r1"

    def test_unknown_action_is_400(self, client):
        response = client.put("/api/facebook/messages", json={"action": "archive"})

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"
