"""
FacebookClient - Messenger through the Graph API, one instance per Page.
"""

import logging
from typing import Optional

import httpx

from inbox.services.platforms.base import (
    GraphAPIClient,
    MessagingClient,
    SendResult,
    graph_error_message,
)

logger = logging.getLogger(__name__)

CONVERSATION_FIELDS = "platform,participants,messages{id,message,from,to,created_time,attachments}"
MESSAGE_FIELDS = "id,message,from,to,created_time,attachments"


class FacebookClient(GraphAPIClient):
    """
    Messenger client for a single Page.

    Conversations come back with their recent messages embedded, so a sync
    pass needs a single call per Page.
    """

    platform = "facebook"

    def __init__(self, page_id: str, access_token: str, page_name: str = ""):
        super().__init__(access_token)
        self.page_id = page_id
        self.page_name = page_name

    async def get_conversations(self, limit: int = 25) -> list[dict]:
        """
        List the Page's conversations with embedded messages.

        Returns:
            [{id, platform, participants, messages: {data: [...]}}]
        """
        data = await self._get(
            f"{self.page_id}/conversations",
            {"fields": CONVERSATION_FIELDS, "limit": limit},
        )
        return data.get("data") or []

    async def get_conversation_messages(self, conversation_id: str, limit: int = 25) -> list[dict]:
        """Messages of one conversation, newest first as returned by the API."""
        data = await self._get(
            f"{conversation_id}/messages",
            {"fields": MESSAGE_FIELDS, "limit": limit},
        )
        return data.get("data") or []

    async def send_message(
        self, recipient_id: str, text: str, page_id: Optional[str] = None
    ) -> SendResult:
        payload = {
            "recipient": {"id": recipient_id},
            "messaging_type": "RESPONSE",
            "message": {"text": text},
        }
        try:
            data = await self._post(f"{self.page_id}/messages", payload)
        except httpx.HTTPError as e:
            error_msg = graph_error_message(e)
            status_code = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
            logger.warning(f"[Facebook] Send failed on page {self.page_id}: {error_msg}")
            return SendResult(success=False, error=error_msg, status_code=status_code)

        return SendResult(success=True, message_id=data.get("message_id"))


class FacebookPages(MessagingClient):
    """
    Every configured Page behind one sender.

    Replies go out from the Page that received the message; without a page
    id the first configured Page is used.
    """

    platform = "facebook"

    def __init__(self, clients: list[FacebookClient]):
        self.clients = list(clients)

    def __iter__(self):
        return iter(self.clients)

    def __len__(self):
        return len(self.clients)

    def for_page(self, page_id: Optional[str] = None) -> Optional[FacebookClient]:
        if page_id:
            for client in self.clients:
                if client.page_id == page_id:
                    return client
        return self.clients[0] if self.clients else None

    async def send_message(
        self, recipient_id: str, text: str, page_id: Optional[str] = None
    ) -> SendResult:
        client = self.for_page(page_id)
        if client is None:
            return SendResult(success=False, error="No Facebook page configured", status_code=400)
        return await client.send_message(recipient_id, text)
