"""
InstagramClient - Instagram Direct through the connected Facebook Page.

Instagram conversations are read and answered through the Page that owns
the Business Account (`/{page_id}/conversations?platform=instagram`).
"""

import logging
from typing import Optional

import httpx

from inbox.core.exceptions import ExternalAPIError
from inbox.services.platforms.base import GraphAPIClient, SendResult

logger = logging.getLogger(__name__)

CONVERSATION_FIELDS = "id,participants,updated_time,message_count"
MESSAGE_FIELDS = "messages{id,from,to,created_time,message,attachments}"


def map_send_error(status_code: Optional[int], error: dict, fallback: str) -> str:
    """
    Human readable reason for a failed Instagram send.

    Args:
        status_code: HTTP status from the Graph API
        error: the `error` object of the response body
        fallback: text used when nothing more specific applies
    """
    upstream = error.get("message") or ""

    if status_code == 400:
        if "Invalid user ID" in upstream:
            return "Invalid recipient ID: User not found or cannot receive messages"
        if "can't receive messages" in upstream:
            return "User cannot receive messages (may not have messaged you first)"
        if "Application does not have the capability" in upstream:
            return (
                "App missing required permissions. Need pages_messaging and "
                "instagram_basic permissions for Instagram messaging."
            )
        if error.get("code") == 3:
            return (
                "OAuth capability error: the app needs pages_messaging permission "
                "and must be approved for Instagram messaging."
            )
        return f"Bad request: {upstream or 'Invalid request parameters'}"
    if status_code == 401:
        return "Authentication failed: Access token is invalid or expired"
    if status_code == 403:
        return (
            "Permission denied: Insufficient permissions for Instagram messaging. "
            "Ensure your app has pages_messaging and instagram_basic permissions."
        )
    if status_code == 429:
        return "Rate limit exceeded: Too many API requests"
    if status_code and status_code >= 500:
        return "Instagram server error: Please try again later"
    return f"Instagram API error ({status_code}): {upstream or fallback}"


class InstagramClient(GraphAPIClient):
    """Instagram Direct client for one Business Account."""

    platform = "instagram"

    def __init__(
        self,
        access_token: str,
        business_account_id: str,
        page_id: Optional[str] = None,
    ):
        super().__init__(access_token)
        self.business_account_id = business_account_id
        self._page_id = page_id or None

    async def get_page_id(self) -> str:
        """
        Page connected to the Business Account.

        Resolved from the token (`/me`) when not configured, then cached.
        """
        if self._page_id:
            return self._page_id

        data = await self._get("me", {"fields": "id,name,instagram_business_account"})
        page_id = data.get("id")
        if not page_id:
            raise ExternalAPIError(
                "Could not find Facebook Page ID from token",
                service=self.platform,
            )

        linked = (data.get("instagram_business_account") or {}).get("id")
        if linked != self.business_account_id:
            logger.warning(
                f"[Instagram] Page {page_id} is linked to {linked}, "
                f"expected {self.business_account_id}"
            )

        self._page_id = page_id
        return page_id

    async def get_conversations(self, limit: int = 25) -> list[dict]:
        """
        Instagram conversations of the connected Page.

        Returns:
            [{id, participants: [...], updated_time, message_count}]
        """
        page_id = await self.get_page_id()
        data = await self._get(
            f"{page_id}/conversations",
            {"platform": "instagram", "fields": CONVERSATION_FIELDS, "limit": limit},
        )
        return [
            {
                "id": conversation["id"],
                "participants": (conversation.get("participants") or {}).get("data") or [],
                "updated_time": conversation.get("updated_time"),
                "message_count": conversation.get("message_count") or 0,
            }
            for conversation in data.get("data") or []
        ]

    async def get_messages(self, conversation_id: str, limit: int = 25) -> list[dict]:
        """
        Up to `limit` messages of a conversation.

        Each message is flattened to {id, from, to, created_time, text, attachments}.
        """
        data = await self._get(conversation_id, {"fields": MESSAGE_FIELDS})
        messages = (data.get("messages") or {}).get("data") or []

        flattened = []
        for message in messages[:limit]:
            to = message.get("to") or {}
            if to.get("data"):
                to = to["data"][0]
            attachments = message.get("attachments") or []
            if isinstance(attachments, dict):
                attachments = attachments.get("data") or []
            flattened.append({
                "id": message.get("id"),
                "from": message.get("from"),
                "to": to,
                "created_time": message.get("created_time"),
                "text": message.get("message") or message.get("text"),
                "attachments": attachments,
            })
        return flattened

    async def send_message(
        self, recipient_id: str, text: str, page_id: Optional[str] = None
    ) -> SendResult:
        """
        Reply to an Instagram user through the Page messages endpoint.

        Never raises; the failure reason is mapped from the upstream status.
        """
        if not recipient_id or not recipient_id.strip():
            return SendResult(success=False, error="Recipient ID is required", status_code=400)
        if not text or not text.strip():
            return SendResult(success=False, error="Message text is required", status_code=400)

        payload = {
            "recipient": {"id": recipient_id},
            "message": {"text": text.strip()},
            "messaging_type": "RESPONSE",
        }

        try:
            page_id = await self.get_page_id()
            data = await self._post(f"{page_id}/messages", payload)
        except httpx.HTTPStatusError as e:
            try:
                error = e.response.json().get("error") or {}
            except ValueError:
                error = {}
            status_code = e.response.status_code
            message = map_send_error(status_code, error, str(e))
            logger.warning(f"[Instagram] Send to {recipient_id} failed ({status_code}): {message}")
            return SendResult(success=False, error=message, status_code=status_code)
        except ExternalAPIError as e:
            logger.warning(f"[Instagram] Page lookup failed: {e.message}")
            return SendResult(success=False, error=e.message, status_code=e.status_code)
        except httpx.HTTPError as e:
            logger.warning(f"[Instagram] Send to {recipient_id} failed: {e}")
            return SendResult(success=False, error=str(e) or type(e).__name__)

        if data.get("message_id"):
            return SendResult(success=True, message_id=data["message_id"])
        if data.get("recipient_id"):
            return SendResult(success=True, message_id=f"msg_{data['recipient_id']}")

        logger.warning(f"[Instagram] Response missing message_id: {data}")
        return SendResult(success=False, error="Instagram API response missing message_id")
