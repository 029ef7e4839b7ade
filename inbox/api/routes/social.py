"""
Facebook and Instagram message endpoints.

- GET  /api/{platform}/messages: stored history (live fetch when empty)
- POST /api/{platform}/messages: send a message
- PUT  /api/{platform}/messages: mark a conversation read / a message replied

Reads never wait for the platform: a background sync refreshes the store
and the response is served from what is already there.
"""
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from inbox.container import Container, get_container
from inbox.core.exceptions import (
    DatabaseError,
    ExternalAPIError,
    MalformedMessageError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from inbox.core.tasks import fire_and_forget
from inbox.core.timezone import now_utc
from inbox.repositories.messages import MessageRepository
from inbox.schemas.messages import StoredMessage
from inbox.services.conversations import build_conversations
from inbox.services.normalizer import build_outgoing_message, stored_to_unified
from inbox.services.sync import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Messages"])

SOCIAL_PLATFORMS = ("facebook", "instagram")


class SendMessageRequest(BaseModel):
    """Outgoing message typed in the inbox."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    recipient_id: str = ""
    message: str = ""
    page_id: Optional[str] = None
    conversation_id: Optional[str] = None


class UpdateMessagesRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    action: Literal["mark_read", "mark_replied"]
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    reply_message_id: Optional[str] = None


def resolve_platform(platform: str, container: Container) -> tuple[MessageRepository, SyncService]:
    """Repository and sync service of a social platform, 404 for anything else."""
    if platform not in SOCIAL_PLATFORMS:
        raise NotFoundError("Platform", platform)
    return container.repositories[platform], container.sync_services[platform]


def refresh_in_background(sync: SyncService, conversation_id: Optional[str] = None):
    """Start a sync without waiting for it; failures only reach the log."""
    if not sync.has_fetchers:
        return
    if conversation_id:
        fire_and_forget(
            sync.sync_conversation(conversation_id),
            name=f"{sync.name}_conversation",
        )
    else:
        fire_and_forget(sync.sync_messages(), name=f"{sync.name}_refresh")


async def _live_fetch(
    repo: MessageRepository,
    sync: SyncService,
    conversation_id: Optional[str],
) -> list[StoredMessage]:
    """Empty store: read straight from the platform, storing on the way."""
    if not sync.has_fetchers:
        return []

    if conversation_id:
        rows = await sync.fetch_conversation(conversation_id)
        try:
            await repo.upsert_rows(rows)
        except DatabaseError as e:
            logger.warning(f"[{sync.name}] Live messages not stored: {e.message}")
        return rows

    await sync.sync_messages()
    return await repo.get_all_messages()


def _sending_account(container: Container, platform: str, page_id: Optional[str]) -> str:
    """Business id that sent the message: the Page used, or the Instagram account."""
    if platform == "facebook":
        client = container.facebook_pages.for_page(page_id)
        return client.page_id if client else (page_id or "")
    return container.settings.INSTAGRAM_BUSINESS_ACCOUNT_ID


def _payload(rows: list[StoredMessage], repo: MessageRepository, limit: int) -> dict:
    conversations = build_conversations(rows, repo.identity)
    messages = sorted(
        (stored_to_unified(row) for row in rows),
        key=lambda m: m.sent_at,
        reverse=True,
    )
    return {
        "messages": [m.model_dump(by_alias=True) for m in messages[:limit]],
        "conversations": [c.to_dict() for c in conversations],
        "stats": {
            "totalMessages": len(rows),
            "totalConversations": len(conversations),
            "unreadMessages": sum(c.unread_count for c in conversations),
        },
    }


@router.get("/{platform}/messages")
async def list_messages(
    platform: str,
    conversation_id: Optional[str] = Query(None, alias="conversationId"),
    limit: int = Query(200, ge=1, le=1000),
    container: Container = Depends(get_container),
):
    """Stored messages and conversations of one platform."""
    repo, sync = resolve_platform(platform, container)

    if conversation_id:
        rows = await repo.get_conversation_messages(conversation_id)
    else:
        rows = await repo.get_all_messages()

    if rows:
        refresh_in_background(sync, conversation_id)
        source = "database"
    else:
        rows = await _live_fetch(repo, sync, conversation_id)
        source = "api"

    return {"success": True, "source": source, "data": _payload(rows, repo, limit)}


@router.post("/{platform}/messages")
async def send_message(
    platform: str,
    body: SendMessageRequest,
    container: Container = Depends(get_container),
):
    """
    Send a reply typed by the practice.

    When conversationId is given the sent message is stored in that thread,
    so it shows up before the next sync.
    """
    repo, _ = resolve_platform(platform, container)

    if not body.recipient_id or not body.message.strip():
        raise ValidationError("recipientId and message are required")

    sender = container.senders.get(platform)
    if sender is None:
        raise ValidationError(f"{platform.capitalize()} is not configured")

    result = await sender.send_message(body.recipient_id, body.message, page_id=body.page_id)
    if not result.success:
        error = result.error or "Send failed"
        if result.status_code == 403 or "permission" in error.lower():
            raise PermissionDeniedError(error, details={"platform": platform})
        raise ExternalAPIError(error, service=platform, status_code=result.status_code)

    if body.conversation_id and result.message_id:
        business_id = _sending_account(container, platform, body.page_id)
        outgoing = build_outgoing_message(
            platform,
            result.message_id,
            business_id,
            body.recipient_id,
            body.message,
            now_utc().isoformat(),
        )
        try:
            await repo.store_message(outgoing, body.conversation_id)
        except (DatabaseError, MalformedMessageError) as e:
            logger.warning(f"Sent {platform} message {result.message_id} not stored: {e.message}")

    return {"success": True, "data": result.to_dict()}


@router.put("/{platform}/messages")
async def update_messages(
    platform: str,
    body: UpdateMessagesRequest,
    container: Container = Depends(get_container),
):
    repo, _ = resolve_platform(platform, container)

    if body.action == "mark_read":
        if not body.conversation_id:
            raise ValidationError("conversationId is required for mark_read")
        await repo.mark_conversation_as_read(body.conversation_id)
        return {"success": True, "message": f"Conversation {body.conversation_id} marked as read"}

    if not body.message_id:
        raise ValidationError("messageId is required for mark_replied")
    await repo.mark_message_as_replied(body.message_id, "human", body.reply_message_id)
    return {"success": True, "message": f"Message {body.message_id} marked as replied"}
