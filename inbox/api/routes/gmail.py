"""
Gmail endpoints. Gmail is read live, nothing is stored.
"""
import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from inbox.container import Container, get_container
from inbox.core.exceptions import AuthenticationError, ValidationError
from inbox.services.normalizer import normalize_gmail_message
from inbox.services.platforms.gmail import GmailClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/gmail", tags=["Gmail"])


class GmailReplyRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    thread_id: str = ""
    reply_text: str = ""
    recipient_email: str = ""
    subject: str = ""


class GmailUpdateRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    action: Literal["mark_read"] = "mark_read"
    message_id: str


def _gmail(container: Container) -> GmailClient:
    if container.gmail is None:
        raise AuthenticationError("Gmail is not connected")
    return container.gmail


@router.get("/messages")
async def list_emails(
    limit: int = Query(20, ge=1, le=50),
    query: str = Query(""),
    container: Container = Depends(get_container),
):
    """Recent emails in the unified shape."""
    emails = await _gmail(container).fetch_emails(limit, query)
    messages = [normalize_gmail_message(email) for email in emails if email.get("id")]
    return {
        "success": True,
        "source": "api",
        "data": {
            "messages": [m.model_dump(by_alias=True) for m in messages],
            "total": len(messages),
            "unread": sum(1 for m in messages if m.status == "unread"),
        },
    }


@router.post("/messages")
async def reply_to_thread(body: GmailReplyRequest, container: Container = Depends(get_container)):
    if not body.thread_id or not body.reply_text.strip() or not body.recipient_email:
        raise ValidationError("threadId, replyText and recipientEmail are required")

    sent = await _gmail(container).send_reply(
        body.thread_id, body.reply_text, body.recipient_email, body.subject
    )
    logger.info(f"[Gmail] Reply sent in thread {body.thread_id}")
    return {"success": True, "data": {"messageId": sent.get("id"), "threadId": sent.get("threadId")}}


@router.put("/messages")
async def update_email(body: GmailUpdateRequest, container: Container = Depends(get_container)):
    message_id = body.message_id.removeprefix("gmail_")
    await _gmail(container).mark_as_read(message_id)
    return {"success": True, "message": f"Email {message_id} marked as read"}
