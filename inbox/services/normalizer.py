"""
Normalization of platform-native messages.

Facebook and Instagram messages become StoredMessage rows (persisted);
Gmail messages become UnifiedMessage directly (never persisted).

Directionality comes from BusinessIdentity only: a row whose sender is a
business id is written as already replied by a human.

Pure functions, no I/O.
"""
import logging
from typing import Iterable

from inbox.core.exceptions import MalformedMessageError
from inbox.schemas.messages import StoredMessage, UnifiedMessage, MessageContent
from inbox.services.identity import BusinessIdentity

logger = logging.getLogger(__name__)

FACEBOOK_DEFAULT_SENDER = "Facebook User"
INSTAGRAM_DEFAULT_SENDER = "Instagram User"


def _require_ids(message: dict, platform: str) -> tuple[str, str]:
    """
    Return (message id, sender id) or raise MalformedMessageError.

    created_time is required too: the timestamp orders every thread and the feed.
    """
    message_id = message.get("id")
    if not message_id:
        raise MalformedMessageError(platform, "id")

    sender = message.get("from") or {}
    sender_id = sender.get("id")
    if not sender_id:
        raise MalformedMessageError(platform, "from.id", message_id)

    if not message.get("created_time"):
        raise MalformedMessageError(platform, "created_time", message_id)

    return message_id, sender_id


def _apply_direction(row: StoredMessage, identity: BusinessIdentity) -> StoredMessage:
    if identity.is_business_sender(row.sender_id):
        row.is_replied = True
        row.replied_by = "human"
        row.sender_name = identity.display_name(row.sender_id) or row.sender_name
    return row


def normalize_facebook_message(
    message: dict,
    conversation_id: str,
    identity: BusinessIdentity,
) -> StoredMessage:
    """
    Map a Graph API Messenger message to a stored row.

    Args:
        message: {id, message?, from: {id, name}, to: {data: [{id}]},
                  created_time, attachments?: {data: [...]}}
        conversation_id: thread the message belongs to
        identity: configured Facebook pages

    Raises:
        MalformedMessageError: missing id, from.id or created_time
    """
    message_id, sender_id = _require_ids(message, "facebook")

    recipients = (message.get("to") or {}).get("data") or []
    receipt_id = (recipients[0].get("id") if recipients else None) or ""

    attachments = (message.get("attachments") or {}).get("data") or []

    row = StoredMessage(
        message_id=message_id,
        conversation_id=conversation_id,
        sender_id=sender_id,
        sender_name=message["from"].get("name") or FACEBOOK_DEFAULT_SENDER,
        receipt_id=receipt_id,
        message_text=message.get("message") or None,
        attachments=attachments,
        timestamp=message["created_time"],
        platform="facebook",
    )
    return _apply_direction(row, identity)


def normalize_instagram_message(
    message: dict,
    conversation_id: str,
    identity: BusinessIdentity,
) -> StoredMessage:
    """
    Map an Instagram Direct message to a stored row.

    The `to` field is a single object on the Instagram API and a
    {data: [...]} list on the Messenger-style endpoint; both are accepted.
    """
    message_id, sender_id = _require_ids(message, "instagram")

    to = message.get("to") or {}
    if to.get("data"):
        receipt_id = to["data"][0].get("id") or ""
    else:
        receipt_id = to.get("id") or ""

    attachments = message.get("attachments") or []
    if isinstance(attachments, dict):
        attachments = attachments.get("data") or []

    row = StoredMessage(
        message_id=message_id,
        conversation_id=conversation_id,
        sender_id=sender_id,
        sender_name=message["from"].get("username") or INSTAGRAM_DEFAULT_SENDER,
        receipt_id=receipt_id,
        message_text=message.get("text") or message.get("message") or None,
        attachments=attachments,
        timestamp=message["created_time"],
        platform="instagram",
    )
    return _apply_direction(row, identity)


def normalize_gmail_message(email: dict) -> UnifiedMessage:
    """
    Map a parsed Gmail message to the unified shape.

    Gmail has no persisted reply tracking: is_replied is always False.
    """
    email_id = email.get("id")
    if not email_id:
        raise MalformedMessageError("gmail", "id")

    sender_email = email.get("senderEmail") or ""
    return UnifiedMessage(
        id=f"gmail_{email_id}",
        platform="gmail",
        sender_id=sender_email,
        sender_name=email.get("sender") or sender_email or "Unknown",
        sender_email=sender_email,
        subject=email.get("subject"),
        content=MessageContent(
            text=email.get("body") or "",
            attachments=email.get("attachments") or [],
        ),
        timestamp=email.get("timestamp", ""),
        conversation_id=email.get("threadId") or email_id,
        is_read=email.get("status") != "unread",
        is_replied=False,
    )


def stored_to_unified(row: StoredMessage) -> UnifiedMessage:
    """Project a stored row for the feed. Read state follows reply state."""
    return UnifiedMessage(
        id=row.message_id,
        platform=row.platform,
        sender_id=row.sender_id,
        sender_name=row.sender_name,
        recipient_id=row.receipt_id or None,
        content=MessageContent(
            text=row.message_text or "",
            attachments=row.attachments or [],
        ),
        timestamp=row.timestamp,
        conversation_id=row.conversation_id,
        is_read=row.is_replied,
        is_replied=row.is_replied,
    )


def build_outgoing_message(
    platform: str,
    message_id: str,
    business_id: str,
    recipient_id: str,
    text: str,
    created_time: str,
) -> dict:
    """
    Platform-native record for a message the practice just sent.

    Fed back through the normalizer so the sent reply shows in the thread.
    """
    message = {"id": message_id, "from": {"id": business_id}, "created_time": created_time}
    if platform == "instagram":
        message.update({"to": {"id": recipient_id}, "text": text})
    else:
        message.update({"to": {"data": [{"id": recipient_id}]}, "message": text})
    return message


def normalize_batch(
    messages: Iterable[dict],
    conversation_id: str,
    identity: BusinessIdentity,
) -> list[StoredMessage]:
    """
    Normalize a batch, skipping malformed items.

    Args:
        messages: platform-native messages
        conversation_id: thread id
        identity: business identity for the platform; picks the normalizer
    """
    normalize = (
        normalize_instagram_message
        if identity.platform == "instagram"
        else normalize_facebook_message
    )

    rows = []
    for message in messages:
        try:
            rows.append(normalize(message, conversation_id, identity))
        except MalformedMessageError as e:
            logger.warning(
                f"[Normalizer] Skipping malformed message in {conversation_id}: {e}"
            )
    return rows
