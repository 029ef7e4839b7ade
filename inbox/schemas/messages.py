"""
Message shapes shared by every platform.

- UnifiedMessage: what the UI and the auto-reply policy see.
- StoredMessage: one row of facebook_messages / instagram_messages.
- Conversation: derived from stored rows on read, never persisted.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Literal, Any

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from inbox.core.timezone import parse_timestamp

Platform = Literal["facebook", "instagram", "gmail"]
MessageStatus = Literal["unread", "read", "replied"]
RepliedBy = Literal["AI", "human"]


class MessageContent(BaseModel):
    """Text plus attachments, as rendered in the inbox."""

    text: str = ""
    attachments: list[Any] = Field(default_factory=list)


class UnifiedMessage(BaseModel):
    """
    Platform independent message.

    `status` is computed from is_read/is_replied and cannot be assigned.
    Serialized with camelCase keys (senderId, conversationId, ...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    platform: Platform
    sender_id: str
    sender_name: str
    recipient_id: Optional[str] = None  # page or account that received it
    sender_email: Optional[str] = None  # Gmail only
    subject: Optional[str] = None  # Gmail only
    content: MessageContent = Field(default_factory=MessageContent)
    timestamp: str
    conversation_id: str
    is_read: bool = False
    is_replied: bool = False

    @computed_field
    @property
    def status(self) -> MessageStatus:
        if not self.is_read:
            return "unread"
        return "replied" if self.is_replied else "read"

    @property
    def sent_at(self) -> datetime:
        """Timestamp as an aware UTC datetime."""
        return parse_timestamp(self.timestamp)


@dataclass
class StoredMessage:
    """
    Row of a per-platform message table.

    message_id is the upsert conflict target.
    """

    message_id: str
    conversation_id: str
    sender_id: str
    sender_name: str
    timestamp: str
    platform: str
    receipt_id: str = ""
    message_text: Optional[str] = None
    attachments: list = field(default_factory=list)
    is_replied: bool = False
    replied_by: Optional[str] = None
    reply_message_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "StoredMessage":
        """Build from a database row."""
        return cls(
            message_id=data.get("message_id", ""),
            conversation_id=data.get("conversation_id", ""),
            sender_id=data.get("sender_id", ""),
            sender_name=data.get("sender_name", ""),
            timestamp=data.get("timestamp", ""),
            platform=data.get("platform", ""),
            receipt_id=data.get("receipt_id") or "",
            message_text=data.get("message_text"),
            attachments=data.get("attachments") or [],
            is_replied=bool(data.get("is_replied", False)),
            replied_by=data.get("replied_by"),
            reply_message_id=data.get("reply_message_id"),
        )

    def to_dict(self) -> dict:
        """Row for upsert. Keeps None values so message_text is always present."""
        return {
            "message_id": self.message_id,
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "sender_name": self.sender_name,
            "receipt_id": self.receipt_id,
            "message_text": self.message_text,
            "attachments": self.attachments,
            "timestamp": self.timestamp,
            "platform": self.platform,
            "is_replied": self.is_replied,
            "replied_by": self.replied_by,
            "reply_message_id": self.reply_message_id,
        }

    @property
    def sent_at(self) -> datetime:
        return parse_timestamp(self.timestamp)


@dataclass
class Conversation:
    """Thread reconstructed from stored rows. Never empty."""

    conversation_id: str
    messages: list[StoredMessage]
    unread_count: int
    is_replied: bool
    participants: list[str]

    @property
    def last_message(self) -> StoredMessage:
        return self.messages[-1]

    def to_dict(self) -> dict:
        """camelCase payload for the dashboard."""
        return {
            "conversationId": self.conversation_id,
            "messages": [m.to_dict() for m in self.messages],
            "lastMessage": self.last_message.to_dict(),
            "unreadCount": self.unread_count,
            "isReplied": self.is_replied,
            "participants": self.participants,
        }
