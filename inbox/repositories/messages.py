"""
Message repositories for facebook_messages and instagram_messages.

The tables are the system of record for Facebook/Instagram history. Writes
are upserts keyed by message_id, so overlapping sync passes converge.
Rows are never deleted here.
"""

import logging
from typing import Iterable, Optional

from inbox.schemas.messages import Conversation, StoredMessage
from inbox.services.conversations import build_conversations
from inbox.services.identity import BusinessIdentity
from inbox.services.normalizer import (
    normalize_batch,
    normalize_facebook_message,
    normalize_instagram_message,
)

from .base import BaseRepository

logger = logging.getLogger(__name__)

CONFLICT_KEY = "message_id"


class MessageRepository(BaseRepository):
    """
    Stored messages of one platform.

    Usage:
        repo = FacebookMessageRepository(supabase, facebook_identity())
        await repo.store_messages(conversation["messages"]["data"], conversation["id"])
        conversations = await repo.get_conversations()
    """

    platform: str = ""

    def __init__(self, db_client, identity: BusinessIdentity):
        super().__init__(db_client)
        self.identity = identity

    def normalize(self, message: dict, conversation_id: str) -> StoredMessage:
        raise NotImplementedError

    # Writes

    async def store_message(self, message: dict, conversation_id: str) -> StoredMessage:
        """
        Normalize and upsert a single platform message.

        Raises:
            MalformedMessageError: message without id or from.id
            DatabaseError: upsert failed
        """
        row = self.normalize(message, conversation_id)
        await self.upsert_rows([row])
        return row

    async def store_messages(self, messages: Iterable[dict], conversation_id: str) -> int:
        """
        Normalize and upsert a batch. Malformed items are skipped.

        Returns:
            number of rows written
        """
        rows = normalize_batch(messages, conversation_id, self.identity)
        if not rows:
            return 0
        await self.upsert_rows(rows)
        logger.debug(f"Stored {len(rows)} {self.platform} messages for {conversation_id}")
        return len(rows)

    async def upsert_rows(self, rows: list[StoredMessage]) -> None:
        """
        Upsert already-normalized rows, conflict target message_id.

        Reply state already stored for a message survives: a resync of a
        handled message must not turn it unread again.
        """
        if not rows:
            return
        rows = self._keep_reply_state(rows)
        self.execute(
            self.table().upsert([row.to_dict() for row in rows], on_conflict=CONFLICT_KEY),
            "upsert",
            count=len(rows),
        )

    def _keep_reply_state(self, rows: list[StoredMessage]) -> list[StoredMessage]:
        """Carry stored is_replied, replied_by and reply_message_id onto incoming rows."""
        pending = [row.message_id for row in rows if not row.is_replied]
        if not pending:
            return rows

        stored = self.execute(
            self.table()
            .select("message_id, replied_by, reply_message_id")
            .in_("message_id", pending)
            .eq("is_replied", True),
            "load_reply_state",
            count=len(pending),
        )
        replied = {row["message_id"]: row for row in stored}

        for row in rows:
            previous = replied.get(row.message_id)
            if previous is None or row.is_replied:
                continue
            row.is_replied = True
            row.replied_by = previous.get("replied_by")
            row.reply_message_id = previous.get("reply_message_id")
        return rows

    async def mark_message_as_replied(
        self,
        message_id: str,
        replied_by: str = "human",
        reply_message_id: Optional[str] = None,
    ) -> None:
        """Set the reply fields of one row. Content columns are left alone."""
        self.execute(
            self.table()
            .update({
                "is_replied": True,
                "replied_by": replied_by,
                "reply_message_id": reply_message_id,
            })
            .eq("message_id", message_id),
            "mark_message_as_replied",
            message_id=message_id,
        )

    async def mark_conversation_as_read(self, conversation_id: str) -> None:
        """Mark every unreplied customer message of a thread as handled."""
        query = (
            self.table()
            .update({"is_replied": True})
            .eq("conversation_id", conversation_id)
            .eq("is_replied", False)
        )
        for business_id in sorted(self.identity.ids):
            query = query.neq("sender_id", business_id)
        self.execute(query, "mark_conversation_as_read", conversation_id=conversation_id)

    # Reads

    async def get_all_messages(self) -> list[StoredMessage]:
        """Every row, ascending by timestamp."""
        rows = self.execute(
            self.table().select("*").order("timestamp", desc=False),
            "get_all_messages",
        )
        return [StoredMessage.from_dict(row) for row in rows]

    async def get_unreplied_messages(self) -> list[StoredMessage]:
        """
        Customer messages still waiting for a reply, oldest first.

        This is the queue the auto-reply policy works from.
        """
        query = self.table().select("*").eq("is_replied", False)
        for business_id in sorted(self.identity.ids):
            query = query.neq("sender_id", business_id)
        rows = self.execute(query.order("timestamp", desc=False), "get_unreplied_messages")
        return [StoredMessage.from_dict(row) for row in rows]

    async def get_conversations(self) -> list[Conversation]:
        """Conversations rebuilt from a full scan, most recent first."""
        return build_conversations(await self.get_all_messages(), self.identity)

    async def get_conversation_messages(self, conversation_id: str) -> list[StoredMessage]:
        """Messages of one thread in reading order."""
        rows = self.execute(
            self.table()
            .select("*")
            .eq("conversation_id", conversation_id)
            .order("timestamp", desc=False),
            "get_conversation_messages",
            conversation_id=conversation_id,
        )
        return [StoredMessage.from_dict(row) for row in rows]

    async def get_counts(self) -> dict:
        """
        Totals for the dashboard.

        Returns:
            {total_messages, unread_messages, total_conversations}
        """
        messages = await self.get_all_messages()
        unread = [
            m for m in messages
            if not m.is_replied and not self.identity.is_business_sender(m.sender_id)
        ]
        return {
            "total_messages": len(messages),
            "unread_messages": len(unread),
            "total_conversations": len({m.conversation_id for m in messages}),
        }


class FacebookMessageRepository(MessageRepository):
    """facebook_messages; business ids are the configured Page ids."""

    platform = "facebook"

    @property
    def table_name(self) -> str:
        return "facebook_messages"

    def normalize(self, message: dict, conversation_id: str) -> StoredMessage:
        return normalize_facebook_message(message, conversation_id, self.identity)


class InstagramMessageRepository(MessageRepository):
    """instagram_messages; the business id is the Instagram Business Account."""

    platform = "instagram"

    @property
    def table_name(self) -> str:
        return "instagram_messages"

    def normalize(self, message: dict, conversation_id: str) -> StoredMessage:
        return normalize_instagram_message(message, conversation_id, self.identity)
