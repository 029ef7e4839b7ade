"""
Conversation aggregation.

Conversations are rebuilt from stored rows on every read. There is no
conversation table to keep in sync.
"""
from typing import Iterable

from inbox.schemas.messages import Conversation, StoredMessage
from inbox.services.identity import BusinessIdentity


def _sort_key(message: StoredMessage):
    return message.sent_at


def build_conversations(
    messages: Iterable[StoredMessage],
    identity: BusinessIdentity,
) -> list[Conversation]:
    """
    Group rows by conversation_id.

    Messages inside a conversation are ascending by timestamp; the list of
    conversations is ordered by last message, most recent first.

    unread_count only counts customer rows that are not replied; rows sent
    by a business identity never count.
    """
    grouped: dict[str, list[StoredMessage]] = {}
    for message in messages:
        grouped.setdefault(message.conversation_id, []).append(message)

    conversations = []
    for conversation_id, thread in grouped.items():
        thread.sort(key=_sort_key)

        participants: list[str] = []
        for message in thread:
            if message.sender_name and message.sender_name not in participants:
                participants.append(message.sender_name)

        conversations.append(
            Conversation(
                conversation_id=conversation_id,
                messages=thread,
                unread_count=sum(
                    1
                    for m in thread
                    if not m.is_replied and not identity.is_business_sender(m.sender_id)
                ),
                is_replied=any(m.is_replied for m in thread),
                participants=participants,
            )
        )

    conversations.sort(key=lambda c: c.last_message.sent_at, reverse=True)
    return conversations
