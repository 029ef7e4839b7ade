"""
Unified feed: stored social messages and live Gmail in one timeline.
"""
from dataclasses import dataclass, field
from typing import Iterable

from inbox.schemas.messages import UnifiedMessage

PLATFORMS = ("facebook", "instagram", "gmail")


@dataclass
class UnifiedFeed:
    messages: list[UnifiedMessage]
    unread_counts: dict[str, int] = field(default_factory=dict)

    @property
    def total_unread(self) -> int:
        return sum(self.unread_counts.values())

    def to_dict(self) -> dict:
        return {
            "messages": [m.model_dump(by_alias=True) for m in self.messages],
            "unreadCounts": self.unread_counts,
            "totalUnread": self.total_unread,
            "total": len(self.messages),
        }


def assemble_feed(
    social: Iterable[UnifiedMessage],
    gmail: Iterable[UnifiedMessage] = (),
) -> UnifiedFeed:
    """
    Merge both sources, newest first.

    Ids are platform qualified, so nothing is deduplicated. Unread counts
    are per platform, from the derived status.
    """
    messages = [*social, *gmail]
    messages.sort(key=lambda m: m.sent_at, reverse=True)

    unread_counts = {platform: 0 for platform in PLATFORMS}
    for message in messages:
        if message.status == "unread":
            unread_counts[message.platform] += 1

    return UnifiedFeed(messages=messages, unread_counts=unread_counts)
