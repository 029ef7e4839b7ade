"""
Repositories - data access layer.

Business logic talks to the message tables only through these classes.
The database client is injected, so tests run against an in-memory double
without patching imports.

Usage:
    repo = container.repositories["facebook"]
    conversations = await repo.get_conversations()

Available tables:
- facebook_messages: FacebookMessageRepository
- instagram_messages: InstagramMessageRepository
"""

from .base import BaseRepository
from .messages import MessageRepository, FacebookMessageRepository, InstagramMessageRepository

__all__ = [
    "BaseRepository",
    "MessageRepository",
    "FacebookMessageRepository",
    "InstagramMessageRepository",
]
