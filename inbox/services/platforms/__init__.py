"""
Platform clients.

Each wraps one vendor API and returns platform-native records:
- FacebookClient: Messenger, one instance per Page
- InstagramClient: Instagram Direct through the connected Page
- GmailClient: Gmail API (live, not persisted)
"""

from .base import SendResult, MessagingClient, GraphAPIClient
from .facebook import FacebookClient, FacebookPages
from .instagram import InstagramClient
from .gmail import GmailClient, parse_gmail_message

__all__ = [
    "SendResult",
    "MessagingClient",
    "GraphAPIClient",
    "FacebookClient",
    "FacebookPages",
    "InstagramClient",
    "GmailClient",
    "parse_gmail_message",
]
