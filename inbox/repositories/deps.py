"""
Repository construction outside the application container.

Endpoints get their repositories from the container (`container.repositories`);
this builds one on any database client, for scripts and tests.

Usage in tests:
    repo = create_message_repo("instagram", InMemorySupabase(), make_settings())
"""
from typing import Optional

from inbox.core.config import Settings
from inbox.core.exceptions import NotFoundError
from inbox.services.identity import facebook_identity, instagram_identity

from .messages import FacebookMessageRepository, InstagramMessageRepository, MessageRepository


def create_message_repo(
    platform: str, db_client, config: Optional[Settings] = None
) -> MessageRepository:
    """Repository for `platform` with the business identity from `config`."""
    if platform == "facebook":
        return FacebookMessageRepository(db_client, facebook_identity(config))
    if platform == "instagram":
        return InstagramMessageRepository(db_client, instagram_identity(config))
    raise NotFoundError("Platform", platform)
