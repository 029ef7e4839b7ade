"""
Business identities.

A message is outbound (sent by the practice) exactly when its sender id is
one of the configured business ids. No platform "outgoing" flag is trusted.
"""
from dataclasses import dataclass, field
from typing import Mapping, Optional

from inbox.core.config import Settings, settings as default_settings


@dataclass(frozen=True)
class BusinessIdentity:
    """
    Business ids for one platform, mapped to their display names.

    Facebook holds every configured Page id; Instagram holds exactly one
    Business Account id.
    """

    platform: str
    names: Mapping[str, str] = field(default_factory=dict)

    def is_business_sender(self, sender_id: Optional[str]) -> bool:
        return bool(sender_id) and sender_id in self.names

    def display_name(self, sender_id: str) -> Optional[str]:
        """Configured name for a business id, None for customers."""
        return self.names.get(sender_id)

    @property
    def ids(self) -> frozenset:
        return frozenset(self.names)


def facebook_identity(config: Optional[Settings] = None) -> BusinessIdentity:
    """Identity built from the configured Facebook pages."""
    config = config or default_settings
    return BusinessIdentity(
        platform="facebook",
        names={page["id"]: page["name"] for page in config.facebook_pages},
    )


def instagram_identity(config: Optional[Settings] = None) -> BusinessIdentity:
    """Identity built from the single Instagram Business Account id."""
    config = config or default_settings
    names = {}
    if config.INSTAGRAM_BUSINESS_ACCOUNT_ID:
        names[config.INSTAGRAM_BUSINESS_ACCOUNT_ID] = config.INSTAGRAM_ACCOUNT_NAME
    return BusinessIdentity(platform="instagram", names=names)
