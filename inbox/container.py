"""
Composition root.

Builds every service once per application from configuration and hangs it
on `app.state.container`. Nothing here is a module-level singleton, so
tests build as many independent containers as they need.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Request

from inbox.core.config import Settings, get_settings
from inbox.repositories.messages import FacebookMessageRepository, InstagramMessageRepository
from inbox.services.auto_reply import AutoReplyPolicy
from inbox.services.identity import BusinessIdentity, facebook_identity, instagram_identity
from inbox.services.platforms import FacebookClient, FacebookPages, GmailClient, InstagramClient
from inbox.services.sync import FacebookSyncService, InstagramSyncService

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """Services of one running application."""

    settings: Settings
    facebook_identity: BusinessIdentity
    instagram_identity: BusinessIdentity
    facebook_repo: FacebookMessageRepository
    instagram_repo: InstagramMessageRepository
    facebook_pages: FacebookPages
    instagram_client: Optional[InstagramClient]
    gmail: Optional[GmailClient]
    facebook_sync: FacebookSyncService
    instagram_sync: InstagramSyncService
    auto_reply: AutoReplyPolicy
    ai_enabled: bool = False

    @property
    def sync_services(self) -> dict:
        return {"facebook": self.facebook_sync, "instagram": self.instagram_sync}

    @property
    def repositories(self) -> dict:
        return {"facebook": self.facebook_repo, "instagram": self.instagram_repo}

    @property
    def senders(self) -> dict:
        return self.auto_reply.senders

    async def reply_to_recent(self, result=None):
        """Reactive auto-reply, run after each polling pass while AI is on."""
        if not self.ai_enabled:
            return None
        report = await self.auto_reply.run("recent")
        if report.processed or report.failed:
            logger.info(f"[AutoReply] Reactive pass: {report.to_dict()}")
        return report

    def stop(self):
        for service in self.sync_services.values():
            service.stop()


def build_container(
    db: Any = None,
    config: Optional[Settings] = None,
    gmail: Optional[GmailClient] = None,
) -> Container:
    """
    Wire repositories, platform clients, sync services and the auto-reply policy.

    Args:
        db: database client; the Supabase client when omitted
        config: settings; the cached settings when omitted
        gmail: Gmail client; built from the configured tokens when omitted
    """
    config = config or get_settings()
    if db is None:
        from inbox.services.supabase import get_supabase_client
        db = get_supabase_client()

    fb_identity = facebook_identity(config)
    ig_identity = instagram_identity(config)

    facebook_repo = FacebookMessageRepository(db, fb_identity)
    instagram_repo = InstagramMessageRepository(db, ig_identity)

    facebook_pages = FacebookPages([
        FacebookClient(page["id"], page["access_token"], page["name"])
        for page in config.facebook_pages
        if page["access_token"]
    ])

    instagram_client = None
    if config.INSTAGRAM_ACCESS_TOKEN and config.INSTAGRAM_BUSINESS_ACCOUNT_ID:
        instagram_client = InstagramClient(
            config.INSTAGRAM_ACCESS_TOKEN,
            config.INSTAGRAM_BUSINESS_ACCOUNT_ID,
            config.INSTAGRAM_PAGE_ID or None,
        )

    if gmail is None and config.gmail_configured:
        gmail = GmailClient.from_settings(config)

    senders = {"facebook": facebook_pages}
    if instagram_client is not None:
        senders["instagram"] = instagram_client

    container = Container(
        settings=config,
        facebook_identity=fb_identity,
        instagram_identity=ig_identity,
        facebook_repo=facebook_repo,
        instagram_repo=instagram_repo,
        facebook_pages=facebook_pages,
        instagram_client=instagram_client,
        gmail=gmail,
        facebook_sync=FacebookSyncService(
            facebook_pages.clients, facebook_repo, config.SYNC_INTERVAL_SECONDS
        ),
        instagram_sync=InstagramSyncService(
            instagram_client, instagram_repo, config.SYNC_INTERVAL_SECONDS
        ),
        auto_reply=AutoReplyPolicy(
            senders=senders,
            repositories={"facebook": facebook_repo, "instagram": instagram_repo},
            identities={"facebook": fb_identity, "instagram": ig_identity},
            gmail=gmail,
            config=config,
        ),
    )

    logger.info(
        f"Container ready: {len(facebook_pages)} Facebook page(s), "
        f"Instagram {'on' if instagram_client else 'off'}, Gmail {'on' if gmail else 'off'}"
    )
    return container


def get_container(request: Request) -> Container:
    """FastAPI dependency: the container built by the lifespan."""
    return request.app.state.container
