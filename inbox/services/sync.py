"""
Sync services: pull conversations from a platform and upsert them.

Each service is an explicit object owned by the application container
(see inbox.container), with its own start/stop lifecycle:

    stopped --start()--> running --stop()--> stopped

start() runs one pass immediately and then one every interval on an
asyncio task. Passes are best effort: a failing conversation (or Page) is
logged and counted, and the pass moves on. There is no retry queue; the
next pass is the retry.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from inbox.core.config import SyncConfig, settings
from inbox.core.exceptions import ConfigurationError, NotFoundError
from inbox.core.tasks import safe_create_task
from inbox.core.timezone import now_utc
from inbox.repositories.messages import MessageRepository
from inbox.schemas.messages import StoredMessage
from inbox.services.normalizer import normalize_batch
from inbox.services.platforms.facebook import FacebookClient
from inbox.services.platforms.instagram import InstagramClient

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Totals of one sync pass. Best effort: may undercount on failures."""

    conversations: int = 0
    messages: int = 0
    failures: int = 0
    duration_ms: int = 0
    errors: list[str] = field(default_factory=list)

    def record_failure(self, error: str):
        self.failures += 1
        self.errors.append(error)

    def to_dict(self) -> dict:
        return {
            "conversations": self.conversations,
            "messages": self.messages,
            "failures": self.failures,
            "duration_ms": self.duration_ms,
            "errors": self.errors,
        }


class SyncService:
    """Polling loop around one platform's sync pass."""

    name = "sync"

    def __init__(self, repository: MessageRepository, interval_seconds: Optional[int] = None):
        self.repository = repository
        self.interval_seconds = interval_seconds or settings.SYNC_INTERVAL_SECONDS
        self.last_result: Optional[SyncResult] = None
        self.last_sync_at: Optional[str] = None
        # Awaited after every polling pass (reactive auto-reply)
        self.after_pass: Optional[Callable[[SyncResult], Awaitable]] = None
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def has_fetchers(self) -> bool:
        raise NotImplementedError

    @property
    def page_count(self) -> int:
        return 1 if self.has_fetchers else 0

    def start(self, interval_seconds: Optional[int] = None) -> bool:
        """
        Start polling. Must be called from a running event loop.

        Returns:
            False when already running (nothing changes)
        """
        if self._running:
            logger.info(f"[{self.name}] Already running, start ignored")
            return False

        if interval_seconds:
            self.interval_seconds = interval_seconds

        self._running = True
        self._task = safe_create_task(self._loop(), name=f"{self.name}_loop")
        logger.info(f"[{self.name}] Started, interval {self.interval_seconds}s")
        return True

    def stop(self) -> bool:
        """Stop polling. Returns False when it was not running."""
        if not self._running:
            return False

        self._running = False
        if self._task is not None:
            self._task.cancel()
            self._task = None
        logger.info(f"[{self.name}] Stopped")
        return True

    async def _loop(self):
        while self._running:
            await self.run_pass()
            await asyncio.sleep(self.interval_seconds)

    async def run_pass(self) -> Optional[SyncResult]:
        """
        One pass for the polling loop, followed by the after_pass hook.
        Failures are logged, never raised.
        """
        try:
            result = await self.sync_messages()
            if self.after_pass is not None:
                await self.after_pass(result)
            return result
        except Exception as e:
            logger.error(f"[{self.name}] Sync pass failed: {e}", exc_info=True)
            return None

    async def sync_messages(self) -> SyncResult:
        raise NotImplementedError

    async def fetch_conversation(
        self, conversation_id: str, page_id: Optional[str] = None
    ) -> list[StoredMessage]:
        """Live fetch of one thread, normalized but not stored."""
        raise NotImplementedError

    async def sync_conversation(self, conversation_id: str, page_id: Optional[str] = None) -> int:
        """
        Fetch one thread with a larger page size and store it.

        Returns:
            number of rows written
        """
        rows = await self.fetch_conversation(conversation_id, page_id)
        await self.repository.upsert_rows(rows)
        logger.info(f"[{self.name}] Conversation {conversation_id}: {len(rows)} messages")
        return len(rows)

    def _finish(self, result: SyncResult, started: float) -> SyncResult:
        result.duration_ms = int((time.monotonic() - started) * 1000)
        self.last_result = result
        self.last_sync_at = now_utc().isoformat()
        logger.info(
            f"[{self.name}] Pass done: {result.conversations} conversations, "
            f"{result.messages} messages, {result.failures} failures in {result.duration_ms}ms"
        )
        return result

    def status(self) -> dict:
        return {
            "is_running": self._running,
            "has_fetchers": self.has_fetchers,
            "page_count": self.page_count,
            "interval_seconds": self.interval_seconds,
            "last_sync_at": self.last_sync_at,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }


class InstagramSyncService(SyncService):
    """
    Instagram: list conversations, then fetch each conversation's messages.
    """

    name = "InstagramSync"

    def __init__(
        self,
        client: Optional[InstagramClient],
        repository: MessageRepository,
        interval_seconds: Optional[int] = None,
    ):
        super().__init__(repository, interval_seconds)
        self.client = client

    @property
    def has_fetchers(self) -> bool:
        return self.client is not None

    async def sync_messages(self) -> SyncResult:
        """
        One pass over the most recent conversations.

        Raises:
            ExternalAPIError: listing conversations failed
        """
        started = time.monotonic()
        result = SyncResult()

        if self.client is None:
            logger.warning(f"[{self.name}] No Instagram credentials configured, skipping")
            return self._finish(result, started)

        conversations = await self.client.get_conversations(SyncConfig.INSTAGRAM_CONVERSATIONS_LIMIT)

        for conversation in conversations:
            conversation_id = conversation["id"]
            try:
                messages = await self.client.get_messages(
                    conversation_id, SyncConfig.INSTAGRAM_MESSAGES_PER_CONVERSATION
                )
                result.messages += await self.repository.store_messages(messages, conversation_id)
                result.conversations += 1
            except Exception as e:
                logger.error(f"[{self.name}] Conversation {conversation_id} failed: {e}")
                result.record_failure(f"{conversation_id}: {e}")

        return self._finish(result, started)

    async def fetch_conversation(
        self, conversation_id: str, page_id: Optional[str] = None
    ) -> list[StoredMessage]:
        """Larger slice of one thread's history. Errors propagate."""
        if self.client is None:
            raise ConfigurationError("Instagram access token is not configured")

        messages = await self.client.get_messages(
            conversation_id, SyncConfig.INSTAGRAM_CONVERSATION_MESSAGES_LIMIT
        )
        return normalize_batch(messages, conversation_id, self.repository.identity)


class FacebookSyncService(SyncService):
    """
    Facebook: one client per configured Page, all synced in each pass.

    Conversations come with embedded messages, so each Page costs one
    listing call. A failing Page does not stop the others.
    """

    name = "FacebookSync"

    def __init__(
        self,
        clients: list[FacebookClient],
        repository: MessageRepository,
        interval_seconds: Optional[int] = None,
    ):
        super().__init__(repository, interval_seconds)
        self.clients = list(clients)

    @property
    def has_fetchers(self) -> bool:
        return bool(self.clients)

    @property
    def page_count(self) -> int:
        return len(self.clients)

    async def _sync_page(self, client: FacebookClient, result: SyncResult):
        conversations = await client.get_conversations(SyncConfig.FACEBOOK_CONVERSATIONS_LIMIT)

        for conversation in conversations:
            conversation_id = conversation.get("id")
            try:
                messages = (conversation.get("messages") or {}).get("data") or []
                result.messages += await self.repository.store_messages(messages, conversation_id)
                result.conversations += 1
            except Exception as e:
                logger.error(
                    f"[{self.name}] Conversation {conversation_id} on page {client.page_id} failed: {e}"
                )
                result.record_failure(f"{conversation_id}: {e}")

    async def sync_messages(self) -> SyncResult:
        """One pass over every configured Page."""
        started = time.monotonic()
        result = SyncResult()

        if not self.clients:
            logger.warning(f"[{self.name}] No Facebook pages configured, skipping")
            return self._finish(result, started)

        for client in self.clients:
            try:
                await self._sync_page(client, result)
            except Exception as e:
                logger.error(f"[{self.name}] Page {client.page_id} failed: {e}")
                result.record_failure(f"page {client.page_id}: {e}")

        return self._finish(result, started)

    async def fetch_conversation(
        self, conversation_id: str, page_id: Optional[str] = None
    ) -> list[StoredMessage]:
        """
        One thread's history from the given Page, or from each Page in turn.

        Raises:
            NotFoundError: no Page could return the conversation
        """
        clients = self.clients
        if page_id:
            clients = [c for c in self.clients if c.page_id == page_id]

        for client in clients:
            try:
                messages = await client.get_conversation_messages(
                    conversation_id, SyncConfig.FACEBOOK_CONVERSATION_MESSAGES_LIMIT
                )
            except Exception as e:
                logger.warning(
                    f"[{self.name}] Conversation {conversation_id} not found on page {client.page_id}: {e}"
                )
                continue
            return normalize_batch(messages, conversation_id, self.repository.identity)

        logger.error(f"[{self.name}] Could not sync conversation {conversation_id} on any page")
        raise NotFoundError("Conversation", conversation_id)
