"""
AI auto-reply policy.

A message is answered automatically only when it comes from a customer,
has not been replied to and is recent enough:
- reactive pass: 10 minutes (default)
- catch-up pass after turning AI on: 24 hours, one send per second

Reply text comes from the n8n webhook; a response without `output` or
`reply` falls back to a canned acknowledgment, so an empty reply is never
sent. Any failure leaves the message unreplied for a later pass.

Gmail has no reply columns to update, so the policy keeps the ids of the
emails it answered and marks them read in the mailbox.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Iterable, Optional

import httpx

from inbox.core.config import Settings, SyncConfig, settings as default_settings
from inbox.core.exceptions import ConfigurationError, ExternalAPIError, MalformedMessageError
from inbox.core.timezone import now_utc
from inbox.repositories.messages import MessageRepository
from inbox.schemas.messages import UnifiedMessage
from inbox.services.http_client import get_http_client
from inbox.services.identity import BusinessIdentity
from inbox.services.normalizer import (
    build_outgoing_message,
    normalize_gmail_message,
    stored_to_unified,
)
from inbox.services.platforms.base import MessagingClient, SendResult
from inbox.services.platforms.gmail import GmailClient

logger = logging.getLogger(__name__)

GMAIL_UNREAD_QUERY = "is:unread"


def _sort_key(message: UnifiedMessage) -> datetime:
    try:
        return message.sent_at
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class AutoReplyReport:
    """Outcome of one auto-reply pass."""

    processed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": self.errors,
        }


class AutoReplyPolicy:
    """
    Decide, generate and dispatch automatic replies.

    Args:
        senders: platform -> client used to send (facebook, instagram)
        repositories: platform -> message repository for stored platforms
        identities: platform -> business identity
        gmail: Gmail client, when Gmail is connected
        config: settings (webhook urls, windows, fallback text)
        clock: current time, injectable for tests
        sleep: throttle between backlog sends, injectable for tests
    """

    def __init__(
        self,
        senders: dict[str, MessagingClient],
        repositories: dict[str, MessageRepository],
        identities: dict[str, BusinessIdentity],
        gmail: Optional[GmailClient] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = now_utc,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        config = config or default_settings
        self.senders = senders
        self.repositories = repositories
        self.identities = identities
        self.gmail = gmail
        self.webhook_url = config.N8N_WEBHOOK_URL
        self.activation_webhook_url = config.AI_ACTIVATION_WEBHOOK_URL
        self.fallback_reply = config.AI_FALLBACK_REPLY
        self.reactive_window = timedelta(minutes=config.AI_REACTIVE_WINDOW_MINUTES)
        self.catchup_window = timedelta(hours=config.AI_CATCHUP_WINDOW_HOURS)
        self.backlog_delay = config.AI_BACKLOG_DELAY_SECONDS
        self.timeout = config.AI_WEBHOOK_TIMEOUT_SECONDS
        self._clock = clock
        self._sleep = sleep
        self._answered_gmail: set[str] = set()

    def is_business_message(self, message: UnifiedMessage) -> bool:
        identity = self.identities.get(message.platform)
        return identity is not None and identity.is_business_sender(message.sender_id)

    def is_eligible(
        self,
        message: UnifiedMessage,
        window: timedelta,
        now: Optional[datetime] = None,
    ) -> bool:
        """From a customer, not replied, and no older than `window`."""
        if self.is_business_message(message) or message.is_replied:
            return False
        if message.platform == "gmail" and message.id in self._answered_gmail:
            return False

        try:
            sent_at = message.sent_at
        except ValueError:
            logger.warning(f"[AutoReply] Unparseable timestamp on {message.id}: {message.timestamp!r}")
            return False

        now = now or self._clock()
        return now - sent_at <= window

    async def generate_reply(self, message: UnifiedMessage) -> str:
        """
        Ask the n8n webhook for a reply.

        Raises:
            ConfigurationError: N8N_WEBHOOK_URL not set
            ExternalAPIError: webhook unreachable or non-2xx
        """
        if not self.webhook_url:
            raise ConfigurationError("N8N_WEBHOOK_URL is not configured")

        payload = {
            "messageId": message.id,
            "platform": message.platform,
            "senderId": message.sender_id,
            "senderName": message.sender_name,
            "content": message.content.text,
            "timestamp": message.timestamp,
            "conversationId": message.conversation_id,
        }

        client = await get_http_client()
        try:
            response = await client.post(self.webhook_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPStatusError as e:
            raise ExternalAPIError(
                f"n8n webhook failed: {e.response.status_code}",
                service="n8n",
                status_code=e.response.status_code,
                original_error=e,
            )
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalAPIError(f"n8n webhook failed: {e}", service="n8n", original_error=e)

        reply = None
        if isinstance(result, dict):
            reply = result.get("output") or result.get("reply")
        return reply or self.fallback_reply

    async def dispatch(self, message: UnifiedMessage, text: str) -> SendResult:
        """
        Send the reply on the message's own platform.

        Facebook/Instagram: send to the sender, store the outgoing message in
        the thread and mark the source message replied by AI.
        Gmail: reply inside the thread, remember the email as answered and
        mark it read.
        """
        if message.platform == "gmail":
            return await self._dispatch_gmail(message, text)

        sender = self.senders.get(message.platform)
        if sender is None:
            raise ConfigurationError(f"No sender configured for {message.platform}")

        result = await sender.send_message(message.sender_id, text, page_id=message.recipient_id)
        if not result.success:
            return result

        repository = self.repositories.get(message.platform)
        if repository is not None:
            await self._store_outgoing(repository, message, text, result)
            await repository.mark_message_as_replied(message.id, "AI", result.message_id)

        return result

    async def _dispatch_gmail(self, message: UnifiedMessage, text: str) -> SendResult:
        if self.gmail is None:
            raise ConfigurationError("Gmail is not connected")

        sent = await self.gmail.send_reply(
            message.conversation_id,
            text,
            message.sender_email or message.sender_id,
            message.subject or "",
        )
        self._answered_gmail.add(message.id)

        try:
            await self.gmail.mark_as_read(message.id.removeprefix("gmail_"))
        except ExternalAPIError as e:
            logger.warning(f"[AutoReply] Could not mark {message.id} as read: {e}")

        return SendResult(success=True, message_id=sent.get("id"))

    async def _store_outgoing(
        self,
        repository: MessageRepository,
        message: UnifiedMessage,
        text: str,
        result: SendResult,
    ):
        """Record the sent reply in the thread; the business sender makes it replied."""
        if not result.message_id:
            return

        identity = self.identities.get(message.platform)
        if identity is None:
            return
        if identity.is_business_sender(message.recipient_id):
            business_id = message.recipient_id
        else:
            business_id = next(iter(sorted(identity.ids)), "")
        if not business_id:
            return

        outgoing = build_outgoing_message(
            message.platform,
            result.message_id,
            business_id,
            message.sender_id,
            text,
            self._clock().isoformat(),
        )
        try:
            await repository.store_message(outgoing, message.conversation_id)
        except Exception as e:
            logger.warning(f"[AutoReply] Could not store reply {result.message_id}: {e}")

    async def process_message(
        self,
        message: UnifiedMessage,
        window: Optional[timedelta] = None,
        report: Optional[AutoReplyReport] = None,
    ) -> bool:
        """
        Eligibility, generation, dispatch. Never raises.

        Returns:
            True when a reply was sent
        """
        report = report if report is not None else AutoReplyReport()
        window = window or self.reactive_window

        if not self.is_eligible(message, window):
            report.skipped += 1
            return False

        try:
            text = await self.generate_reply(message)
            result = await self.dispatch(message, text)
        except Exception as e:
            logger.error(f"[AutoReply] Failed on {message.platform} message {message.id}: {e}")
            report.failed += 1
            report.errors.append(f"{message.id}: {e}")
            return False

        if not result.success:
            logger.error(f"[AutoReply] Send failed for {message.id}: {result.error}")
            report.failed += 1
            report.errors.append(f"{message.id}: {result.error}")
            return False

        logger.info(f"[AutoReply] Replied to {message.platform} message {message.id}")
        report.processed += 1
        return True

    async def process_recent(self, messages: Iterable[UnifiedMessage]) -> AutoReplyReport:
        """Reactive pass over messages from the last few minutes."""
        report = AutoReplyReport()
        for message in messages:
            await self.process_message(message, self.reactive_window, report)
        return report

    async def process_backlog(self, messages: Iterable[UnifiedMessage]) -> AutoReplyReport:
        """
        Catch-up pass after AI is switched on.

        Serialized, with a fixed delay after every attempted reply to stay
        under platform rate limits.
        """
        report = AutoReplyReport()
        now = self._clock()
        eligible = []
        for message in messages:
            if self.is_eligible(message, self.catchup_window, now):
                eligible.append(message)
            else:
                report.skipped += 1

        logger.info(f"[AutoReply] Backlog: {len(eligible)} eligible, {report.skipped} skipped")

        for index, message in enumerate(eligible):
            await self.process_message(message, self.catchup_window, report)
            if index < len(eligible) - 1:
                await self._sleep(self.backlog_delay)

        return report

    async def unreplied_messages(self) -> list[UnifiedMessage]:
        """Unreplied customer messages across all platforms, oldest first."""
        messages = []
        for platform, repository in self.repositories.items():
            try:
                rows = await repository.get_unreplied_messages()
            except Exception as e:
                logger.error(f"[AutoReply] Could not load unreplied {platform} messages: {e}")
                continue
            messages.extend(stored_to_unified(row) for row in rows)
        messages.extend(await self._unanswered_emails())
        messages.sort(key=_sort_key)
        return messages

    async def _unanswered_emails(self) -> list[UnifiedMessage]:
        """Unread inbox emails this policy has not answered yet."""
        if self.gmail is None:
            return []

        try:
            emails = await self.gmail.fetch_emails(SyncConfig.GMAIL_MAX_RESULTS, GMAIL_UNREAD_QUERY)
        except Exception as e:
            logger.error(f"[AutoReply] Could not load unread Gmail messages: {e}")
            return []

        messages = []
        for email in emails:
            try:
                message = normalize_gmail_message(email)
            except MalformedMessageError as e:
                logger.warning(f"[AutoReply] Skipping email: {e}")
                continue
            if message.id not in self._answered_gmail:
                messages.append(message)
        return messages

    async def run(self, mode: str = "recent") -> AutoReplyReport:
        """Load the unreplied queue and run the requested pass."""
        messages = await self.unreplied_messages()
        if mode == "backlog":
            return await self.process_backlog(messages)
        return await self.process_recent(messages)

    async def notify_toggle(self, enabled: bool) -> bool:
        """
        Tell the activation webhook that AI was switched on or off.

        Returns:
            True when the webhook accepted the call; failures are only logged
        """
        if not self.activation_webhook_url:
            logger.info("[AutoReply] AI_ACTIVATION_WEBHOOK_URL not set, toggle not notified")
            return False

        action = "ACTIVATE" if enabled else "DEACTIVATE"
        try:
            client = await get_http_client()
            response = await client.post(
                self.activation_webhook_url,
                json={"action": action},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"[AutoReply] Toggle webhook failed ({action}): {e}")
            return False

        logger.info(f"[AutoReply] Toggle webhook sent: {action}")
        return True
