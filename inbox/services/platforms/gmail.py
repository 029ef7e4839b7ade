"""
Gmail integration.

Mail is fetched live on every request and never persisted. Uses the OAuth
tokens issued by the dashboard's consent flow (the flow itself lives
elsewhere); only the refresh/access tokens are read from configuration.
"""
import asyncio
import base64
import binascii
import logging
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

from inbox.core.config import Settings, SyncConfig, settings as default_settings
from inbox.core.exceptions import ConfigurationError, ExternalAPIError
from inbox.core.timezone import now_utc

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.modify",
]

MAX_RESULTS_CAP = 50
BODY_MAX_CHARS = 5000
ENCODED_BODY_MAX_CHARS = 10000

_FROM_WITH_NAME = re.compile(r"^(.+?)\s*<(.+)>$")
_EMAIL = re.compile(r"\S+@\S+\.\S+")


def _header(headers: list[dict], name: str) -> str:
    for header in headers:
        if header.get("name", "").lower() == name.lower():
            return header.get("value") or ""
    return ""


def parse_from_header(value: str) -> tuple[str, str]:
    """
    Split a From header into (name, email).

    "Jane Doe <jane@x.com>" -> ("Jane Doe", "jane@x.com")
    "jane@x.com"            -> ("jane", "jane@x.com")
    "Jane"                  -> ("Jane", "Jane")
    """
    value = (value or "").strip()
    if not value:
        return "", ""

    match = _FROM_WITH_NAME.match(value)
    if match:
        return match.group(1).strip().replace('"', ""), match.group(2).strip()
    if _EMAIL.search(value):
        return value.split("@")[0], value
    return value, value


def _decode_body(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def _find_text_part(parts: list[dict]) -> Optional[dict]:
    for part in parts:
        if part.get("mimeType") == "text/plain":
            return part
        if part.get("parts"):
            found = _find_text_part(part["parts"])
            if found:
                return found
    return None


def _extract_attachments(parts: list[dict]) -> list[dict]:
    attachments = []
    for part in parts:
        body = part.get("body") or {}
        if part.get("filename") and body.get("attachmentId"):
            attachments.append({
                "filename": part["filename"],
                "mimeType": part.get("mimeType", ""),
                "size": body.get("size", 0),
                "attachmentId": body["attachmentId"],
            })
        if part.get("parts"):
            attachments.extend(_extract_attachments(part["parts"]))
    return attachments


def _parse_timestamp(date_header: str, internal_date: Optional[str]) -> str:
    try:
        if date_header:
            parsed = parsedate_to_datetime(date_header)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc).isoformat()
        if internal_date:
            return datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc).isoformat()
    except (TypeError, ValueError) as e:
        logger.warning(f"[Gmail] Could not parse date {date_header!r}: {e}")
    return now_utc().isoformat()


def parse_gmail_message(resource: dict) -> dict:
    """
    Reduce a Gmail API message resource to the fields the inbox uses.

    Returns:
        {id, threadId, sender, senderEmail, subject, snippet, body,
         timestamp, status, labels, hasAttachments, attachments}
    """
    payload = resource.get("payload") or {}
    headers = payload.get("headers") or []
    snippet = resource.get("snippet") or ""

    sender_name, sender_email = parse_from_header(_header(headers, "from"))

    body = ""
    parts = payload.get("parts") or []
    text_part = _find_text_part(parts) if parts else payload
    encoded = ((text_part or {}).get("body") or {}).get("data")
    if encoded:
        if len(encoded) > ENCODED_BODY_MAX_CHARS:
            logger.warning(f"[Gmail] Body of {resource.get('id')} too large, using snippet")
            body = snippet
        else:
            try:
                body = _decode_body(encoded)
            except (binascii.Error, ValueError) as e:
                logger.warning(f"[Gmail] Could not decode body of {resource.get('id')}: {e}")
                body = snippet
    if not body:
        body = snippet

    attachments = _extract_attachments(parts)
    labels = resource.get("labelIds") or []

    return {
        "id": resource.get("id") or "",
        "threadId": resource.get("threadId") or "",
        "sender": sender_name or "Unknown",
        "senderEmail": sender_email,
        "subject": _header(headers, "subject") or "(No Subject)",
        "snippet": snippet,
        "body": body[:BODY_MAX_CHARS],
        "timestamp": _parse_timestamp(_header(headers, "date"), resource.get("internalDate")),
        "status": "unread" if "UNREAD" in labels else "read",
        "labels": labels,
        "hasAttachments": bool(attachments),
        "attachments": attachments,
    }


def build_reply_raw(thread_id: str, text: str, recipient: str, subject: str) -> str:
    """RFC 2822 reply encoded as unpadded urlsafe base64, as Gmail expects."""
    content = "\n".join([
        f"To: {recipient}",
        f"Subject: Re: {subject}",
        f"In-Reply-To: <{thread_id}>",
        f"References: <{thread_id}>",
        "Content-Type: text/plain; charset=utf-8",
        "",
        text,
    ])
    return base64.urlsafe_b64encode(content.encode("utf-8")).decode("ascii").rstrip("=")


class GmailClient:
    """
    Thin wrapper over the Gmail API (google-api-python-client).

    The discovery client is synchronous; calls run in the default executor.
    """

    platform = "gmail"

    def __init__(self, credentials=None, service=None):
        self._credentials = credentials
        self._service = service

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "GmailClient":
        """
        Build credentials from the configured OAuth tokens.

        Raises:
            ConfigurationError: no Gmail tokens configured
        """
        config = config or default_settings
        if not config.gmail_configured:
            raise ConfigurationError("Gmail is not connected: GMAIL_ACCESS_TOKEN or GMAIL_REFRESH_TOKEN required")

        from google.oauth2.credentials import Credentials

        credentials = Credentials(
            token=config.GMAIL_ACCESS_TOKEN or None,
            refresh_token=config.GMAIL_REFRESH_TOKEN or None,
            token_uri=config.GMAIL_TOKEN_URI,
            client_id=config.GMAIL_CLIENT_ID or None,
            client_secret=config.GMAIL_CLIENT_SECRET or None,
            scopes=SCOPES,
        )
        return cls(credentials=credentials)

    def _get_service(self):
        if self._service is None:
            from googleapiclient.discovery import build
            self._service = build("gmail", "v1", credentials=self._credentials, cache_discovery=False)
        return self._service

    async def _run(self, func):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func)

    async def fetch_emails(self, max_results: int = 10, query: str = "") -> list[dict]:
        """
        Fetch and parse recent messages.

        At most 50 messages, fetched in batches of 5 with a short pause
        between batches. A message that fails to load is skipped.

        Raises:
            ExternalAPIError: listing messages failed
        """
        from googleapiclient.errors import HttpError

        service = self._get_service()
        max_results = min(max_results, MAX_RESULTS_CAP)

        try:
            listing = await self._run(
                lambda: service.users().messages().list(
                    userId="me", maxResults=max_results, q=query, includeSpamTrash=False
                ).execute()
            )
        except HttpError as e:
            raise ExternalAPIError(
                f"Failed to list Gmail messages: {e}",
                service="gmail",
                status_code=getattr(e.resp, "status", None),
                original_error=e,
            )

        refs = listing.get("messages") or []
        emails = []
        batch_size = SyncConfig.GMAIL_BATCH_SIZE

        async def _load(message_id: str) -> Optional[dict]:
            try:
                resource = await self._run(
                    lambda: service.users().messages().get(
                        userId="me", id=message_id, format="full"
                    ).execute()
                )
                return parse_gmail_message(resource)
            except HttpError as e:
                logger.error(f"[Gmail] Error fetching message {message_id}: {e}")
                return None

        for start in range(0, len(refs), batch_size):
            batch = refs[start:start + batch_size]
            results = await asyncio.gather(*[_load(ref["id"]) for ref in batch])
            emails.extend(email for email in results if email)

            if start + batch_size < len(refs):
                await asyncio.sleep(SyncConfig.GMAIL_BATCH_DELAY_SECONDS)

        return emails

    async def send_reply(self, thread_id: str, text: str, recipient: str, subject: str) -> dict:
        """
        Reply inside an existing thread.

        Returns:
            Gmail message resource {id, threadId, labelIds}
        """
        from googleapiclient.errors import HttpError

        service = self._get_service()
        raw = build_reply_raw(thread_id, text, recipient, subject)
        try:
            return await self._run(
                lambda: service.users().messages().send(
                    userId="me", body={"raw": raw, "threadId": thread_id}
                ).execute()
            )
        except HttpError as e:
            raise ExternalAPIError(
                f"Failed to send Gmail reply: {e}",
                service="gmail",
                status_code=getattr(e.resp, "status", None),
                original_error=e,
            )

    async def mark_as_read(self, message_id: str) -> None:
        from googleapiclient.errors import HttpError

        service = self._get_service()
        try:
            await self._run(
                lambda: service.users().messages().modify(
                    userId="me", id=message_id, body={"removeLabelIds": ["UNREAD"]}
                ).execute()
            )
        except HttpError as e:
            raise ExternalAPIError(
                f"Failed to mark Gmail message as read: {e}",
                service="gmail",
                status_code=getattr(e.resp, "status", None),
                original_error=e,
            )
