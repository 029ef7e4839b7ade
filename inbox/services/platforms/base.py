"""
Common contract for the platform clients.

Facebook and Instagram go through different Graph API endpoints but are
used the same way by sync and auto-reply: fetch conversations, fetch
messages, send a text and get back a SendResult.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from inbox.core.config import settings, SyncConfig
from inbox.core.exceptions import ExternalAPIError
from inbox.services.http_client import get_http_client

logger = logging.getLogger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com"


@dataclass
class SendResult:
    """Result of a send call."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    status_code: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "messageId": self.message_id,
            "error": self.error,
        }


class MessagingClient(ABC):
    """Anything the auto-reply policy can send a text through."""

    platform: str

    @abstractmethod
    async def send_message(
        self, recipient_id: str, text: str, page_id: Optional[str] = None
    ) -> SendResult:
        """
        Send a text message.

        Args:
            recipient_id: platform user id
            text: message body
            page_id: business page to send from, where a platform has several

        Returns:
            SendResult; failures are reported, not raised
        """
        pass


def _is_transient(exc: BaseException) -> bool:
    """Network failures and 5xx are worth another attempt; 4xx are not."""
    if isinstance(exc, ExternalAPIError):
        return exc.status_code is None or exc.status_code >= 500
    return False


def graph_error_message(exc: Exception) -> str:
    """Upstream message from an httpx error."""
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            error = exc.response.json().get("error", {})
            return error.get("message") or str(exc)
        except ValueError:
            return f"HTTP {exc.response.status_code}: {exc.response.text[:200]}"
    if isinstance(exc, httpx.TimeoutException):
        return "Graph API timeout"
    if isinstance(exc, httpx.ConnectError):
        return "Graph API connection error"
    return str(exc)


class GraphAPIClient(MessagingClient):
    """
    Graph API plumbing shared by Facebook and Instagram.

    GETs are idempotent and retried on transient failures; POSTs are not.
    """

    def __init__(self, access_token: str):
        self.access_token = access_token
        self.api_version = settings.GRAPH_API_VERSION or "v23.0"
        self.base_url = f"{GRAPH_API_BASE}/{self.api_version}"
        self.timeout = 30

    @retry(
        stop=stop_after_attempt(SyncConfig.MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )
    async def _get(self, path: str, params: Optional[dict] = None) -> dict:
        """
        GET a Graph API path.

        Raises:
            ExternalAPIError: upstream error, message and status preserved
        """
        query = {"access_token": self.access_token, **(params or {})}
        client = await get_http_client()
        try:
            response = await client.get(
                f"{self.base_url}/{path}",
                params=query,
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise ExternalAPIError(
                graph_error_message(e),
                service=self.platform,
                status_code=e.response.status_code,
                original_error=e,
            )
        except httpx.HTTPError as e:
            raise ExternalAPIError(
                graph_error_message(e),
                service=self.platform,
                original_error=e,
            )

    async def _post(self, path: str, payload: dict) -> dict:
        """POST to a Graph API path. httpx errors propagate to the caller."""
        client = await get_http_client()
        response = await client.post(
            f"{self.base_url}/{path}",
            params={"access_token": self.access_token},
            json=payload,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()
