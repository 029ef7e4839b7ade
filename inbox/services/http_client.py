"""
Shared HTTP client with connection pooling.

Every Graph API and webhook call goes through one AsyncClient:
- connections are reused across sync passes
- HTTP/2 multiplexing towards graph.facebook.com
- standard timeouts
- closed on application shutdown
"""

import httpx
import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Process-wide client, created lazily
_client: Optional[httpx.AsyncClient] = None


async def get_http_client() -> httpx.AsyncClient:
    """
    Get the shared HTTP client, creating it on first use.

    Returns:
        httpx.AsyncClient with pooling configured
    """
    global _client
    if _client is None:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=10.0,
                read=30.0,
                write=30.0,
                pool=5.0,
            ),
            limits=httpx.Limits(
                max_connections=50,
                max_keepalive_connections=10,
                keepalive_expiry=30.0,
            ),
            http2=True,
            headers={
                "User-Agent": "Unified-Inbox/1.0",
            },
            follow_redirects=True,
        )
        logger.info("HTTP client created with connection pooling")

    return _client


async def close_http_client() -> None:
    """
    Close the shared client.

    Called from the application lifespan on shutdown.
    """
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("HTTP client closed")
