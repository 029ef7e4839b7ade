"""
Unified feed: GET /api/messages.

Facebook and Instagram come from the store, Gmail is fetched live when
connected. A source that fails is left out and reported in `errors`.
"""
import logging

from fastapi import APIRouter, Depends, Query

from inbox.api.routes.social import refresh_in_background
from inbox.container import Container, get_container
from inbox.core.tasks import safe_gather
from inbox.services.feed import assemble_feed
from inbox.services.normalizer import normalize_gmail_message, stored_to_unified

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Feed"])


async def _gmail_messages(container: Container, limit: int) -> list:
    emails = await container.gmail.fetch_emails(limit)
    return [normalize_gmail_message(email) for email in emails if email.get("id")]


@router.get("/messages")
async def unified_feed(
    limit: int = Query(100, ge=1, le=1000),
    gmail_limit: int = Query(20, ge=1, le=50, alias="gmailLimit"),
    container: Container = Depends(get_container),
):
    sources = list(container.repositories.items())
    coros = [repo.get_all_messages() for _, repo in sources]
    if container.gmail is not None:
        coros.append(_gmail_messages(container, gmail_limit))

    results = await safe_gather(*coros)

    social = []
    errors = []
    for (platform, _), rows in zip(sources, results):
        if rows is None:
            errors.append(platform)
            continue
        social.extend(stored_to_unified(row) for row in rows)

    gmail = []
    if container.gmail is not None:
        gmail = results[-1]
        if gmail is None:
            errors.append("gmail")
            gmail = []

    for sync in container.sync_services.values():
        refresh_in_background(sync)

    feed = assemble_feed(social, gmail)
    data = feed.to_dict()
    data["messages"] = data["messages"][:limit]
    return {"success": True, "data": data, "errors": errors}
