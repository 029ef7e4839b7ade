"""
Dashboard overview: message counts per platform.

Every source is queried in parallel; one that fails comes back with an
error entry and the others are still reported.
"""
import logging

from fastapi import APIRouter, Depends

from inbox.container import Container, get_container
from inbox.core.tasks import safe_gather

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


async def _gmail_counts(container: Container) -> dict:
    emails = await container.gmail.fetch_emails(50, "is:unread")
    return {"unread_messages": len(emails)}


@router.get("/overview")
async def overview(container: Container = Depends(get_container)):
    names = list(container.repositories)
    coros = [repo.get_counts() for repo in container.repositories.values()]
    if container.gmail is not None:
        names.append("gmail")
        coros.append(_gmail_counts(container))

    results = await safe_gather(*coros)

    platforms = {}
    errors = []
    for name, counts in zip(names, results):
        if counts is None:
            errors.append(name)
            platforms[name] = {"error": f"Could not load {name} counts"}
        else:
            platforms[name] = counts

    total_unread = sum(
        counts.get("unread_messages", 0) for counts in platforms.values() if "error" not in counts
    )

    return {
        "success": True,
        "data": {
            "platforms": platforms,
            "totalUnread": total_unread,
            "aiEnabled": container.ai_enabled,
            "sync": {name: s.status() for name, s in container.sync_services.items()},
        },
        "errors": errors,
    }
