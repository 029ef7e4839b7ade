"""
Health check.
"""
import logging

from fastapi import APIRouter, Depends

from inbox.container import Container, get_container
from inbox.core.tasks import get_task_failure_counts, pending_background_tasks
from inbox.core.timezone import now_utc

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(container: Container = Depends(get_container)):
    """
    Liveness plus a short view of the moving parts.

    Always 200 while the app is up; sync and task failures are reported,
    not turned into errors.
    """
    return {
        "status": "healthy",
        "app": container.settings.APP_NAME,
        "environment": container.settings.ENVIRONMENT,
        "timestamp": now_utc().isoformat(),
        "sync": {name: s.status() for name, s in container.sync_services.items()},
        "gmail_connected": container.gmail is not None,
        "ai_enabled": container.ai_enabled,
        "background_tasks": pending_background_tasks(),
        "task_failures": get_task_failure_counts(),
    }
