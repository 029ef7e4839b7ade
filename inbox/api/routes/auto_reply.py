"""
AI auto-reply control.

POST /api/ai/auto-reply  {"mode": "recent" | "backlog"}
GET  /api/ai/auto-reply  status
POST /api/ai/toggle      {"enabled": true, "processBacklog": true}
"""
import logging
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from inbox.container import Container, get_container
from inbox.core.tasks import fire_and_forget

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["AI"])


class AutoReplyRequest(BaseModel):
    mode: Literal["recent", "backlog"] = "recent"


class ToggleRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    enabled: bool
    process_backlog: bool = True


@router.post("/auto-reply")
async def run_auto_reply(body: AutoReplyRequest, container: Container = Depends(get_container)):
    """
    Recent pass runs inline and returns its report; the backlog pass is
    throttled, so it runs in the background.
    """
    if body.mode == "backlog":
        fire_and_forget(container.auto_reply.run("backlog"), name="auto_reply_backlog")
        return {"success": True, "message": "Backlog processing started"}

    report = await container.auto_reply.run("recent")
    return {"success": True, "data": report.to_dict()}


@router.get("/auto-reply")
async def auto_reply_status(container: Container = Depends(get_container)):
    policy = container.auto_reply
    return {
        "success": True,
        "data": {
            "enabled": container.ai_enabled,
            "webhookConfigured": bool(policy.webhook_url),
            "reactiveWindowMinutes": int(policy.reactive_window.total_seconds() // 60),
            "catchupWindowHours": int(policy.catchup_window.total_seconds() // 3600),
        },
    }


@router.post("/toggle")
async def toggle_ai(body: ToggleRequest, container: Container = Depends(get_container)):
    """Switch AI on or off. Turning it on can start the 24h catch-up pass."""
    container.ai_enabled = body.enabled
    logger.info(f"[AutoReply] AI {'enabled' if body.enabled else 'disabled'}")

    notified = await container.auto_reply.notify_toggle(body.enabled)

    backlog_started = False
    if body.enabled and body.process_backlog:
        fire_and_forget(container.auto_reply.run("backlog"), name="auto_reply_backlog")
        backlog_started = True

    return {
        "success": True,
        "data": {
            "enabled": container.ai_enabled,
            "webhookNotified": notified,
            "backlogStarted": backlog_started,
        },
    }
