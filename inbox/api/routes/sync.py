"""
Sync control for Facebook and Instagram.

POST /api/{platform}/sync
    {"action": "start", "intervalSeconds": 30}
    {"action": "stop"}
    {"action": "sync"}                                  one pass, awaited
    {"action": "sync_conversation", "conversationId": "t_1", "pageId": "..."}
    {"action": "status"}
GET /api/{platform}/sync
"""
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from inbox.api.routes.social import resolve_platform
from inbox.container import Container, get_container
from inbox.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Sync"])


class SyncRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    action: Literal["start", "stop", "sync", "sync_conversation", "status"] = "sync"
    interval_seconds: Optional[int] = Field(None, ge=5)
    conversation_id: Optional[str] = None
    page_id: Optional[str] = None


@router.post("/{platform}/sync")
async def control_sync(
    platform: str,
    body: SyncRequest,
    container: Container = Depends(get_container),
):
    _, sync = resolve_platform(platform, container)

    if body.action == "start":
        started = sync.start(body.interval_seconds)
        message = "Sync started" if started else "Sync already running"
        return {"success": True, "message": message, "status": sync.status()}

    if body.action == "stop":
        stopped = sync.stop()
        message = "Sync stopped" if stopped else "Sync was not running"
        return {"success": True, "message": message, "status": sync.status()}

    if body.action == "sync_conversation":
        if not body.conversation_id:
            raise ValidationError("conversationId is required for sync_conversation")
        count = await sync.sync_conversation(body.conversation_id, body.page_id)
        return {
            "success": True,
            "message": f"Synced {count} messages",
            "data": {"conversationId": body.conversation_id, "messages": count},
        }

    if body.action == "sync":
        result = await sync.sync_messages()
        return {"success": True, "message": "Sync completed", "data": result.to_dict()}

    return {"success": True, "status": sync.status()}


@router.get("/{platform}/sync")
async def sync_status(platform: str, container: Container = Depends(get_container)):
    _, sync = resolve_platform(platform, container)
    return {"success": True, "status": sync.status()}
