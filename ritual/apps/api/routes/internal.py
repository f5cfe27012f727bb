"""Service-to-service endpoints; never exposed to partner clients."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ritual.apps.api.deps.auth import require_internal_secret
from ritual.apps.services.notifications.push import Notification, NotificationChannel, WebPushChannel

router = APIRouter(prefix="/v1/internal", tags=["internal"], dependencies=[Depends(require_internal_secret)])


class PushIn(BaseModel):
    user_id: str = Field(min_length=1)
    title: str
    body: str
    url: str = "/"
    type: str = "general"


@lru_cache(maxsize=1)
def get_notification_channel() -> NotificationChannel:
    return WebPushChannel()


@router.post("/push")
async def send_push(
    payload: PushIn,
    channel: NotificationChannel = Depends(get_notification_channel),
) -> Dict[str, Any]:
    notification = Notification(title=payload.title, body=payload.body, url=payload.url, type=payload.type)
    report = await channel.send(payload.user_id, notification)
    return {"success": True, **report.as_dict()}


__all__ = ["get_notification_channel", "router"]
