from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

from ritual.apps.services.notifications.push import (
    DeliveryReport,
    Notification,
    NotificationChannel,
    WebPushChannel,
)
from ritual.libs.schemas.db import close_async_pool

LOGGER = logging.getLogger(__name__)


async def send_push(
    user_id: str,
    notification: Notification,
    *,
    channel: NotificationChannel | None = None,
) -> DeliveryReport:
    channel = channel or WebPushChannel()
    return await channel.send(user_id, notification)


def send_push_job(user_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """rq entrypoint; each job runs on its own event loop and pool."""

    async def _run() -> DeliveryReport:
        try:
            return await send_push(user_id, Notification(**payload))
        finally:
            await close_async_pool()

    report = asyncio.run(_run())
    LOGGER.info("send_push_job user_id=%s result=%s", user_id, report.as_dict())
    return report.as_dict()


__all__ = ["send_push", "send_push_job"]
