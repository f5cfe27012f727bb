"""Best-effort partner notifications over web push, delivered from the rq worker."""

from __future__ import annotations

import abc
import asyncio
import datetime as dt
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict

import asyncpg
import httpx
import redis
from rq import Queue

from ritual.libs.schemas import db
from ritual.libs.schemas.settings import AppSettings, get_settings

LOGGER = logging.getLogger(__name__)

EXPIRED_STATUSES = frozenset({404, 410})


@dataclass(frozen=True)
class Notification:
    title: str
    body: str
    url: str = "/"
    type: str = "general"

    def to_payload(self, now: dt.datetime | None = None) -> Dict[str, Any]:
        moment = now or dt.datetime.now(dt.timezone.utc)
        return {**asdict(self), "timestamp": moment.isoformat()}


@dataclass
class DeliveryReport:
    sent: int = 0
    failed: int = 0
    total: int = 0
    skipped: str | None = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"sent": self.sent, "failed": self.failed, "total": self.total}
        if self.skipped:
            payload["skipped"] = self.skipped
        return payload


class NotificationChannel(abc.ABC):
    """Delivers a notification to every device a user registered; never raises."""

    @abc.abstractmethod
    async def send(self, user_id: str, notification: Notification) -> DeliveryReport:
        raise NotImplementedError


class WebPushChannel(NotificationChannel):
    """Posts notification payloads to the user's stored push subscription endpoints."""

    def __init__(
        self,
        *,
        settings: AppSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        self._timeout = timeout

    async def send(self, user_id: str, notification: Notification) -> DeliveryReport:
        if not self._settings.push_enabled:
            LOGGER.warning("push_skipped_unconfigured user_id=%s type=%s", user_id, notification.type)
            return DeliveryReport(skipped="VAPID keys not configured")
        try:
            subscriptions = await db.fetch_all(
                "SELECT endpoint, p256dh, auth FROM push_subscriptions WHERE user_id = $1",
                user_id,
            )
        except (asyncpg.PostgresError, OSError) as exc:
            LOGGER.error("push_subscriptions_unavailable user_id=%s error=%s", user_id, exc)
            return DeliveryReport(skipped="subscriptions unavailable")
        if not subscriptions:
            LOGGER.info("push_no_subscriptions user_id=%s", user_id)
            return DeliveryReport(skipped="no subscriptions")

        headers = {
            "Content-Type": "application/json",
            "TTL": str(self._settings.push_ttl_seconds),
            "Urgency": "normal",
        }
        payload = notification.to_payload()
        report = DeliveryReport(total=len(subscriptions))
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            results = await asyncio.gather(
                *(self._deliver(client, sub["endpoint"], payload, headers) for sub in subscriptions)
            )
        expired = []
        for subscription, status in zip(subscriptions, results):
            if status is not None and 200 <= status < 300:
                report.sent += 1
                continue
            report.failed += 1
            if status in EXPIRED_STATUSES:
                expired.append(subscription["endpoint"])
        if expired:
            await self._prune(user_id, expired)
        LOGGER.info(
            "push_delivered user_id=%s type=%s sent=%d failed=%d total=%d",
            user_id,
            notification.type,
            report.sent,
            report.failed,
            report.total,
        )
        return report

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
    ) -> int | None:
        try:
            response = await client.post(endpoint, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            LOGGER.warning("push_endpoint_unreachable endpoint=%s error=%s", endpoint, exc)
            return None
        if response.status_code >= 300:
            LOGGER.warning("push_endpoint_rejected endpoint=%s status=%s", endpoint, response.status_code)
        return response.status_code

    async def _prune(self, user_id: str, endpoints: list[str]) -> None:
        try:
            await db.execute(
                "DELETE FROM push_subscriptions WHERE user_id = $1 AND endpoint = ANY($2::text[])",
                user_id,
                endpoints,
            )
        except (asyncpg.PostgresError, OSError) as exc:
            LOGGER.error("push_prune_failed user_id=%s error=%s", user_id, exc)
            return
        LOGGER.info("push_subscriptions_pruned user_id=%s count=%d", user_id, len(endpoints))


def enqueue_notification(
    user_id: str,
    notification: Notification,
    *,
    redis_url: str | None = None,
    settings: AppSettings | None = None,
) -> str:
    """Queue a push on the worker's notifications queue and return the rq job id."""

    from ritual.apps.worker.tasks.send_push import send_push_job

    settings = settings or get_settings()
    queue = Queue(settings.notifications_queue, connection=redis.from_url(redis_url or settings.redis_url))
    job = queue.enqueue(send_push_job, user_id, asdict(notification))
    LOGGER.info("push_enqueued user_id=%s type=%s job_id=%s", user_id, notification.type, job.id)
    return job.id


__all__ = [
    "DeliveryReport",
    "Notification",
    "NotificationChannel",
    "WebPushChannel",
    "enqueue_notification",
]
