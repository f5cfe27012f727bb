"""Monthly surprise ritual for premium couples."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import random
from typing import Any, Callable, Dict, Sequence

import asyncpg
import redis

from ritual.apps.services.notifications.push import Notification, enqueue_notification
from ritual.libs.schemas import db

LOGGER = logging.getLogger(__name__)

SURPRISE_RITUALS: Sequence[Dict[str, str]] = (
    {
        "title": "Starlight Picnic",
        "description": "Pack a blanket, some snacks, and head outside after dark. Find a spot to stargaze together and share your dreams for the future.",
        "time_estimate": "1-2 hours",
        "category": "Adventure",
    },
    {
        "title": "Memory Lane Walk",
        "description": "Visit a place that's meaningful to your relationship - where you first met, first date spot, or a favorite shared memory location.",
        "time_estimate": "2-3 hours",
        "category": "Nostalgia",
    },
    {
        "title": "Blindfolded Taste Test",
        "description": "Take turns blindfolding each other and trying different foods. Guess what you're eating and rate each other's picks!",
        "time_estimate": "45 min",
        "category": "Playful",
    },
    {
        "title": "Love Letter Exchange",
        "description": "Write heartfelt letters to each other about what you love most about your relationship. Exchange and read them together over tea or wine.",
        "time_estimate": "1 hour",
        "category": "Intimate",
    },
    {
        "title": "Sunrise Adventure",
        "description": "Wake up early and watch the sunrise together from a scenic spot. Bring hot coffee and share what you're grateful for.",
        "time_estimate": "2 hours",
        "category": "Adventure",
    },
    {
        "title": "DIY Spa Night",
        "description": "Create a home spa experience with face masks, massages, candles, and relaxing music. Take turns pampering each other.",
        "time_estimate": "1-2 hours",
        "category": "Relaxation",
    },
    {
        "title": "Dance in the Living Room",
        "description": "Create a playlist of 'your songs' and dance together at home. No judgment, just connection and fun.",
        "time_estimate": "30 min",
        "category": "Playful",
    },
    {
        "title": "Future Planning Date",
        "description": "Dream together about your future - create a vision board, plan a future trip, or discuss your 5-year dreams.",
        "time_estimate": "1-2 hours",
        "category": "Growth",
    },
)

SURPRISE_NOTIFICATION = Notification(
    title="🎁 Surprise Ritual!",
    body="A special surprise ritual is waiting for you!",
    url="/",
    type="surprise_ritual",
)

Chooser = Callable[[Sequence[Dict[str, str]]], Dict[str, str]]
Notifier = Callable[[str, Notification], Any]


def month_start(now: dt.datetime) -> dt.date:
    return now.date().replace(day=1)


async def deliver_surprise_rituals(
    now: dt.datetime | None = None,
    *,
    choose: Chooser = random.choice,
    notify: Notifier = enqueue_notification,
) -> Dict[str, Any]:
    """
    Give every active premium couple with two partners one surprise ritual per month.

    The ``(couple_id, month)`` unique key makes reruns within a month no-ops.
    """

    now = now or dt.datetime.now(dt.timezone.utc)
    month = month_start(now)
    couples = await db.fetch_all(
        """
        SELECT c.id, c.partner_one, c.partner_two
        FROM couples c
        WHERE c.is_active = true
          AND c.partner_two IS NOT NULL
          AND c.premium_expires_at > $1
          AND NOT EXISTS (
            SELECT 1 FROM surprise_rituals s WHERE s.couple_id = c.id AND s.month = $2
          )
        """,
        now,
        month,
    )
    LOGGER.info("surprise_candidates month=%s couples=%d", month, len(couples))

    delivered = 0
    for couple in couples:
        ritual = choose(SURPRISE_RITUALS)
        try:
            row = await db.fetch_one(
                """
                INSERT INTO surprise_rituals (couple_id, ritual_data, month)
                VALUES ($1, $2::jsonb, $3)
                ON CONFLICT (couple_id, month) DO NOTHING
                RETURNING id
                """,
                couple["id"],
                dict(ritual),
                month,
            )
        except asyncpg.PostgresError as exc:
            LOGGER.error("surprise_insert_failed couple_id=%s error=%s", couple["id"], exc)
            continue
        if row is None:
            continue
        delivered += 1
        LOGGER.info("surprise_delivered couple_id=%s title=%s", couple["id"], ritual["title"])
        for partner_id in (couple.get("partner_one"), couple.get("partner_two")):
            if not partner_id:
                continue
            try:
                result = notify(str(partner_id), SURPRISE_NOTIFICATION)
                if asyncio.iscoroutine(result):
                    await result
            except (redis.RedisError, OSError) as exc:
                LOGGER.error("surprise_push_failed partner_id=%s error=%s", partner_id, exc)

    return {"success": True, "delivered": delivered, "month": month.isoformat()}


def deliver_surprise_rituals_job() -> Dict[str, Any]:
    async def _run() -> Dict[str, Any]:
        try:
            return await deliver_surprise_rituals()
        finally:
            await db.close_async_pool()

    return asyncio.run(_run())


__all__ = ["SURPRISE_RITUALS", "deliver_surprise_rituals", "deliver_surprise_rituals_job", "month_start"]
