from __future__ import annotations

import asyncio
import datetime as dt
import logging
import uuid
from typing import Any, Callable, Dict

import redis

from ritual.apps.services.notifications.push import Notification, enqueue_notification
from ritual.libs.schemas import db
from ritual.libs.schemas.settings import AppSettings, get_settings

LOGGER = logging.getLogger(__name__)

NUDGE_NOTIFICATION = Notification(
    title="💕 Your partner is waiting!",
    body="They're excited to create this week's ritual with you",
    url="/input",
    type="nudge",
)

Notifier = Callable[[str, Notification], Any]


class NudgeRejected(Exception):
    """A nudge was refused; carries the HTTP status and an optional machine-readable code."""

    def __init__(self, message: str, *, status_code: int, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.code:
            payload["code"] = self.code
        return payload


def _is_premium(couple: Dict[str, Any], now: dt.datetime) -> bool:
    expires = couple.get("premium_expires_at")
    return bool(expires and expires > now)


def _cooldown_active(nudged_at: dt.datetime | None, now: dt.datetime, cooldown: int) -> bool:
    if not nudged_at:
        return False
    return (now - nudged_at).total_seconds() < cooldown


async def nudge_partner(
    user_id: str,
    cycle_id: str,
    *,
    settings: AppSettings | None = None,
    notify: Notifier | None = None,
    now: dt.datetime | None = None,
) -> Dict[str, Any]:
    """
    Record a reminder from ``user_id`` to their partner on ``cycle_id`` and push it.

    Free couples get ``free_nudges_per_week`` nudges per cycle; everyone is
    limited to one per cooldown window. The counters are checked again inside
    the UPDATE so two simultaneous nudges cannot both pass.
    """

    settings = settings or get_settings()
    now = now or dt.datetime.now(dt.timezone.utc)

    try:
        uuid.UUID(str(cycle_id))
    except ValueError:
        raise NudgeRejected("Cycle not found", status_code=404) from None

    cycle = await db.fetch_one(
        "SELECT couple_id, nudged_at, nudge_count FROM weekly_cycles WHERE id = $1",
        cycle_id,
    )
    if not cycle:
        raise NudgeRejected("Cycle not found", status_code=404)

    couple = await db.fetch_one(
        "SELECT partner_one, partner_two, premium_expires_at FROM couples WHERE id = $1",
        cycle["couple_id"],
    )
    members = {str(couple.get(key)) for key in ("partner_one", "partner_two") if couple and couple.get(key)}
    if str(user_id) not in members:
        raise NudgeRejected("Unauthorized", status_code=403)

    premium = _is_premium(couple, now)
    if _cooldown_active(cycle.get("nudged_at"), now, settings.nudge_cooldown_seconds):
        raise NudgeRejected("Please wait an hour before sending another reminder", status_code=429, code="cooldown")

    nudge_count = cycle.get("nudge_count") or 0
    if not premium and nudge_count >= settings.free_nudges_per_week:
        LOGGER.info("nudge_weekly_limit user_id=%s cycle_id=%s", user_id, cycle_id)
        raise NudgeRejected(
            "You've used your weekly nudge. Upgrade to Premium for unlimited nudges.",
            status_code=429,
            code="weekly_limit_reached",
        )

    row = await db.fetch_one(
        """
        UPDATE weekly_cycles
        SET nudged_at = $2, nudge_count = COALESCE(nudge_count, 0) + 1
        WHERE id = $1
          AND (nudged_at IS NULL OR nudged_at <= $3)
          AND ($4 OR COALESCE(nudge_count, 0) < $5)
        RETURNING nudge_count
        """,
        cycle_id,
        now,
        now - dt.timedelta(seconds=settings.nudge_cooldown_seconds),
        premium,
        settings.free_nudges_per_week,
    )
    if row is None:
        raise NudgeRejected("Please wait an hour before sending another reminder", status_code=429, code="cooldown")

    partner_id = couple["partner_two"] if str(couple.get("partner_one")) == str(user_id) else couple["partner_one"]
    if partner_id:
        await _notify_partner(str(partner_id), notify)

    LOGGER.info(
        "nudge_sent cycle_id=%s user_id=%s premium=%s count=%s",
        cycle_id,
        user_id,
        premium,
        row.get("nudge_count"),
    )
    return {"success": True, "message": "Nudge sent successfully"}


async def _notify_partner(partner_id: str, notify: Notifier | None) -> None:
    try:
        if notify is not None:
            result = notify(partner_id, NUDGE_NOTIFICATION)
            if asyncio.iscoroutine(result):
                await result
        else:
            await asyncio.to_thread(enqueue_notification, partner_id, NUDGE_NOTIFICATION)
    except (redis.RedisError, OSError) as exc:
        LOGGER.error("nudge_push_failed partner_id=%s error=%s", partner_id, exc)


__all__ = ["NUDGE_NOTIFICATION", "NudgeRejected", "nudge_partner"]
