import datetime as dt

import pytest

from ritual.apps.engine.nudge import engine as nudge_engine
from ritual.apps.engine.nudge.engine import NUDGE_NOTIFICATION, NudgeRejected, nudge_partner
from ritual.tests.fakes import COUPLE_ID, PARTNER_ONE, PARTNER_TWO

CYCLE_ID = "44444444-4444-4444-4444-444444444444"
NOW = dt.datetime(2026, 10, 15, 12, 0, tzinfo=dt.timezone.utc)


def _fake_db(monkeypatch, *, cycle=None, premium_until=None, update_row=None):
    calls = []
    cycle_row = {"couple_id": COUPLE_ID, "nudged_at": None, "nudge_count": 0, **(cycle or {})}

    async def fake_fetch_one(sql, *args):
        calls.append((sql, args))
        if "FROM weekly_cycles" in sql:
            return cycle_row
        if "FROM couples" in sql:
            return {"partner_one": PARTNER_ONE, "partner_two": PARTNER_TWO, "premium_expires_at": premium_until}
        if "UPDATE weekly_cycles" in sql:
            return update_row if update_row is not None else {"nudge_count": cycle_row["nudge_count"] + 1}
        raise AssertionError(sql)

    monkeypatch.setattr(nudge_engine.db, "fetch_one", fake_fetch_one)
    return calls


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def __call__(self, user_id, notification):
        self.sent.append((user_id, notification))


@pytest.mark.asyncio
async def test_nudge_notifies_the_other_partner(monkeypatch, settings):
    calls = _fake_db(monkeypatch)
    notifier = RecordingNotifier()

    result = await nudge_partner(PARTNER_ONE, CYCLE_ID, settings=settings, notify=notifier, now=NOW)

    assert result == {"success": True, "message": "Nudge sent successfully"}
    assert notifier.sent == [(PARTNER_TWO, NUDGE_NOTIFICATION)]
    update_args = calls[-1][1]
    assert update_args[1] == NOW
    assert update_args[3] is False


@pytest.mark.asyncio
async def test_second_free_nudge_hits_weekly_limit(monkeypatch, settings):
    _fake_db(monkeypatch, cycle={"nudge_count": 1, "nudged_at": NOW - dt.timedelta(days=2)})

    with pytest.raises(NudgeRejected) as excinfo:
        await nudge_partner(PARTNER_TWO, CYCLE_ID, settings=settings, notify=RecordingNotifier(), now=NOW)

    assert excinfo.value.status_code == 429
    assert excinfo.value.to_payload()["code"] == "weekly_limit_reached"


@pytest.mark.asyncio
async def test_premium_skips_weekly_limit(monkeypatch, settings):
    _fake_db(
        monkeypatch,
        cycle={"nudge_count": 4, "nudged_at": NOW - dt.timedelta(hours=2)},
        premium_until=NOW + dt.timedelta(days=30),
    )
    notifier = RecordingNotifier()

    await nudge_partner(PARTNER_TWO, CYCLE_ID, settings=settings, notify=notifier, now=NOW)

    assert notifier.sent[0][0] == PARTNER_ONE


@pytest.mark.asyncio
async def test_cooldown_applies_to_premium(monkeypatch, settings):
    _fake_db(
        monkeypatch,
        cycle={"nudge_count": 1, "nudged_at": NOW - dt.timedelta(minutes=10)},
        premium_until=NOW + dt.timedelta(days=30),
    )

    with pytest.raises(NudgeRejected) as excinfo:
        await nudge_partner(PARTNER_ONE, CYCLE_ID, settings=settings, notify=RecordingNotifier(), now=NOW)

    assert excinfo.value.code == "cooldown"


@pytest.mark.asyncio
async def test_lost_update_race_is_cooldown(monkeypatch, settings):
    calls = []

    async def fake_fetch_one(sql, *args):
        calls.append(sql)
        if "FROM weekly_cycles" in sql:
            return {"couple_id": COUPLE_ID, "nudged_at": None, "nudge_count": 0}
        if "FROM couples" in sql:
            return {"partner_one": PARTNER_ONE, "partner_two": PARTNER_TWO, "premium_expires_at": None}
        return None

    monkeypatch.setattr(nudge_engine.db, "fetch_one", fake_fetch_one)
    notifier = RecordingNotifier()

    with pytest.raises(NudgeRejected) as excinfo:
        await nudge_partner(PARTNER_ONE, CYCLE_ID, settings=settings, notify=notifier, now=NOW)

    assert excinfo.value.status_code == 429
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_outsider_cannot_nudge(monkeypatch, settings):
    _fake_db(monkeypatch)

    with pytest.raises(NudgeRejected) as excinfo:
        await nudge_partner("55555555-5555-5555-5555-555555555555", CYCLE_ID, settings=settings, now=NOW)

    assert excinfo.value.status_code == 403


@pytest.mark.asyncio
async def test_malformed_cycle_id_is_not_found(monkeypatch, settings):
    with pytest.raises(NudgeRejected) as excinfo:
        await nudge_partner(PARTNER_ONE, "not-a-uuid", settings=settings, now=NOW)

    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_push_outage_does_not_fail_nudge(monkeypatch, settings):
    _fake_db(monkeypatch)

    def broken(user_id, notification):
        raise ConnectionRefusedError("redis down")

    result = await nudge_partner(PARTNER_ONE, CYCLE_ID, settings=settings, notify=broken, now=NOW)

    assert result["success"] is True
