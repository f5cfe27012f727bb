"""In-memory collaborators shared by the unit and scenario suites."""

from __future__ import annotations

import asyncio
import datetime as dt
import uuid
from typing import Any, Dict, List, Sequence

from ritual.apps.engine.synthesis.synthesizer import SynthesisContext, Synthesizer
from ritual.apps.services.cycles.store import (
    CycleNotFoundError,
    CycleStore,
    InputAlreadySubmittedError,
    LockLostError,
    PersistenceError,
)
from ritual.libs.schemas.cycles import PartnerSlot, Suggestion, WeeklyCycle

PARTNER_ONE = "11111111-1111-1111-1111-111111111111"
PARTNER_TWO = "22222222-2222-2222-2222-222222222222"
COUPLE_ID = "33333333-3333-3333-3333-333333333333"

CARDS_ONE = {"inputType": "cards", "cards": ["cozy", "romantic", "foodie"], "desire": None}
CARDS_TWO = {"inputType": "cards", "cards": ["adventure", "outdoors", "playful"], "desire": "Sunset walk"}

PICNIC = {
    "title": "Picnic",
    "description": "Pack a blanket and phones away.",
    "time_estimate": "1hr",
    "budget_band": "$",
    "category": "outdoors",
}


class InMemoryCycleStore(CycleStore):
    """Dict-backed store whose lock acquisition is a single atomic compare-and-set."""

    def __init__(self, *, city: str | None = "London") -> None:
        self.cycles: Dict[str, Dict[str, Any]] = {}
        self.couples: Dict[str, Dict[str, Any]] = {
            COUPLE_ID: {
                "id": COUPLE_ID,
                "partner_one": PARTNER_ONE,
                "partner_two": PARTNER_TWO,
                "preferred_city": city,
            }
        }
        self.saved_outputs: List[List[Dict[str, Any]]] = []
        self.lock_writes: List[dt.datetime | None] = []
        self.fail_save = False
        self.fail_release = False
        self.fail_get = False
        self._mutex = asyncio.Lock()

    def add_cycle(
        self,
        *,
        partner_one_input: Any = None,
        partner_two_input: Any = None,
        generated_at: dt.datetime | None = None,
        synthesized_output: Dict[str, Any] | None = None,
        week_start: dt.date = dt.date(2026, 10, 12),
    ) -> str:
        cycle_id = str(uuid.uuid4())
        self.cycles[cycle_id] = {
            "id": cycle_id,
            "couple_id": COUPLE_ID,
            "week_start_date": week_start,
            "partner_one_input": partner_one_input,
            "partner_two_input": partner_two_input,
            "generated_at": generated_at,
            "synthesized_output": synthesized_output,
            "nudge_count": 0,
        }
        return cycle_id

    def row(self, cycle_id: str) -> Dict[str, Any]:
        return self.cycles[cycle_id]

    async def get(self, cycle_id: str) -> WeeklyCycle | None:
        if self.fail_get:
            raise PersistenceError("database unavailable")
        row = self.cycles.get(cycle_id)
        if row is None:
            return None
        city = self.couples.get(row["couple_id"], {}).get("preferred_city")
        return WeeklyCycle.from_row({**row, "preferred_city": city})

    async def acquire_lock(
        self,
        cycle_id: str,
        *,
        now: dt.datetime,
        stale_before: dt.datetime | None = None,
    ) -> bool:
        async with self._mutex:
            row = self.cycles.get(cycle_id)
            if row is None:
                return False
            held = row["generated_at"]
            stale = (
                stale_before is not None
                and row["synthesized_output"] is None
                and held is not None
                and held < stale_before
            )
            if held is not None and not stale:
                return False
            row["generated_at"] = now
            self.lock_writes.append(now)
            return True

    async def force_lock(self, cycle_id: str, *, now: dt.datetime) -> None:
        async with self._mutex:
            row = self.cycles.get(cycle_id)
            if row is None:
                raise CycleNotFoundError(cycle_id)
            row["generated_at"] = now
            row["synthesized_output"] = None
            self.lock_writes.append(now)

    async def save_output(
        self,
        cycle_id: str,
        rituals: Sequence[Dict[str, Any]],
        *,
        lock: dt.datetime,
        completed_at: dt.datetime,
    ) -> None:
        if self.fail_save:
            raise PersistenceError("write failed")
        async with self._mutex:
            row = self.cycles[cycle_id]
            if row["generated_at"] != lock:
                raise LockLostError(cycle_id)
            row["synthesized_output"] = {"rituals": list(rituals)}
            row["sync_completed_at"] = completed_at
            self.saved_outputs.append(list(rituals))

    async def release_lock(self, cycle_id: str, *, lock: dt.datetime) -> None:
        if self.fail_release:
            raise PersistenceError("release failed")
        async with self._mutex:
            row = self.cycles[cycle_id]
            if row["generated_at"] == lock and row["synthesized_output"] is None:
                row["generated_at"] = None
                self.lock_writes.append(None)

    async def submit_input(
        self,
        cycle_id: str,
        slot: PartnerSlot,
        payload: Dict[str, Any],
        *,
        now: dt.datetime,
    ) -> WeeklyCycle:
        async with self._mutex:
            row = self.cycles.get(cycle_id)
            if row is None:
                raise CycleNotFoundError(cycle_id)
            if row.get(slot.input_column) is not None:
                raise InputAlreadySubmittedError(slot.value)
            row[slot.input_column] = payload
            row[slot.submitted_column] = now
        cycle = await self.get(cycle_id)
        assert cycle is not None
        return cycle

    async def get_or_create(self, couple_id: str, week_start: dt.date) -> WeeklyCycle:
        for row in self.cycles.values():
            if row["couple_id"] == couple_id and row["week_start_date"] == week_start:
                cycle = await self.get(row["id"])
                assert cycle is not None
                return cycle
        cycle_id = self.add_cycle(week_start=week_start)
        cycle = await self.get(cycle_id)
        assert cycle is not None
        return cycle

    async def partner_slot(self, couple_id: str, user_id: str) -> PartnerSlot | None:
        couple = self.couples.get(couple_id)
        if not couple:
            return None
        if couple["partner_one"] == user_id:
            return PartnerSlot.ONE
        if couple["partner_two"] == user_id:
            return PartnerSlot.TWO
        return None

    async def couple_for_user(self, user_id: str) -> Dict[str, Any] | None:
        for couple in self.couples.values():
            if user_id in (couple["partner_one"], couple["partner_two"]):
                return couple
        return None


class ScriptedSynthesizer(Synthesizer):
    """Returns or raises scripted outcomes in order; optionally blocks until released."""

    def __init__(self, *outcomes: Any, gate: asyncio.Event | None = None) -> None:
        self.outcomes = list(outcomes) or [[PICNIC]]
        self.calls: List[tuple[Any, Any, SynthesisContext]] = []
        self.gate = gate

    async def synthesize(self, partner_one: Any, partner_two: Any, context: SynthesisContext) -> List[Suggestion]:
        self.calls.append((partner_one, partner_two, context))
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return [Suggestion.model_validate(item) for item in outcome]

    async def swap(self, current: Suggestion, partner_one: Any, partner_two: Any, context: SynthesisContext) -> Suggestion:
        return Suggestion(
            title=f"Instead of {current.title}",
            description="Something new",
            time_estimate="30min",
            budget_band="free",
        )


class FixedClock:
    """Monotonic fake clock; each call advances by one millisecond."""

    def __init__(self, start: dt.datetime | None = None) -> None:
        self.now = start or dt.datetime(2026, 10, 14, 18, 0, tzinfo=dt.timezone.utc)

    def __call__(self) -> dt.datetime:
        self.now += dt.timedelta(milliseconds=1)
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += dt.timedelta(seconds=seconds)
