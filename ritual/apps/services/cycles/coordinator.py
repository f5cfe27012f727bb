"""
Race-safe synthesis trigger for a weekly cycle.

Either partner's client, or both at once, may call ``trigger`` any number of
times. The storage-level compare-and-set on ``generated_at`` is the only
serialization point: whichever caller wins it runs the synthesizer, everyone
else observes ``generating`` and later ``ready``.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import uuid
from typing import Any, Callable, List, Sequence

from ritual.apps.engine.synthesis.synthesizer import SynthesisContext, SynthesisError, Synthesizer
from ritual.libs.logging_utils import bind_log_context
from ritual.libs.safety import sanitize_partner_input
from ritual.libs.schemas.cycles import (
    ErrorResult,
    FailedResult,
    GeneratingResult,
    ReadyResult,
    Suggestion,
    TriggerResult,
    WaitingResult,
    WeeklyCycle,
)
from ritual.libs.schemas.settings import AppSettings, get_settings

from .store import CycleNotFoundError, CycleStore, LockLostError, PersistenceError

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], dt.datetime]


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class SynthesisCoordinator:
    """Decides whether synthesis should run for a cycle and runs it at most once."""

    def __init__(
        self,
        store: CycleStore,
        synthesizer: Synthesizer,
        *,
        settings: AppSettings | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._synthesizer = synthesizer
        self._settings = settings or get_settings()
        self._clock = clock

    async def trigger(
        self,
        cycle_id: str,
        force_retry: bool = False,
        *,
        request_id: str | None = None,
    ) -> TriggerResult:
        rid = request_id or uuid.uuid4().hex[:12]
        with bind_log_context(cycle_id=cycle_id, request_id=rid):
            return await self._trigger(cycle_id, force_retry, rid)

    async def _trigger(self, cycle_id: str, force_retry: bool, rid: str) -> TriggerResult:
        try:
            cycle = await self._store.get(cycle_id)
        except PersistenceError as exc:
            LOGGER.error("trigger_load_failed cycle_id=%s request_id=%s error=%s", cycle_id, rid, exc)
            return FailedResult(error="Could not load the weekly cycle")
        if cycle is None:
            LOGGER.info("trigger_not_found cycle_id=%s request_id=%s", cycle_id, rid)
            return ErrorResult(error="Cycle not found", code="not_found")

        if cycle.has_output and not force_retry:
            LOGGER.info("trigger_already_ready cycle_id=%s request_id=%s", cycle_id, rid)
            return ReadyResult(rituals=cycle.rituals)

        if not cycle.both_ready:
            LOGGER.info(
                "trigger_waiting cycle_id=%s request_id=%s partner_one_ready=%s partner_two_ready=%s",
                cycle_id,
                rid,
                cycle.partner_one_ready,
                cycle.partner_two_ready,
            )
            return WaitingResult(
                partner_one_ready=cycle.partner_one_ready,
                partner_two_ready=cycle.partner_two_ready,
            )

        lock = self._clock()
        try:
            acquired = await self._acquire(cycle_id, lock, force_retry)
        except CycleNotFoundError:
            return ErrorResult(error="Cycle not found", code="not_found")
        except PersistenceError as exc:
            LOGGER.error("trigger_lock_failed cycle_id=%s request_id=%s error=%s", cycle_id, rid, exc)
            return FailedResult(error="Could not start ritual generation")
        if not acquired:
            LOGGER.info("trigger_lock_contended cycle_id=%s request_id=%s", cycle_id, rid)
            return GeneratingResult(message="Synthesis already in progress")

        LOGGER.info(
            "trigger_lock_acquired cycle_id=%s request_id=%s force_retry=%s",
            cycle_id,
            rid,
            force_retry,
        )
        return await self._run_locked(cycle, lock, rid)

    async def _acquire(self, cycle_id: str, lock: dt.datetime, force_retry: bool) -> bool:
        if force_retry:
            await self._store.force_lock(cycle_id, now=lock)
            return True
        stale_seconds = self._settings.synthesis_lock_stale_seconds
        stale_before = lock - dt.timedelta(seconds=stale_seconds) if stale_seconds > 0 else None
        return await self._store.acquire_lock(cycle_id, now=lock, stale_before=stale_before)

    async def _run_locked(self, cycle: WeeklyCycle, lock: dt.datetime, rid: str) -> TriggerResult:
        context = SynthesisContext(couple_id=cycle.couple_id, city=cycle.preferred_city, now=lock)
        try:
            rituals = _validated(
                await self._synthesizer.synthesize(
                    sanitize_partner_input(cycle.partner_one_input),
                    sanitize_partner_input(cycle.partner_two_input),
                    context,
                )
            )
            await self._store.save_output(
                cycle.id,
                [ritual.to_payload() for ritual in rituals],
                lock=lock,
                completed_at=self._clock(),
            )
        except LockLostError as exc:
            LOGGER.warning("trigger_lock_superseded cycle_id=%s request_id=%s error=%s", cycle.id, rid, exc)
            return GeneratingResult(message="A newer synthesis attempt is in progress")
        except asyncio.CancelledError:
            await self._release(cycle.id, lock, rid)
            raise
        except Exception as exc:
            LOGGER.warning(
                "trigger_synthesis_failed cycle_id=%s request_id=%s error_type=%s error=%s",
                cycle.id,
                rid,
                type(exc).__name__,
                exc,
            )
            await self._release(cycle.id, lock, rid)
            return FailedResult(error=_failure_message(exc))

        LOGGER.info("trigger_ready cycle_id=%s request_id=%s rituals=%d", cycle.id, rid, len(rituals))
        return ReadyResult(rituals=rituals)

    async def _release(self, cycle_id: str, lock: dt.datetime, rid: str) -> None:
        try:
            await self._store.release_lock(cycle_id, lock=lock)
        except PersistenceError as exc:
            # The stale-lock window lets a later trigger reclaim the cycle.
            LOGGER.error("trigger_lock_release_failed cycle_id=%s request_id=%s error=%s", cycle_id, rid, exc)


def _validated(rituals: Sequence[Any] | None) -> List[Suggestion]:
    if not rituals:
        raise SynthesisError("No rituals were generated")
    if isinstance(rituals, (str, bytes)) or not isinstance(rituals, Sequence):
        raise SynthesisError("Synthesizer returned a malformed result")
    return [item if isinstance(item, Suggestion) else Suggestion.model_validate(item) for item in rituals]


def _failure_message(exc: Exception) -> str:
    if isinstance(exc, SynthesisError):
        return str(exc) or "Ritual generation failed"
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return "Ritual generation timed out"
    if isinstance(exc, PersistenceError):
        return "Could not save the generated rituals"
    return "Ritual generation failed"


__all__ = ["SynthesisCoordinator", "utcnow"]
