"""
Per-partner client state machine for the weekly planning flow.

The client keeps no authoritative state: every step re-reads the cycle and
derives its phase from what is stored, so either partner's client can drive
the flow, reload, or give up on a slow trigger call and resume later.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterator, List, Protocol

import httpx
from pydantic import ValidationError

from ritual.libs.schemas.cycles import (
    TRIGGER_RESULT_ADAPTER,
    CardInput,
    ErrorResult,
    FailedResult,
    GeneratingResult,
    PartnerSlot,
    ReadyResult,
    Suggestion,
    TriggerResult,
    WaitingResult,
    WeeklyCycle,
)
from ritual.libs.schemas.settings import AppSettings, get_settings

from .coordinator import Clock, utcnow
from .store import CycleStore, InputAlreadySubmittedError

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class FlowPhase(str, Enum):
    INPUT = "input"
    WAITING = "waiting"
    GENERATING = "generating"
    PICK = "pick"
    MATCH = "match"
    CONFIRMED = "confirmed"


SETTLED_PHASES = frozenset({FlowPhase.PICK, FlowPhase.MATCH, FlowPhase.CONFIRMED})


def compute_phase(cycle: WeeklyCycle, slot: PartnerSlot, *, picks_submitted: bool = False) -> FlowPhase:
    """Derive the partner's phase purely from the stored cycle."""

    if cycle.agreement_reached:
        return FlowPhase.CONFIRMED
    if cycle.has_output:
        return FlowPhase.MATCH if picks_submitted else FlowPhase.PICK
    if not cycle.is_ready(slot):
        return FlowPhase.INPUT
    if not cycle.both_ready:
        return FlowPhase.WAITING
    return FlowPhase.GENERATING


@dataclass(frozen=True)
class BackoffPolicy:
    """Bounded exponential delays between polls of a waiting or generating cycle."""

    initial: float = 2.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    max_attempts: int = 10

    @classmethod
    def from_settings(cls, settings: AppSettings | None = None) -> "BackoffPolicy":
        settings = settings or get_settings()
        return cls(
            initial=settings.flow_backoff_initial_seconds,
            multiplier=settings.flow_backoff_multiplier,
            max_delay=settings.flow_backoff_max_seconds,
            max_attempts=settings.flow_max_attempts,
        )

    def delays(self) -> Iterator[float]:
        delay = self.initial
        for _ in range(self.max_attempts):
            yield min(delay, self.max_delay)
            delay *= self.multiplier


@dataclass(frozen=True)
class FlowSnapshot:
    phase: FlowPhase
    cycle: WeeklyCycle | None = None
    rituals: List[Suggestion] = field(default_factory=list)
    error: str | None = None
    can_retry: bool = False
    partner_one_ready: bool = False
    partner_two_ready: bool = False

    @property
    def settled(self) -> bool:
        return self.phase in SETTLED_PHASES


class TriggerTransport(Protocol):
    async def trigger(self, cycle_id: str, force_retry: bool = False) -> TriggerResult: ...


class FlowTransportError(RuntimeError):
    """The trigger call did not produce a result (network, auth or decoding failure)."""


class HttpTriggerTransport:
    """Calls the synthesis trigger RPC over HTTP."""

    def __init__(
        self,
        base_url: str,
        *,
        access_token: str | None = None,
        timeout: float = 75.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = base_url.rstrip("/") + "/v1/cycles/trigger"
        self._headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}
        self._timeout = timeout
        self._client = client

    async def trigger(self, cycle_id: str, force_retry: bool = False) -> TriggerResult:
        body = {"cycleId": cycle_id, "forceRetry": force_retry}
        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=body, headers=self._headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=body, headers=self._headers)
        except httpx.HTTPError as exc:
            raise FlowTransportError(f"Trigger request failed: {exc}") from exc
        if response.status_code in (401, 403):
            raise FlowTransportError(f"Trigger request rejected with {response.status_code}")
        try:
            return TRIGGER_RESULT_ADAPTER.validate_python(response.json())
        except (ValueError, ValidationError) as exc:
            raise FlowTransportError(
                f"Unexpected trigger response status={response.status_code}"
            ) from exc


class RitualFlowClient:
    """Drives one partner through input, waiting, generating and pick."""

    def __init__(
        self,
        transport: TriggerTransport,
        store: CycleStore,
        slot: PartnerSlot,
        *,
        backoff: BackoffPolicy | None = None,
        trigger_timeout: float | None = None,
        auto_retries: int = 1,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = utcnow,
    ) -> None:
        self._transport = transport
        self._store = store
        self._slot = slot
        self._backoff = backoff or BackoffPolicy.from_settings()
        self._trigger_timeout = trigger_timeout
        self._auto_retries = auto_retries
        self._sleep = sleep
        self._clock = clock

    async def observe(self, cycle_id: str) -> FlowSnapshot:
        cycle = await self._store.get(cycle_id)
        if cycle is None:
            return FlowSnapshot(phase=FlowPhase.INPUT, error="Cycle not found")
        return self._snapshot(cycle)

    async def submit(self, cycle_id: str, payload: CardInput | dict[str, Any]) -> FlowSnapshot:
        """Write this partner's input, then advance if the other partner is already in."""

        data = payload.to_payload() if isinstance(payload, CardInput) else CardInput.model_validate(payload).to_payload()
        try:
            cycle = await self._store.submit_input(cycle_id, self._slot, data, now=self._clock())
        except InputAlreadySubmittedError:
            LOGGER.info("flow_input_already_submitted cycle_id=%s slot=%s", cycle_id, self._slot.value)
            return await self.advance(cycle_id)
        if cycle.both_ready:
            return await self.advance(cycle_id)
        return self._snapshot(cycle)

    async def advance(self, cycle_id: str) -> FlowSnapshot:
        """One observe-and-act step."""

        snapshot = await self.observe(cycle_id)
        if snapshot.phase is not FlowPhase.GENERATING or snapshot.cycle is None:
            return snapshot
        return await self._call_trigger(snapshot.cycle, force_retry=False)

    async def retry(self, cycle_id: str) -> FlowSnapshot:
        """User-initiated retry: forces a fresh synthesis unless rituals already exist."""

        snapshot = await self.observe(cycle_id)
        if snapshot.cycle is None or snapshot.settled:
            return snapshot
        return await self._call_trigger(snapshot.cycle, force_retry=True)

    async def run_until_settled(self, cycle_id: str) -> FlowSnapshot:
        """Poll with backoff until rituals are ready, a non-retryable error occurs, or attempts run out."""

        retries_left = self._auto_retries
        snapshot = await self.advance(cycle_id)
        for delay in self._backoff.delays():
            if snapshot.settled or (snapshot.error and not snapshot.can_retry):
                return snapshot
            if snapshot.can_retry and retries_left > 0:
                retries_left -= 1
                LOGGER.info("flow_auto_retry cycle_id=%s slot=%s", cycle_id, self._slot.value)
                snapshot = await self.advance(cycle_id)
                continue
            if snapshot.can_retry:
                return snapshot
            await self._sleep(delay)
            snapshot = await self.advance(cycle_id)
        if snapshot.settled or snapshot.error:
            return snapshot
        LOGGER.warning("flow_gave_up cycle_id=%s slot=%s phase=%s", cycle_id, self._slot.value, snapshot.phase.value)
        return FlowSnapshot(
            phase=snapshot.phase,
            cycle=snapshot.cycle,
            error="Still waiting on ritual generation",
            can_retry=True,
            partner_one_ready=snapshot.partner_one_ready,
            partner_two_ready=snapshot.partner_two_ready,
        )

    async def _call_trigger(self, cycle: WeeklyCycle, *, force_retry: bool) -> FlowSnapshot:
        call = self._transport.trigger(cycle.id, force_retry=force_retry)
        try:
            if self._trigger_timeout is not None:
                result = await asyncio.wait_for(call, timeout=self._trigger_timeout)
            else:
                result = await call
        except (asyncio.TimeoutError, FlowTransportError) as exc:
            # The server may still finish; the next poll observes ready or generating.
            LOGGER.warning("flow_trigger_unavailable cycle_id=%s error=%s", cycle.id, exc)
            return self._snapshot(cycle)
        return self._from_result(cycle, result)

    def _from_result(self, cycle: WeeklyCycle, result: TriggerResult) -> FlowSnapshot:
        base = dict(
            cycle=cycle,
            partner_one_ready=cycle.partner_one_ready,
            partner_two_ready=cycle.partner_two_ready,
        )
        if isinstance(result, ReadyResult):
            return FlowSnapshot(phase=FlowPhase.PICK, rituals=list(result.rituals), **base)
        if isinstance(result, GeneratingResult):
            return FlowSnapshot(phase=FlowPhase.GENERATING, **base)
        if isinstance(result, FailedResult):
            return FlowSnapshot(phase=FlowPhase.GENERATING, error=result.error, can_retry=True, **base)
        if isinstance(result, WaitingResult):
            base.update(partner_one_ready=result.partner_one_ready, partner_two_ready=result.partner_two_ready)
            mine = result.partner_one_ready if self._slot is PartnerSlot.ONE else result.partner_two_ready
            return FlowSnapshot(phase=FlowPhase.WAITING if mine else FlowPhase.INPUT, **base)
        if isinstance(result, ErrorResult):
            return FlowSnapshot(phase=FlowPhase.GENERATING, error=result.error, can_retry=False, **base)
        raise TypeError(f"Unhandled trigger result {result!r}")

    def _snapshot(self, cycle: WeeklyCycle) -> FlowSnapshot:
        phase = compute_phase(cycle, self._slot)
        return FlowSnapshot(
            phase=phase,
            cycle=cycle,
            rituals=cycle.rituals if cycle.has_output else [],
            partner_one_ready=cycle.partner_one_ready,
            partner_two_ready=cycle.partner_two_ready,
        )


__all__ = [
    "BackoffPolicy",
    "FlowPhase",
    "FlowSnapshot",
    "FlowTransportError",
    "HttpTriggerTransport",
    "RitualFlowClient",
    "TriggerTransport",
    "compute_phase",
]
