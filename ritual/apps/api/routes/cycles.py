from __future__ import annotations

import datetime as dt
import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ritual.apps.api.deps.auth import get_current_user_id
from ritual.apps.api.deps.services import get_coordinator, get_cycle_store, get_synthesizer
from ritual.apps.engine.nudge.engine import NudgeRejected, nudge_partner
from ritual.apps.engine.synthesis.location import week_start_date
from ritual.apps.engine.synthesis.synthesizer import SynthesisContext, SynthesisError, Synthesizer
from ritual.apps.services.cycles.coordinator import SynthesisCoordinator
from ritual.apps.services.cycles.flow import compute_phase
from ritual.apps.services.cycles.store import (
    CycleNotFoundError,
    CycleStore,
    InputAlreadySubmittedError,
    PersistenceError,
)
from ritual.libs.logging_utils import bind_log_context
from ritual.libs.safety import sanitize_partner_input
from ritual.libs.schemas.cycles import (
    CardInput,
    ErrorResult,
    FailedResult,
    PartnerSlot,
    TriggerRequest,
    TriggerResult,
    WeeklyCycle,
)

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/cycles", tags=["cycles"])

_RESULT_STATUS = {"ready": 200, "waiting": 200, "generating": 200, "failed": 500}


class SwapIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cycle_id: str = Field(alias="cycleId")
    ritual_title: str = Field(min_length=1, alias="ritualTitle")


class NudgeIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cycle_id: str = Field(min_length=1, alias="cycleId")


def result_response(result: TriggerResult) -> JSONResponse:
    if isinstance(result, ErrorResult):
        status_code = 404 if result.code == "not_found" else 400
    else:
        status_code = _RESULT_STATUS[result.status]
    return JSONResponse(result.to_payload(), status_code=status_code)


def cycle_payload(cycle: WeeklyCycle, slot: PartnerSlot) -> Dict[str, Any]:
    return {
        "cycleId": cycle.id,
        "coupleId": cycle.couple_id,
        "weekStartDate": cycle.week_start_date.isoformat(),
        "slot": slot.value,
        "phase": compute_phase(cycle, slot).value,
        "partnerOneReady": cycle.partner_one_ready,
        "partnerTwoReady": cycle.partner_two_ready,
        "myInput": cycle.input_for(slot),
        "generating": cycle.is_locked and not cycle.has_output,
        "rituals": [ritual.to_payload() for ritual in cycle.rituals] if cycle.has_output else [],
    }


async def _member_cycle(store: CycleStore, cycle_id: str, user_id: str) -> tuple[WeeklyCycle, PartnerSlot]:
    try:
        cycle = await store.get(cycle_id)
        if cycle is None:
            raise HTTPException(status_code=404, detail="Cycle not found")
        slot = await store.partner_slot(cycle.couple_id, user_id)
    except PersistenceError as exc:
        LOGGER.error("cycle_lookup_failed cycle_id=%s error=%s", cycle_id, exc)
        raise HTTPException(status_code=503, detail="Storage unavailable") from exc
    if slot is None:
        raise HTTPException(status_code=403, detail="Not a member of this couple")
    return cycle, slot


@router.post("/trigger")
async def trigger_synthesis(
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    store: CycleStore = Depends(get_cycle_store),
    coordinator: SynthesisCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    raw = await http_request.body()
    try:
        body = json.loads(raw) if raw.strip() else {}
    except ValueError:
        body = None
    try:
        request = TriggerRequest.model_validate(body)
    except ValidationError:
        return result_response(ErrorResult(error="cycleId is required", code="bad_request"))

    try:
        cycle = await store.get(request.cycle_id)
        if cycle is not None and await store.partner_slot(cycle.couple_id, user_id) is None:
            raise HTTPException(status_code=403, detail="Not a member of this couple")
    except PersistenceError as exc:
        LOGGER.error("trigger_membership_failed cycle_id=%s error=%s", request.cycle_id, exc)
        return result_response(FailedResult(error="Could not load the weekly cycle"))

    with bind_log_context(user_id=user_id):
        result = await coordinator.trigger(request.cycle_id, request.force_retry)
    return result_response(result)


@router.get("/current")
async def current_cycle(
    user_id: str = Depends(get_current_user_id),
    store: CycleStore = Depends(get_cycle_store),
) -> Dict[str, Any]:
    try:
        couple = await store.couple_for_user(user_id)
        if not couple:
            raise HTTPException(status_code=404, detail="No active couple")
        week_start = week_start_date(couple.get("preferred_city"), dt.datetime.now(dt.timezone.utc))
        cycle = await store.get_or_create(str(couple["id"]), week_start)
    except PersistenceError as exc:
        LOGGER.error("current_cycle_failed user_id=%s error=%s", user_id, exc)
        raise HTTPException(status_code=503, detail="Storage unavailable") from exc
    slot = PartnerSlot.ONE if str(couple.get("partner_one")) == str(user_id) else PartnerSlot.TWO
    return cycle_payload(cycle, slot)


@router.post("/{cycle_id}/input")
async def submit_input(
    cycle_id: str,
    payload: CardInput,
    user_id: str = Depends(get_current_user_id),
    store: CycleStore = Depends(get_cycle_store),
) -> Dict[str, Any]:
    _, slot = await _member_cycle(store, cycle_id, user_id)
    try:
        cycle = await store.submit_input(
            cycle_id,
            slot,
            payload.to_payload(),
            now=dt.datetime.now(dt.timezone.utc),
        )
    except InputAlreadySubmittedError as exc:
        raise HTTPException(status_code=409, detail="Input already submitted for this week") from exc
    except CycleNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Cycle not found") from exc
    except PersistenceError as exc:
        LOGGER.error("submit_input_failed cycle_id=%s error=%s", cycle_id, exc)
        raise HTTPException(status_code=503, detail="Storage unavailable") from exc
    LOGGER.info("partner_input_submitted cycle_id=%s slot=%s", cycle_id, slot.value)
    return cycle_payload(cycle, slot)


@router.post("/swap")
async def swap_ritual(
    payload: SwapIn,
    user_id: str = Depends(get_current_user_id),
    store: CycleStore = Depends(get_cycle_store),
    synthesizer: Synthesizer = Depends(get_synthesizer),
) -> Any:
    cycle, _ = await _member_cycle(store, payload.cycle_id, user_id)
    current = next((ritual for ritual in cycle.rituals if ritual.title == payload.ritual_title), None)
    if current is None:
        raise HTTPException(status_code=404, detail="Ritual not found in this week's suggestions")
    try:
        ritual = await synthesizer.swap(
            current,
            sanitize_partner_input(cycle.partner_one_input),
            sanitize_partner_input(cycle.partner_two_input),
            SynthesisContext(couple_id=cycle.couple_id, city=cycle.preferred_city),
        )
    except SynthesisError as exc:
        LOGGER.warning("swap_failed cycle_id=%s error=%s", cycle.id, exc)
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code or 500)
    return {"ritual": ritual.to_payload()}


@router.post("/nudge")
async def nudge(payload: NudgeIn, user_id: str = Depends(get_current_user_id)) -> Any:
    try:
        return await nudge_partner(user_id, payload.cycle_id)
    except NudgeRejected as exc:
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)


__all__ = ["cycle_payload", "result_response", "router"]
