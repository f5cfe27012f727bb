"""LLM-backed ritual synthesis for a couple's two weekly inputs."""

from __future__ import annotations

import abc
import asyncio
import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Mapping

from jsonschema import Draft7Validator
from pydantic import ValidationError

from ritual.libs.json_utils import loads_llm_json
from ritual.libs.llm_router import BudgetExceededError, LLMRouter, ProviderError, Task
from ritual.libs.schemas.cycles import Suggestion
from ritual.libs.schemas.settings import AppSettings, get_settings

from .history import CoupleHistory, load_couple_history
from .location import get_location_context
from .prompts import SYSTEM_PROMPT, build_swap_prompt, build_synthesis_prompt

LOGGER = logging.getLogger(__name__)

SUGGESTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["title", "description"],
    "properties": {
        "title": {"type": "string", "minLength": 1},
        "description": {"type": "string", "minLength": 1},
        "time_estimate": {"type": "string"},
        "timeEstimate": {"type": "string"},
        "budget_band": {"type": "string"},
        "budgetBand": {"type": "string"},
        "category": {"type": ["string", "null"]},
        "why": {"type": ["string", "null"]},
    },
    "anyOf": [
        {"required": ["time_estimate"]},
        {"required": ["timeEstimate"]},
    ],
}

RITUAL_LIST_SCHEMA: dict[str, Any] = {
    "type": "array",
    "minItems": 1,
    "items": SUGGESTION_SCHEMA,
}

_LIST_VALIDATOR = Draft7Validator(RITUAL_LIST_SCHEMA)
_ITEM_VALIDATOR = Draft7Validator(SUGGESTION_SCHEMA)

HistoryLoader = Callable[[str], Awaitable[CoupleHistory]]


class SynthesisError(RuntimeError):
    """Generation failed, timed out, or produced an unusable result."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class SynthesisContext:
    couple_id: str
    city: str | None = None
    now: dt.datetime | None = None


class Synthesizer(abc.ABC):
    """Turns two partner inputs into a non-empty list of ritual suggestions."""

    @abc.abstractmethod
    async def synthesize(
        self,
        partner_one: Any,
        partner_two: Any,
        context: SynthesisContext,
    ) -> List[Suggestion]:
        raise NotImplementedError

    async def swap(
        self,
        current: Suggestion,
        partner_one: Any,
        partner_two: Any,
        context: SynthesisContext,
    ) -> Suggestion:
        raise NotImplementedError(f"{type(self).__name__} does not support swaps")


class LLMSynthesizer(Synthesizer):
    """Synthesizer that prompts a routed chat model and validates its JSON reply."""

    def __init__(
        self,
        router: LLMRouter,
        *,
        settings: AppSettings | None = None,
        history_loader: HistoryLoader | None = None,
    ) -> None:
        self._router = router
        self._settings = settings or get_settings()
        self._load_history = history_loader or load_couple_history

    async def synthesize(
        self,
        partner_one: Any,
        partner_two: Any,
        context: SynthesisContext,
    ) -> List[Suggestion]:
        location = get_location_context(context.city or self._settings.default_city, context.now)
        history = await self._load_history(context.couple_id)
        prompt = build_synthesis_prompt(partner_one, partner_two, location, history)
        text = await self._complete(Task.SYNTHESIS, self._settings.model_synthesis, prompt)
        rituals = parse_rituals(text)
        LOGGER.info(
            "synthesis_complete couple_id=%s city=%s season=%s rituals=%d",
            context.couple_id,
            location.city,
            location.season,
            len(rituals),
        )
        return rituals

    async def swap(
        self,
        current: Suggestion,
        partner_one: Any,
        partner_two: Any,
        context: SynthesisContext,
    ) -> Suggestion:
        location = get_location_context(context.city or self._settings.default_city, context.now)
        history = await self._load_history(context.couple_id)
        prompt = build_swap_prompt(current.title, partner_one, partner_two, location, history)
        text = await self._complete(Task.SWAP, self._settings.model_swap, prompt)
        return parse_single_ritual(text)

    async def _complete(self, task: Task, model: str, prompt: str) -> str:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        try:
            response = await asyncio.wait_for(
                self._router.complete(task=task, messages=messages, model=model),
                timeout=self._settings.synthesis_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise SynthesisError(
                f"Generation timed out after {self._settings.synthesis_timeout_seconds:g}s"
            ) from exc
        except ProviderError as exc:
            if exc.is_rate_limited:
                raise SynthesisError(
                    "Rate limit exceeded. Please try again in a moment.", status_code=429
                ) from exc
            if exc.is_out_of_credit:
                raise SynthesisError("AI credits depleted. Please try again later.", status_code=402) from exc
            raise SynthesisError(f"Generation failed: {exc}") from exc
        except BudgetExceededError as exc:
            raise SynthesisError(str(exc)) from exc
        if not response.text:
            raise SynthesisError("Generation returned an empty response")
        return response.text


def parse_rituals(text: str) -> List[Suggestion]:
    """Parse and validate a model reply holding a JSON array of rituals."""

    try:
        payload = loads_llm_json(text)
    except ValueError as exc:
        raise SynthesisError(str(exc)) from exc
    if isinstance(payload, Mapping) and isinstance(payload.get("rituals"), list):
        payload = payload["rituals"]
    errors = sorted(_LIST_VALIDATOR.iter_errors(payload), key=lambda err: list(err.path))
    if errors:
        raise SynthesisError(f"Generated rituals are malformed: {errors[0].message}")
    return [_to_suggestion(item) for item in payload]


def parse_single_ritual(text: str) -> Suggestion:
    try:
        payload = loads_llm_json(text)
    except ValueError as exc:
        raise SynthesisError(str(exc)) from exc
    if isinstance(payload, list) and payload:
        payload = payload[0]
    errors = list(_ITEM_VALIDATOR.iter_errors(payload))
    if errors:
        raise SynthesisError(f"Generated ritual is malformed: {errors[0].message}")
    return _to_suggestion(payload)


def _to_suggestion(item: Mapping[str, Any]) -> Suggestion:
    data = dict(item)
    # Budget is optional in model output; rituals without one are treated as free.
    if not data.get("budget_band") and not data.get("budgetBand"):
        data["budget_band"] = "free"
    try:
        return Suggestion.model_validate(data)
    except ValidationError as exc:
        raise SynthesisError(f"Generated ritual is malformed: {exc.errors()[0]['msg']}") from exc


__all__ = [
    "LLMSynthesizer",
    "RITUAL_LIST_SCHEMA",
    "SynthesisContext",
    "SynthesisError",
    "Synthesizer",
    "parse_rituals",
    "parse_single_ritual",
]
