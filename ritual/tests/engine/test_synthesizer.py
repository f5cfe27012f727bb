import asyncio
import datetime as dt
import json
from typing import Any

import pytest

from ritual.apps.engine.synthesis.history import CoupleHistory
from ritual.apps.engine.synthesis.synthesizer import (
    LLMSynthesizer,
    SynthesisContext,
    SynthesisError,
    parse_rituals,
    parse_single_ritual,
)
from ritual.libs.llm_router.types import LLMResponse, ProviderError, Task
from ritual.libs.schemas.cycles import Suggestion

RITUALS = [
    {
        "title": "Candlelit Cook-off",
        "description": "Phones in a drawer. Cook one dish each, then share what you loved.",
        "time_estimate": "1-2hrs",
        "budget_band": "$$",
        "category": "food",
        "why": "Shared novelty.",
    },
    {
        "title": "Ten Minute Gratitude",
        "description": "Sit knee to knee and trade three specific thank-yous.",
        "time_estimate": "15min",
        "budget_band": "free",
    },
]


class DummyRouter:
    def __init__(self, text: str | None = None, *, error: Exception | None = None, delay: float = 0.0) -> None:
        self.text = text
        self.error = error
        self.delay = delay
        self.calls: list[dict[str, Any]] = []

    async def complete(self, *, task: Task, messages, model: str, **kwargs: Any) -> LLMResponse:
        self.calls.append({"task": task, "messages": messages, "model": model})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return LLMResponse(model=model, task=task, text=self.text)


async def _no_history(couple_id: str) -> CoupleHistory:
    return CoupleHistory()


CONTEXT = SynthesisContext(
    couple_id="c1",
    city="Sydney",
    now=dt.datetime(2026, 10, 14, 1, 0, tzinfo=dt.timezone.utc),
)


@pytest.mark.asyncio
async def test_synthesize_returns_validated_suggestions(settings) -> None:
    router = DummyRouter("```json\n" + json.dumps(RITUALS) + "\n```")
    synthesizer = LLMSynthesizer(router, settings=settings, history_loader=_no_history)

    rituals = await synthesizer.synthesize({"cards": ["cozy"]}, {"cards": ["adventure"]}, CONTEXT)

    assert [r.title for r in rituals] == ["Candlelit Cook-off", "Ten Minute Gratitude"]
    assert rituals[1].to_payload()["timeEstimate"] == "15min"
    call = router.calls[0]
    assert call["task"] is Task.SYNTHESIS
    assert call["model"] == settings.model_synthesis
    assert "Sydney" in call["messages"][1]["content"]


@pytest.mark.asyncio
async def test_rate_limit_becomes_synthesis_error(settings) -> None:
    router = DummyRouter(error=ProviderError("429", status_code=429))
    synthesizer = LLMSynthesizer(router, settings=settings, history_loader=_no_history)

    with pytest.raises(SynthesisError) as excinfo:
        await synthesizer.synthesize({}, {}, CONTEXT)

    assert excinfo.value.status_code == 429
    assert "Rate limit" in str(excinfo.value)


@pytest.mark.asyncio
async def test_slow_model_times_out(settings) -> None:
    settings.synthesis_timeout_seconds = 0.01
    synthesizer = LLMSynthesizer(DummyRouter("[]", delay=1), settings=settings, history_loader=_no_history)

    with pytest.raises(SynthesisError, match="timed out"):
        await synthesizer.synthesize({}, {}, CONTEXT)


@pytest.mark.parametrize(
    "text",
    [
        "[]",
        "not json at all",
        json.dumps([{"title": "No description", "time_estimate": "1hr"}]),
        json.dumps({"title": "object, not list"}),
    ],
)
def test_unusable_replies_rejected(text: str) -> None:
    with pytest.raises(SynthesisError):
        parse_rituals(text)


def test_wrapped_rituals_object_accepted_and_budget_defaulted() -> None:
    text = json.dumps({"rituals": [{"title": "Walk", "description": "Go.", "timeEstimate": "30min"}]})

    (ritual,) = parse_rituals(text)

    assert ritual.budget_band == "free"


@pytest.mark.asyncio
async def test_swap_uses_swap_model(settings) -> None:
    router = DummyRouter(json.dumps(RITUALS[1]))
    synthesizer = LLMSynthesizer(router, settings=settings, history_loader=_no_history)
    current = Suggestion.model_validate(RITUALS[0])

    replacement = await synthesizer.swap(current, {"cards": ["cozy"]}, {"cards": ["cozy"]}, CONTEXT)

    assert replacement.title == "Ten Minute Gratitude"
    assert router.calls[0]["task"] is Task.SWAP
    assert router.calls[0]["model"] == settings.model_swap
    assert 'replace "Candlelit Cook-off"' in router.calls[0]["messages"][1]["content"]


def test_single_ritual_from_list_reply() -> None:
    assert parse_single_ritual(json.dumps(RITUALS)).title == "Candlelit Cook-off"
