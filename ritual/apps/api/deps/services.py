"""Dependency providers for the cycle store, synthesizer and coordinator."""

from __future__ import annotations

from functools import lru_cache

from ritual.apps.api.core.llm import get_router
from ritual.apps.engine.synthesis.synthesizer import LLMSynthesizer, Synthesizer
from ritual.apps.services.cycles.coordinator import SynthesisCoordinator
from ritual.apps.services.cycles.store import CycleStore, PostgresCycleStore


@lru_cache(maxsize=1)
def get_cycle_store() -> CycleStore:
    return PostgresCycleStore()


@lru_cache(maxsize=1)
def get_synthesizer() -> Synthesizer:
    return LLMSynthesizer(get_router())


def get_coordinator() -> SynthesisCoordinator:
    return SynthesisCoordinator(get_cycle_store(), get_synthesizer())


__all__ = ["get_coordinator", "get_cycle_store", "get_synthesizer"]
