"""Ritual synthesis: location and history context, prompts and the model-backed synthesizer."""

from .history import CoupleHistory, load_couple_history
from .location import LocationContext, get_location_context, week_start_date
from .synthesizer import LLMSynthesizer, SynthesisContext, SynthesisError, Synthesizer

__all__ = [
    "CoupleHistory",
    "LLMSynthesizer",
    "LocationContext",
    "SynthesisContext",
    "SynthesisError",
    "Synthesizer",
    "get_location_context",
    "load_couple_history",
    "week_start_date",
]
