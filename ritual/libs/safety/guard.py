"""Guardrails applied to partner-written text before it reaches the generation model."""

from __future__ import annotations

import logging
import re
from typing import Any, List, Pattern

LOGGER = logging.getLogger(__name__)

# Role markers and override directives that let free text pose as prompt structure.
INJECTION_PATTERNS: List[Pattern[str]] = [
    re.compile(r"ignore\s+(all\s+)?previous\s+instructions", re.IGNORECASE),
    re.compile(r"disregard\s+(all\s+)?(prior|previous|above)\s+instructions", re.IGNORECASE),
    re.compile(r"\b(system|assistant|user)\s*:", re.IGNORECASE),
    re.compile(r"\[/?INST\]", re.IGNORECASE),
    re.compile(r"<\|im_(start|end)\|>", re.IGNORECASE),
    re.compile(r"<<\s*/?SYS\s*>>", re.IGNORECASE),
]

MAX_TEXT_LENGTH = 2000


def sanitize_text(text: str) -> str:
    cleaned = text
    for pattern in INJECTION_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    cleaned = re.sub(r"[ \t]{2,}", " ", cleaned).strip()
    return cleaned[:MAX_TEXT_LENGTH]


def sanitize_partner_input(value: Any) -> Any:
    """
    Return a copy of a partner payload with injection patterns stripped from
    every string, recursing through dicts and lists. Non-string leaves pass
    through unchanged; ``None`` stays ``None``.
    """

    if value is None:
        return None
    if isinstance(value, str):
        if contains_injection(value):
            LOGGER.warning("sanitize_partner_input stripped suspicious content")
        return sanitize_text(value)
    if isinstance(value, dict):
        return {key: sanitize_partner_input(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_partner_input(item) for item in value]
    return value


def contains_injection(text: str | None) -> bool:
    if not text:
        return False
    return any(pattern.search(text) for pattern in INJECTION_PATTERNS)


__all__ = ["INJECTION_PATTERNS", "contains_injection", "sanitize_partner_input", "sanitize_text"]
