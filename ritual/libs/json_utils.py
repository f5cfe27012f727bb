from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?|\n?```\s*$")


def extract_json_block(blob: str) -> str:
    """
    Strip markdown fences, prose around the payload and trailing commas from an
    LLM response, returning a best-effort JSON string.
    """

    text = _FENCE_RE.sub("", (blob or "").strip()).strip()
    if not text:
        return ""
    starts = [idx for idx in (text.find("["), text.find("{")) if idx != -1]
    if starts:
        text = text[min(starts):]
    closing_idx = max(text.rfind("]"), text.rfind("}"))
    if closing_idx != -1:
        text = text[: closing_idx + 1]
    return _strip_trailing_commas(text).strip()


def loads_llm_json(blob: str) -> Any:
    """Parse the JSON payload of an LLM response; raises ``ValueError`` when absent."""

    text = extract_json_block(blob)
    if not text:
        raise ValueError("LLM response contained no JSON payload")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"LLM response is not valid JSON: {exc.msg}") from exc


def _strip_trailing_commas(text: str) -> str:
    return re.sub(r",(\s*[}\]])", r"\1", text)


__all__ = ["extract_json_block", "loads_llm_json"]
