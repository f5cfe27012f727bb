"""Pydantic models and schema utilities."""

from .cycles import (
    CardInput,
    ErrorResult,
    FailedResult,
    GeneratingResult,
    PartnerSlot,
    ReadyResult,
    Suggestion,
    TriggerRequest,
    TriggerResult,
    WaitingResult,
    WeeklyCycle,
)
from .db import affected_rows, execute, fetch_all, fetch_one, get_async_pool
from .settings import AppSettings, get_settings

__all__ = [
    "AppSettings",
    "CardInput",
    "ErrorResult",
    "FailedResult",
    "GeneratingResult",
    "PartnerSlot",
    "ReadyResult",
    "Suggestion",
    "TriggerRequest",
    "TriggerResult",
    "WaitingResult",
    "WeeklyCycle",
    "affected_rows",
    "execute",
    "fetch_all",
    "fetch_one",
    "get_async_pool",
    "get_settings",
]
