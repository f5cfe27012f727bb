"""Weekly cycle records, ritual suggestions and synthesis trigger results."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

MIN_MOOD_CARDS = 3
MAX_MOOD_CARDS = 5


class PartnerSlot(str, Enum):
    """Which of the couple's two input fields a user owns."""

    ONE = "partner_one"
    TWO = "partner_two"

    @property
    def input_column(self) -> str:
        return f"{self.value}_input"

    @property
    def submitted_column(self) -> str:
        return f"{self.value}_submitted_at"


class Suggestion(BaseModel):
    """One generated ritual recommendation."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    time_estimate: str = Field(
        min_length=1,
        validation_alias=AliasChoices("timeEstimate", "time_estimate"),
        serialization_alias="timeEstimate",
    )
    budget_band: str = Field(
        min_length=1,
        validation_alias=AliasChoices("budgetBand", "budget_band"),
        serialization_alias="budgetBand",
    )
    category: str | None = None
    why: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CardInput(BaseModel):
    """A partner's weekly mood-card submission."""

    cards: list[str]
    desire: str | None = None
    input_type: Literal["cards"] = Field(
        default="cards",
        validation_alias=AliasChoices("inputType", "input_type"),
        serialization_alias="inputType",
    )

    @field_validator("cards")
    @classmethod
    def _check_card_count(cls, value: list[str]) -> list[str]:
        cards = list(dict.fromkeys(card.strip() for card in value if card and card.strip()))
        if len(cards) < MIN_MOOD_CARDS:
            raise ValueError(f"Please select at least {MIN_MOOD_CARDS} mood cards")
        if len(cards) > MAX_MOOD_CARDS:
            raise ValueError(f"Select at most {MAX_MOOD_CARDS} mood cards")
        return cards

    @field_validator("desire")
    @classmethod
    def _blank_desire(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class WeeklyCycle(BaseModel):
    """One couple's planning record for one week."""

    model_config = ConfigDict(extra="ignore")

    id: str
    couple_id: str
    week_start_date: dt.date
    partner_one_input: Any | None = None
    partner_two_input: Any | None = None
    partner_one_submitted_at: dt.datetime | None = None
    partner_two_submitted_at: dt.datetime | None = None
    generated_at: dt.datetime | None = None
    synthesized_output: dict[str, Any] | None = None
    sync_completed_at: dt.datetime | None = None
    nudged_at: dt.datetime | None = None
    nudge_count: int = 0
    agreement_reached: bool = False
    preferred_city: str | None = None

    @field_validator("id", "couple_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @field_validator("nudge_count", mode="before")
    @classmethod
    def _default_nudge_count(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("agreement_reached", mode="before")
    @classmethod
    def _default_agreement(cls, value: Any) -> Any:
        return bool(value)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "WeeklyCycle":
        return cls.model_validate(dict(row))

    def input_for(self, slot: PartnerSlot) -> Any | None:
        return self.partner_one_input if slot is PartnerSlot.ONE else self.partner_two_input

    def is_ready(self, slot: PartnerSlot) -> bool:
        """A partner is ready once their input field holds any value, even an empty one."""

        return self.input_for(slot) is not None

    @property
    def partner_one_ready(self) -> bool:
        return self.is_ready(PartnerSlot.ONE)

    @property
    def partner_two_ready(self) -> bool:
        return self.is_ready(PartnerSlot.TWO)

    @property
    def both_ready(self) -> bool:
        return self.partner_one_ready and self.partner_two_ready

    @property
    def is_locked(self) -> bool:
        return self.generated_at is not None

    @property
    def has_output(self) -> bool:
        return self.synthesized_output is not None

    @property
    def raw_rituals(self) -> list[dict[str, Any]]:
        output = self.synthesized_output or {}
        rituals = output.get("rituals") if isinstance(output, dict) else None
        return list(rituals) if isinstance(rituals, list) else []

    @property
    def rituals(self) -> list[Suggestion]:
        return [Suggestion.model_validate(item) for item in self.raw_rituals]


# -- trigger results -------------------------------------------------------


class _Result(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ReadyResult(_Result):
    status: Literal["ready"] = "ready"
    rituals: list[Suggestion]
    message: str | None = None


class WaitingResult(_Result):
    status: Literal["waiting"] = "waiting"
    partner_one_ready: bool = Field(alias="partnerOneReady")
    partner_two_ready: bool = Field(alias="partnerTwoReady")
    message: str | None = None


class GeneratingResult(_Result):
    status: Literal["generating"] = "generating"
    message: str | None = None


class FailedResult(_Result):
    status: Literal["failed"] = "failed"
    error: str
    can_retry: Literal[True] = Field(default=True, alias="canRetry")


class ErrorResult(_Result):
    status: Literal["error"] = "error"
    error: str
    code: Literal["not_found", "bad_request"] = "bad_request"


TriggerResult = Annotated[
    Union[ReadyResult, WaitingResult, GeneratingResult, FailedResult, ErrorResult],
    Field(discriminator="status"),
]

TRIGGER_RESULT_ADAPTER: TypeAdapter[TriggerResult] = TypeAdapter(TriggerResult)


class TriggerRequest(BaseModel):
    """Body of the synthesis trigger RPC."""

    model_config = ConfigDict(populate_by_name=True)

    cycle_id: str = Field(min_length=1, alias="cycleId")
    force_retry: bool = Field(default=False, alias="forceRetry")


__all__ = [
    "CardInput",
    "ErrorResult",
    "FailedResult",
    "GeneratingResult",
    "MAX_MOOD_CARDS",
    "MIN_MOOD_CARDS",
    "PartnerSlot",
    "ReadyResult",
    "Suggestion",
    "TRIGGER_RESULT_ADAPTER",
    "TriggerRequest",
    "TriggerResult",
    "WaitingResult",
    "WeeklyCycle",
]
