"""Durable storage contract for weekly cycles and its asyncpg implementation."""

from __future__ import annotations

import abc
import datetime as dt
import logging
import uuid
from typing import Any, Sequence

import asyncpg

from ritual.libs.schemas import db
from ritual.libs.schemas.cycles import PartnerSlot, WeeklyCycle

LOGGER = logging.getLogger(__name__)

_STORAGE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class CycleNotFoundError(LookupError):
    """The cycle id does not resolve to a record."""


class PersistenceError(RuntimeError):
    """A storage read or write failed."""


class LockLostError(PersistenceError):
    """The synthesis lock was taken over before the output could be saved."""


class InputAlreadySubmittedError(RuntimeError):
    """A partner tried to write their weekly input a second time."""


class CycleStore(abc.ABC):
    """
    Storage operations the coordinator and flow client rely on.

    ``acquire_lock`` must be a single atomic compare-and-set at the storage
    layer: of any number of concurrent callers at most one may see ``True``.
    ``save_output`` and ``release_lock`` only apply while ``generated_at``
    still equals the ``lock`` timestamp the caller acquired, so an attempt
    that was superseded by a forced retry or a stale-lock reclaim can never
    overwrite the newer attempt's state.
    """

    @abc.abstractmethod
    async def get(self, cycle_id: str) -> WeeklyCycle | None: ...

    @abc.abstractmethod
    async def acquire_lock(
        self,
        cycle_id: str,
        *,
        now: dt.datetime,
        stale_before: dt.datetime | None = None,
    ) -> bool: ...

    @abc.abstractmethod
    async def force_lock(self, cycle_id: str, *, now: dt.datetime) -> None: ...

    @abc.abstractmethod
    async def save_output(
        self,
        cycle_id: str,
        rituals: Sequence[dict[str, Any]],
        *,
        lock: dt.datetime,
        completed_at: dt.datetime,
    ) -> None: ...

    @abc.abstractmethod
    async def release_lock(self, cycle_id: str, *, lock: dt.datetime) -> None: ...

    @abc.abstractmethod
    async def submit_input(
        self,
        cycle_id: str,
        slot: PartnerSlot,
        payload: dict[str, Any],
        *,
        now: dt.datetime,
    ) -> WeeklyCycle: ...

    @abc.abstractmethod
    async def get_or_create(self, couple_id: str, week_start: dt.date) -> WeeklyCycle: ...

    @abc.abstractmethod
    async def partner_slot(self, couple_id: str, user_id: str) -> PartnerSlot | None: ...

    @abc.abstractmethod
    async def couple_for_user(self, user_id: str) -> dict[str, Any] | None:
        """The active couple ``user_id`` belongs to, with its ``preferred_city``."""


_CYCLE_SELECT = """
    SELECT w.*, c.preferred_city
    FROM weekly_cycles w
    LEFT JOIN couples c ON c.id = w.couple_id
"""


def _valid_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class PostgresCycleStore(CycleStore):
    """CycleStore over the ``weekly_cycles`` table using the shared asyncpg pool."""

    async def get(self, cycle_id: str) -> WeeklyCycle | None:
        if not _valid_uuid(cycle_id):
            return None
        try:
            row = await db.fetch_one(f"{_CYCLE_SELECT} WHERE w.id = $1", cycle_id)
        except _STORAGE_ERRORS as exc:
            raise PersistenceError(f"Could not load cycle {cycle_id}: {exc}") from exc
        return WeeklyCycle.from_row(row) if row else None

    async def acquire_lock(
        self,
        cycle_id: str,
        *,
        now: dt.datetime,
        stale_before: dt.datetime | None = None,
    ) -> bool:
        try:
            row = await db.fetch_one(
                """
                UPDATE weekly_cycles
                SET generated_at = $2
                WHERE id = $1
                  AND (
                    generated_at IS NULL
                    OR ($3::timestamptz IS NOT NULL
                        AND synthesized_output IS NULL
                        AND generated_at < $3::timestamptz)
                  )
                RETURNING id
                """,
                cycle_id,
                now,
                stale_before,
            )
        except _STORAGE_ERRORS as exc:
            raise PersistenceError(f"Could not acquire synthesis lock: {exc}") from exc
        return row is not None

    async def force_lock(self, cycle_id: str, *, now: dt.datetime) -> None:
        status = await self._execute(
            """
            UPDATE weekly_cycles
            SET generated_at = $2, synthesized_output = NULL, sync_completed_at = NULL
            WHERE id = $1
            """,
            cycle_id,
            now,
            action="force synthesis lock",
        )
        if db.affected_rows(status) == 0:
            raise CycleNotFoundError(cycle_id)

    async def save_output(
        self,
        cycle_id: str,
        rituals: Sequence[dict[str, Any]],
        *,
        lock: dt.datetime,
        completed_at: dt.datetime,
    ) -> None:
        status = await self._execute(
            """
            UPDATE weekly_cycles
            SET synthesized_output = $2::jsonb, sync_completed_at = $3
            WHERE id = $1 AND generated_at = $4
            """,
            cycle_id,
            {"rituals": list(rituals)},
            completed_at,
            lock,
            action="save synthesized output",
        )
        if db.affected_rows(status) == 0:
            raise LockLostError(f"Synthesis lock for cycle {cycle_id} is no longer held")

    async def release_lock(self, cycle_id: str, *, lock: dt.datetime) -> None:
        status = await self._execute(
            """
            UPDATE weekly_cycles
            SET generated_at = NULL
            WHERE id = $1 AND generated_at = $2 AND synthesized_output IS NULL
            """,
            cycle_id,
            lock,
            action="release synthesis lock",
        )
        if db.affected_rows(status) == 0:
            LOGGER.info("synthesis_lock_already_superseded cycle_id=%s", cycle_id)

    async def submit_input(
        self,
        cycle_id: str,
        slot: PartnerSlot,
        payload: dict[str, Any],
        *,
        now: dt.datetime,
    ) -> WeeklyCycle:
        # Column names come from the PartnerSlot enum, never from the caller.
        try:
            row = await db.fetch_one(
                f"""
                UPDATE weekly_cycles
                SET {slot.input_column} = $2::jsonb, {slot.submitted_column} = $3
                WHERE id = $1 AND {slot.input_column} IS NULL
                RETURNING id
                """,
                cycle_id,
                payload,
                now,
            )
        except _STORAGE_ERRORS as exc:
            raise PersistenceError(f"Could not save partner input: {exc}") from exc
        cycle = await self.get(cycle_id)
        if cycle is None:
            raise CycleNotFoundError(cycle_id)
        if row is None:
            raise InputAlreadySubmittedError(f"{slot.value} already submitted for cycle {cycle_id}")
        return cycle

    async def get_or_create(self, couple_id: str, week_start: dt.date) -> WeeklyCycle:
        """Return the couple's cycle for ``week_start``, creating it on first use."""

        query = f"{_CYCLE_SELECT} WHERE w.couple_id = $1 AND w.week_start_date = $2"
        try:
            row = await db.fetch_one(query, couple_id, week_start)
            if row is None:
                try:
                    await db.execute(
                        "INSERT INTO weekly_cycles (couple_id, week_start_date) VALUES ($1, $2)",
                        couple_id,
                        week_start,
                    )
                except asyncpg.UniqueViolationError:
                    # The partner created the same week concurrently.
                    LOGGER.info(
                        "weekly_cycle_created_concurrently couple_id=%s week_start=%s",
                        couple_id,
                        week_start,
                    )
                row = await db.fetch_one(query, couple_id, week_start)
        except _STORAGE_ERRORS as exc:
            raise PersistenceError(f"Could not load or create weekly cycle: {exc}") from exc
        if row is None:
            raise PersistenceError(f"Weekly cycle for couple {couple_id} vanished after insert")
        return WeeklyCycle.from_row(row)

    async def partner_slot(self, couple_id: str, user_id: str) -> PartnerSlot | None:
        try:
            row = await db.fetch_one(
                "SELECT partner_one, partner_two FROM couples WHERE id = $1",
                couple_id,
            )
        except _STORAGE_ERRORS as exc:
            raise PersistenceError(f"Could not load couple {couple_id}: {exc}") from exc
        if not row:
            return None
        if str(row.get("partner_one")) == str(user_id):
            return PartnerSlot.ONE
        if row.get("partner_two") is not None and str(row["partner_two"]) == str(user_id):
            return PartnerSlot.TWO
        return None

    async def couple_for_user(self, user_id: str) -> dict[str, Any] | None:
        try:
            return await db.fetch_one(
                """
                SELECT id, partner_one, partner_two, preferred_city
                FROM couples
                WHERE (partner_one = $1 OR partner_two = $1) AND is_active = true
                ORDER BY created_at DESC
                LIMIT 1
                """,
                user_id,
            )
        except _STORAGE_ERRORS as exc:
            raise PersistenceError(f"Could not load couple for user {user_id}: {exc}") from exc

    async def _execute(self, query: str, *args: Any, action: str) -> str:
        try:
            return await db.execute(query, *args)
        except _STORAGE_ERRORS as exc:
            raise PersistenceError(f"Could not {action}: {exc}") from exc


__all__ = [
    "CycleNotFoundError",
    "CycleStore",
    "InputAlreadySubmittedError",
    "LockLostError",
    "PersistenceError",
    "PostgresCycleStore",
]
