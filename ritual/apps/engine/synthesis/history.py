"""What a couple has already done, loved and wished for; fed into the synthesis prompt."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

import asyncpg

from ritual.libs.schemas.db import fetch_all

LOGGER = logging.getLogger(__name__)

HIGH_RATING = 4


@dataclass(slots=True)
class RatedMemory:
    title: str
    rating: int | None = None
    notes: str | None = None


@dataclass(slots=True)
class CoupleHistory:
    completed_titles: List[str] = field(default_factory=list)
    highly_rated: List[RatedMemory] = field(default_factory=list)
    reflections: List[RatedMemory] = field(default_factory=list)
    bucket_list: List[str] = field(default_factory=list)

    @property
    def is_first_week(self) -> bool:
        return not self.completed_titles


async def load_couple_history(couple_id: str) -> CoupleHistory:
    """
    Fetch recent completions, rated memories and open bucket-list items.

    History only enriches the prompt: a database error here degrades to an
    empty history instead of failing the synthesis.
    """

    history = CoupleHistory()
    try:
        completions = await fetch_all(
            """
            SELECT c.ritual_title
            FROM completions c
            JOIN weekly_cycles w ON w.id = c.weekly_cycle_id
            WHERE w.couple_id = $1
            ORDER BY c.completed_at DESC
            LIMIT 20
            """,
            couple_id,
        )
        memories = await fetch_all(
            """
            SELECT ritual_title, rating, notes
            FROM ritual_memories
            WHERE couple_id = $1
            ORDER BY rating DESC NULLS LAST
            LIMIT 10
            """,
            couple_id,
        )
        bucket = await fetch_all(
            """
            SELECT title
            FROM bucket_list_items
            WHERE couple_id = $1 AND completed = false
            LIMIT 20
            """,
            couple_id,
        )
    except (asyncpg.PostgresError, OSError) as exc:
        LOGGER.warning("couple_history_unavailable couple_id=%s error=%s", couple_id, exc)
        return history

    history.completed_titles = list(dict.fromkeys(row["ritual_title"] for row in completions if row.get("ritual_title")))
    for row in memories:
        memory = RatedMemory(title=row.get("ritual_title") or "", rating=row.get("rating"), notes=row.get("notes"))
        if memory.rating is not None and memory.rating >= HIGH_RATING:
            history.highly_rated.append(memory)
        if memory.notes and memory.notes.strip():
            history.reflections.append(memory)
    history.bucket_list = [row["title"] for row in bucket if row.get("title")]
    return history


__all__ = ["CoupleHistory", "RatedMemory", "load_couple_history"]
