"""Create the tables the synthesis coordinator, nudges and push delivery use."""

from __future__ import annotations

import asyncio
import logging

import asyncpg

from ritual.libs.logging_utils import configure_logging
from ritual.libs.schemas import get_settings

LOGGER = logging.getLogger(__name__)

MIGRATION_STATEMENTS = (
    'CREATE EXTENSION IF NOT EXISTS "pgcrypto";',
    """
    CREATE TABLE IF NOT EXISTS couples (
        id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
        partner_one uuid NOT NULL,
        partner_two uuid,
        couple_code text UNIQUE,
        preferred_city text DEFAULT 'New York',
        is_active boolean NOT NULL DEFAULT true,
        premium_expires_at timestamptz,
        created_at timestamptz NOT NULL DEFAULT now()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS weekly_cycles (
        id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
        couple_id uuid NOT NULL REFERENCES couples(id) ON DELETE CASCADE,
        week_start_date date NOT NULL,
        partner_one_input jsonb,
        partner_two_input jsonb,
        partner_one_submitted_at timestamptz,
        partner_two_submitted_at timestamptz,
        generated_at timestamptz,
        synthesized_output jsonb,
        sync_completed_at timestamptz,
        agreement_reached boolean NOT NULL DEFAULT false,
        nudged_at timestamptz,
        nudge_count integer NOT NULL DEFAULT 0,
        created_at timestamptz NOT NULL DEFAULT now(),
        UNIQUE (couple_id, week_start_date),
        CONSTRAINT output_requires_lock CHECK (synthesized_output IS NULL OR generated_at IS NOT NULL)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS push_subscriptions (
        id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id uuid NOT NULL,
        endpoint text NOT NULL,
        p256dh text NOT NULL,
        auth text NOT NULL,
        created_at timestamptz NOT NULL DEFAULT now(),
        UNIQUE (user_id, endpoint)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS surprise_rituals (
        id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
        couple_id uuid NOT NULL REFERENCES couples(id) ON DELETE CASCADE,
        ritual_data jsonb NOT NULL,
        month date NOT NULL,
        delivered_at timestamptz NOT NULL DEFAULT now(),
        opened_at timestamptz,
        completed_at timestamptz,
        UNIQUE (couple_id, month)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS completions (
        id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
        weekly_cycle_id uuid NOT NULL REFERENCES weekly_cycles(id) ON DELETE CASCADE,
        ritual_title text NOT NULL,
        completed_at timestamptz NOT NULL DEFAULT now()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS ritual_memories (
        id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
        couple_id uuid NOT NULL REFERENCES couples(id) ON DELETE CASCADE,
        ritual_title text NOT NULL,
        rating smallint CHECK (rating BETWEEN 1 AND 5),
        notes text,
        created_at timestamptz NOT NULL DEFAULT now()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS bucket_list_items (
        id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
        couple_id uuid NOT NULL REFERENCES couples(id) ON DELETE CASCADE,
        title text NOT NULL,
        completed boolean NOT NULL DEFAULT false,
        created_at timestamptz NOT NULL DEFAULT now()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_couples_partner_one ON couples (partner_one);",
    "CREATE INDEX IF NOT EXISTS idx_couples_partner_two ON couples (partner_two);",
    "CREATE INDEX IF NOT EXISTS idx_push_subscriptions_user ON push_subscriptions (user_id);",
)


async def migrate() -> None:
    settings = get_settings()
    conn = await asyncpg.connect(settings.postgres_dsn, statement_cache_size=0)
    try:
        async with conn.transaction():
            for statement in MIGRATION_STATEMENTS:
                await conn.execute(statement)
    finally:
        await conn.close()
    LOGGER.info("migration_complete statements=%d", len(MIGRATION_STATEMENTS))


def main() -> None:  # pragma: no cover - CLI entrypoint
    configure_logging()
    asyncio.run(migrate())


if __name__ == "__main__":  # pragma: no cover
    main()
