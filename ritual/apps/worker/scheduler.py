"""Periodic enqueue of the surprise ritual delivery job."""

from __future__ import annotations

import argparse
import logging
import time
from typing import Callable

import redis
from rq import Queue

from ritual.apps.worker.tasks.deliver_surprise_ritual import deliver_surprise_rituals_job
from ritual.libs.logging_utils import configure_logging
from ritual.libs.schemas.settings import AppSettings, get_settings

LOGGER = logging.getLogger("ritual.scheduler")


def schedule_surprise_jobs(
    connection: redis.Redis | None = None,
    settings: AppSettings | None = None,
) -> str:
    """
    Enqueue one surprise delivery run and return its job id.

    Delivery skips couples that already have this month's surprise, so running
    this daily catches couples who upgrade mid-month without duplicates.
    """

    settings = settings or get_settings()
    queue = Queue(settings.surprises_queue, connection=connection or redis.from_url(settings.redis_url))
    job = queue.enqueue(deliver_surprise_rituals_job)
    LOGGER.info("surprise_delivery_enqueued queue=%s job_id=%s", queue.name, job.id)
    return job.id


def run_loop(
    schedule: Callable[[], str] = schedule_surprise_jobs,
    *,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    max_runs: int | None = None,
) -> int:
    runs = 0
    while max_runs is None or runs < max_runs:
        schedule()
        runs += 1
        if max_runs is not None and runs >= max_runs:
            break
        sleep(interval)
    return runs


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Enqueue surprise ritual delivery on a fixed interval.")
    parser.add_argument("--once", action="store_true", help="Enqueue a single run and exit.")
    args = parser.parse_args(argv)

    configure_logging()
    settings = get_settings()
    if args.once:
        schedule_surprise_jobs(settings=settings)
        return

    LOGGER.info("Scheduler loop started interval=%ss", settings.surprise_schedule_interval_seconds)
    try:
        run_loop(
            lambda: schedule_surprise_jobs(settings=settings),
            interval=settings.surprise_schedule_interval_seconds,
        )
    except KeyboardInterrupt:
        LOGGER.info("Scheduler loop interrupted; shutting down.")


if __name__ == "__main__":  # pragma: no cover
    main()
