"""rq worker for push delivery and scheduled surprise rituals."""

from __future__ import annotations

import logging
from typing import List

import redis
from rq import Queue, Worker

from ritual.libs.logging_utils import configure_logging
from ritual.libs.schemas.settings import AppSettings, get_settings

LOGGER = logging.getLogger("ritual.worker")


def get_redis(settings: AppSettings | None = None) -> redis.Redis:
    url = (settings or get_settings()).redis_url
    LOGGER.info("Connecting to Redis at %s", url)
    return redis.from_url(url)


def _build_queues(connection: redis.Redis, settings: AppSettings | None = None) -> List[Queue]:
    settings = settings or get_settings()
    queues = []
    for name in dict.fromkeys((settings.notifications_queue, settings.surprises_queue)):
        queue = Queue(name, connection=connection)
        LOGGER.info("Registered queue: %s", queue.name)
        queues.append(queue)
    return queues


def run() -> None:
    configure_logging()
    conn = get_redis()
    queues = _build_queues(conn)
    worker = Worker(queues, connection=conn)
    LOGGER.info("Worker started; listening on %s queues.", len(queues))
    worker.work(with_scheduler=False)


if __name__ == "__main__":
    run()
