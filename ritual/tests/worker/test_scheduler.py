from ritual.apps.services.notifications import push
from ritual.apps.services.notifications.push import Notification
from ritual.apps.worker import main as worker_main
from ritual.apps.worker import scheduler
from ritual.apps.worker.tasks.deliver_surprise_ritual import deliver_surprise_rituals_job


class DummyJob:
    id = "job-7"


class DummyQueue:
    created = []

    def __init__(self, name, connection=None):
        self.name = name
        self.connection = connection
        self.jobs = []
        DummyQueue.created.append(self)

    def enqueue(self, func, *args):
        self.jobs.append((func, args))
        return DummyJob()


def test_schedule_enqueues_surprise_delivery(monkeypatch, settings):
    DummyQueue.created = []
    monkeypatch.setattr(scheduler, "Queue", DummyQueue)

    job_id = scheduler.schedule_surprise_jobs(connection="conn", settings=settings)

    assert job_id == "job-7"
    queue = DummyQueue.created[0]
    assert queue.name == "surprises"
    assert queue.connection == "conn"
    assert queue.jobs == [(deliver_surprise_rituals_job, ())]


def test_run_loop_sleeps_between_runs():
    calls = []
    sleeps = []

    runs = scheduler.run_loop(lambda: calls.append("run") or "id", interval=60, sleep=sleeps.append, max_runs=3)

    assert runs == 3
    assert calls == ["run", "run", "run"]
    assert sleeps == [60, 60]


def test_main_once_schedules_a_single_run(monkeypatch):
    seen = []
    monkeypatch.setattr(scheduler, "configure_logging", lambda: None)
    monkeypatch.setattr(scheduler, "schedule_surprise_jobs", lambda **kwargs: seen.append(kwargs) or "id")

    scheduler.main(["--once"])

    assert len(seen) == 1


def test_queue_override_shared_by_producer_and_worker(monkeypatch):
    DummyQueue.created = []
    monkeypatch.setenv("NOTIFICATIONS_QUEUE", "ritual-alerts")
    monkeypatch.setattr(push, "Queue", DummyQueue)
    monkeypatch.setattr(push.redis, "from_url", lambda url: "conn")
    monkeypatch.setattr(worker_main, "Queue", DummyQueue)

    push.enqueue_notification("u1", Notification(title="t", body="b"))
    worker_queues = worker_main._build_queues("conn")

    assert DummyQueue.created[0].name == "ritual-alerts"
    assert [queue.name for queue in worker_queues] == ["ritual-alerts", "surprises"]
