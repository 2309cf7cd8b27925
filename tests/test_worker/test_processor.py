"""
Tests for JobExecutor dispatch and the JobProcessor loops.

Most tests drive process_next_job() directly with a FakeClock, one tick at
a time. The lifecycle tests at the bottom start the real threads with a
tiny poll interval.
"""

import json
import threading
import time
from datetime import timedelta

import pytest

from jobs.registry import HandlerRegistry, RegistryFrozenError
from models.enums import JobStatus
from worker.processor import JobProcessor


def _always_fail(payload):
    raise RuntimeError("handler exploded")


@pytest.fixture
def processor(store):
    return JobProcessor(store, poll_interval=0.01, maintenance_interval=3600)


def test_idle_tick_returns_false(processor):
    assert processor.process_next_job() is False


def test_successful_job_completes(processor, store):
    seen = []
    processor.register_handler("greet", lambda payload: seen.append(json.loads(payload)))
    job_id = processor.enqueue("greet", {"name": "ada"})

    assert processor.process_next_job() is True

    job = store.get(job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.attempts == 1
    assert seen == [{"name": "ada"}]


def test_one_job_per_tick(processor, store):
    processor.register_handler("noop", lambda payload: None)
    first = processor.enqueue("noop")
    second = processor.enqueue("noop")

    processor.process_next_job()

    assert store.get(first).status == JobStatus.COMPLETED
    assert store.get(second).status == JobStatus.PENDING


def test_earlier_scheduled_job_runs_first(processor, store, clock):
    order = []
    processor.register_handler("track", lambda payload: order.append(json.loads(payload)))
    store.enqueue("track", "B", scheduled_at=clock.now - timedelta(seconds=1))
    store.enqueue("track", "A", scheduled_at=clock.now - timedelta(seconds=2))

    processor.process_next_job()
    processor.process_next_job()

    assert order == ["A", "B"]


def test_unknown_job_type_fails_without_retry(processor, store):
    job_id = processor.enqueue("does_not_exist", {"x": 1})

    processor.process_next_job()

    job = store.get(job_id)
    assert job.status == JobStatus.FAILED
    assert job.attempts == 1
    assert job.error == "no handler registered for job type: does_not_exist"


def test_always_failing_job_fails_after_max_attempts(processor, store, clock):
    processor.register_handler("broken", _always_fail)
    job_id = processor.enqueue("broken")

    leases = 0
    while store.get(job_id).status != JobStatus.FAILED:
        assert processor.process_next_job() is True
        leases += 1
        clock.advance(hours=1)

    job = store.get(job_id)
    assert leases == 3
    assert job.attempts == job.max_attempts == 3
    assert job.error == "handler exploded"


def test_retry_delays_follow_schedule(processor, store, clock):
    processor.register_handler("broken", _always_fail)
    job_id = store.enqueue("broken", max_attempts=5)

    for expected in (1, 5, 30, 30):
        processor.process_next_job()
        job = store.get(job_id)
        assert job.status == JobStatus.PENDING
        assert job.scheduled_at == clock.now + timedelta(minutes=expected)

        # not eligible a second early
        clock.advance(minutes=expected, seconds=-1)
        assert processor.process_next_job() is False
        clock.advance(seconds=1)

    processor.process_next_job()
    job = store.get(job_id)
    assert job.status == JobStatus.FAILED
    assert job.attempts == 5


def test_retried_job_then_succeeds(processor, store, clock):
    calls = []

    def flaky(payload):
        calls.append(payload)
        if len(calls) == 1:
            raise ConnectionError("smtp down")

    processor.register_handler("email", flaky)
    job_id = processor.enqueue("email")

    processor.process_next_job()
    assert store.get(job_id).error == "smtp down"

    clock.advance(minutes=1)
    processor.process_next_job()

    job = store.get(job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.attempts == 2


def test_base_exception_from_handler_is_retried(processor, store, clock):
    def bail(payload):
        raise SystemExit(1)

    processor.register_handler("bail", bail)
    job_id = processor.enqueue("bail")

    assert processor.process_next_job() is True

    job = store.get(job_id)
    assert job.status == JobStatus.PENDING
    assert job.scheduled_at == clock.now + timedelta(minutes=1)


def test_store_error_does_not_escape_tick(store, monkeypatch):
    processor = JobProcessor(store)

    def broken_lease():
        raise RuntimeError("disk I/O error")

    monkeypatch.setattr(store, "lease_next_ready", broken_lease)
    assert processor.process_next_job() is False


def test_tick_reclaims_expired_lease(store, clock):
    processor = JobProcessor(store, lease_timeout=60)
    processor.register_handler("noop", lambda payload: None)
    job_id = store.enqueue("noop")
    store.lease_next_ready()  # a crashed processor's lease

    clock.advance(minutes=2)
    assert processor.process_next_job() is True

    job = store.get(job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.attempts == 2


def test_builtin_handlers_preregistered(processor):
    assert processor.registry.job_types() == ["cleanup_sessions", "cleanup_usage_events"]


def test_custom_registry_is_used_as_given(store):
    registry = HandlerRegistry()
    processor = JobProcessor(store, registry=registry)
    assert processor.registry is registry
    assert len(registry) == 0


def test_enqueue_maintenance_jobs(processor, store):
    ids = processor.enqueue_maintenance_jobs()
    assert [store.get(i).type for i in ids] == ["cleanup_sessions", "cleanup_usage_events"]

    assert processor.process_next_job() is True
    assert processor.process_next_job() is True
    assert all(store.get(i).status == JobStatus.COMPLETED for i in ids)


# ── Thread lifecycle ────────────────────────────────────────────


def test_start_runs_jobs_and_maintenance(processor, store):
    done = threading.Event()
    processor.register_handler("ping", lambda payload: done.set())
    job_id = processor.enqueue("ping")

    processor.start()
    try:
        assert done.wait(5)
    finally:
        processor.stop(timeout=5)

    assert store.get(job_id).status == JobStatus.COMPLETED
    # maintenance jobs were enqueued at startup
    types = {store.get(i).type for i in range(job_id + 1, job_id + 3)}
    assert types == {"cleanup_sessions", "cleanup_usage_events"}


def test_handler_system_exit_does_not_kill_poll_loop(processor, store):
    done = threading.Event()

    def bail(payload):
        raise SystemExit(1)

    processor.register_handler("bail", bail)
    processor.register_handler("ping", lambda payload: done.set())
    bad_id = processor.enqueue("bail")
    good_id = processor.enqueue("ping")

    processor.start()
    try:
        assert done.wait(5)
        assert processor.running
    finally:
        processor.stop(timeout=5)

    bad = store.get(bad_id)
    assert bad.status == JobStatus.PENDING
    assert bad.attempts == 1
    assert bad.error == "1"
    assert store.get(good_id).status == JobStatus.COMPLETED


def test_running_reflects_thread_state(processor):
    assert not processor.running
    processor.start()
    try:
        assert processor.running
    finally:
        processor.stop(timeout=5)
    assert not processor.running


def test_register_after_start_raises(processor):
    processor.start()
    try:
        with pytest.raises(RegistryFrozenError):
            processor.register_handler("late", lambda payload: None)
    finally:
        processor.stop(timeout=5)


def test_start_twice_raises(processor):
    processor.start()
    try:
        with pytest.raises(RuntimeError):
            processor.start()
    finally:
        processor.stop(timeout=5)


def test_no_lease_after_stop(processor, store):
    processor.register_handler("noop", lambda payload: None)
    processor.start()
    processor.stop(timeout=5)
    assert not processor.running

    job_id = processor.enqueue("noop")
    time.sleep(0.1)

    assert store.get(job_id).status == JobStatus.PENDING


def test_in_flight_job_finishes_before_stop_returns(processor, store):
    started = threading.Event()
    release = threading.Event()

    def slow(payload):
        started.set()
        release.wait(5)

    processor.register_handler("slow", slow)
    job_id = processor.enqueue("slow")

    processor.start()
    assert started.wait(5)

    stopper = threading.Thread(target=processor.stop, kwargs={"timeout": 5})
    stopper.start()
    time.sleep(0.05)
    assert store.get(job_id).status == JobStatus.RUNNING

    release.set()
    stopper.join(5)

    assert store.get(job_id).status == JobStatus.COMPLETED
    # nothing else was leased once stop was signalled
    running_or_done = [
        store.get(i).status for i in range(job_id + 1, job_id + 3)
    ]
    assert running_or_done == [JobStatus.PENDING, JobStatus.PENDING]
