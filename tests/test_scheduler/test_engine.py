"""
Tests for the SchedulerEngine tick: admission of due PENDING jobs and
reclaim of stalled RUNNING ones.

RecordingPool stands in for the thread pool so a tick can be checked
without any jobs actually running.
"""

import time
import uuid

from models.enums import ErrorCode, JobState
from models.job import GenerationJob
from scheduler.engine import SchedulerEngine


class RecordingPool:

    def __init__(self, size: int, busy=()):
        self.size = size
        self.busy = set(busy)
        self.submitted: list[uuid.UUID] = []

    def free_slots(self) -> int:
        return self.size - len(self.busy) - len(self.submitted)

    def in_flight(self) -> frozenset:
        return frozenset(self.busy | set(self.submitted))

    def submit(self, job_id) -> bool:
        if self.free_slots() <= 0 or job_id in self.in_flight():
            return False
        self.submitted.append(job_id)
        return True


def _engine(store, pool, retry_handler, running_timeout=120.0):
    return SchedulerEngine(store, pool, retry_handler, poll_interval=0.01, running_timeout=running_timeout)


def test_admits_oldest_jobs_up_to_free_slots(store, make_job, retry_handler):
    jobs = [make_job() for _ in range(4)]
    pool = RecordingPool(size=3)

    admitted = _engine(store, pool, retry_handler).admit_pending()

    assert admitted == 3
    assert pool.submitted == [j.id for j in jobs[:3]]


def test_admission_does_not_change_state(store, make_job, retry_handler):
    """Admission only hands ids to the pool; the executor's CAS does the claim."""
    job = make_job()

    _engine(store, RecordingPool(size=1), retry_handler).admit_pending()

    assert store.get(job.id).state == JobState.PENDING.value


def test_full_pool_admits_nothing(store, make_job, retry_handler):
    make_job()
    pool = RecordingPool(size=1, busy={uuid.uuid4()})

    assert _engine(store, pool, retry_handler).admit_pending() == 0
    assert pool.submitted == []


def test_in_flight_jobs_are_not_readmitted(store, make_job, retry_handler):
    first, second = make_job(), make_job()
    pool = RecordingPool(size=3, busy={first.id})

    _engine(store, pool, retry_handler).admit_pending()

    assert pool.submitted == [second.id]


def test_reclaims_stalled_running_job(store, make_job, retry_handler):
    job = make_job(max_attempts=3)
    store.transition(job.id, JobState.PENDING, JobState.RUNNING, {"attempt": GenerationJob.attempt + 1})

    reclaimed = _engine(store, RecordingPool(size=1), retry_handler, running_timeout=0).reclaim_stalled()

    assert reclaimed == 1
    requeued = store.get(job.id)
    assert requeued.state == JobState.PENDING.value
    assert requeued.last_error_code == ErrorCode.TIMED_OUT.value


def test_reclaim_keeps_storage_failure_cause(store, make_job, retry_handler):
    """A job left RUNNING after a storage failure is exhausted as STORAGE_FAILURE."""
    job = make_job(max_attempts=1)
    store.transition(job.id, JobState.PENDING, JobState.RUNNING, {"attempt": GenerationJob.attempt + 1})
    store.record_error(job.id, JobState.RUNNING, ErrorCode.STORAGE_FAILURE, "bucket down")

    _engine(store, RecordingPool(size=1), retry_handler, running_timeout=0).reclaim_stalled()

    failed = store.get(job.id)
    assert failed.state == JobState.FAILED.value
    assert failed.error_code == ErrorCode.STORAGE_FAILURE.value
    assert "bucket down" in failed.error_message


def test_reclaim_skips_fresh_and_local_jobs(store, make_job, retry_handler):
    fresh, local = make_job(), make_job()
    for job in (fresh, local):
        store.transition(job.id, JobState.PENDING, JobState.RUNNING, {"attempt": 1})

    pool = RecordingPool(size=2, busy={local.id})
    assert _engine(store, pool, retry_handler, running_timeout=120).reclaim_stalled() == 0
    assert _engine(store, pool, retry_handler, running_timeout=0).reclaim_stalled() == 1
    assert store.get(local.id).state == JobState.RUNNING.value


def test_loop_runs_in_background(store, make_job, retry_handler):
    job = make_job()
    pool = RecordingPool(size=1)
    engine = _engine(store, pool, retry_handler)

    engine.start()
    deadline = time.monotonic() + 2
    while not pool.submitted and time.monotonic() < deadline:
        time.sleep(0.01)
    engine.stop()

    assert pool.submitted == [job.id]
