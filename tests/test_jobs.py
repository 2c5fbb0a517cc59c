import os
import sys
import threading

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from rq.exceptions import NoSuchJobError

from fieldtriage.errors import DuplicateRunError
from fieldtriage.extensions import JobRunner


def _runner(backend):
    runner = JobRunner()
    runner.backend = backend
    return runner


def test_sync_runs_inline_and_records_status(app):
    runner = _runner('sync')
    seen = []
    handle = runner.submit(seen.append, 'x', job_id='submission-1')
    assert seen == ['x']
    assert handle.to_dict() == {'id': 'submission-1', 'backend': 'sync', 'status': 'finished'}
    # resolved identities can run again
    runner.submit(seen.append, 'y', job_id='submission-1')
    assert seen == ['x', 'y']


def test_sync_failure_is_logged_not_raised(app):
    runner = _runner('sync')

    def boom():
        raise RuntimeError('nope')

    handle = runner.submit(boom, job_id='submission-2')
    assert handle.status == 'failed'
    assert runner.status('submission-2') == 'failed'


def test_sync_rejects_reentrant_duplicate(app):
    runner = _runner('sync')
    errors = []

    def resubmit():
        try:
            runner.submit(lambda: None, job_id='submission-3')
        except DuplicateRunError as e:
            errors.append(e.job_id)

    runner.submit(resubmit, job_id='submission-3')
    assert errors == ['submission-3']


def test_thread_backend_rejects_duplicates_until_resolved(app):
    runner = _runner('thread')
    release = threading.Event()
    started = threading.Event()

    def work():
        started.set()
        release.wait(5)

    handle = runner.submit(work, job_id='submission-4', job_timeout=30)
    assert handle.backend == 'thread'
    assert started.wait(5)
    with pytest.raises(DuplicateRunError):
        runner.submit(work, job_id='submission-4')
    release.set()
    assert runner.join('submission-4', timeout=5) == 'finished'

    handle = runner.submit(lambda: None, job_id='submission-4')
    assert runner.join(handle.id, timeout=5) == 'finished'


def test_finished_threads_are_released(app):
    runner = _runner('thread')
    for i in range(3):
        runner.submit(lambda: None, job_id=f'submission-t{i}')
        assert runner.join(f'submission-t{i}', timeout=5) == 'finished'
    assert runner._threads == {}


def test_resolved_statuses_are_capped(app):
    runner = _runner('sync')
    runner.keep_resolved = 2
    for i in range(5):
        runner.submit(lambda: None, job_id=f'submission-c{i}')
    assert runner.status('submission-c0') is None
    assert runner.status('submission-c2') is None
    assert runner.status('submission-c3') == 'finished'
    assert runner.status('submission-c4') == 'finished'
    assert len(runner._statuses) == 2

    # a resubmitted identity moves to the newest slot
    runner.submit(lambda: None, job_id='submission-c3')
    runner.submit(lambda: None, job_id='submission-c5')
    assert runner.status('submission-c3') == 'finished'
    assert runner.status('submission-c4') is None


def test_thread_jobs_see_app_context(app):
    from flask import current_app
    runner = _runner('thread')
    names = []
    runner.submit(lambda: names.append(current_app.name), job_id='ctx')
    runner.join('ctx', timeout=5)
    assert names == [app.name]


class FakeRQJob:
    registry = {}

    def __init__(self, job_id, status):
        self.id = job_id
        self.status = status
        self.deleted = False

    def get_status(self, refresh=True):
        return self.status

    def delete(self):
        self.deleted = True
        FakeRQJob.registry.pop(self.id, None)

    @classmethod
    def fetch(cls, job_id, connection=None):
        try:
            return cls.registry[job_id]
        except KeyError:
            raise NoSuchJobError(job_id) from None


class FakeQueue:
    def __init__(self, fail=False):
        self.fail = fail
        self.enqueued = []

    def enqueue(self, func, *args, job_id=None, **kwargs):
        if self.fail:
            raise RedisConnectionError('connection refused')
        self.enqueued.append((func, args, job_id, kwargs))
        job = FakeRQJob(job_id, 'queued')
        FakeRQJob.registry[job_id] = job
        return job


@pytest.fixture
def rq_runner(app, monkeypatch):
    FakeRQJob.registry = {}
    monkeypatch.setattr('fieldtriage.extensions.Job', FakeRQJob)
    runner = _runner('rq')
    runner.queue = FakeQueue()
    return runner


def test_rq_enqueues_with_identity(rq_runner):
    handle = rq_runner.submit(print, 7, job_id='submission-7', job_timeout=600)
    assert handle.to_dict() == {'id': 'submission-7', 'backend': 'rq', 'status': 'queued'}
    func, args, job_id, kwargs = rq_runner.queue.enqueued[0]
    assert (func, args, job_id, kwargs) == (print, (7,), 'submission-7', {'job_timeout': 600})
    assert rq_runner.status('submission-7') == 'queued'
    assert rq_runner.status('unknown') is None


def test_rq_rejects_unresolved_duplicate(rq_runner):
    rq_runner.submit(print, job_id='submission-8')
    with pytest.raises(DuplicateRunError):
        rq_runner.submit(print, job_id='submission-8')
    FakeRQJob.registry['submission-8'].status = 'started'
    with pytest.raises(DuplicateRunError):
        rq_runner.submit(print, job_id='submission-8')
    assert len(rq_runner.queue.enqueued) == 1


def test_rq_replaces_resolved_job(rq_runner):
    rq_runner.submit(print, job_id='submission-9')
    old = FakeRQJob.registry['submission-9']
    old.status = 'failed'
    rq_runner.submit(print, job_id='submission-9')
    assert old.deleted
    assert len(rq_runner.queue.enqueued) == 2


def test_rq_outage_falls_back_to_thread(rq_runner):
    rq_runner.queue = FakeQueue(fail=True)
    seen = []
    handle = rq_runner.submit(seen.append, 'ran', job_id='submission-10', job_timeout=600)
    assert handle.backend == 'thread'
    assert rq_runner.join('submission-10', timeout=5) == 'finished'
    assert seen == ['ran']


def test_init_app_reads_backend(app):
    runner = JobRunner()
    app.config['JOB_BACKEND'] = 'thread'
    runner.init_app(app)
    assert runner.backend == 'thread'
    assert runner.queue is None
