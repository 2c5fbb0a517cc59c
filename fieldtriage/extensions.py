import threading
from collections import OrderedDict
from dataclasses import dataclass
from uuid import uuid4

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from redis import Redis
from redis.exceptions import RedisError
from rq import Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job, JobStatus

from .errors import DuplicateRunError

# kwargs understood by RQ's enqueue but not by the job function itself
RQ_KEYS = {'job_timeout', 'timeout', 'at_front', 'depends_on', 'result_ttl', 'ttl', 'meta', 'description'}

RESOLVED_STATUSES = {'finished', 'failed', 'stopped', 'canceled'}

# resolved job statuses remembered for status lookups
KEEP_RESOLVED = 1000


def _status_value(status):
    if status is None:
        return None
    return getattr(status, 'value', status)


@dataclass
class JobHandle:
    id: str
    backend: str
    status: str

    def to_dict(self):
        return {'id': self.id, 'backend': self.backend, 'status': self.status}


class JobRunner:
    """Runs job functions in the background under an explicit identity.

    Backends:
      - ``rq``: enqueue to Redis; a worker (scripts/run_rq_worker.py) executes.
      - ``thread``: daemon thread inside a pushed app context.
      - ``sync``: inline, used by tests and scripts.

    A second submit for an identity whose job has not resolved raises
    ``DuplicateRunError``. If Redis is unreachable the ``rq`` backend falls
    back to ``thread`` so callers never block on the job.
    """

    def __init__(self):
        self.redis = None
        self.queue = None
        self.backend = 'sync'
        self.keep_resolved = KEEP_RESOLVED
        self._lock = threading.Lock()
        self._active = set()
        self._statuses = {}
        self._resolved = OrderedDict()
        self._threads = {}

    def init_app(self, app):
        self.backend = app.config.get('JOB_BACKEND', 'rq')
        self.redis = None
        self.queue = None
        self._active = set()
        self._statuses = {}
        self._resolved = OrderedDict()
        self._threads = {}
        if self.backend == 'rq':
            try:
                self.redis = Redis.from_url(app.config.get("REDIS_URL"))
                self.queue = Queue(app.config.get('JOB_QUEUE', 'default'), connection=self.redis)
            except Exception:
                # no usable Redis configuration: run jobs in-process instead
                app.logger.exception('Redis/RQ init failed, falling back to thread execution')
                self.backend = 'thread'
        app.extensions['job_runner'] = self

    def submit(self, func, *args, job_id=None, **kwargs):
        job_id = job_id or uuid4().hex
        if self.backend == 'rq' and self.queue is not None:
            try:
                return self._submit_rq(func, args, kwargs, job_id)
            except RedisError:
                current_app.logger.exception('RQ enqueue failed, falling back to thread execution')
        safe_kwargs = {k: v for k, v in kwargs.items() if k not in RQ_KEYS}
        self._reserve(job_id)
        if self.backend == 'sync':
            self._execute(func, args, safe_kwargs, job_id)
            return JobHandle(job_id, 'sync', self._statuses.get(job_id))
        return self._start_thread(func, args, safe_kwargs, job_id)

    def status(self, job_id):
        if job_id in self._statuses:
            return self._statuses[job_id]
        if self.queue is None:
            return None
        try:
            return _status_value(Job.fetch(job_id, connection=self.redis).get_status())
        except NoSuchJobError:
            return None
        except RedisError:
            current_app.logger.exception('Could not fetch status for job %s', job_id)
            return None

    def join(self, job_id, timeout=None):
        """Wait for a thread-backed job; no-op for other backends."""
        t = self._threads.get(job_id)
        if t is not None:
            t.join(timeout)
        return self.status(job_id)

    def _submit_rq(self, func, args, kwargs, job_id):
        try:
            existing = Job.fetch(job_id, connection=self.redis)
        except NoSuchJobError:
            existing = None
        if existing is not None:
            if _status_value(existing.get_status()) not in RESOLVED_STATUSES:
                raise DuplicateRunError(job_id)
            existing.delete()
        job = self.queue.enqueue(func, *args, job_id=job_id, **kwargs)
        return JobHandle(job.id, 'rq', _status_value(job.get_status(refresh=False)) or JobStatus.QUEUED.value)

    def _reserve(self, job_id):
        with self._lock:
            if job_id in self._active:
                raise DuplicateRunError(job_id)
            self._active.add(job_id)
            self._resolved.pop(job_id, None)
            self._statuses[job_id] = 'queued'

    def _execute(self, func, args, kwargs, job_id):
        self._statuses[job_id] = 'started'
        final = 'finished'
        try:
            func(*args, **kwargs)
        except Exception:
            final = 'failed'
            current_app.logger.exception('Job %s failed', job_id)
        finally:
            with self._lock:
                self._statuses[job_id] = final
                self._active.discard(job_id)
                self._threads.pop(job_id, None)
                self._remember_resolved(job_id)

    def _remember_resolved(self, job_id):
        # caller holds self._lock
        self._resolved[job_id] = None
        while len(self._resolved) > self.keep_resolved:
            old, _ = self._resolved.popitem(last=False)
            if old not in self._active:
                self._statuses.pop(old, None)

    def _start_thread(self, func, args, kwargs, job_id):
        app = current_app._get_current_object()

        def target():
            with app.app_context():
                self._execute(func, args, kwargs, job_id)

        t = threading.Thread(target=target, name=f'job-{job_id}', daemon=True)
        self._threads[job_id] = t
        t.start()
        return JobHandle(job_id, 'thread', 'queued')


db = SQLAlchemy()
job_runner = JobRunner()
