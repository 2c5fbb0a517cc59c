"""Worker for pipeline and dispatch jobs queued by the `rq` job backend.

Usage:
  export JOB_BACKEND=rq REDIS_URL=redis://localhost:6379/0
  python scripts/run_rq_worker.py            # long-running
  python scripts/run_rq_worker.py --burst    # drain the queue, then exit

Job functions wrap themselves in an app context, but the worker builds the
app up front so a bad DATABASE_URL or REDIS_URL fails at startup.
"""

import os
import sys

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import redis
from rq import Queue, Worker

from fieldtriage import create_app


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    burst = '--burst' in argv
    app = create_app()
    conn = redis.from_url(app.config['REDIS_URL'])
    queue_name = app.config.get('JOB_QUEUE', 'default')
    with app.app_context():
        worker = Worker([Queue(queue_name, connection=conn)], connection=conn)
        app.logger.info('Worker pid=%s listening on %r (burst=%s)', os.getpid(), queue_name, burst)
        try:
            worker.work(burst=burst, with_scheduler=not burst, logging_level=app.config.get('LOG_LEVEL', 'INFO'))
        finally:
            app.logger.info('Worker pid=%s stopped', os.getpid())


if __name__ == '__main__':
    main()
