import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fieldtriage import create_app
from fieldtriage.extensions import JobRunner, db, job_runner


def _build(tmp_path, name):
    return create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / name}",
        'JOB_BACKEND': 'sync',
    })


def test_app_can_be_built_repeatedly(tmp_path):
    for name in ('first.db', 'second.db'):
        app = _build(tmp_path, name)
        r = app.test_client().get('/health')
        assert r.status_code == 200
        assert r.get_json() == {"status": "ok", "job_backend": "sync"}
        with app.app_context():
            db.drop_all()


def test_job_runner_survives_blueprint_imports(tmp_path):
    _build(tmp_path, 'runner.db')
    import fieldtriage
    import fieldtriage.jobs.pipeline  # noqa: F401
    assert isinstance(fieldtriage.job_runner, JobRunner)
    assert fieldtriage.job_runner is job_runner
    assert fieldtriage.jobs.pipeline.job_runner is job_runner
