import os

from flask import Flask, jsonify

from .extensions import db, job_runner


def create_app(test_config=None):
    """App factory.

    ``test_config`` overrides values loaded from ``config.Config``.
    Tables are created on startup unless ``SKIP_CREATE_ALL`` is set.
    """
    app = Flask(__name__)
    app.config.from_object('config.Config')
    if test_config:
        app.config.update(test_config)
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(app)
    job_runner.init_app(app)

    from . import models  # noqa: F401  register tables on db.metadata
    from .api import register_error_handlers
    from .api.deliveries import bp as deliveries_bp
    from .api.reviewers import bp as reviewers_bp
    from .api.submissions import bp as submissions_bp

    app.register_blueprint(submissions_bp)
    app.register_blueprint(reviewers_bp)
    app.register_blueprint(deliveries_bp)
    register_error_handlers(app)

    @app.get('/health')
    def health():
        return jsonify({"status": "ok", "job_backend": job_runner.backend})

    if not os.environ.get('SKIP_CREATE_ALL'):
        with app.app_context():
            db.create_all()

    return app
