from flask import has_app_context


def in_app_context(func, *args, **kwargs):
    """Run a job body inside a Flask app context.

    RQ workers import job functions without an app; the thread and sync
    backends already run inside one.
    """
    if has_app_context():
        return func(*args, **kwargs)
    # lazy import to avoid circular imports at module import time
    from fieldtriage import create_app
    app = create_app()
    with app.app_context():
        return func(*args, **kwargs)
