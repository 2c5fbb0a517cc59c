from flask import current_app

from ..errors import DuplicateRunError
from ..extensions import job_runner
from ..models.delivery import CHANNELS
from ..services.messaging import render_email, render_sms, send_email, send_sms
from ..services.record_store import RecordStore
from . import in_app_context


def _run_dispatch(delivery_id: int, channel: str = None):
    store = RecordStore()
    d = store.get_delivery(delivery_id)
    if d is None:
        current_app.logger.warning('Delivery %s not found; nothing to dispatch', delivery_id)
        return None
    channel = channel or d.channel
    if channel not in CHANNELS:
        raise ValueError(f"unknown channel {channel!r}")
    submission, reviewer = d.submission, d.reviewer

    # channel outcomes are recorded on the delivery only, never on the submission
    errors = []
    if channel in ('sms', 'both'):
        try:
            send_sms(reviewer.phone, render_sms(submission, reviewer))
        except Exception as e:
            current_app.logger.exception('SMS for delivery %s failed', delivery_id)
            errors.append(f"sms: {e}")
    if channel in ('email', 'both'):
        try:
            subject, html = render_email(submission, reviewer)
            send_email(reviewer.email, subject, html)
        except Exception as e:
            current_app.logger.exception('Email for delivery %s failed', delivery_id)
            errors.append(f"email: {e}")

    store.record_dispatch(delivery_id, delivered=not errors, error='; '.join(errors) or None)
    return d.id


def dispatch_delivery(delivery_id: int, channel: str = None):
    """Job entrypoint: send one delivery over its channel(s)."""
    return in_app_context(_run_dispatch, delivery_id, channel)


def enqueue_dispatch(delivery_id: int, channel: str = None):
    try:
        return job_runner.submit(dispatch_delivery, delivery_id, channel, job_id=f"delivery-{delivery_id}")
    except DuplicateRunError:
        current_app.logger.info('Dispatch for delivery %s already queued', delivery_id)
        return None
