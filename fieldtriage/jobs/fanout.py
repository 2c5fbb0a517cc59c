from flask import current_app

from ..errors import InvalidTransition


class FanOut:
    """Create one Delivery per available reviewer and mark the submission notified.

    Every available reviewer gets every completed submission; specialty is
    not used for routing. Failures propagate to the caller, which keeps the
    submission at ``completed``.
    """

    channel = 'both'

    def __init__(self, store, dispatch=None):
        self.store = store
        # optional callable(delivery_id) that sends the messages
        self.dispatch = dispatch

    def run(self, submission_id: int, summary: str = None):
        sub = self.store.get(submission_id)
        if sub is None or sub.status != 'completed':
            raise InvalidTransition(submission_id, 'notified', sub.status if sub else None)
        reviewers = self.store.available_reviewers()
        created = self.store.create_deliveries(submission_id, [r.id for r in reviewers], channel=self.channel)
        self.store.update(submission_id, {}, 'notified')
        delivery_ids = [d.id for d in created]
        current_app.logger.info(
            'Submission %s: completed -> notified, %d delivery row(s) for %d available reviewer(s); summary=%r',
            submission_id, len(delivery_ids), len(reviewers), (summary or '')[:80],
        )
        if self.dispatch is not None:
            for delivery_id in delivery_ids:
                try:
                    self.dispatch(delivery_id)
                except Exception:
                    current_app.logger.exception('Failed to enqueue dispatch for delivery %s', delivery_id)
        return delivery_ids
