"""Read/write interface over submissions, deliveries and reviewers.

Every status change is a single conditional UPDATE guarded by the statuses
that may legally precede it, so concurrent writers cannot regress a row and
only one run can claim a pending submission.
"""

from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from ..errors import InvalidTransition, PersistenceError
from ..extensions import db
from ..models.delivery import Delivery
from ..models.submission import ANALYSIS_FIELDS, Submission
from ..models.user import User

# status -> statuses it may be entered from
STATUS_FLOW = {
    "pending": (),
    "processing": ("pending",),
    "completed": ("processing",),
    "notified": ("completed",),
    "error": ("pending", "processing"),
}
TERMINAL_STATUSES = ("notified", "error")

WRITABLE_FIELDS = set(ANALYSIS_FIELDS) | {"transcript", "error"}

SORTS = ("newest", "oldest", "priority")


def allowed_predecessors(status):
    try:
        return STATUS_FLOW[status]
    except KeyError:
        raise ValueError(f"unknown status {status!r}") from None


def _submission_order(sort):
    if sort == "oldest":
        return (Submission.created_at.asc(), Submission.id.asc())
    if sort == "priority":
        return (
            Submission.risk_score.desc().nullslast(),
            Submission.priority_level.asc().nullslast(),
            Submission.created_at.desc(),
            Submission.id.desc(),
        )
    return (Submission.created_at.desc(), Submission.id.desc())


def _delivery_order(sort):
    if sort == "oldest":
        return (Delivery.sent_at.asc(), Delivery.id.asc())
    if sort == "priority":
        return (
            Submission.risk_score.desc().nullslast(),
            Submission.priority_level.asc().nullslast(),
            Delivery.sent_at.desc(),
            Delivery.id.desc(),
        )
    return (Delivery.sent_at.desc(), Delivery.id.desc())


class RecordStore:
    def __init__(self, session=None):
        self.session = session or db.session

    def _commit(self, what):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"{what} failed: {e}") from e

    # submissions

    def create(self, responder_id, context, audio_url) -> Submission:
        sub = Submission(responder_id=responder_id, context=context or "", audio_url=audio_url, status="pending")
        self.session.add(sub)
        self._commit("create submission")
        return sub

    def get(self, submission_id):
        return self.session.get(Submission, submission_id)

    def _transition(self, submission_id, fields, status) -> bool:
        unknown = set(fields) - WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"not writable: {sorted(unknown)}")
        stmt = (
            db.update(Submission)
            .where(Submission.id == submission_id, Submission.status.in_(allowed_predecessors(status)))
            .values(status=status, **fields)
            .execution_options(synchronize_session=False)
        )
        try:
            res = self.session.execute(stmt)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"update of submission {submission_id} failed: {e}") from e
        self._commit(f"update of submission {submission_id}")
        return res.rowcount == 1

    def claim(self, submission_id) -> bool:
        """pending -> processing; False when another run got there first."""
        return self._transition(submission_id, {}, "processing")

    def update(self, submission_id, fields, status):
        """Write ``fields`` and ``status`` together in one statement."""
        if not self._transition(submission_id, fields or {}, status):
            current = self.get(submission_id)
            raise InvalidTransition(submission_id, status, current.status if current else None)

    def set_job_id(self, submission_id, job_id):
        self.session.execute(
            db.update(Submission)
            .where(Submission.id == submission_id)
            .values(job_id=job_id)
            .execution_options(synchronize_session=False)
        )
        self._commit(f"job id of submission {submission_id}")

    def list_by_owner(self, responder_id, sort="newest"):
        return Submission.query.filter_by(responder_id=responder_id).order_by(*_submission_order(sort)).all()

    # reviewers and deliveries

    def get_user(self, user_id):
        return self.session.get(User, user_id)

    def available_reviewers(self):
        return User.query.filter_by(role="reviewer", is_available=True).order_by(User.id.asc()).all()

    def set_availability(self, reviewer_id, is_available):
        user = self.get_user(reviewer_id)
        if user is None or user.role != "reviewer":
            return None
        user.is_available = bool(is_available)
        self._commit(f"availability of reviewer {reviewer_id}")
        return user

    def create_deliveries(self, submission_id, reviewer_ids, channel="both"):
        """One Delivery per reviewer not already holding one for this submission."""
        existing = {
            rid for (rid,) in self.session.query(Delivery.reviewer_id).filter_by(submission_id=submission_id)
        }
        created = []
        for rid in dict.fromkeys(reviewer_ids):
            if rid in existing:
                continue
            d = Delivery(submission_id=submission_id, reviewer_id=rid, channel=channel)
            self.session.add(d)
            created.append(d)
        self._commit(f"deliveries for submission {submission_id}")
        return created

    def get_delivery(self, delivery_id):
        return self.session.get(Delivery, delivery_id)

    def list_deliveries_by_reviewer(self, reviewer_id, sort="newest"):
        return (
            Delivery.query.join(Submission, Delivery.submission_id == Submission.id)
            .filter(Delivery.reviewer_id == reviewer_id)
            .order_by(*_delivery_order(sort))
            .all()
        )

    def list_deliveries_for_submission(self, submission_id):
        return Delivery.query.filter_by(submission_id=submission_id).order_by(Delivery.id.asc()).all()

    def mark_read(self, delivery_id, reviewer_id=None):
        d = self.get_delivery(delivery_id)
        if d is None or (reviewer_id is not None and d.reviewer_id != reviewer_id):
            return None
        if d.read_at is None:
            d.read_at = datetime.utcnow()
            self._commit(f"read mark of delivery {delivery_id}")
        return d

    def record_response(self, submission_id, reviewer_id, response):
        d = Delivery.query.filter_by(submission_id=submission_id, reviewer_id=reviewer_id).first()
        if d is None:
            return None
        d.response = response
        self._commit(f"response on delivery {d.id}")
        return d

    def record_dispatch(self, delivery_id, delivered, error=None):
        d = self.get_delivery(delivery_id)
        if d is None:
            return None
        d.delivered = bool(delivered)
        d.last_error = error
        self._commit(f"dispatch result of delivery {delivery_id}")
        return d
