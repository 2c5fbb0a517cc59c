from datetime import datetime

from ..extensions import db
from .base import iso

CHANNELS = ("sms", "email", "both")


class Delivery(db.Model):
    __tablename__ = "deliveries"
    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(db.Integer, db.ForeignKey("submissions.id"), nullable=False, index=True)
    reviewer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    channel = db.Column(db.String(10), nullable=False, default="both")
    sent_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    delivered = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime)
    response = db.Column(db.Text)
    # last channel failure, if any
    last_error = db.Column(db.Text)

    submission = db.relationship("Submission")
    reviewer = db.relationship("User")

    __table_args__ = (
        db.UniqueConstraint("submission_id", "reviewer_id", name="uq_deliveries_submission_reviewer"),
    )

    def to_dict(self, with_submission=False):
        out = {
            "id": self.id,
            "submission_id": self.submission_id,
            "reviewer_id": self.reviewer_id,
            "channel": self.channel,
            "sent_at": iso(self.sent_at),
            "delivered": bool(self.delivered),
            "read_at": iso(self.read_at),
            "response": self.response,
            "last_error": self.last_error,
        }
        if with_submission and self.submission is not None:
            s = self.submission
            out.update({
                "context": s.context,
                "summary": s.summary,
                "urgency_level": s.urgency_level,
                "risk_score": s.risk_score,
                "priority_level": s.priority_level,
                "chief_complaint": s.chief_complaint,
                "vital_signs": s.vital_signs,
                "symptoms": s.symptoms,
                "recommended_actions": s.recommended_actions,
                "critical_info": s.critical_info,
                "submission_status": s.status,
                "submission_time": iso(s.created_at),
            })
            if s.responder is not None:
                out["responder_first_name"] = s.responder.first_name
                out["responder_last_name"] = s.responder.last_name
        return out

    def __repr__(self) -> str:
        return f"<Delivery id={self.id} submission_id={self.submission_id} reviewer_id={self.reviewer_id}>"
