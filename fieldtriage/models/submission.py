from ..extensions import db
from .base import TimestampMixin, iso

# pending -> processing -> completed -> notified; error from pending or processing
STATUSES = ("pending", "processing", "completed", "notified", "error")

ANALYSIS_FIELDS = (
    "chief_complaint",
    "vital_signs",
    "symptoms",
    "recommended_actions",
    "critical_info",
    "summary",
    "risk_score",
    "priority_level",
    "urgency_level",
)


class Submission(db.Model, TimestampMixin):
    __tablename__ = "submissions"
    id = db.Column(db.Integer, primary_key=True)
    responder_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    context = db.Column(db.Text)  # free-text patient info typed by the responder
    audio_url = db.Column(db.String(512), nullable=False)
    transcript = db.Column(db.Text)

    # structured assessment, null until analysis completes
    chief_complaint = db.Column(db.Text)
    vital_signs = db.Column(db.Text)
    symptoms = db.Column(db.Text)
    recommended_actions = db.Column(db.Text)
    critical_info = db.Column(db.Text)
    summary = db.Column(db.Text)
    risk_score = db.Column(db.Integer)
    priority_level = db.Column(db.Integer)
    urgency_level = db.Column(db.String(20))

    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    error = db.Column(db.Text, nullable=True)
    job_id = db.Column(db.String(64))

    responder = db.relationship("User", lazy="joined")

    __table_args__ = (
        db.CheckConstraint("risk_score IS NULL OR (risk_score >= 0 AND risk_score <= 10)", name="ck_submissions_risk"),
        db.CheckConstraint("priority_level IS NULL OR (priority_level >= 1 AND priority_level <= 5)", name="ck_submissions_priority"),
    )

    def to_dict(self):
        out = {
            "id": self.id,
            "responder_id": self.responder_id,
            "context": self.context,
            "audio_url": self.audio_url,
            "transcript": self.transcript,
            "status": self.status,
            "error": self.error,
            "job_id": self.job_id,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        for f in ANALYSIS_FIELDS:
            out[f] = getattr(self, f)
        if self.responder is not None:
            out["responder_first_name"] = self.responder.first_name
            out["responder_last_name"] = self.responder.last_name
        return out

    def __repr__(self) -> str:
        return f"<Submission id={self.id} status={self.status}>"
