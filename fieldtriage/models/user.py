from ..extensions import db
from .base import TimestampMixin, iso

ROLES = ("responder", "reviewer")


class User(db.Model, TimestampMixin):
    """Field responders own submissions; reviewers receive deliveries."""
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    role = db.Column(db.String(20), nullable=False, index=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=False)
    email = db.Column(db.String(255), unique=True)
    phone = db.Column(db.String(40))
    specialty = db.Column(db.String(120))  # informational only
    is_available = db.Column(db.Boolean, nullable=False, default=True, index=True)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def to_dict(self):
        return {
            "id": self.id,
            "role": self.role,
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "specialty": self.specialty,
            "is_available": bool(self.is_available),
            "created_at": iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<User id={self.id} role={self.role} username={self.username!r}>"
