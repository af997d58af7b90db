"""
INDOR Desk
Client (patient) model.
"""

from datetime import date, datetime, timezone

from indor_desk.models import db
from indor_desk.models.catalog import _uuid


def _utcnow():
    return datetime.now(timezone.utc)


def age_on(birth_date: date | None, today: date | None = None) -> int | None:
    """Whole years between ``birth_date`` and ``today`` (None when unknown)."""
    if birth_date is None:
        return None
    today = today or date.today()
    years = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years


class Client(db.Model):
    """
    A client tracked through the evaluation workflow.

    Progress records (client_stages, client_activities) and notes hang off
    this row and are removed with it.
    """

    __tablename__ = "clients"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False, index=True)
    birth_date = db.Column(db.Date, nullable=True)
    gender = db.Column(db.String(20), nullable=True)
    guardian_name = db.Column(db.String(200), nullable=True)
    guardian_phone = db.Column(db.String(30), nullable=True)
    guardian_email = db.Column(db.String(200), nullable=True)
    address = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def age(self) -> int | None:
        return age_on(self.birth_date)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "birth_date": self.birth_date.isoformat() if self.birth_date else None,
            "age": self.age,
            "gender": self.gender,
            "guardian_name": self.guardian_name,
            "guardian_phone": self.guardian_phone,
            "guardian_email": self.guardian_email,
            "address": self.address,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Client {self.id}: {self.name}>"
