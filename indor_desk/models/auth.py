"""
INDOR Desk
Identity model.

Models:
    - User: platform user; carries the role and profile used by the
            progression engine's permission gates.

Password storage and token issuance live in the authentication service,
not here. This table is the identity lookup the engine reads
(id → role, profile_id, name).
"""

from datetime import datetime, timezone

from indor_desk.models import db
from indor_desk.models.catalog import _uuid

USER_ROLES = {"admin", "operator"}


class User(db.Model):
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("role IN ('admin','operator')", name="ck_user_role"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    username = db.Column(db.String(50), nullable=False, unique=True)
    name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(30), nullable=True)
    role = db.Column(db.String(20), nullable=False, default="operator")
    profile_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    profile = db.relationship("Profile")

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "phone": self.phone,
            "role": self.role,
            "profile_id": self.profile_id,
            "profile": self.profile.to_dict() if self.profile else None,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.username} [{self.role}]>"
