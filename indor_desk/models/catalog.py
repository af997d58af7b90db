"""
INDOR Desk
Workflow catalog models: admin-defined, global.

Models:
    - Profile:        authorization tag assigned to users
    - Stage:          ordered phase of a client's evaluation journey
    - StageActivity:  checklist item within a Stage, optionally profile-restricted

Architecture:
    Stage ──1:N──▶ StageActivity ──N:M──▶ Profile  (via activity_allowed_profiles)

Catalog rows are maintained by administrators outside the progression engine.
Rows referenced by client progress cannot be deleted (RESTRICT foreign keys on
client_stages / client_activities).
"""

import uuid
from datetime import datetime, timezone

from indor_desk.models import db


def _uuid():
    """Generate a new UUID4 string for primary keys."""
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


SYSTEM_PROFILE_NAME = "Administrator"


activity_allowed_profiles = db.Table(
    "activity_allowed_profiles",
    db.Column(
        "activity_id", db.String(36),
        db.ForeignKey("stage_activities.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    db.Column(
        "profile_id", db.String(36),
        db.ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


# ═════════════════════════════════════════════════════════════════════════════
# 1. Profile
# ═════════════════════════════════════════════════════════════════════════════


class Profile(db.Model):
    """
    Authorization tag. Restricts which users may complete an activity or
    resolve a pending task. The built-in Administrator profile is flagged
    ``is_system`` and is never edited or deleted.
    """

    __tablename__ = "profiles"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    is_system = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_system": self.is_system,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Profile {self.id}: {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. Stage
# ═════════════════════════════════════════════════════════════════════════════


class Stage(db.Model):
    """
    Ordered phase of the evaluation journey.

    ``order_index`` is unique and defines the total order used to gate
    sequential progression: a client cannot start a stage before starting
    its predecessor.
    """

    __tablename__ = "stages"
    __table_args__ = (
        db.CheckConstraint("order_index >= 1", name="ck_stage_order_positive"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    order_index = db.Column(db.Integer, nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    activities = db.relationship(
        "StageActivity", back_populates="stage", lazy="select",
        order_by="StageActivity.order_index",
    )

    def to_dict(self, include_activities=False):
        result = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "order_index": self.order_index,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_activities:
            result["activities"] = [a.to_dict() for a in self.activities]
        return result

    def __repr__(self):
        return f"<Stage {self.order_index}: {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. StageActivity
# ═════════════════════════════════════════════════════════════════════════════


class StageActivity(db.Model):
    """
    Checklist item belonging to exactly one Stage.

    An empty ``allowed_profiles`` collection means any authenticated user may
    toggle the activity; otherwise only admins and users holding one of the
    listed profiles may.
    """

    __tablename__ = "stage_activities"
    __table_args__ = (
        db.UniqueConstraint("stage_id", "order_index", name="uq_stage_activity_order"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    stage_id = db.Column(
        db.String(36), db.ForeignKey("stages.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, nullable=True)
    order_index = db.Column(db.Integer, nullable=False)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    stage = db.relationship("Stage", back_populates="activities")
    allowed_profiles = db.relationship(
        "Profile", secondary=activity_allowed_profiles, lazy="select",
        order_by="Profile.name",
    )

    @property
    def allowed_profile_ids(self) -> set[str]:
        return {p.id for p in self.allowed_profiles}

    def to_dict(self):
        return {
            "id": self.id,
            "stage_id": self.stage_id,
            "name": self.name,
            "description": self.description,
            "order_index": self.order_index,
            "is_required": self.is_required,
            "allowed_profiles": [{"id": p.id, "name": p.name} for p in self.allowed_profiles],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<StageActivity {self.id}: {self.name}>"
