"""
INDOR Desk
Client progression models.

Models:
    - ClientStage:     one row per (client, stage); lifecycle status
    - ClientActivity:  one row per (client, activity); completion flag

Both are created lazily on first write. A missing ClientStage row reads as
``not_started``; a missing ClientActivity row reads as not completed.

Lifecycle states:
    ClientStage:  not_started → in_progress → completed
                  in_progress → not_started   (only with zero completed activities)
                  completed   → in_progress   (revert / uncheck / pending-task reopen)
"""

from indor_desk.models import db
from indor_desk.models.catalog import _uuid


# ── Constants ────────────────────────────────────────────────────────────────

NOT_STARTED = "not_started"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"

STAGE_STATUSES = {NOT_STARTED, IN_PROGRESS, COMPLETED}

STAGE_TRANSITIONS = {
    NOT_STARTED: [IN_PROGRESS],
    IN_PROGRESS: [COMPLETED, NOT_STARTED],
    COMPLETED:   [IN_PROGRESS],
}


def validate_stage_transition(old_status, new_status):
    """Return True if ClientStage status transition is valid."""
    return new_status in STAGE_TRANSITIONS.get(old_status, [])


# ═════════════════════════════════════════════════════════════════════════════
# 1. ClientStage
# ═════════════════════════════════════════════════════════════════════════════


class ClientStage(db.Model):
    __tablename__ = "client_stages"
    __table_args__ = (
        db.UniqueConstraint("client_id", "stage_id", name="uq_client_stage"),
        db.CheckConstraint(
            "status IN ('not_started','in_progress','completed')",
            name="ck_client_stage_status",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    client_id = db.Column(
        db.String(36), db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    stage_id = db.Column(
        db.String(36), db.ForeignKey("stages.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    status = db.Column(db.String(20), nullable=False, default=NOT_STARTED)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    started_by = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    version = db.Column(
        db.Integer, nullable=False, default=1, server_default="1",
        comment="Bumped on every write; conditional updates compare it",
    )

    stage = db.relationship("Stage")

    def to_dict(self):
        return {
            "id": self.id,
            "client_id": self.client_id,
            "stage_id": self.stage_id,
            "stage_name": self.stage.name if self.stage else None,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "started_by": self.started_by,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "completed_by": self.completed_by,
        }

    def __repr__(self):
        return f"<ClientStage {self.client_id}/{self.stage_id} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. ClientActivity
# ═════════════════════════════════════════════════════════════════════════════


class ClientActivity(db.Model):
    __tablename__ = "client_activities"
    __table_args__ = (
        db.UniqueConstraint("client_id", "activity_id", name="uq_client_activity"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    client_id = db.Column(
        db.String(36), db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    activity_id = db.Column(
        db.String(36), db.ForeignKey("stage_activities.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "client_id": self.client_id,
            "activity_id": self.activity_id,
            "is_completed": self.is_completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "completed_by": self.completed_by,
        }

    def __repr__(self):
        return f"<ClientActivity {self.client_id}/{self.activity_id} completed={self.is_completed}>"
