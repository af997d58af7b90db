"""
INDOR Desk
Notes and pending tasks.

Models:
    - Note:         append-only record attached to a client (and optionally a
                    stage and/or activity). System-written transition records
                    carry ``is_auto_generated=True``.
    - PendingTask:  ad-hoc follow-up on a (client, stage), usually originated
                    from a Note. Blocks stage completion while pending.

Lifecycle states:
    PendingTask:  pending → resolved → (reopen) → pending
"""

from datetime import datetime, timezone

from indor_desk.models import db
from indor_desk.models.catalog import _uuid


def _utcnow():
    return datetime.now(timezone.utc)


# ── Constants ────────────────────────────────────────────────────────────────

PENDING = "pending"
RESOLVED = "resolved"

PENDING_TASK_STATUSES = {PENDING, RESOLVED}

PENDING_TASK_TRANSITIONS = {
    PENDING:  [RESOLVED],
    RESOLVED: [PENDING],
}

NOTE_MAX_LENGTH = 5000
TASK_TITLE_MAX_LENGTH = 255


def validate_pending_task_transition(old_status, new_status):
    """Return True if PendingTask status transition is valid."""
    return new_status in PENDING_TASK_TRANSITIONS.get(old_status, [])


# ═════════════════════════════════════════════════════════════════════════════
# 1. Note
# ═════════════════════════════════════════════════════════════════════════════


class Note(db.Model):
    """
    Audit / communication record. Never edited or deleted once written.
    """

    __tablename__ = "notes"
    __table_args__ = (
        db.Index("idx_note_client_created", "client_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    client_id = db.Column(
        db.String(36), db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
    )
    stage_id = db.Column(
        db.String(36), db.ForeignKey("stages.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    activity_id = db.Column(
        db.String(36), db.ForeignKey("stage_activities.id", ondelete="SET NULL"),
        nullable=True,
    )
    content = db.Column(db.Text, nullable=False)
    is_auto_generated = db.Column(db.Boolean, nullable=False, default=False)
    created_by = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    stage = db.relationship("Stage")
    author = db.relationship("User", foreign_keys=[created_by])

    def to_dict(self):
        return {
            "id": self.id,
            "client_id": self.client_id,
            "stage_id": self.stage_id,
            "stage": {"id": self.stage.id, "name": self.stage.name} if self.stage else None,
            "activity_id": self.activity_id,
            "content": self.content,
            "is_auto_generated": self.is_auto_generated,
            "created_by": self.created_by,
            "created_by_user": (
                {"id": self.author.id, "name": self.author.name} if self.author else None
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        kind = "auto" if self.is_auto_generated else "user"
        return f"<Note {self.id} [{kind}] client={self.client_id}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. PendingTask
# ═════════════════════════════════════════════════════════════════════════════


class PendingTask(db.Model):
    """
    Follow-up item that blocks completion of its (client, stage) while
    ``status == 'pending'``. When ``assigned_profile_id`` is set only admins
    and holders of that profile may resolve it.
    """

    __tablename__ = "pending_tasks"
    __table_args__ = (
        db.Index("idx_pending_task_client_stage_status", "client_id", "stage_id", "status"),
        db.CheckConstraint(
            "status IN ('pending','resolved')", name="ck_pending_task_status",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    client_id = db.Column(
        db.String(36), db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
    )
    stage_id = db.Column(
        db.String(36), db.ForeignKey("stages.id", ondelete="RESTRICT"),
        nullable=False,
    )
    note_id = db.Column(
        db.String(36), db.ForeignKey("notes.id", ondelete="SET NULL"),
        nullable=True, comment="Origin note",
    )
    title = db.Column(db.String(TASK_TITLE_MAX_LENGTH), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PENDING)
    assigned_profile_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True, comment="NULL = any user may resolve",
    )
    created_by = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    resolved_by = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolution_note_id = db.Column(
        db.String(36), db.ForeignKey("notes.id", ondelete="SET NULL"), nullable=True,
    )

    stage = db.relationship("Stage")
    assigned_profile = db.relationship("Profile")
    origin_note = db.relationship("Note", foreign_keys=[note_id])
    resolution_note = db.relationship("Note", foreign_keys=[resolution_note_id])

    def to_dict(self):
        return {
            "id": self.id,
            "client_id": self.client_id,
            "stage_id": self.stage_id,
            "stage": {"id": self.stage.id, "name": self.stage.name} if self.stage else None,
            "note_id": self.note_id,
            "title": self.title,
            "status": self.status,
            "assigned_profile_id": self.assigned_profile_id,
            "assigned_profile": (
                {"id": self.assigned_profile.id, "name": self.assigned_profile.name}
                if self.assigned_profile else None
            ),
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolution_note_id": self.resolution_note_id,
        }

    def __repr__(self):
        return f"<PendingTask {self.id}: {self.title[:40]} [{self.status}]>"
