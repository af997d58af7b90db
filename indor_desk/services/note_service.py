"""
Note Service: user-written notes on a client's record.

Notes are append-only: this module creates and lists them, nothing edits or
deletes one. A note may open a pending task on its stage in the same
transaction (the "creates pending task" checkbox of the client screen).
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from indor_desk.core.exceptions import ValidationError
from indor_desk.models import db
from indor_desk.models.catalog import Stage, StageActivity
from indor_desk.models.client import Client
from indor_desk.models.notes import NOTE_MAX_LENGTH, Note
from indor_desk.services.identity import load_actor
from indor_desk.services.pending_task_lifecycle import add_pending_task
from indor_desk.services.progression_rules import get_or_404, transition_unit

logger = logging.getLogger(__name__)

TASK_TITLE_PREVIEW = 100


def _task_title_from(content: str) -> str:
    if len(content) <= TASK_TITLE_PREVIEW:
        return content
    return content[:TASK_TITLE_PREVIEW] + "..."


def create_note(
    client_id: str,
    content: str,
    actor_id: str,
    stage_id: str | None = None,
    activity_id: str | None = None,
    creates_pending_task: bool = False,
    pending_task_profile_id: str | None = None,
) -> dict:
    """
    Write a user note, optionally opening a pending task from it.

    Raises:
        ValidationError: empty/oversized content, or a pending task requested
            without a stage.
        NotFoundError: unknown client, stage, activity, profile or actor.

    Returns:
        dict with ``note`` and ``pending_task`` (None unless requested).
    """
    content = content.strip() if isinstance(content, str) else ""
    if not content:
        raise ValidationError("content is required", details={"content": "required"})
    if len(content) > NOTE_MAX_LENGTH:
        raise ValidationError(
            f"content must be at most {NOTE_MAX_LENGTH} characters",
            details={"content": "too_long"},
        )
    if creates_pending_task and not stage_id:
        raise ValidationError(
            "stage_id is required to create a pending task",
            details={"stage_id": "required"},
        )

    with transition_unit("note.create"):
        client = get_or_404(Client, client_id)
        actor = load_actor(actor_id)
        if stage_id:
            get_or_404(Stage, stage_id)
        if activity_id:
            activity = get_or_404(StageActivity, activity_id, "Activity")
            if stage_id and activity.stage_id != stage_id:
                raise ValidationError(
                    "activity_id does not belong to stage_id",
                    details={"activity_id": "mismatch"},
                )

        note = Note(
            client_id=client.id,
            stage_id=stage_id,
            activity_id=activity_id,
            content=content,
            is_auto_generated=False,
            created_by=actor.user_id,
        )
        db.session.add(note)
        db.session.flush()

        task = None
        if creates_pending_task:
            task = add_pending_task(
                client.id, stage_id, _task_title_from(content), actor.user_id,
                note_id=note.id, assigned_profile_id=pending_task_profile_id,
            )

    logger.info(
        "Note created id=%s client=%s pending_task=%s",
        note.id, client_id, task.id if task else None,
    )
    return {
        "note": note.to_dict(),
        "pending_task": task.to_dict() if task else None,
    }


def list_notes(client_id: str | None = None, stage_id: str | None = None) -> list[dict]:
    """Notes newest first."""
    stmt = select(Note)
    if client_id:
        stmt = stmt.where(Note.client_id == client_id)
    if stage_id:
        stmt = stmt.where(Note.stage_id == stage_id)
    stmt = stmt.order_by(Note.created_at.desc())
    return [n.to_dict() for n in db.session.execute(stmt).scalars()]
