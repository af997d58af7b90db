"""
Pending Task Lifecycle Service

Manages PendingTask status transitions with:
  - Profile gate on resolve (assigned_profile_id restricts who may resolve)
  - Resolution note written in the same transaction as the status change
  - Reopen cascade: a completed owning stage goes back to in_progress

State machine:
    pending ──resolve──→ resolved ──reopen──→ pending

Usage:
    from indor_desk.services.pending_task_lifecycle import resolve_pending_task

    result = resolve_pending_task(task_id, actor_id="u-1", resolution_note="Called the family")
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from indor_desk.core.exceptions import (
    AlreadyResolved,
    NotResolved,
    ValidationError,
)
from indor_desk.models import db
from indor_desk.models.catalog import Profile, Stage
from indor_desk.models.client import Client
from indor_desk.models.notes import (
    PENDING,
    PENDING_TASK_STATUSES,
    RESOLVED,
    TASK_TITLE_MAX_LENGTH,
    Note,
    PendingTask,
    validate_pending_task_transition,
)
from indor_desk.services.identity import load_actor
from indor_desk.services.progression_rules import (
    add_auto_note,
    compare_and_set,
    ensure_profile_allowed,
    get_or_404,
    is_completed,
    lock_client_stage,
    lock_pending_task,
    reopen_stage,
    transition_unit,
    utcnow,
    write_stage,
)

logger = logging.getLogger(__name__)

RESOLUTION_PREFIX = "[Resolução de Pendência] "
STAGE_REOPENED_BY_TASK = "Stage reopened automatically due to pending-task reopening."


def add_pending_task(
    client_id: str,
    stage_id: str,
    title: str,
    actor_id: str,
    *,
    note_id: str | None = None,
    assigned_profile_id: str | None = None,
) -> PendingTask:
    """Validate and stage a new pending task in the current session.

    Callers own the transaction; ``create_pending_task`` and
    ``note_service.create_note`` both go through here.
    """
    title = title.strip() if isinstance(title, str) else ""
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    if len(title) > TASK_TITLE_MAX_LENGTH:
        raise ValidationError(
            f"title must be at most {TASK_TITLE_MAX_LENGTH} characters",
            details={"title": "too_long"},
        )

    client = get_or_404(Client, client_id)
    stage = get_or_404(Stage, stage_id)
    if assigned_profile_id:
        get_or_404(Profile, assigned_profile_id)
    if note_id:
        note = get_or_404(Note, note_id)
        if note.client_id != client.id:
            raise ValidationError(
                "note_id belongs to a different client", details={"note_id": "mismatch"},
            )

    # Conflicts with a concurrent complete_stage on the same (client, stage).
    client_stage = lock_client_stage(client.id, stage.id)
    if client_stage is not None:
        write_stage(client_stage)

    task = PendingTask(
        client_id=client.id,
        stage_id=stage.id,
        note_id=note_id,
        title=title,
        status=PENDING,
        assigned_profile_id=assigned_profile_id or None,
        created_by=actor_id,
    )
    db.session.add(task)
    db.session.flush()
    return task


def create_pending_task(
    client_id: str,
    stage_id: str,
    title: str,
    actor_id: str,
    note_id: str | None = None,
    assigned_profile_id: str | None = None,
) -> dict:
    """Insert a pending task from a pre-formed request."""
    with transition_unit("pending_task.create"):
        actor = load_actor(actor_id)
        task = add_pending_task(
            client_id, stage_id, title, actor.user_id,
            note_id=note_id, assigned_profile_id=assigned_profile_id,
        )

    logger.info(
        "Pending task created id=%s client=%s stage=%s actor=%s",
        task.id, client_id, stage_id, actor_id,
    )
    return task.to_dict()


def resolve_pending_task(task_id: str, actor_id: str, resolution_note: str | None) -> dict:
    """
    Resolve a pending task, recording the resolution as a user note.

    Raises:
        ValidationError: empty resolution note (checked before any lookup).
        NotFoundError: unknown task or actor.
        AlreadyResolved: the task is not pending.
        ProfileNotAllowed: the task is assigned to a profile the actor lacks.

    Returns:
        dict with ``task`` and ``note``.
    """
    text = str(resolution_note or "").strip()
    if not text:
        raise ValidationError(
            "resolution_note is required", details={"resolution_note": "required"},
        )

    with transition_unit("pending_task.resolve"):
        actor = load_actor(actor_id)
        task = lock_pending_task(task_id)

        if not validate_pending_task_transition(task.status, RESOLVED):
            raise AlreadyResolved(f'Pending task "{task.title}" is already resolved')

        if task.assigned_profile_id:
            ensure_profile_allowed(actor, [task.assigned_profile], "resolve this pending task")

        note = Note(
            client_id=task.client_id,
            stage_id=task.stage_id,
            content=RESOLUTION_PREFIX + text,
            is_auto_generated=False,
            created_by=actor.user_id,
        )
        db.session.add(note)
        db.session.flush()

        compare_and_set(
            PendingTask, task, {"status": PENDING},
            status=RESOLVED,
            resolved_at=utcnow(),
            resolved_by=actor.user_id,
            resolution_note_id=note.id,
        )

    logger.info("Pending task resolved id=%s actor=%s", task_id, actor_id)
    return {"task": task.to_dict(), "note": note.to_dict()}


def reopen_pending_task(task_id: str, actor_id: str) -> dict:
    """
    Put a resolved task back to pending.

    If the owning stage is completed it is reopened as well, and a second
    auto-note records that.

    Raises:
        NotFoundError: unknown task or actor.
        NotResolved: the task is not resolved.

    Returns:
        dict with ``task``, ``notes`` and ``stage_reopened``.
    """
    with transition_unit("pending_task.reopen"):
        actor = load_actor(actor_id)
        task = get_or_404(PendingTask, task_id)

        # ClientStage is always locked before the task.
        client_stage = lock_client_stage(task.client_id, task.stage_id)
        task = lock_pending_task(task_id)

        if not validate_pending_task_transition(task.status, PENDING):
            raise NotResolved(f'Pending task "{task.title}" is not resolved')

        compare_and_set(
            PendingTask, task, {"status": RESOLVED},
            status=PENDING, resolved_at=None, resolved_by=None, resolution_note_id=None,
        )

        notes = [add_auto_note(
            task.client_id, task.stage_id,
            f'Pending task reopened: "{task.title}"',
            actor.user_id,
        )]

        stage_reopened = is_completed(client_stage)
        if client_stage is not None and not stage_reopened:
            write_stage(client_stage)
        if stage_reopened:
            reopen_stage(client_stage)
            notes.append(add_auto_note(
                task.client_id, task.stage_id, STAGE_REOPENED_BY_TASK, actor.user_id,
            ))

    logger.info(
        "Pending task reopened id=%s stage_reopened=%s actor=%s",
        task_id, stage_reopened, actor_id,
    )
    return {
        "task": task.to_dict(),
        "notes": [n.to_dict() for n in notes],
        "stage_reopened": stage_reopened,
    }


def list_pending_tasks(
    client_id: str | None = None,
    stage_id: str | None = None,
    status: str | None = None,
) -> list[dict]:
    """Pending tasks, newest first, optionally filtered."""
    if status and status not in PENDING_TASK_STATUSES:
        raise ValidationError(
            f"status must be one of {sorted(PENDING_TASK_STATUSES)}",
            details={"status": "invalid"},
        )

    stmt = select(PendingTask)
    if client_id:
        stmt = stmt.where(PendingTask.client_id == client_id)
    if stage_id:
        stmt = stmt.where(PendingTask.stage_id == stage_id)
    if status:
        stmt = stmt.where(PendingTask.status == status)
    stmt = stmt.order_by(PendingTask.created_at.desc())

    return [t.to_dict() for t in db.session.execute(stmt).scalars()]
