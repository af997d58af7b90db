"""
Shared progression rules: the invariants every workflow operation relies on.

Stage lifecycle, activity toggling and pending-task handling all read and
write the same ClientStage / ClientActivity / PendingTask rows. The rules
they share live here so that each invariant has exactly one implementation:

  - Sentinel reads:  missing ClientStage  == "not_started"
                     missing ClientActivity == not completed
  - Locking:         the ClientStage row for (client, stage) is read
                     FOR UPDATE before validation; lock order is always
                     ClientStage → ClientActivity / PendingTask.
  - Guarded writes:  status changes are conditional UPDATEs on the state
                     read during validation (``compare_and_set``); ClientStage
                     carries a version bumped by every operation that
                     depends on it (``write_stage``). Backends that ignore
                     FOR UPDATE (SQLite) still let only one writer win.
  - Gates:           predecessor lookup, completed-activity and pending-task
                     counts, profile permission.
  - Cascade:         ``reopen_stage`` is the only way a completed stage is
                     pushed back to in_progress by a side effect.
  - Audit:           ``add_auto_note`` writes the system note of a transition.
  - Atomicity:       ``transition_unit`` commits all writes of one operation
                     together, or rolls everything back.

Usage:
    with transition_unit("stage.start"):
        cs = lock_client_stage(client_id, stage_id)
        ...
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from indor_desk.core.exceptions import (
    InvalidTransition,
    NotFoundError,
    ProfileNotAllowed,
)
from indor_desk.models import db
from indor_desk.models.catalog import Stage, StageActivity
from indor_desk.models.notes import PENDING, Note, PendingTask
from indor_desk.models.progress import (
    COMPLETED,
    IN_PROGRESS,
    NOT_STARTED,
    ClientActivity,
    ClientStage,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Unit of work ─────────────────────────────────────────────────────────────


@contextmanager
def transition_unit(operation: str):
    """Run one workflow operation as a single transaction.

    Commits on normal exit. Any exception rolls the session back (releasing
    row locks) and is re-raised. A unique-constraint collision on a lazily
    created row means a concurrent writer won the same transition; it is
    reported as ``InvalidTransition``.
    """
    try:
        yield
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Concurrent write rejected during %s: %s", operation, exc.orig)
        raise InvalidTransition(
            f"Concurrent update detected during {operation}; reload and retry",
        ) from exc
    except Exception:
        db.session.rollback()
        raise


# ── Lookups ──────────────────────────────────────────────────────────────────


def get_or_404(model, pk, label: str | None = None):
    """Fetch ``model`` by primary key or raise NotFoundError."""
    obj = db.session.get(model, pk) if pk else None
    if obj is None:
        raise NotFoundError(label or model.__name__, pk)
    return obj


def lock_client_stage(client_id: str, stage_id: str) -> ClientStage | None:
    """Return the ClientStage row for (client, stage), locked FOR UPDATE."""
    return db.session.execute(
        select(ClientStage)
        .where(ClientStage.client_id == client_id, ClientStage.stage_id == stage_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def lock_client_activity(client_id: str, activity_id: str) -> ClientActivity | None:
    """Return the ClientActivity row for (client, activity), locked FOR UPDATE."""
    return db.session.execute(
        select(ClientActivity)
        .where(
            ClientActivity.client_id == client_id,
            ClientActivity.activity_id == activity_id,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def lock_pending_task(task_id: str) -> PendingTask:
    """Return the PendingTask locked FOR UPDATE, or raise NotFoundError."""
    task = db.session.execute(
        select(PendingTask)
        .where(PendingTask.id == task_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if task is None:
        raise NotFoundError("PendingTask", task_id)
    return task


# ── Guarded writes ───────────────────────────────────────────────────────────


def compare_and_set(model, row, expected: dict, **values) -> None:
    """UPDATE ``row`` with ``values`` only while it still holds ``expected``.

    Raises:
        InvalidTransition: another transaction changed the row first.
    """
    criteria = [getattr(model, column) == value for column, value in expected.items()]
    result = db.session.execute(
        update(model).where(model.id == row.id, *criteria).values(**values)
    )
    if result.rowcount != 1:
        logger.warning(
            "Stale write rejected on %s id=%s expected=%s", model.__tablename__, row.id, expected,
        )
        raise InvalidTransition(
            f"{model.__name__} was changed by another request; reload and retry",
        )


def write_stage(client_stage: ClientStage, **values) -> None:
    """Versioned write of a ClientStage row.

    Called with no ``values`` it only bumps the version, which makes
    operations whose gates read this stage (activity toggles, task
    creation and reopen) conflict with a concurrent complete/revert.
    """
    compare_and_set(
        ClientStage, client_stage, {"version": client_stage.version},
        version=client_stage.version + 1, **values,
    )


# ── Sentinel reads ───────────────────────────────────────────────────────────


def stage_status_of(client_stage: ClientStage | None) -> str:
    """Effective status; an absent row is ``not_started``."""
    return client_stage.status if client_stage is not None else NOT_STARTED


def activity_completed(client_activity: ClientActivity | None) -> bool:
    """Effective completion; an absent row is not completed."""
    return bool(client_activity is not None and client_activity.is_completed)


# ── Gates ────────────────────────────────────────────────────────────────────


def find_predecessor(stage: Stage) -> Stage | None:
    """The active stage immediately before ``stage`` in ``order_index`` order."""
    return db.session.execute(
        select(Stage)
        .where(Stage.order_index < stage.order_index, Stage.is_active.is_(True))
        .order_by(Stage.order_index.desc())
        .limit(1)
    ).scalar_one_or_none()


def stage_activities(stage_id: str) -> list[StageActivity]:
    return list(db.session.execute(
        select(StageActivity)
        .where(StageActivity.stage_id == stage_id)
        .order_by(StageActivity.order_index)
    ).scalars())


def completed_activity_ids(client_id: str, stage_id: str) -> set[str]:
    """Ids of the stage's activities the client has completed."""
    rows = db.session.execute(
        select(ClientActivity.activity_id)
        .join(StageActivity, StageActivity.id == ClientActivity.activity_id)
        .where(
            ClientActivity.client_id == client_id,
            ClientActivity.is_completed.is_(True),
            StageActivity.stage_id == stage_id,
        )
    ).scalars()
    return set(rows)


def count_pending_tasks(client_id: str, stage_id: str) -> int:
    return db.session.execute(
        select(func.count(PendingTask.id)).where(
            PendingTask.client_id == client_id,
            PendingTask.stage_id == stage_id,
            PendingTask.status == PENDING,
        )
    ).scalar_one()


def ensure_profile_allowed(actor, allowed_profiles, action: str) -> None:
    """Raise ProfileNotAllowed unless ``actor`` may act.

    An empty ``allowed_profiles`` means unrestricted. Admins always pass.
    """
    if not allowed_profiles or actor.is_admin:
        return
    if actor.holds_profile({p.id for p in allowed_profiles}):
        return
    raise ProfileNotAllowed([p.name for p in allowed_profiles], action)


# ── Cascade & audit ──────────────────────────────────────────────────────────


def reopen_stage(client_stage: ClientStage) -> None:
    """Force a completed stage back to in_progress, clearing completion fields."""
    write_stage(client_stage, status=IN_PROGRESS, completed_at=None, completed_by=None)


def is_completed(client_stage: ClientStage | None) -> bool:
    return stage_status_of(client_stage) == COMPLETED


def add_auto_note(
    client_id: str,
    stage_id: str | None,
    content: str,
    actor_id: str,
    *,
    activity_id: str | None = None,
) -> Note:
    """Append one system-written note; flushed so callers can read its id."""
    note = Note(
        client_id=client_id,
        stage_id=stage_id,
        activity_id=activity_id,
        content=content,
        is_auto_generated=True,
        created_by=actor_id,
    )
    db.session.add(note)
    db.session.flush()
    return note
