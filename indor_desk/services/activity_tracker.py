"""
Activity Completion Tracker

One entry point, ``toggle_activity``, flips a client's completion flag on a
stage activity. Every caller (HTTP route, tests) goes through it so
the stage-status and permission gates cannot be bypassed.

Gate order:
    1. activity exists                       → NotFoundError
    2. client has a progress row on the stage → StageNotFound
    3. stage completed and this is a check    → StageAlreadyCompleted
    4. stage in_progress or completed         → StageNotStarted
    5. activity profile restriction           → ProfileNotAllowed

Unchecking an activity of a completed stage pushes the stage back to
in_progress in the same transaction. Every toggle bumps the stage version,
so a toggle and a concurrent complete/revert of the same stage cannot both
commit. Exactly one auto-note is written per toggle.
"""

from __future__ import annotations

import logging

from indor_desk.core.exceptions import (
    StageAlreadyCompleted,
    StageNotFound,
    StageNotStarted,
)
from indor_desk.models import db
from indor_desk.models.catalog import StageActivity
from indor_desk.models.client import Client
from indor_desk.models.progress import COMPLETED, IN_PROGRESS, ClientActivity
from indor_desk.services.identity import load_actor
from indor_desk.services.progression_rules import (
    activity_completed,
    add_auto_note,
    compare_and_set,
    ensure_profile_allowed,
    get_or_404,
    lock_client_activity,
    lock_client_stage,
    reopen_stage,
    transition_unit,
    utcnow,
    write_stage,
)

logger = logging.getLogger(__name__)

STAGE_REOPENED_LINE = "Stage reopened automatically."


def _toggle_note_content(activity_name, actor_name, now_completed, stage_reopened, observation):
    verb = "completed" if now_completed else "unchecked"
    content = f'Activity "{activity_name}" {verb} by {actor_name}.'
    if stage_reopened:
        content += f"\n{STAGE_REOPENED_LINE}"
    if observation and now_completed:
        content += f"\n\nObservation: {observation}"
    return content


def toggle_activity(
    client_id: str,
    activity_id: str,
    actor_id: str,
    note: str | None = None,
) -> dict:
    """
    Flip the completion flag of ``activity_id`` for ``client_id``.

    A first toggle (no progress row yet) marks the activity completed.
    ``note`` is appended to the auto-note as an observation when the toggle
    results in a completion; it is ignored on uncheck.

    Returns:
        dict with ``is_completed``, ``stage_reopened``, ``stage_status``,
        ``client_activity`` and ``note``.
    """
    observation = (note or "").strip() or None

    with transition_unit("activity.toggle"):
        client = get_or_404(Client, client_id)
        activity = get_or_404(StageActivity, activity_id, "Activity")
        actor = load_actor(actor_id)
        stage = activity.stage

        client_stage = lock_client_stage(client.id, stage.id)
        if client_stage is None:
            raise StageNotFound(client.id, stage.id)

        client_activity = lock_client_activity(client.id, activity.id)
        unchecking = activity_completed(client_activity)

        if client_stage.status == COMPLETED and not unchecking:
            raise StageAlreadyCompleted(
                f'Stage "{stage.name}" is completed; reopen it before completing activities',
            )
        if client_stage.status not in (IN_PROGRESS, COMPLETED):
            raise StageNotStarted(
                f'Stage "{stage.name}" must be started before its activities can be updated',
            )

        ensure_profile_allowed(actor, activity.allowed_profiles, "update this activity")

        stage_reopened = unchecking and client_stage.status == COMPLETED
        if stage_reopened:
            reopen_stage(client_stage)
        else:
            write_stage(client_stage)

        now_completed = not unchecking
        flipped = {
            "is_completed": now_completed,
            "completed_at": utcnow() if now_completed else None,
            "completed_by": actor.user_id if now_completed else None,
        }
        if client_activity is None:
            client_activity = ClientActivity(
                client_id=client.id, activity_id=activity.id, **flipped,
            )
            db.session.add(client_activity)
        else:
            compare_and_set(
                ClientActivity, client_activity, {"is_completed": unchecking}, **flipped,
            )

        auto_note = add_auto_note(
            client.id, stage.id,
            _toggle_note_content(
                activity.name, actor.display_name, now_completed, stage_reopened, observation,
            ),
            actor.user_id,
            activity_id=activity.id,
        )

    logger.info(
        "Activity toggled client=%s activity=%s completed=%s stage_reopened=%s actor=%s",
        client_id, activity_id, now_completed, stage_reopened, actor_id,
    )
    return {
        "is_completed": now_completed,
        "stage_reopened": stage_reopened,
        "stage_status": client_stage.status,
        "client_activity": client_activity.to_dict(),
        "note": auto_note.to_dict(),
    }
