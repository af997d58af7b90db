"""
Stage Lifecycle Service

Manages a client's per-stage status with:
  - Sequential gate (predecessor must have been started)
  - Completion gates (all activities checked, no pending tasks)
  - Revert in both directions (completed → in_progress, in_progress → not_started)
  - One auto-generated Note per transition

State machine per (client, stage):
    not_started --start-->    in_progress --complete--> completed
    in_progress --revert-->   not_started   (only with zero completed activities)
    completed   --revert-->   in_progress

An absent ClientStage row is ``not_started``; ``start_stage`` creates it.

Usage:
    from indor_desk.services.stage_lifecycle import start_stage

    result = start_stage(client_id="c-1", stage_id="s-1", actor_id="u-1")
    result["new_status"]   # "in_progress"
"""

import logging

from indor_desk.core.exceptions import (
    ActivitiesMustBeUnchecked,
    IncompleteActivities,
    InvalidTransition,
    SequenceViolation,
    UnresolvedPendingTasks,
)
from indor_desk.models import db
from indor_desk.models.catalog import Stage
from indor_desk.models.client import Client
from indor_desk.models.progress import (
    COMPLETED,
    IN_PROGRESS,
    NOT_STARTED,
    ClientStage,
    validate_stage_transition,
)
from indor_desk.services.identity import load_actor
from indor_desk.services.progression_rules import (
    add_auto_note,
    completed_activity_ids,
    count_pending_tasks,
    find_predecessor,
    get_or_404,
    lock_client_stage,
    reopen_stage,
    stage_activities,
    stage_status_of,
    transition_unit,
    utcnow,
    write_stage,
)

logger = logging.getLogger(__name__)


def _result(client_stage: ClientStage, previous_status: str, note) -> dict:
    return {
        "client_stage": client_stage.to_dict(),
        "previous_status": previous_status,
        "new_status": client_stage.status,
        "note": note.to_dict(),
    }


def start_stage(client_id: str, stage_id: str, actor_id: str) -> dict:
    """
    Move a stage from not_started to in_progress.

    Raises:
        NotFoundError: unknown client, stage or actor.
        InvalidTransition: stage inactive, or already started.
        SequenceViolation: the preceding stage has not been started.
    """
    with transition_unit("stage.start"):
        client = get_or_404(Client, client_id)
        stage = get_or_404(Stage, stage_id)
        actor = load_actor(actor_id)

        if not stage.is_active:
            raise InvalidTransition(f'Stage "{stage.name}" is inactive and cannot be started')

        predecessor = find_predecessor(stage)
        if predecessor is not None:
            previous = lock_client_stage(client.id, predecessor.id)
            if stage_status_of(previous) == NOT_STARTED:
                raise SequenceViolation(
                    f'Cannot start stage "{stage.name}" before starting "{predecessor.name}"',
                    details={"predecessor_stage_id": predecessor.id},
                )
            write_stage(previous)

        client_stage = lock_client_stage(client.id, stage.id)
        previous_status = stage_status_of(client_stage)
        if previous_status != NOT_STARTED:
            raise InvalidTransition(
                f'Stage "{stage.name}" has already been started', previous_status,
            )

        started = {
            "status": IN_PROGRESS,
            "started_at": utcnow(),
            "started_by": actor.user_id,
            "completed_at": None,
            "completed_by": None,
        }
        if client_stage is None:
            # A concurrent first insert trips uq_client_stage on commit.
            client_stage = ClientStage(client_id=client.id, stage_id=stage.id, **started)
            db.session.add(client_stage)
        else:
            write_stage(client_stage, **started)

        note = add_auto_note(
            client.id, stage.id,
            f'Stage "{stage.name}" started by {actor.display_name}.',
            actor.user_id,
        )

    logger.info("Stage started client=%s stage=%s actor=%s", client_id, stage_id, actor_id)
    return _result(client_stage, previous_status, note)


def complete_stage(client_id: str, stage_id: str, actor_id: str) -> dict:
    """
    Move a stage from in_progress to completed.

    Every activity of the stage (required or optional) must be completed and
    no pending task may remain open for (client, stage).

    Raises:
        NotFoundError: unknown client, stage or actor.
        InvalidTransition: stage is not in progress.
        IncompleteActivities: some activities are unchecked.
        UnresolvedPendingTasks: pending tasks remain (count in details).
    """
    with transition_unit("stage.complete"):
        client = get_or_404(Client, client_id)
        stage = get_or_404(Stage, stage_id)
        actor = load_actor(actor_id)

        client_stage = lock_client_stage(client.id, stage.id)
        previous_status = stage_status_of(client_stage)
        if not validate_stage_transition(previous_status, COMPLETED):
            raise InvalidTransition(
                f'Only stages in progress can be completed (stage "{stage.name}" '
                f"is {previous_status})",
                previous_status,
            )

        done = completed_activity_ids(client.id, stage.id)
        missing = [a.name for a in stage_activities(stage.id) if a.id not in done]
        if missing:
            raise IncompleteActivities(stage.name, missing)

        open_tasks = count_pending_tasks(client.id, stage.id)
        if open_tasks:
            raise UnresolvedPendingTasks(open_tasks)

        write_stage(
            client_stage, status=COMPLETED, completed_at=utcnow(), completed_by=actor.user_id,
        )

        note = add_auto_note(
            client.id, stage.id,
            f'Stage "{stage.name}" completed by {actor.display_name}.',
            actor.user_id,
        )

    logger.info("Stage completed client=%s stage=%s actor=%s", client_id, stage_id, actor_id)
    return _result(client_stage, previous_status, note)


def revert_stage(client_id: str, stage_id: str, actor_id: str) -> dict:
    """
    Step a stage back one status.

    completed   → in_progress  (always allowed; clears completion fields)
    in_progress → not_started  (only when none of its activities is completed;
                                clears started and completion fields)

    Raises:
        NotFoundError: unknown client, stage or actor.
        InvalidTransition: stage is already pending.
        ActivitiesMustBeUnchecked: in_progress stage still has checked activities.
    """
    with transition_unit("stage.revert"):
        client = get_or_404(Client, client_id)
        stage = get_or_404(Stage, stage_id)
        actor = load_actor(actor_id)

        client_stage = lock_client_stage(client.id, stage.id)
        previous_status = stage_status_of(client_stage)

        if previous_status == COMPLETED:
            reopen_stage(client_stage)
            content = (
                f'Stage "{stage.name}" reopened (reverted from completed to in progress) '
                f"by {actor.display_name}."
            )
        elif previous_status == IN_PROGRESS:
            checked = len(completed_activity_ids(client.id, stage.id))
            if checked:
                raise ActivitiesMustBeUnchecked(checked)
            write_stage(
                client_stage, status=NOT_STARTED,
                started_at=None, started_by=None, completed_at=None, completed_by=None,
            )
            content = f'Stage "{stage.name}" reverted to pending by {actor.display_name}.'
        else:
            raise InvalidTransition(f'Stage "{stage.name}" is already pending', previous_status)

        note = add_auto_note(client.id, stage.id, content, actor.user_id)

    logger.info(
        "Stage reverted client=%s stage=%s %s→%s actor=%s",
        client_id, stage_id, previous_status, client_stage.status, actor_id,
    )
    return _result(client_stage, previous_status, note)


def get_available_stage_actions(client_stage: ClientStage | None) -> list[str]:
    """List the lifecycle actions valid for the current status."""
    status = stage_status_of(client_stage)
    return {
        NOT_STARTED: ["start"],
        IN_PROGRESS: ["complete", "revert"],
        COMPLETED: ["revert"],
    }[status]
