"""
Client Service: client records (register, list, edit, delete) and the
read-only progression roadmap.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import func, or_, select

from indor_desk.core.exceptions import ProfileNotAllowed, ValidationError
from indor_desk.models import db
from indor_desk.models.catalog import Stage, StageActivity
from indor_desk.models.client import Client
from indor_desk.models.notes import PENDING, PendingTask
from indor_desk.models.progress import (
    COMPLETED,
    IN_PROGRESS,
    NOT_STARTED,
    STAGE_STATUSES,
    ClientActivity,
    ClientStage,
)
from indor_desk.services.identity import load_actor
from indor_desk.services.progression_rules import (
    activity_completed,
    get_or_404,
    stage_status_of,
    transition_unit,
)
from indor_desk.services.stage_lifecycle import get_available_stage_actions

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 200

_OPTIONAL_FIELDS = (
    "gender", "guardian_name", "guardian_phone", "guardian_email", "address", "notes",
)


# ── Helpers ──────────────────────────────────────────────────────────────────

def _parse_date(val, field: str) -> date | None:
    if not val:
        return None
    try:
        return date.fromisoformat(str(val)[:10])
    except (ValueError, TypeError):
        raise ValidationError(
            f"{field} must be an ISO date (YYYY-MM-DD)", details={field: "invalid"},
        ) from None


def _isoformat(value):
    return value.isoformat() if value else None


def _clean_name(value) -> str:
    name = value.strip() if isinstance(value, str) else ""
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise ValidationError(
            f"name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters",
            details={"name": "length"},
        )
    return name


def _clean_birth_date(value) -> date | None:
    birth_date = _parse_date(value, "birth_date")
    if birth_date and birth_date > date.today():
        raise ValidationError(
            "birth_date cannot be in the future", details={"birth_date": "future"},
        )
    return birth_date


def _apply_optional_fields(client: Client, data: dict) -> None:
    for field in _OPTIONAL_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if isinstance(value, str):
            value = value.strip() or None
        setattr(client, field, value)


# ═════════════════════════════════════════════════════════════════════════════
#  CLIENTS
# ═════════════════════════════════════════════════════════════════════════════


def create_client(data: dict, actor_id: str) -> dict:
    """Register a client.

    Args:
        data: ``name`` (required, 2-200 chars), optional ``birth_date``
            (ISO date) and demographic/guardian fields.
        actor_id: Registering user.

    Raises:
        ValidationError: missing/invalid name or birth date.
        NotFoundError: unknown actor.
    """
    name = _clean_name(data.get("name"))
    birth_date = _clean_birth_date(data.get("birth_date"))

    with transition_unit("client.create"):
        actor = load_actor(actor_id)
        client = Client(name=name, birth_date=birth_date, created_by=actor.user_id)
        _apply_optional_fields(client, data)
        db.session.add(client)
        db.session.flush()

    logger.info("Client created id=%s actor=%s", client.id, actor_id)
    return client.to_dict()


def _current_stage(rows: list[tuple[ClientStage, Stage]]) -> tuple[dict | None, str]:
    """Furthest in_progress stage, else furthest completed stage."""
    for wanted in (IN_PROGRESS, COMPLETED):
        matching = [stage for cs, stage in rows if cs.status == wanted]
        if matching:
            stage = max(matching, key=lambda s: s.order_index)
            return {"id": stage.id, "name": stage.name, "order_index": stage.order_index}, wanted
    return None, NOT_STARTED


def list_clients(search=None, stage_id=None, status=None) -> dict:
    """List clients newest first, each with its current stage.

    ``search`` matches name, guardian name or guardian phone
    (case-insensitive). ``stage_id`` and ``status`` filter on the derived
    current stage, so ``status="not_started"`` returns clients that have
    not begun any stage.
    """
    if status and status not in STAGE_STATUSES:
        raise ValidationError(
            f"status must be one of {sorted(STAGE_STATUSES)}", details={"status": "invalid"},
        )

    q = select(Client)
    if search:
        term = f"%{search.strip()}%"
        q = q.where(or_(
            Client.name.ilike(term),
            Client.guardian_name.ilike(term),
            Client.guardian_phone.ilike(term),
        ))
    clients = db.session.execute(
        q.order_by(Client.created_at.desc(), Client.name)
    ).scalars().all()

    progress: dict[str, list] = {}
    if clients:
        for cs, stage in db.session.execute(
            select(ClientStage, Stage)
            .join(Stage, Stage.id == ClientStage.stage_id)
            .where(ClientStage.client_id.in_([c.id for c in clients]))
        ).all():
            progress.setdefault(cs.client_id, []).append((cs, stage))

    items = []
    for client in clients:
        current, current_status = _current_stage(progress.get(client.id, []))
        if stage_id and (current is None or current["id"] != stage_id):
            continue
        if status and current_status != status:
            continue
        d = client.to_dict()
        d["current_stage"] = current
        d["current_stage_status"] = current_status
        items.append(d)

    return {"items": items, "total": len(items)}


def update_client(client_id: str, data: dict, actor_id: str) -> dict:
    """Partial update: only the fields present in ``data`` change.

    Raises:
        ValidationError: invalid name or birth date.
        NotFoundError: unknown client or actor.
    """
    changes = {}
    if "name" in data:
        changes["name"] = _clean_name(data["name"])
    if "birth_date" in data:
        changes["birth_date"] = _clean_birth_date(data["birth_date"])

    with transition_unit("client.update"):
        load_actor(actor_id)
        client = get_or_404(Client, client_id)
        for field, value in changes.items():
            setattr(client, field, value)
        _apply_optional_fields(client, data)

    logger.info("Client updated id=%s actor=%s fields=%s", client_id, actor_id, sorted(data))
    return client.to_dict()


def delete_client(client_id: str, actor_id: str) -> None:
    """Delete a client and, through the foreign keys, all of its progress,
    notes and pending tasks. Administrators only.

    Raises:
        ProfileNotAllowed: the actor is not an administrator.
        NotFoundError: unknown client or actor.
    """
    with transition_unit("client.delete"):
        actor = load_actor(actor_id)
        if not actor.is_admin:
            raise ProfileNotAllowed(
                [], "delete clients", message="Only administrators may delete clients",
            )
        client = get_or_404(Client, client_id)
        db.session.delete(client)

    logger.info("Client deleted id=%s actor=%s", client_id, actor_id)


def get_client_roadmap(client_id: str) -> dict:
    """Client detail with its progress on every active stage, in order.

    Missing progress rows are reported as ``not_started`` / not completed.
    """
    client = get_or_404(Client, client_id)

    stages = db.session.execute(
        select(Stage).where(Stage.is_active.is_(True)).order_by(Stage.order_index)
    ).scalars().all()

    progress = {
        cs.stage_id: cs
        for cs in db.session.execute(
            select(ClientStage).where(ClientStage.client_id == client.id)
        ).scalars()
    }
    activity_rows = {
        ca.activity_id: ca
        for ca in db.session.execute(
            select(ClientActivity).where(ClientActivity.client_id == client.id)
        ).scalars()
    }
    pending_counts = dict(
        db.session.execute(
            select(PendingTask.stage_id, func.count(PendingTask.id))
            .where(PendingTask.client_id == client.id, PendingTask.status == PENDING)
            .group_by(PendingTask.stage_id)
        ).all()
    )

    roadmap = []
    for stage in stages:
        cs = progress.get(stage.id)
        activities = []
        for activity in stage.activities:
            ca = activity_rows.get(activity.id)
            activities.append({
                "id": activity.id,
                "name": activity.name,
                "description": activity.description,
                "order_index": activity.order_index,
                "is_required": activity.is_required,
                "allowed_profiles": [p.name for p in activity.allowed_profiles],
                "is_completed": activity_completed(ca),
                "completed_at": _isoformat(ca.completed_at) if ca else None,
                "completed_by": ca.completed_by if ca else None,
            })
        roadmap.append({
            "stage_id": stage.id,
            "name": stage.name,
            "description": stage.description,
            "order_index": stage.order_index,
            "status": stage_status_of(cs),
            "started_at": _isoformat(cs.started_at) if cs else None,
            "started_by": cs.started_by if cs else None,
            "completed_at": _isoformat(cs.completed_at) if cs else None,
            "completed_by": cs.completed_by if cs else None,
            "available_actions": get_available_stage_actions(cs),
            "pending_tasks": pending_counts.get(stage.id, 0),
            "activities": activities,
        })

    result = client.to_dict()
    result["stages"] = roadmap
    return result
