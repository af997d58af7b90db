"""Notes blueprint.

  GET  /api/v1/notes?client_id=&stage_id=   newest first
  POST /api/v1/notes                         write a note, optionally opening a pending task

Notes are append-only; there are no PUT/DELETE routes.
"""

from flask import Blueprint, jsonify, request

from indor_desk.middleware.jwt_auth import current_user_id, login_required
from indor_desk.services.note_service import create_note, list_notes

note_bp = Blueprint("notes", __name__, url_prefix="/api/v1")


@note_bp.route("/notes", methods=["GET"])
@login_required
def index():
    notes = list_notes(
        client_id=request.args.get("client_id"),
        stage_id=request.args.get("stage_id"),
    )
    return jsonify({"items": notes, "total": len(notes)}), 200


@note_bp.route("/notes", methods=["POST"])
@login_required
def create():
    """Body: { client_id, content, stage_id?, activity_id?,
               creates_pending_task?, pending_task_profile_id? }
    """
    data = request.get_json(silent=True) or {}
    result = create_note(
        client_id=data.get("client_id"),
        content=data.get("content"),
        actor_id=current_user_id(),
        stage_id=data.get("stage_id"),
        activity_id=data.get("activity_id"),
        creates_pending_task=bool(data.get("creates_pending_task")),
        pending_task_profile_id=data.get("pending_task_profile_id"),
    )
    return jsonify(result), 201
