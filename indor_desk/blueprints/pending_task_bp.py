"""Pending tasks blueprint.

  GET  /api/v1/pending-tasks?client_id=&stage_id=&status=
  POST /api/v1/pending-tasks
  POST /api/v1/pending-tasks/<task_id>/resolve   body: { resolution_note }
  POST /api/v1/pending-tasks/<task_id>/reopen
"""

from flask import Blueprint, jsonify, request

from indor_desk.middleware.jwt_auth import current_user_id, login_required
from indor_desk.services import pending_task_lifecycle as ptl

pending_task_bp = Blueprint("pending_tasks", __name__, url_prefix="/api/v1")


@pending_task_bp.route("/pending-tasks", methods=["GET"])
@login_required
def index():
    tasks = ptl.list_pending_tasks(
        client_id=request.args.get("client_id"),
        stage_id=request.args.get("stage_id"),
        status=request.args.get("status"),
    )
    return jsonify({"items": tasks, "total": len(tasks)}), 200


@pending_task_bp.route("/pending-tasks", methods=["POST"])
@login_required
def create():
    """Body: { client_id, stage_id, title, note_id?, assigned_profile_id? }"""
    data = request.get_json(silent=True) or {}
    task = ptl.create_pending_task(
        client_id=data.get("client_id"),
        stage_id=data.get("stage_id"),
        title=data.get("title"),
        actor_id=current_user_id(),
        note_id=data.get("note_id"),
        assigned_profile_id=data.get("assigned_profile_id"),
    )
    return jsonify(task), 201


@pending_task_bp.route("/pending-tasks/<task_id>/resolve", methods=["POST"])
@login_required
def resolve(task_id):
    data = request.get_json(silent=True) or {}
    result = ptl.resolve_pending_task(task_id, current_user_id(), data.get("resolution_note"))
    return jsonify(result), 200


@pending_task_bp.route("/pending-tasks/<task_id>/reopen", methods=["POST"])
@login_required
def reopen(task_id):
    return jsonify(ptl.reopen_pending_task(task_id, current_user_id())), 200
