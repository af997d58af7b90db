"""Client progression blueprint.

Endpoint groups:
  Stage lifecycle   POST /api/v1/clients/<client_id>/stages/<stage_id>/start
                    POST /api/v1/clients/<client_id>/stages/<stage_id>/complete
                    POST /api/v1/clients/<client_id>/stages/<stage_id>/revert
  Activity toggle   POST /api/v1/clients/<client_id>/activities/<activity_id>/toggle

Toggle is the only way to change an activity's completion; there is no
PUT shortcut. Domain errors are rendered by the app-wide handlers in
``indor_desk.utils.errors``. Service layer owns all business logic and commits.
"""

from flask import Blueprint, jsonify, request

from indor_desk.middleware.jwt_auth import current_user_id, login_required
from indor_desk.services.activity_tracker import toggle_activity
from indor_desk.services.stage_lifecycle import complete_stage, revert_stage, start_stage

progression_bp = Blueprint("progression", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════
# Stage lifecycle
# ═════════════════════════════════════════════════════════════════════════


@progression_bp.route("/clients/<client_id>/stages/<stage_id>/start", methods=["POST"])
@login_required
def start(client_id, stage_id):
    """not_started → in_progress. Returns the progress row and the audit note."""
    return jsonify(start_stage(client_id, stage_id, current_user_id())), 200


@progression_bp.route("/clients/<client_id>/stages/<stage_id>/complete", methods=["POST"])
@login_required
def complete(client_id, stage_id):
    """in_progress → completed, once every activity is checked and no task is pending."""
    return jsonify(complete_stage(client_id, stage_id, current_user_id())), 200


@progression_bp.route("/clients/<client_id>/stages/<stage_id>/revert", methods=["POST"])
@login_required
def revert(client_id, stage_id):
    """Step back one status. Response carries ``new_status``."""
    return jsonify(revert_stage(client_id, stage_id, current_user_id())), 200


# ═════════════════════════════════════════════════════════════════════════
# Activities
# ═════════════════════════════════════════════════════════════════════════


@progression_bp.route("/clients/<client_id>/activities/<activity_id>/toggle", methods=["POST"])
@login_required
def toggle(client_id, activity_id):
    """Flip an activity's completion.

    Body (optional): { note_content }
    """
    data = request.get_json(silent=True) or {}
    note = data.get("note_content")
    if note is not None and not isinstance(note, str):
        note = str(note)
    return jsonify(toggle_activity(client_id, activity_id, current_user_id(), note)), 200
