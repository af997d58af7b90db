"""Clients blueprint.

  GET    /api/v1/clients               list (?search=&stage_id=&status=)
  POST   /api/v1/clients               register a client
  GET    /api/v1/clients/<client_id>   client detail with the stage roadmap
  PUT    /api/v1/clients/<client_id>   partial update
  DELETE /api/v1/clients/<client_id>   delete (administrators only)
"""

from flask import Blueprint, jsonify, request

from indor_desk.middleware.jwt_auth import current_user_id, login_required
from indor_desk.services.client_service import (
    create_client,
    delete_client,
    get_client_roadmap,
    list_clients,
    update_client,
)

client_bp = Blueprint("clients", __name__, url_prefix="/api/v1")


@client_bp.route("/clients", methods=["GET"])
@login_required
def index():
    return jsonify(list_clients(
        search=request.args.get("search"),
        stage_id=request.args.get("stage_id"),
        status=request.args.get("status"),
    )), 200


@client_bp.route("/clients", methods=["POST"])
@login_required
def create():
    data = request.get_json(silent=True) or {}
    return jsonify(create_client(data, current_user_id())), 201


@client_bp.route("/clients/<client_id>", methods=["GET"])
@login_required
def detail(client_id):
    return jsonify(get_client_roadmap(client_id)), 200


@client_bp.route("/clients/<client_id>", methods=["PUT"])
@login_required
def update(client_id):
    data = request.get_json(silent=True) or {}
    return jsonify(update_client(client_id, data, current_user_id())), 200


@client_bp.route("/clients/<client_id>", methods=["DELETE"])
@login_required
def delete(client_id):
    delete_client(client_id, current_user_id())
    return jsonify({"message": "Client deleted"}), 200
