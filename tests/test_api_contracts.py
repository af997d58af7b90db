"""
HTTP contract tests for the /api/v1 surface.

Checks status codes, error body shape ({error, code, kind, details}) and
authentication, on top of the service-level tests.
"""

import pytest

from indor_desk.models import db
from indor_desk.models.progress import ClientStage

BASE = "/api/v1"


@pytest.fixture()
def nurse(make_user):
    return make_user(name="Ana Souza")


@pytest.fixture()
def headers(auth_headers, nurse):
    return auth_headers(nurse)


@pytest.fixture()
def stages(make_stage, make_activity):
    triage = make_stage("Triage", 1)
    assessment = make_stage("Assessment", 2)
    intake = make_activity(triage, "Intake", 1)
    return triage, assessment, intake


# ═════════════════════════════════════════════════════════════════════════════
# Auth & infrastructure
# ═════════════════════════════════════════════════════════════════════════════


class TestAuthAndInfra:
    def test_health_is_public(self, client):
        res = client.get(f"{BASE}/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_health_live_checks_database(self, client):
        res = client.get(f"{BASE}/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_missing_token(self, client, patient):
        res = client.get(f"{BASE}/clients/{patient.id}")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    def test_garbage_token(self, client, patient):
        res = client.get(f"{BASE}/clients/{patient.id}", headers={"Authorization": "Bearer nope"})
        assert res.status_code == 401

    def test_expired_token(self, app, client, patient, nurse, auth_headers):
        original = app.config["JWT_ACCESS_EXPIRES"]
        app.config["JWT_ACCESS_EXPIRES"] = -60
        try:
            expired = auth_headers(nurse)
        finally:
            app.config["JWT_ACCESS_EXPIRES"] = original
        res = client.get(f"{BASE}/clients/{patient.id}", headers=expired)
        assert res.status_code == 401

    def test_token_for_deactivated_user(self, client, patient, stages, make_user, auth_headers):
        gone = make_user(name="Former", is_active=False)
        res = client.post(
            f"{BASE}/clients/{patient.id}/stages/{stages[0].id}/start",
            headers=auth_headers(gone),
        )
        assert res.status_code == 404

    def test_request_id_header(self, client, headers, patient):
        res = client.get(f"{BASE}/clients/{patient.id}", headers={**headers, "X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert "X-Request-Duration-Ms" in res.headers

    def test_unknown_route_is_json_404(self, client):
        res = client.get(f"{BASE}/nowhere")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_non_json_body_rejected(self, client, headers, patient, stages):
        res = client.post(
            f"{BASE}/clients/{patient.id}/activities/{stages[2].id}/toggle",
            data="note_content=hi",
            headers={**headers, "Content-Type": "application/x-www-form-urlencoded"},
        )
        assert res.status_code == 415

    def test_no_put_route_for_activities(self, client, headers, patient, stages):
        res = client.put(
            f"{BASE}/clients/{patient.id}/activities/{stages[2].id}/toggle",
            json={"is_completed": True}, headers=headers,
        )
        assert res.status_code == 405


# ═════════════════════════════════════════════════════════════════════════════
# Stage lifecycle
# ═════════════════════════════════════════════════════════════════════════════


class TestStageRoutes:
    def test_start_then_double_start(self, client, headers, patient, stages):
        triage = stages[0]
        url = f"{BASE}/clients/{patient.id}/stages/{triage.id}/start"

        res = client.post(url, headers=headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["new_status"] == "in_progress"
        assert body["client_stage"]["stage_name"] == "Triage"

        res = client.post(url, headers=headers)
        assert res.status_code == 409
        body = res.get_json()
        assert body["kind"] == "InvalidTransition"
        assert body["code"] == "ERR_INVALID_TRANSITION"
        assert body["error"]

    def test_sequence_violation(self, client, headers, patient, stages):
        res = client.post(f"{BASE}/clients/{patient.id}/stages/{stages[1].id}/start", headers=headers)
        assert res.status_code == 409
        assert res.get_json()["kind"] == "SequenceViolation"

    def test_incomplete_activities(self, client, headers, patient, stages):
        triage = stages[0]
        client.post(f"{BASE}/clients/{patient.id}/stages/{triage.id}/start", headers=headers)
        res = client.post(f"{BASE}/clients/{patient.id}/stages/{triage.id}/complete", headers=headers)
        assert res.status_code == 409
        body = res.get_json()
        assert body["kind"] == "IncompleteActivities"
        assert body["details"]["missing_activities"] == ["Intake"]

    def test_revert_reports_new_status(self, client, headers, patient, stages):
        triage = stages[0]
        client.post(f"{BASE}/clients/{patient.id}/stages/{triage.id}/start", headers=headers)
        res = client.post(f"{BASE}/clients/{patient.id}/stages/{triage.id}/revert", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["new_status"] == "not_started"

    def test_unknown_stage(self, client, headers, patient):
        res = client.post(f"{BASE}/clients/{patient.id}/stages/missing/start", headers=headers)
        assert res.status_code == 404
        assert res.get_json()["kind"] == "NotFound"


# ═════════════════════════════════════════════════════════════════════════════
# Activities
# ═════════════════════════════════════════════════════════════════════════════


class TestToggleRoute:
    def test_toggle_with_observation(self, client, headers, patient, stages):
        triage, _, intake = stages
        client.post(f"{BASE}/clients/{patient.id}/stages/{triage.id}/start", headers=headers)

        res = client.post(
            f"{BASE}/clients/{patient.id}/activities/{intake.id}/toggle",
            json={"note_content": "All documents received"}, headers=headers,
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["is_completed"] is True
        assert body["note"]["content"].endswith("Observation: All documents received")

    def test_toggle_without_body(self, client, headers, patient, stages):
        triage, _, intake = stages
        client.post(f"{BASE}/clients/{patient.id}/stages/{triage.id}/start", headers=headers)
        res = client.post(f"{BASE}/clients/{patient.id}/activities/{intake.id}/toggle", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["is_completed"] is True

    def test_stage_not_found(self, client, headers, patient, stages):
        res = client.post(
            f"{BASE}/clients/{patient.id}/activities/{stages[2].id}/toggle", headers=headers,
        )
        assert res.status_code == 404
        assert res.get_json()["kind"] == "StageNotFound"

    def test_profile_not_allowed_is_403(self, client, headers, patient, stages, make_activity, make_profile, admin, auth_headers):
        triage = stages[0]
        restricted = make_activity(triage, "Scoring", 2, profiles=[make_profile("Psychologist")])
        client.post(
            f"{BASE}/clients/{patient.id}/stages/{triage.id}/start", headers=auth_headers(admin),
        )

        res = client.post(
            f"{BASE}/clients/{patient.id}/activities/{restricted.id}/toggle", headers=headers,
        )
        assert res.status_code == 403
        body = res.get_json()
        assert body["kind"] == "ProfileNotAllowed"
        assert body["details"]["allowed_profiles"] == ["Psychologist"]


# ═════════════════════════════════════════════════════════════════════════════
# Notes, pending tasks, clients
# ═════════════════════════════════════════════════════════════════════════════


class TestNotesAndTasksRoutes:
    def test_note_with_pending_task_then_resolve_and_reopen(self, client, headers, patient, stages):
        triage = stages[0]
        client.post(f"{BASE}/clients/{patient.id}/stages/{triage.id}/start", headers=headers)

        res = client.post(f"{BASE}/notes", json={
            "client_id": patient.id,
            "stage_id": triage.id,
            "content": "Waiting for medical report",
            "creates_pending_task": True,
        }, headers=headers)
        assert res.status_code == 201
        task_id = res.get_json()["pending_task"]["id"]

        res = client.get(f"{BASE}/pending-tasks?client_id={patient.id}&status=pending", headers=headers)
        assert res.get_json()["total"] == 1

        res = client.post(f"{BASE}/pending-tasks/{task_id}/resolve", json={"resolution_note": ""}, headers=headers)
        assert res.status_code == 400
        assert res.get_json()["kind"] == "ValidationError"

        res = client.post(
            f"{BASE}/pending-tasks/{task_id}/resolve",
            json={"resolution_note": "Report arrived"}, headers=headers,
        )
        assert res.status_code == 200
        assert res.get_json()["task"]["status"] == "resolved"

        res = client.post(
            f"{BASE}/pending-tasks/{task_id}/resolve",
            json={"resolution_note": "again"}, headers=headers,
        )
        assert res.status_code == 409
        assert res.get_json()["kind"] == "AlreadyResolved"

        res = client.post(f"{BASE}/pending-tasks/{task_id}/reopen", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["task"]["status"] == "pending"

        res = client.post(f"{BASE}/pending-tasks/{task_id}/reopen", headers=headers)
        assert res.status_code == 409
        assert res.get_json()["kind"] == "NotResolved"

        res = client.get(f"{BASE}/notes?client_id={patient.id}", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["total"] == 4

    def test_create_pending_task_route(self, client, headers, patient, stages):
        res = client.post(f"{BASE}/pending-tasks", json={
            "client_id": patient.id, "stage_id": stages[0].id, "title": "Call family",
        }, headers=headers)
        assert res.status_code == 201
        assert res.get_json()["status"] == "pending"

    def test_unresolved_tasks_block_completion(self, client, headers, patient, stages):
        triage, _, intake = stages
        client.post(f"{BASE}/clients/{patient.id}/stages/{triage.id}/start", headers=headers)
        client.post(f"{BASE}/clients/{patient.id}/activities/{intake.id}/toggle", headers=headers)
        client.post(f"{BASE}/pending-tasks", json={
            "client_id": patient.id, "stage_id": triage.id, "title": "Call family",
        }, headers=headers)

        res = client.post(f"{BASE}/clients/{patient.id}/stages/{triage.id}/complete", headers=headers)
        assert res.status_code == 409
        body = res.get_json()
        assert body["kind"] == "UnresolvedPendingTasks"
        assert body["details"]["count"] == 1

    def test_client_create_and_roadmap(self, client, headers, stages):
        res = client.post(f"{BASE}/clients", json={"name": "Lucas Silva"}, headers=headers)
        assert res.status_code == 201
        client_id = res.get_json()["id"]

        res = client.post(f"{BASE}/clients/{client_id}/stages/{stages[0].id}/start", headers=headers)
        assert res.status_code == 200

        res = client.get(f"{BASE}/clients/{client_id}", headers=headers)
        assert res.status_code == 200
        statuses = [s["status"] for s in res.get_json()["stages"]]
        assert statuses == ["in_progress", "not_started"]

        db.session.expire_all()
        assert db.session.execute(
            db.select(db.func.count(ClientStage.id)).filter_by(client_id=client_id)
        ).scalar_one() == 1

    def test_client_validation(self, client, headers):
        res = client.post(f"{BASE}/clients", json={"name": "A"}, headers=headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_client_missing_name_is_required(self, client, headers):
        res = client.post(f"{BASE}/clients", json={}, headers=headers)
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_REQUIRED"
        assert body["details"] == {"name": "required"}


class TestClientRecordRoutes:
    def test_list_with_search_and_status(self, client, headers, patient, stages, make_client):
        make_client("Maria Lima", guardian_phone="555-0101")
        client.post(f"{BASE}/clients/{patient.id}/stages/{stages[0].id}/start", headers=headers)

        res = client.get(f"{BASE}/clients", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["total"] == 2

        res = client.get(f"{BASE}/clients?search=0101", headers=headers)
        assert [c["name"] for c in res.get_json()["items"]] == ["Maria Lima"]

        res = client.get(f"{BASE}/clients?status=in_progress", headers=headers)
        (item,) = res.get_json()["items"]
        assert item["id"] == patient.id
        assert item["current_stage"]["name"] == "Triage"

        res = client.get(f"{BASE}/clients?status=bogus", headers=headers)
        assert res.status_code == 400

    def test_list_requires_token(self, client):
        assert client.get(f"{BASE}/clients").status_code == 401

    def test_update(self, client, headers, patient):
        res = client.put(
            f"{BASE}/clients/{patient.id}", json={"guardian_name": "Rosa"}, headers=headers,
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["guardian_name"] == "Rosa"
        assert body["name"] == patient.name

        res = client.put(f"{BASE}/clients/{patient.id}", json={"name": "A"}, headers=headers)
        assert res.status_code == 400

    def test_delete_is_admin_only(self, client, headers, patient, admin, auth_headers):
        res = client.delete(f"{BASE}/clients/{patient.id}", headers=headers)
        assert res.status_code == 403
        assert res.get_json()["kind"] == "ProfileNotAllowed"

        res = client.delete(f"{BASE}/clients/{patient.id}", headers=auth_headers(admin))
        assert res.status_code == 200

        res = client.get(f"{BASE}/clients/{patient.id}", headers=headers)
        assert res.status_code == 404
