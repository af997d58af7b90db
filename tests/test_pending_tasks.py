"""
Pending task lifecycle tests (``indor_desk.services.pending_task_lifecycle``).

    pending --resolve--> resolved --reopen--> pending

Resolve writes a user (non-auto) note; reopen writes one auto-note, plus a
second one when it pushes a completed stage back to in_progress.
"""

import pytest

from indor_desk.core.exceptions import (
    AlreadyResolved,
    NotFoundError,
    NotResolved,
    ProfileNotAllowed,
    UnresolvedPendingTasks,
    ValidationError,
)
from indor_desk.models import db
from indor_desk.models.notes import Note, PendingTask
from indor_desk.models.progress import ClientStage
from indor_desk.services.pending_task_lifecycle import (
    RESOLUTION_PREFIX,
    create_pending_task,
    list_pending_tasks,
    reopen_pending_task,
    resolve_pending_task,
)
from indor_desk.services.stage_lifecycle import complete_stage, start_stage


@pytest.fixture()
def nurse(make_user):
    return make_user(name="Ana Souza")


@pytest.fixture()
def triage(make_stage):
    return make_stage("Triage", 1)


@pytest.fixture()
def task(patient, triage, nurse):
    start_stage(patient.id, triage.id, nurse.id)
    return create_pending_task(patient.id, triage.id, "Request school report", nurse.id)


# ═════════════════════════════════════════════════════════════════════════════
# create / list
# ═════════════════════════════════════════════════════════════════════════════


class TestCreatePendingTask:
    def test_create(self, patient, triage, nurse, make_profile):
        profile = make_profile("Psychologist")
        result = create_pending_task(
            patient.id, triage.id, "  Call family  ", nurse.id, assigned_profile_id=profile.id,
        )
        assert result["status"] == "pending"
        assert result["title"] == "Call family"
        assert result["assigned_profile"]["name"] == "Psychologist"
        assert result["created_by"] == nurse.id

    @pytest.mark.parametrize("title", ["", "   ", None, "x" * 256])
    def test_invalid_title(self, patient, triage, nurse, title):
        with pytest.raises(ValidationError):
            create_pending_task(patient.id, triage.id, title, nurse.id)

    def test_title_at_limit(self, patient, triage, nurse):
        assert create_pending_task(patient.id, triage.id, "x" * 255, nurse.id)["status"] == "pending"

    def test_unknown_references(self, patient, triage, nurse):
        with pytest.raises(NotFoundError):
            create_pending_task(patient.id, "missing", "t", nurse.id)
        with pytest.raises(NotFoundError):
            create_pending_task("missing", triage.id, "t", nurse.id)
        with pytest.raises(NotFoundError):
            create_pending_task(patient.id, triage.id, "t", nurse.id, assigned_profile_id="missing")
        with pytest.raises(NotFoundError):
            create_pending_task(patient.id, triage.id, "t", nurse.id, note_id="missing")
        assert db.session.execute(db.select(db.func.count(PendingTask.id))).scalar_one() == 0


class TestListPendingTasks:
    def test_filters(self, patient, make_client, triage, nurse, task):
        other = make_client("Maria")
        create_pending_task(other.id, triage.id, "Other client", nurse.id)
        resolve_pending_task(task["id"], nurse.id, "done")

        assert len(list_pending_tasks()) == 2
        assert [t["title"] for t in list_pending_tasks(client_id=other.id)] == ["Other client"]
        assert [t["id"] for t in list_pending_tasks(status="resolved")] == [task["id"]]
        assert len(list_pending_tasks(client_id=patient.id, status="pending")) == 0

    def test_invalid_status_filter(self):
        with pytest.raises(ValidationError):
            list_pending_tasks(status="archived")


# ═════════════════════════════════════════════════════════════════════════════
# resolve
# ═════════════════════════════════════════════════════════════════════════════


class TestResolvePendingTask:
    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_resolution_note_always_fails(self, task, nurse, text):
        with pytest.raises(ValidationError):
            resolve_pending_task(task["id"], nurse.id, text)
        with pytest.raises(ValidationError):
            resolve_pending_task("missing", nurse.id, text)

    def test_empty_note_fails_even_when_resolved(self, task, nurse):
        resolve_pending_task(task["id"], nurse.id, "done")
        with pytest.raises(ValidationError):
            resolve_pending_task(task["id"], nurse.id, "")

    def test_resolve(self, patient, triage, task, nurse, note_count):
        auto_before = note_count(patient.id)
        all_before = note_count(patient.id, auto_only=False)

        result = resolve_pending_task(task["id"], nurse.id, "  Report received  ")

        assert result["task"]["status"] == "resolved"
        assert result["task"]["resolved_by"] == nurse.id
        assert result["task"]["resolved_at"] is not None
        assert result["task"]["resolution_note_id"] == result["note"]["id"]
        assert result["note"]["content"] == RESOLUTION_PREFIX + "Report received"
        assert result["note"]["is_auto_generated"] is False
        assert result["note"]["stage_id"] == triage.id
        assert note_count(patient.id) == auto_before
        assert note_count(patient.id, auto_only=False) == all_before + 1

    def test_resolve_twice(self, task, nurse):
        resolve_pending_task(task["id"], nurse.id, "done")
        with pytest.raises(AlreadyResolved):
            resolve_pending_task(task["id"], nurse.id, "again")

    def test_unknown_task(self, nurse):
        with pytest.raises(NotFoundError):
            resolve_pending_task("missing", nurse.id, "done")

    def test_assigned_profile_gate(self, patient, triage, nurse, admin, make_user, make_profile):
        psych = make_profile("Psychologist")
        start_stage(patient.id, triage.id, nurse.id)
        restricted = create_pending_task(
            patient.id, triage.id, "Score test", nurse.id, assigned_profile_id=psych.id,
        )

        with pytest.raises(ProfileNotAllowed) as exc:
            resolve_pending_task(restricted["id"], nurse.id, "done")
        assert "Psychologist" in exc.value.message
        assert db.session.get(PendingTask, restricted["id"]).status == "pending"

        holder = make_user(name="Dr. Lima", profile=psych)
        assert resolve_pending_task(restricted["id"], holder.id, "done")["task"]["status"] == "resolved"

        other = create_pending_task(
            patient.id, triage.id, "Second", nurse.id, assigned_profile_id=psych.id,
        )
        assert resolve_pending_task(other["id"], admin.id, "done")["task"]["status"] == "resolved"

    def test_resolving_unblocks_completion(self, patient, triage, task, nurse):
        resolve_pending_task(task["id"], nurse.id, "done")
        assert complete_stage(patient.id, triage.id, nurse.id)["new_status"] == "completed"


# ═════════════════════════════════════════════════════════════════════════════
# reopen
# ═════════════════════════════════════════════════════════════════════════════


class TestReopenPendingTask:
    def test_reopen_pending_task_fails(self, task, nurse):
        with pytest.raises(NotResolved):
            reopen_pending_task(task["id"], nurse.id)

    def test_unknown_task(self, nurse):
        with pytest.raises(NotFoundError):
            reopen_pending_task("missing", nurse.id)

    def test_reopen_clears_resolution(self, patient, triage, task, nurse, note_count):
        resolve_pending_task(task["id"], nurse.id, "done")
        before = note_count(patient.id)

        result = reopen_pending_task(task["id"], nurse.id)

        assert result["task"]["status"] == "pending"
        assert result["task"]["resolved_at"] is None
        assert result["task"]["resolved_by"] is None
        assert result["task"]["resolution_note_id"] is None
        assert result["stage_reopened"] is False
        assert [n["content"] for n in result["notes"]] == [
            'Pending task reopened: "Request school report"',
        ]
        assert note_count(patient.id) == before + 1

    def test_resolution_note_survives_reopen(self, task, nurse):
        resolved = resolve_pending_task(task["id"], nurse.id, "done")
        reopen_pending_task(task["id"], nurse.id)
        assert db.session.get(Note, resolved["note"]["id"]) is not None

    def test_reopen_cascades_to_completed_stage(self, patient, triage, task, nurse, note_count):
        resolve_pending_task(task["id"], nurse.id, "done")
        complete_stage(patient.id, triage.id, nurse.id)
        before = note_count(patient.id)

        result = reopen_pending_task(task["id"], nurse.id)

        assert result["stage_reopened"] is True
        assert [n["content"] for n in result["notes"]] == [
            'Pending task reopened: "Request school report"',
            "Stage reopened automatically due to pending-task reopening.",
        ]
        assert note_count(patient.id) == before + 2
        cs = db.session.execute(
            db.select(ClientStage).filter_by(client_id=patient.id, stage_id=triage.id)
        ).scalar_one()
        assert cs.status == "in_progress"
        assert cs.completed_at is None
        assert cs.completed_by is None

    def test_reopened_task_blocks_completion_again(self, patient, triage, task, nurse):
        resolve_pending_task(task["id"], nurse.id, "done")
        reopen_pending_task(task["id"], nurse.id)

        with pytest.raises(UnresolvedPendingTasks):
            complete_stage(patient.id, triage.id, nurse.id)
