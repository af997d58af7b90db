"""
Platform-wide exception hierarchy.

Every precondition failure of the progression engine raises one of these
types. Each carries a stable ``kind`` string so callers (and the HTTP layer)
can tell the cases apart without parsing messages, and a human-readable
message suitable for the UI.

Infrastructure failures (SQLAlchemyError and friends) are not
part of this hierarchy; they propagate unchanged and surface as HTTP 500.

Usage:
    from indor_desk.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Stage", resource_id=stage_id)
    raise ValidationError("resolution_note is required", details={"resolution_note": "..."})
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for expected, user-actionable domain failures.

    Args:
        message: Human-readable explanation.
        details: Optional structured payload for API responses.
    """

    kind = "WorkflowError"

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)


class NotFoundError(WorkflowError):
    """Raised when a referenced client/stage/activity/task/user does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Stage", "PendingTask").
        resource_id: The PK that was looked up.
    """

    kind = "NotFound"

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        *,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        if message is None:
            message = f"{resource}"
            if resource_id is not None:
                message += f" id={resource_id}"
            message += " not found"
        super().__init__(message, details={"resource": resource})


class StageNotFound(NotFoundError):
    """The client has no progress row for the stage an activity belongs to."""

    kind = "StageNotFound"

    def __init__(self, client_id: str, stage_id: str) -> None:
        super().__init__(
            "ClientStage",
            message=f"Stage {stage_id} has not been started for client {client_id}",
        )
        self.details.update({"client_id": client_id, "stage_id": stage_id})


class ValidationError(WorkflowError):
    """Raised when required input is missing or malformed.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    kind = "ValidationError"


# ── Stage lifecycle ──────────────────────────────────────────────────────────


class SequenceViolation(WorkflowError):
    """Attempted to start a stage whose predecessor has not been started."""

    kind = "SequenceViolation"


class InvalidTransition(WorkflowError):
    """Operation is not valid from the current status."""

    kind = "InvalidTransition"

    def __init__(self, message: str, current_status: str | None = None) -> None:
        self.current_status = current_status
        super().__init__(message, details={"current_status": current_status})


class IncompleteActivities(WorkflowError):
    """Stage completion attempted while some of its activities are unchecked."""

    kind = "IncompleteActivities"

    def __init__(self, stage_name: str, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            f'All activities of stage "{stage_name}" must be completed before '
            f"completing it (missing: {', '.join(self.missing)})",
            details={"missing_activities": self.missing},
        )


class UnresolvedPendingTasks(WorkflowError):
    """Stage completion attempted while pending tasks remain open."""

    kind = "UnresolvedPendingTasks"

    def __init__(self, count: int) -> None:
        self.count = count
        super().__init__(
            f"There are {count} unresolved pending task(s) in this stage",
            details={"count": count},
        )


class ActivitiesMustBeUnchecked(WorkflowError):
    """Reverting an in-progress stage to pending while activities are checked."""

    kind = "ActivitiesMustBeUnchecked"

    def __init__(self, count: int) -> None:
        self.count = count
        super().__init__(
            "Uncheck all activities before reverting the stage to pending "
            f"({count} still completed)",
            details={"completed_activities": count},
        )


# ── Activity toggling ────────────────────────────────────────────────────────


class StageNotStarted(WorkflowError):
    """Activity toggle attempted on a stage that is not in progress."""

    kind = "StageNotStarted"


class StageAlreadyCompleted(WorkflowError):
    """Activity completion attempted on a completed stage."""

    kind = "StageAlreadyCompleted"


class ProfileNotAllowed(WorkflowError):
    """Actor lacks the role/profile the action requires.

    Args:
        profile_names: Names of the profiles that would be allowed.
        action: Short description used in the message.
    """

    kind = "ProfileNotAllowed"

    def __init__(
        self,
        profile_names: list[str],
        action: str,
        *,
        message: str | None = None,
    ) -> None:
        self.profile_names = list(profile_names)
        if message is None:
            names = ", ".join(self.profile_names) or "specific profiles"
            message = f'Only users with the profile(s) "{names}" may {action}'
        super().__init__(
            message,
            details={"allowed_profiles": self.profile_names},
        )


# ── Pending tasks ────────────────────────────────────────────────────────────


class AlreadyResolved(WorkflowError):
    """Resolve attempted on a task that is already resolved."""

    kind = "AlreadyResolved"


class NotResolved(WorkflowError):
    """Reopen attempted on a task that is not resolved."""

    kind = "NotResolved"
