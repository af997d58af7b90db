"""Standardised API error responses.

Usage
-----
    from indor_desk.utils.errors import api_error, E

    return api_error(E.VALIDATION_REQUIRED, "client_id is required")
    return api_error(E.NOT_FOUND, "Client not found")

Domain exceptions raised by the service layer never need to be caught in
views: ``register_error_handlers`` converts every ``WorkflowError`` into the
same JSON body, keyed by its ``kind``.
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from indor_desk.core.exceptions import WorkflowError
from indor_desk.models import db

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Authentication / permissions – HTTP 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"
    STAGE_NOT_FOUND = "ERR_STAGE_NOT_FOUND"

    # Workflow state – HTTP 409
    SEQUENCE_VIOLATION = "ERR_SEQUENCE_VIOLATION"
    INVALID_TRANSITION = "ERR_INVALID_TRANSITION"
    INCOMPLETE_ACTIVITIES = "ERR_INCOMPLETE_ACTIVITIES"
    UNRESOLVED_PENDING_TASKS = "ERR_UNRESOLVED_PENDING_TASKS"
    ACTIVITIES_MUST_BE_UNCHECKED = "ERR_ACTIVITIES_MUST_BE_UNCHECKED"
    STAGE_NOT_STARTED = "ERR_STAGE_NOT_STARTED"
    STAGE_ALREADY_COMPLETED = "ERR_STAGE_ALREADY_COMPLETED"
    ALREADY_RESOLVED = "ERR_ALREADY_RESOLVED"
    NOT_RESOLVED = "ERR_NOT_RESOLVED"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.STAGE_NOT_FOUND: 404,
    E.SEQUENCE_VIOLATION: 409,
    E.INVALID_TRANSITION: 409,
    E.INCOMPLETE_ACTIVITIES: 409,
    E.UNRESOLVED_PENDING_TASKS: 409,
    E.ACTIVITIES_MUST_BE_UNCHECKED: 409,
    E.STAGE_NOT_STARTED: 409,
    E.STAGE_ALREADY_COMPLETED: 409,
    E.ALREADY_RESOLVED: 409,
    E.NOT_RESOLVED: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}

# ── WorkflowError.kind → error code ───────────────────────────────────
KIND_CODES: dict[str, str] = {
    "ValidationError": E.VALIDATION_INVALID,
    "NotFound": E.NOT_FOUND,
    "StageNotFound": E.STAGE_NOT_FOUND,
    "ProfileNotAllowed": E.FORBIDDEN,
    "SequenceViolation": E.SEQUENCE_VIOLATION,
    "InvalidTransition": E.INVALID_TRANSITION,
    "IncompleteActivities": E.INCOMPLETE_ACTIVITIES,
    "UnresolvedPendingTasks": E.UNRESOLVED_PENDING_TASKS,
    "ActivitiesMustBeUnchecked": E.ACTIVITIES_MUST_BE_UNCHECKED,
    "StageNotStarted": E.STAGE_NOT_STARTED,
    "StageAlreadyCompleted": E.STAGE_ALREADY_COMPLETED,
    "AlreadyResolved": E.ALREADY_RESOLVED,
    "NotResolved": E.NOT_RESOLVED,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
    kind: str | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (missing activities, counts, etc.).
    kind : str, optional
        Domain error kind, echoed so clients can branch on it.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if kind:
        body["kind"] = kind
    if details:
        body["details"] = details

    return jsonify(body), http_status


def workflow_error_response(error: WorkflowError):
    """Translate a domain exception into its API error response.

    A ValidationError whose details flag a field as ``"required"`` is
    reported as ERR_VALIDATION_REQUIRED.
    """
    code = KIND_CODES.get(error.kind, E.VALIDATION_INVALID)
    if code == E.VALIDATION_INVALID and "required" in error.details.values():
        code = E.VALIDATION_REQUIRED
    return api_error(code, error.message, details=error.details, kind=error.kind)


def register_error_handlers(app):
    """Install the application-wide JSON error handlers."""

    @app.errorhandler(WorkflowError)
    def _handle_workflow_error(error: WorkflowError):
        logger.info(
            "Rejected %s %s: %s (%s)",
            request.method, request.path, error.kind, error.message,
        )
        return workflow_error_response(error)

    @app.errorhandler(SQLAlchemyError)
    def _handle_database_error(error: SQLAlchemyError):
        db.session.rollback()
        logger.error("Database error on %s %s", request.method, request.path, exc_info=error)
        return api_error(E.DATABASE, "Database error")

    @app.errorhandler(401)
    def _unauthorized(e):
        return api_error(E.UNAUTHORIZED, "Authentication required")

    @app.errorhandler(404)
    def _not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(413)
    @app.errorhandler(415)
    def _bad_body(e):
        return api_error(E.VALIDATION_INVALID, e.description, status=e.code)

    @app.errorhandler(429)
    def _rate_limited(e):
        return api_error(
            E.VALIDATION_INVALID, "Too many requests",
            status=429, details={"retry_after": e.description},
        )

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
