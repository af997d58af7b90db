"""
JWT Auth Middleware: parses the Bearer token and sets ``g.jwt_user_id``.

    Authorization: Bearer <token>  →  g.jwt_user_id

A missing or invalid token leaves ``g.jwt_user_id`` as None; routes wrapped
in ``login_required`` then answer 401. Token issuance lives in the
authentication service.
"""

import logging
from functools import wraps

import jwt as pyjwt
from flask import abort, g, request

from indor_desk.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT parsing as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None

        path = request.path
        if not path.startswith("/api/v1/") or path.startswith(JWT_SKIP_PREFIXES):
            return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        try:
            payload = decode_access_token(auth_header[7:])
        except pyjwt.ExpiredSignatureError:
            logger.debug("Expired access token on %s", path)
            return
        except pyjwt.InvalidTokenError as exc:
            logger.debug("Invalid access token on %s: %s", path, exc)
            return

        g.jwt_user_id = payload.get("sub")


def current_user_id():
    """The authenticated user id; aborts with 401 when there is none."""
    user_id = getattr(g, "jwt_user_id", None)
    if not user_id:
        abort(401)
    return user_id


def login_required(fn):
    """Reject requests without a valid access token."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        current_user_id()
        return fn(*args, **kwargs)

    return wrapper
