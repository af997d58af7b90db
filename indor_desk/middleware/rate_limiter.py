"""
Rate limiting configuration.

The Limiter instance is created in ``indor_desk/__init__.py`` with no
default limits and its storage taken from RATELIMIT_STORAGE_URI
(``memory://`` locally, a Redis URL when several workers share counters).
Windows expire inside that storage; nothing is kept in module state here.

Limits are keyed by caller identity: ``user:<jwt sub>`` for authenticated
requests, the remote address otherwise.

Usage:
    from indor_desk.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

DEFAULT_API_LIMIT = "120/minute"

LIMITED_BLUEPRINTS = ("clients", "progression", "notes", "pending_tasks")


def rate_limit_key():
    """Caller identity for rate-limit buckets."""
    user_id = getattr(g, "jwt_user_id", None)
    if user_id:
        return f"user:{user_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """Apply API_RATE_LIMIT to the API blueprints; health is exempt.

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        logger.debug("Rate limiter disabled (TESTING=True)")
        return

    limit = app.config.get("API_RATE_LIMIT") or DEFAULT_API_LIMIT
    for bp_name in LIMITED_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    logger.info("Rate limiter configured: %s per caller on %s", limit, ", ".join(LIMITED_BLUEPRINTS))
