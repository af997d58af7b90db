"""
Actor resolution for the progression engine.

The HTTP layer only knows the caller's user id (JWT ``sub``). Permission
gates need the role, the assigned profile and a display name for the audit
notes; ``load_actor`` reads them from the users table in one place.
"""

from __future__ import annotations

from dataclasses import dataclass

from indor_desk.core.exceptions import NotFoundError
from indor_desk.models import db
from indor_desk.models.auth import User

ADMIN_ROLE = "admin"
_FALLBACK_NAME = "user"


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str
    profile_id: str | None
    name: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @property
    def display_name(self) -> str:
        return self.name or _FALLBACK_NAME

    def holds_profile(self, profile_ids) -> bool:
        """True when the actor's profile is one of ``profile_ids``."""
        return self.profile_id is not None and self.profile_id in profile_ids


def load_actor(user_id: str) -> Actor:
    """Return the Actor for ``user_id``.

    Raises:
        NotFoundError: unknown or deactivated user.
    """
    user = db.session.get(User, user_id) if user_id else None
    if user is None or not user.is_active:
        raise NotFoundError("User", user_id)
    return Actor(
        user_id=user.id,
        role=user.role,
        profile_id=user.profile_id,
        name=user.name,
    )
