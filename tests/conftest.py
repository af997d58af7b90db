"""
Shared pytest fixtures for the INDOR Desk test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: table creation/teardown (session-scoped)
    - session: per-test app context with a fresh schema (autouse)
    - client: Flask test client
    - factories: make_profile / make_user / make_stage / make_activity / make_client
    - admin, operator: ready-made users
    - auth_headers: Bearer header builder

Service operations roll the session back on every domain error, so the
factories commit rather than flush.
"""

import pytest
from sqlalchemy import func, select

from indor_desk import create_app
from indor_desk.models import db as _db
from indor_desk.models.auth import User
from indor_desk.models.catalog import Profile, Stage, StageActivity
from indor_desk.models.client import Client
from indor_desk.models.notes import Note
from indor_desk.services.jwt_service import generate_access_token


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_profile():
    def _make(name="Psychologist", **kw):
        profile = Profile(name=name, **kw)
        _db.session.add(profile)
        _db.session.commit()
        return profile
    return _make


@pytest.fixture()
def make_user():
    counter = {"n": 0}

    def _make(name="Ana Souza", role="operator", profile=None, **kw):
        counter["n"] += 1
        user = User(
            username=kw.pop("username", f"user{counter['n']}"),
            name=name,
            role=role,
            profile_id=profile.id if profile else None,
            **kw,
        )
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture()
def make_stage():
    def _make(name="Triage", order_index=1, **kw):
        stage = Stage(name=name, order_index=order_index, **kw)
        _db.session.add(stage)
        _db.session.commit()
        return stage
    return _make


@pytest.fixture()
def make_activity():
    def _make(stage, name="Intake", order_index=1, profiles=(), **kw):
        activity = StageActivity(stage_id=stage.id, name=name, order_index=order_index, **kw)
        activity.allowed_profiles.extend(profiles)
        _db.session.add(activity)
        _db.session.commit()
        return activity
    return _make


@pytest.fixture()
def make_client():
    def _make(name="João Pereira", **kw):
        c = Client(name=name, **kw)
        _db.session.add(c)
        _db.session.commit()
        return c
    return _make


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def admin(make_user):
    return make_user(name="Admin", role="admin", username="admin")


@pytest.fixture()
def operator(make_user):
    return make_user(name="Olivia Reception", role="operator", username="reception")


@pytest.fixture()
def patient(make_client):
    return make_client()


@pytest.fixture()
def auth_headers():
    """Build an Authorization header for ``user``."""
    def _headers(user):
        token = generate_access_token(user.id, user.role)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture()
def note_count():
    """Number of notes for a client, optionally only auto-generated ones."""
    def _count(client_id, auto_only=True):
        stmt = select(func.count(Note.id)).where(Note.client_id == client_id)
        if auto_only:
            stmt = stmt.where(Note.is_auto_generated.is_(True))
        return _db.session.execute(stmt).scalar_one()
    return _count
