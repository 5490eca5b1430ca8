"""
tests/integration/conftest.py — Fixtures for all integration tests.

Design:
  - The app is created once per session using create_app("testing").
    TestingConfig points at SQLite in memory unless TEST_DATABASE_URL is set.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted and the cached endpoint is dropped,
    so every test starts uninstalled with no users and no records.

Factory fixtures (call them with arguments inside a test):
  - install()                     → endpoint str
  - make_user(user_id, username)  → user id
  - delete_user(user_id)
  - issue(user_id, redirect, ttl) → login URL
  - stored_record(url)            → raw transient value for a login URL
  - overwrite_record(url, value)  → replace the raw transient value
  - path_of(url)                  → "/{endpoint}/{public}"
"""

from __future__ import annotations

from urllib.parse import urlparse

import pytest
from sqlalchemy import text

from backend.app import create_app
from backend.app.extensions import db as _db
from backend.app.models.transient import Transient
from backend.app.models.user import User
from backend.app.services import endpoint_service, link_service


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows and forgets the cached endpoint after every test."""
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test
        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM transients"))
            conn.execute(text("DELETE FROM options"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()

    app.extensions["autologin"].reload()


@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


# ═══════════════════════════════════════════════════════════════════════════
# Factory fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def install(app):
    def _install() -> str:
        with app.app_context():
            endpoint, _ = endpoint_service.install(_db.session)
            _db.session.commit()
        app.extensions["autologin"].reload()
        return endpoint

    return _install


@pytest.fixture
def make_user(app):
    def _make_user(user_id: int, username: str | None = None) -> int:
        username = username or f"user{user_id}"
        with app.app_context():
            _db.session.add(User(id=user_id, username=username, email=f"{username}@test.com"))
            _db.session.commit()
        return user_id

    return _make_user


@pytest.fixture
def delete_user(app):
    def _delete_user(user_id: int) -> None:
        with app.app_context():
            _db.session.delete(_db.session.get(User, user_id))
            _db.session.commit()

    return _delete_user


@pytest.fixture
def issue(app):
    def _issue(user_id: int, redirect: str = "/", ttl: int | None = None) -> str:
        with app.app_context():
            url = link_service.issue_link(
                user_id=user_id,
                session=_db.session,
                settings=app.extensions["autologin"].settings(),
                redirect=redirect,
                ttl=ttl,
            )
            _db.session.commit()
        return url

    return _issue


def path_of(url: str) -> str:
    return urlparse(url).path


def public_of(url: str) -> str:
    return path_of(url).rsplit("/", 1)[1]


@pytest.fixture
def stored_record(app):
    def _stored_record(url: str) -> str | None:
        with app.app_context():
            row = _db.session.get(Transient, link_service.record_key(public_of(url)))
            return None if row is None else row.value

    return _stored_record


@pytest.fixture
def overwrite_record(app):
    def _overwrite_record(url: str, value: str) -> None:
        with app.app_context():
            row = _db.session.get(Transient, link_service.record_key(public_of(url)))
            row.value = value
            _db.session.commit()

    return _overwrite_record


@pytest.fixture(name="path_of")
def path_of_fixture():
    return path_of
