"""
tests/unit/conftest.py — DB-free fixtures.

Unit tests never touch a database or a Flask app. The transient store and the
identity lookup are replaced with in-memory fakes patched over the service
modules, and `session` is a MagicMock that is only passed through.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from backend.app.services import auth_service, transient_service
from backend.app.services.link_service import LinkSettings


class FakeStore:
    """Dict-backed stand-in for transient_service. Records every write."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.writes: list[tuple[str, str, int]] = []
        self.fail_reads = False

    def get(self, key, session):
        if self.fail_reads:
            raise OperationalError("SELECT", {}, Exception("database is gone"))
        return self.values.get(key)

    def set(self, key, value, ttl, session):
        self.values[key] = value
        self.ttls[key] = ttl
        self.writes.append((key, value, ttl))

    def live(self, prefix, session):
        return [(k, v) for k, v in sorted(self.values.items()) if k.startswith(prefix)]


@pytest.fixture
def store(monkeypatch) -> FakeStore:
    fake = FakeStore()
    monkeypatch.setattr(transient_service, "get_transient", fake.get)
    monkeypatch.setattr(transient_service, "set_transient", fake.set)
    monkeypatch.setattr(transient_service, "live_transients", fake.live)
    return fake


@pytest.fixture
def users(monkeypatch) -> dict:
    """user_id → user object. Add or remove ids to control resolve_user()."""
    known: dict[int, SimpleNamespace] = {}

    def _resolve(user_id, session):
        try:
            return known.get(int(user_id))
        except (TypeError, ValueError):
            return None

    monkeypatch.setattr(auth_service, "resolve_user", _resolve)
    return known


@pytest.fixture
def session() -> MagicMock:
    return MagicMock()


@pytest.fixture
def settings() -> LinkSettings:
    return LinkSettings(
        base_url="https://site.example",
        endpoint="ab12cd34",
        secret_key="unit-secret",
        default_ttl=2592000,
        check_signature=True,
        validate_domain=False,
        bcrypt_rounds=4,
    )


@pytest.fixture(name="add_user")
def add_user_fixture(users):
    def _add(user_id: int) -> None:
        users[user_id] = SimpleNamespace(id=user_id)

    return _add
