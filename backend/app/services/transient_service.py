"""
services/transient_service.py — Expiring key/value store.

Contract:
  set_transient(key, value, ttl)  — upsert; the row expires ttl seconds from now
  get_transient(key)              — value, or None when absent or expired

Expiry is enforced here, on read: an expired row is treated as absent and
deleted on the spot. purge_expired() clears the rest in bulk.

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes
  - Callers own the transaction: functions flush, routes / CLI commit
"""

from __future__ import annotations

import time

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.models.transient import Transient


def _now() -> int:
    """Current time in epoch seconds. Patched in tests to move the clock."""
    return int(time.time())


def set_transient(key: str, value: str, ttl: int, session: Session) -> None:
    """
    Stores `value` under `key` for `ttl` seconds, replacing any previous value.

    Two requests may race to create the same key. The insert runs inside a
    savepoint; if it loses the race the existing row is updated instead.

    Raises:
      ValueError — ttl is not a positive number of seconds.
    """
    if ttl <= 0:
        raise ValueError("ttl must be a positive number of seconds.")

    expires_at = _now() + ttl

    row = session.get(Transient, key)
    if row is None:
        try:
            with session.begin_nested():
                session.add(Transient(key=key, value=value, expires_at=expires_at))
        except IntegrityError:
            row = session.get(Transient, key, populate_existing=True)

    if row is not None:
        row.value = value
        row.expires_at = expires_at

    session.flush()


def get_transient(key: str, session: Session) -> str | None:
    """Returns the live value for `key`, or None. Expired rows are deleted."""
    row = session.get(Transient, key)
    if row is None:
        return None
    if row.expires_at <= _now():
        session.delete(row)
        session.flush()
        return None
    return row.value


def delete_transient(key: str, session: Session) -> bool:
    row = session.get(Transient, key)
    if row is None:
        return False
    session.delete(row)
    session.flush()
    return True


def live_transients(prefix: str, session: Session) -> list[tuple[str, str]]:
    """
    Returns (key, value) pairs of every unexpired row whose key starts with
    `prefix`, oldest expiry first.
    """
    rows = session.execute(
        select(Transient.key, Transient.value)
        .where(
            Transient.key.startswith(prefix, autoescape=True),
            Transient.expires_at > _now(),
        )
        .order_by(Transient.expires_at, Transient.key)
    ).all()
    return [(row.key, row.value) for row in rows]


def purge_expired(session: Session) -> int:
    """Deletes every expired row. Returns the number of rows removed."""
    result = session.execute(
        delete(Transient).where(Transient.expires_at <= _now())
    )
    session.flush()
    return result.rowcount or 0
