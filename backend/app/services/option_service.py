"""
services/option_service.py — Durable name/value options.

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes
  - Callers own the transaction: functions flush, routes / CLI commit
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from backend.app.models.option import Option


def get_option(name: str, session: Session) -> str | None:
    """Returns the stored value for `name`, or None when the option is absent."""
    row = session.get(Option, name)
    return None if row is None else row.value


def add_option(name: str, value: str, session: Session) -> bool:
    """
    Creates the option only if it does not exist yet.

    Returns True when a row was written, False when one was already present
    (the existing value is left untouched).
    """
    if session.get(Option, name) is not None:
        return False
    session.add(Option(name=name, value=value))
    session.flush()
    return True


def update_option(name: str, value: str, session: Session) -> None:
    """Creates or overwrites the option."""
    row = session.get(Option, name)
    if row is None:
        session.add(Option(name=name, value=value))
    else:
        row.value = value
    session.flush()


def delete_option(name: str, session: Session) -> bool:
    """Deletes the option. Returns False when there was nothing to delete."""
    row = session.get(Option, name)
    if row is None:
        return False
    session.delete(row)
    session.flush()
    return True
