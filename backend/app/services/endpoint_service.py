"""
services/endpoint_service.py — Deployment endpoint lifecycle.

The endpoint is the random first path segment of every login link
({base}/{endpoint}/{public}). It is also an input of the link signature,
so it must stay stable for the life of a deployment:

  install()    — creates it if absent; NEVER overwrites an existing value
  uninstall()  — deletes it; every outstanding link stops resolving
  load_endpoint() — reads it back; None when not installed

Rotating the endpoint is an explicit uninstall followed by install.

Stored as the JSON option {"endpoint": "<hex>"} under OPTION_NAME.
"""

from __future__ import annotations

import json
import secrets

from sqlalchemy.orm import Session

from backend.app.services import option_service

OPTION_NAME = "autologin"
DEFAULT_ENDPOINT_BYTES = (4, 8)


def randomness(min_bytes: int, max_bytes: int | None = None) -> str:
    """
    Hex string of a random number of random bytes in [min_bytes, max_bytes].

    Both the byte count and the bytes come from the `secrets` CSPRNG.
    """
    if max_bytes is None:
        max_bytes = min_bytes
    if min_bytes < 1 or max_bytes < min_bytes:
        raise ValueError("Byte range must satisfy 1 <= min_bytes <= max_bytes.")
    count = min_bytes + secrets.randbelow(max_bytes - min_bytes + 1)
    return secrets.token_hex(count)


def load_endpoint(session: Session) -> str | None:
    """Returns the installed endpoint, or None if missing or unreadable."""
    raw = option_service.get_option(OPTION_NAME, session)
    if raw is None:
        return None
    try:
        option = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(option, dict):
        return None
    endpoint = option.get("endpoint")
    if not isinstance(endpoint, str) or not endpoint:
        return None
    return endpoint


def install(
        session: Session,
        byte_range: tuple[int, int] = DEFAULT_ENDPOINT_BYTES,
) -> tuple[str, bool]:
    """
    Creates the endpoint if none is installed.

    Returns: (endpoint, created) — created is False when an endpoint already
    existed and was returned unchanged.
    """
    existing = load_endpoint(session)
    if existing is not None:
        return existing, False

    endpoint = randomness(*byte_range)
    value = json.dumps({"endpoint": endpoint})
    if option_service.get_option(OPTION_NAME, session) is None:
        option_service.add_option(OPTION_NAME, value, session)
    else:
        # The row exists but is unreadable; a readable one is never replaced.
        option_service.update_option(OPTION_NAME, value, session)
    return endpoint, True


def uninstall(session: Session) -> bool:
    """Deletes the endpoint option. Returns False when nothing was installed."""
    return option_service.delete_option(OPTION_NAME, session)
