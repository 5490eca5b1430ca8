"""
schemas/magic_record_schema.py — Marshmallow schema for stored magic records.

A magic record is the JSON payload kept in the transient store under
"autologin/<public token>":

    {"user_id": 42, "private": "$2b$12$...", "redirect": "/account", "time": 1760000000}

The store hands back an opaque string, so every read goes through
decode_record(). A payload that is not JSON, or that fails this schema,
is never half-used: login_service maps the failure to INVALID_LINK, or to
INVALID_USER when the user_id itself is missing or unusable.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

import json

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate


class MagicRecordSchema(Schema):

    class Meta:
        unknown = EXCLUDE

    user_id = fields.Int(
        required=True,
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )

    # bcrypt hash of the signature string. Never the signature itself.
    private = fields.Str(
        required=True,
        validate=validate.Length(min=1, error="private must not be empty."),
    )

    redirect = fields.Str(load_default="/")

    # Issuance time, epoch seconds. Informational only: expiry is the store's job.
    time = fields.Int(load_default=0)


_schema = MagicRecordSchema()


class MalformedRecordError(ValueError):
    """Raised when a stored payload is not a usable magic record."""

    def __init__(self, message: str, missing_user: bool = False) -> None:
        super().__init__(message)
        self.missing_user = missing_user


def encode_record(record: dict) -> str:
    """Serialises a magic record dict to the string kept in the store."""
    return json.dumps(_schema.dump(record), separators=(",", ":"))


def decode_record(raw: str) -> dict:
    """
    Parses and validates a stored payload.

    Raises:
      MalformedRecordError — not JSON, not an object, or fails the schema.
        `missing_user` is True when user_id is among the failing fields.
    """
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedRecordError("Stored record is not valid JSON.") from exc

    if not isinstance(payload, dict):
        raise MalformedRecordError("Stored record is not a JSON object.")

    try:
        return _schema.load(payload)
    except ValidationError as exc:
        messages = exc.messages if isinstance(exc.messages, dict) else {}
        raise MalformedRecordError(
            "Stored record failed validation.",
            missing_user="user_id" in messages,
        ) from exc
