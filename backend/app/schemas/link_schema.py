"""
schemas/link_schema.py — Marshmallow schema for the link issuing endpoint.

Validation responsibility:
  - This file: field types, lengths, TTL bounds.
  - services/link_service.py: redirect normalisation (base URL stripping),
    which needs the deployment configuration.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates

from backend.app.errors import ErrorCode

# One minute to one year.
MIN_LINK_TTL = 60
MAX_LINK_TTL = 365 * 86400


class IssueLinkSchema(Schema):
    """
    POST /links

    Field rules:
      redirect : optional, defaults to "/", max 2048 chars, no whitespace
      ttl      : optional seconds, 60 .. 31536000; absent means the configured default
    """

    redirect = fields.Str(
        load_default="/",
        validate=validate.Length(
            min=1,
            max=2048,
            error="redirect must be between 1 and 2048 characters.",
        ),
    )

    ttl = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(
            min=MIN_LINK_TTL,
            max=MAX_LINK_TTL,
            error=ErrorCode.INVALID_TTL,
        ),
    )

    @validates("redirect")
    def validate_redirect(self, value: str, **kwargs) -> None:
        if any(c.isspace() for c in value):
            raise ValidationError(ErrorCode.INVALID_REDIRECT)
