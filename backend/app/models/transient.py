"""
models/transient.py — Transient table definition.

Expiring key → value storage. Each row carries its own absolute expiry as
epoch seconds; transient_service treats rows past `expires_at` as absent.
No business logic. No imports from services or routes.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db


class Transient(db.Model):
    __tablename__ = "transients"

    # Namespaced key, e.g. "autologin/<public token>".
    key: Mapped[str] = mapped_column(String(191), primary_key=True)

    # Serialised payload. The store never interprets it.
    value: Mapped[str] = mapped_column(Text, nullable=False)

    # Epoch seconds, not a DateTime: the comparison must behave the same on
    # PostgreSQL and on SQLite, which drops tzinfo.
    expires_at: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        index=True,   # idx_transients_expires_at, used by purge_expired()
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Transient key={self.key!r} expires_at={self.expires_at}>"
