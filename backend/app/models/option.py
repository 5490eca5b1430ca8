"""
models/option.py — Option table definition.

Durable name → value storage for deployment-level settings. AutoLogin keeps a
single row here (name "autologin") holding the JSON-encoded endpoint.
No business logic. No imports from services or routes.
"""

from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db


class Option(db.Model):
    __tablename__ = "options"

    name: Mapped[str] = mapped_column(String(191), primary_key=True)

    value: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Option name={self.name!r}>"
