"""Initial schema — users, options, transients.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Tables:
  users       host identity (read-only for AutoLogin)
  options     durable name/value; holds the AutoLogin endpoint
  transients  expiring key/value; holds magic records ("autologin/<public>")

The endpoint itself is NOT created here. Run `flask autologin install`
after migrating.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── users ──────────────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "LENGTH(TRIM(username)) > 0",
            name="ck_users_username_nonempty",
        ),
        sa.CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
    )

    # ── options ────────────────────────────────────────────────────────────

    op.create_table(
        "options",
        sa.Column("name", sa.String(191), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("name", name="pk_options"),
    )

    # ── transients ─────────────────────────────────────────────────────────
    # expires_at is epoch seconds; rows at or past it are treated as absent.

    op.create_table(
        "transients",
        sa.Column("key", sa.String(191), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("key", name="pk_transients"),
    )

    op.create_index(
        "idx_transients_expires_at",
        "transients",
        ["expires_at"],
    )


def downgrade() -> None:
    """Drops everything created by upgrade(), in reverse order."""
    op.drop_index("idx_transients_expires_at", table_name="transients")
    op.drop_table("transients")
    op.drop_table("options")
    op.drop_table("users")
