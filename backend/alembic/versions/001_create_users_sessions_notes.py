"""Create users, user_sessions and notes tables

Revision ID: 001
Revises: None
Create Date: 2024-01-15 00:00:00.000000+00:00

What:  Initial schema: accounts, their sign-in sessions, and their notes.
How:   Generic SQLAlchemy types (Uuid, DateTime(timezone=True)) so the same
       migration runs on PostgreSQL and SQLite. IDs are assigned by the
       application, not by a server default.

Rollback: downgrade() drops all three tables (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "username",
            sa.String(64),
            nullable=False,
            comment="Login name shown in the page header",
        ),
        sa.Column("password_hash", sa.String(128), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )

    op.create_table(
        "user_sessions",
        sa.Column("token", sa.String(128), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("token"),
    )
    op.create_index("idx_user_sessions_user", "user_sessions", ["user_id"])

    op.create_table(
        "notes",
        sa.Column(
            "id",
            sa.Uuid(),
            nullable=False,
            comment="Unique identifier assigned at creation",
        ),
        sa.Column(
            "owner_id",
            sa.Uuid(),
            nullable=False,
            comment="User who owns this note",
        ),
        sa.Column("title", sa.String(255), nullable=False, comment="Note title (required, non-empty)"),
        sa.Column("content", sa.Text(), nullable=False, comment="Note body (required, non-empty)"),
        sa.Column(
            "image_path",
            sa.String(512),
            nullable=True,
            comment="Store-relative path of the attached image blob",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
            comment="When this note was created (UTC)",
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
            comment="When this note was last modified (UTC)",
        ),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    # The list query is WHERE owner_id = :uid ORDER BY created_at
    op.create_index("idx_notes_owner_created", "notes", ["owner_id", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_notes_owner_created", table_name="notes")
    op.drop_table("notes")
    op.drop_index("idx_user_sessions_user", table_name="user_sessions")
    op.drop_table("user_sessions")
    op.drop_table("users")
