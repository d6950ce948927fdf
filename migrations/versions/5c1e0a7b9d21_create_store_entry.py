"""create store_entry

Revision ID: 5c1e0a7b9d21
Revises:
Create Date: 2026-10-19 09:12:44.318204

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1e0a7b9d21"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the keyed state table used by the SQL store backend."""
    op.create_table(
        "store_entry",
        sa.Column("key", sa.String(length=255), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )
    op.create_index(
        op.f("ix_store_entry_expires_at"), "store_entry", ["expires_at"], unique=False
    )


def downgrade() -> None:
    """Drop the keyed state table."""
    op.drop_index(op.f("ix_store_entry_expires_at"), table_name="store_entry")
    op.drop_table("store_entry")
