"""create streak_records table

Revision ID: 0001_streak_records
Revises:
Create Date: 2026-10-17

One row per owner; the activity log and streak history are embedded JSON
arrays and ``version`` backs compare-and-swap saves.
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_streak_records"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "streak_records",
        sa.Column("owner_id", sa.String(255), nullable=False),
        sa.Column("current_streak", sa.Integer(), nullable=False, default=0),
        sa.Column("longest_streak", sa.Integer(), nullable=False, default=0),
        sa.Column("last_activity_date", sa.String(10), nullable=True),
        sa.Column("activity_log", sa.JSON(), nullable=False),
        sa.Column("streak_history", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, default=1),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("owner_id"),
    )


def downgrade() -> None:
    op.drop_table("streak_records")
