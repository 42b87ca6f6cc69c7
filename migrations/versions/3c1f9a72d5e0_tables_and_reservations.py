"""tables and reservations

Revision ID: 3c1f9a72d5e0
Revises:
Create Date: 2026-10-16 09:12:44.318204

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = '3c1f9a72d5e0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "dining_table",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("number", sa.Integer(), nullable=False, unique=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("location", sa.String(100), nullable=True),
        sa.Column("state", sa.String(16), nullable=False, server_default="free"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("current_order_id", sa.String(64), nullable=True),
        sa.Column("maintenance_note", sa.Text(), nullable=True),
        sa.Column("last_cleaned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("state_changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("capacity >= 1", name="ck_dining_table_capacity"),
        sa.CheckConstraint(
            "state IN ('free', 'occupied', 'reserved', 'maintenance')",
            name="ck_dining_table_state",
        ),
    )

    op.create_table(
        "reservation",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("table_id", sa.BigInteger(), sa.ForeignKey("dining_table.id"), nullable=False),
        sa.Column("client_id", sa.String(64), nullable=False),
        sa.Column("party_size", sa.Integer(), nullable=False),
        sa.Column("start_ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("state", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancel_reason", sa.String(200), nullable=True),
        sa.Column("seated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("party_size >= 1", name="ck_reservation_party_size"),
        sa.CheckConstraint("duration_minutes > 0", name="ck_reservation_duration"),
        sa.CheckConstraint(
            "state IN ('pending', 'confirmed', 'completed', 'cancelled')",
            name="ck_reservation_state",
        ),
    )
    op.create_index("ix_reservation_table_start", "reservation", ["table_id", "start_ts"])
    op.create_index("ix_reservation_state_start", "reservation", ["state", "start_ts"])


def downgrade() -> None:
    op.drop_index("ix_reservation_state_start", table_name="reservation")
    op.drop_index("ix_reservation_table_start", table_name="reservation")
    op.drop_table("reservation")
    op.drop_table("dining_table")
