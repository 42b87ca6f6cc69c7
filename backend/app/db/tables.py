"""
Table definitions for the scheduling core.

Plain SQLAlchemy Core tables: stores read rows into frozen records and write
with explicit UPDATE statements, so nothing is change-tracked behind the
scheduler's back. The alembic revision in ``migrations/versions`` must match.
"""

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    true,
)


metadata = MetaData()

# Integer ids autoincrement on SQLite too; BigInteger would not
_Id = BigInteger().with_variant(Integer(), "sqlite")


dining_table = Table(
    "dining_table",
    metadata,
    Column("id", _Id, primary_key=True, autoincrement=True),
    Column("number", Integer, nullable=False, unique=True),
    Column("capacity", Integer, nullable=False),
    Column("location", String(100), nullable=True),
    Column("state", String(16), nullable=False, server_default="free"),
    Column("active", Boolean, nullable=False, server_default=true()),
    Column("current_order_id", String(64), nullable=True),
    Column("maintenance_note", Text, nullable=True),
    Column("last_cleaned_at", DateTime(timezone=True), nullable=True),
    Column("state_changed_at", DateTime(timezone=True), nullable=False),
    CheckConstraint("capacity >= 1", name="ck_dining_table_capacity"),
    CheckConstraint(
        "state IN ('free', 'occupied', 'reserved', 'maintenance')",
        name="ck_dining_table_state",
    ),
)

reservation = Table(
    "reservation",
    metadata,
    Column("id", _Id, primary_key=True, autoincrement=True),
    Column("table_id", _Id, ForeignKey("dining_table.id"), nullable=False),
    Column("client_id", String(64), nullable=False),
    Column("party_size", Integer, nullable=False),
    Column("start_ts", DateTime(timezone=True), nullable=False),
    Column("end_ts", DateTime(timezone=True), nullable=False),
    Column("duration_minutes", Integer, nullable=False),
    Column("state", String(16), nullable=False, server_default="pending"),
    Column("notes", Text, nullable=True),
    Column("cancel_reason", String(200), nullable=True),
    Column("seated_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    CheckConstraint("party_size >= 1", name="ck_reservation_party_size"),
    CheckConstraint("duration_minutes > 0", name="ck_reservation_duration"),
    CheckConstraint(
        "state IN ('pending', 'confirmed', 'completed', 'cancelled')",
        name="ck_reservation_state",
    ),
    Index("ix_reservation_table_start", "table_id", "start_ts"),
    Index("ix_reservation_state_start", "state", "start_ts"),
)
