# models.py
import sqlalchemy
from slot_swapper.database import metadata

users = sqlalchemy.Table(
    "users",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("name", sqlalchemy.String, nullable=False),
    sqlalchemy.Column("email", sqlalchemy.String, unique=True, index=True),
    sqlalchemy.Column("hashed_password", sqlalchemy.String),
    sqlalchemy.Column("created_at", sqlalchemy.DateTime(timezone=True)),
)

slots = sqlalchemy.Table(
    "slots",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("owner_id", sqlalchemy.Integer, sqlalchemy.ForeignKey("users.id"), index=True, nullable=False),
    sqlalchemy.Column("title", sqlalchemy.String, nullable=False),
    sqlalchemy.Column("start_time", sqlalchemy.DateTime(timezone=True), nullable=False),
    sqlalchemy.Column("end_time", sqlalchemy.DateTime(timezone=True), nullable=False),
    sqlalchemy.Column("description", sqlalchemy.Text, nullable=True),
    sqlalchemy.Column("status", sqlalchemy.String, nullable=False, default="BUSY", index=True),
    sqlalchemy.Column("created_at", sqlalchemy.DateTime(timezone=True)),
    sqlalchemy.Column("updated_at", sqlalchemy.DateTime(timezone=True)),
    sqlalchemy.CheckConstraint("end_time > start_time", name="ck_slots_time_order"),
)

# Requests are an audit trail and are never deleted; slot references are
# nulled out if a slot is removed after its requests resolved.
swap_requests = sqlalchemy.Table(
    "swap_requests",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("requester_id", sqlalchemy.Integer, sqlalchemy.ForeignKey("users.id"), index=True, nullable=False),
    sqlalchemy.Column(
        "requester_slot_id",
        sqlalchemy.Integer,
        sqlalchemy.ForeignKey("slots.id", ondelete="SET NULL"),
        nullable=True,
    ),
    sqlalchemy.Column("target_user_id", sqlalchemy.Integer, sqlalchemy.ForeignKey("users.id"), index=True, nullable=False),
    sqlalchemy.Column(
        "target_slot_id",
        sqlalchemy.Integer,
        sqlalchemy.ForeignKey("slots.id", ondelete="SET NULL"),
        nullable=True,
    ),
    sqlalchemy.Column("status", sqlalchemy.String, nullable=False, default="PENDING", index=True),
    sqlalchemy.Column("created_at", sqlalchemy.DateTime(timezone=True)),
    sqlalchemy.Column("resolved_at", sqlalchemy.DateTime(timezone=True), nullable=True),
)
