"""create course requests and reservations

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


request_status_enum = sa.Enum("pending", "accepted", "rescheduled", name="request_status")
assignment_status_enum = sa.Enum("reserved", "available", "cancelled", name="assignment_status")
reservation_status_enum = sa.Enum("reserved", "cancelled", name="reservation_status")
shift_enum = postgresql.ENUM("morning", "evening", name="shift", create_type=False)

RESERVED_ONLY = sa.text("status = 'reserved'")


def upgrade() -> None:
    op.create_table(
        "course_requests",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("course_id", sa.String(length=36), nullable=False),
        sa.Column("section_id", sa.String(length=36), nullable=False),
        sa.Column("offering_id", sa.String(length=36), nullable=True),
        sa.Column("semester", sa.String(length=20), nullable=False),
        sa.Column("shift", shift_enum, nullable=False),
        sa.Column("instructor_id", sa.String(length=36), nullable=True),
        sa.Column("status", request_status_enum, nullable=False, server_default="pending"),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("preferences", sa.JSON(), nullable=True),
        sa.Column("requested_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_course_requests_course_id", "course_requests", ["course_id"])
    op.create_index("ix_course_requests_section_id", "course_requests", ["section_id"])
    op.create_index("ix_course_requests_offering_id", "course_requests", ["offering_id"])
    op.create_index("ix_course_requests_instructor_id", "course_requests", ["instructor_id"])
    op.create_index("ix_course_requests_status", "course_requests", ["status"])

    op.create_table(
        "room_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("room_id", sa.String(length=36), nullable=False),
        sa.Column("section_id", sa.String(length=36), nullable=False),
        sa.Column("time_slot_id", sa.String(length=36), nullable=False),
        sa.Column("semester", sa.String(length=20), nullable=False),
        sa.Column("status", assignment_status_enum, nullable=False, server_default="reserved"),
        sa.Column("offering_id", sa.String(length=36), nullable=True),
        sa.Column("course_request_id", sa.String(length=36), nullable=True),
        sa.Column("assigned_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_room_assignments_room_id", "room_assignments", ["room_id"])
    op.create_index("ix_room_assignments_section_id", "room_assignments", ["section_id"])
    op.create_index("ix_room_assignments_time_slot_id", "room_assignments", ["time_slot_id"])
    op.create_index("ix_room_assignments_course_request_id", "room_assignments", ["course_request_id"])
    op.create_index(
        "uq_room_assignments_reserved_room_slot",
        "room_assignments",
        ["room_id", "time_slot_id", "semester"],
        unique=True,
        postgresql_where=RESERVED_ONLY,
        sqlite_where=RESERVED_ONLY,
    )

    op.create_table(
        "slot_reservations",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("course_request_id", sa.String(length=36), nullable=False),
        sa.Column("instructor_id", sa.String(length=36), nullable=False),
        sa.Column("time_slot_id", sa.String(length=36), nullable=False),
        sa.Column("room_assignment_id", sa.String(length=36), nullable=False),
        sa.Column("status", reservation_status_enum, nullable=False, server_default="reserved"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_slot_reservations_course_request_id", "slot_reservations", ["course_request_id"])
    op.create_index("ix_slot_reservations_instructor_id", "slot_reservations", ["instructor_id"])
    op.create_index("ix_slot_reservations_time_slot_id", "slot_reservations", ["time_slot_id"])
    op.create_index(
        "uq_slot_reservations_reserved_instructor_slot",
        "slot_reservations",
        ["instructor_id", "time_slot_id"],
        unique=True,
        postgresql_where=RESERVED_ONLY,
        sqlite_where=RESERVED_ONLY,
    )


def downgrade() -> None:
    op.drop_index("uq_slot_reservations_reserved_instructor_slot", table_name="slot_reservations")
    op.drop_index("ix_slot_reservations_time_slot_id", table_name="slot_reservations")
    op.drop_index("ix_slot_reservations_instructor_id", table_name="slot_reservations")
    op.drop_index("ix_slot_reservations_course_request_id", table_name="slot_reservations")
    op.drop_table("slot_reservations")
    op.drop_index("uq_room_assignments_reserved_room_slot", table_name="room_assignments")
    op.drop_index("ix_room_assignments_course_request_id", table_name="room_assignments")
    op.drop_index("ix_room_assignments_time_slot_id", table_name="room_assignments")
    op.drop_index("ix_room_assignments_section_id", table_name="room_assignments")
    op.drop_index("ix_room_assignments_room_id", table_name="room_assignments")
    op.drop_table("room_assignments")
    op.drop_index("ix_course_requests_status", table_name="course_requests")
    op.drop_index("ix_course_requests_instructor_id", table_name="course_requests")
    op.drop_index("ix_course_requests_offering_id", table_name="course_requests")
    op.drop_index("ix_course_requests_section_id", table_name="course_requests")
    op.drop_index("ix_course_requests_course_id", table_name="course_requests")
    op.drop_table("course_requests")

    bind = op.get_bind()
    reservation_status_enum.drop(bind, checkfirst=True)
    assignment_status_enum.drop(bind, checkfirst=True)
    request_status_enum.drop(bind, checkfirst=True)
