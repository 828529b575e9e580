"""create users and scheduling catalog

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role_enum = sa.Enum("admin", "scheduler", "instructor", "student", name="user_role")
room_type_enum = sa.Enum("lecture", "lab", "seminar", name="room_type")
course_type_enum = sa.Enum("theory", "lab", name="course_type")
shift_enum = postgresql.ENUM("morning", "evening", name="shift", create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    postgresql.ENUM("morning", "evening", name="shift").create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("department", sa.String(length=200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "rooms",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("building", sa.String(length=200), nullable=False, server_default="Main"),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("type", room_type_enum, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_rooms_name", "rooms", ["name"], unique=True)

    op.create_table(
        "courses",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("type", course_type_enum, nullable=False),
        sa.Column("credit_hours", sa.String(length=10), nullable=False, server_default="3"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_courses_code", "courses", ["code"], unique=True)

    op.create_table(
        "sections",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("student_strength", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("shift", shift_enum, nullable=False),
        sa.Column("semester", sa.String(length=20), nullable=False),
        sa.Column("major", sa.String(length=200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("student_strength >= 0", name="ck_sections_student_strength"),
    )
    op.create_index("ix_sections_semester", "sections", ["semester"])

    op.create_table(
        "course_offerings",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("course_id", sa.String(length=36), nullable=False),
        sa.Column("section_id", sa.String(length=36), nullable=False),
        sa.Column("major", sa.String(length=200), nullable=True),
        sa.Column("semester", sa.String(length=20), nullable=False),
        sa.Column("shift", shift_enum, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_course_offerings_course_id", "course_offerings", ["course_id"])
    op.create_index("ix_course_offerings_section_id", "course_offerings", ["section_id"])

    op.create_table(
        "time_slots",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("day_of_week", sa.String(length=10), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("label", sa.String(length=40), nullable=False),
        sa.Column("label_24h", sa.String(length=20), nullable=False),
        sa.Column("shift", shift_enum, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_time_slots_day_start", "time_slots", ["day_of_week", "start_time"])


def downgrade() -> None:
    op.drop_index("ix_time_slots_day_start", table_name="time_slots")
    op.drop_table("time_slots")
    op.drop_index("ix_course_offerings_section_id", table_name="course_offerings")
    op.drop_index("ix_course_offerings_course_id", table_name="course_offerings")
    op.drop_table("course_offerings")
    op.drop_index("ix_sections_semester", table_name="sections")
    op.drop_table("sections")
    op.drop_index("ix_courses_code", table_name="courses")
    op.drop_table("courses")
    op.drop_index("ix_rooms_name", table_name="rooms")
    op.drop_table("rooms")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    shift_enum.drop(bind, checkfirst=True)
    course_type_enum.drop(bind, checkfirst=True)
    room_type_enum.drop(bind, checkfirst=True)
    user_role_enum.drop(bind, checkfirst=True)
