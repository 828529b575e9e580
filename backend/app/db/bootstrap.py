from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Connection, Engine

from app.db.base import Base

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "email", "role"},
    "time_slots": {"id", "day_of_week", "start_time", "end_time", "shift"},
    "course_requests": {"id", "status", "accepted_at", "instructor_id"},
    "room_assignments": {"id", "room_id", "time_slot_id", "semester", "status"},
    "slot_reservations": {"id", "course_request_id", "instructor_id", "time_slot_id", "status"},
    "blocks": {"id", "teacher_id", "section_id", "time_slot_id"},
}


def find_schema_gaps(connection: Connection) -> tuple[list[str], dict[str, list[str]]]:
    inspector = inspect(connection)
    table_names = set(inspector.get_table_names())
    missing_tables: list[str] = []
    missing_columns: dict[str, list[str]] = {}
    for table_name, columns in REQUIRED_COLUMNS.items():
        if table_name not in table_names:
            missing_tables.append(table_name)
            continue
        existing = {item["name"] for item in inspector.get_columns(table_name)}
        missing = sorted(columns - existing)
        if missing:
            missing_columns[table_name] = missing
    return missing_tables, missing_columns


def ensure_schema(engine: Engine) -> None:
    """Create missing tables for development databases.

    Production schemas are owned by Alembic; this only runs when
    `auto_create_schema` is enabled.
    """
    import app.models  # noqa: F401

    with engine.begin() as connection:
        missing_tables, missing_columns = find_schema_gaps(connection)
        if missing_columns:
            logger.warning("Schema is missing columns %s; run `alembic upgrade head`", missing_columns)
        if not missing_tables:
            return
        logger.info("Creating missing tables: %s", ", ".join(sorted(missing_tables)))
        Base.metadata.create_all(bind=connection)
