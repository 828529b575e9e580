import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class AssignmentStatus(str, Enum):
    reserved = "reserved"
    available = "available"
    cancelled = "cancelled"


class ReservationStatus(str, Enum):
    reserved = "reserved"
    cancelled = "cancelled"


RESERVED_ONLY = text("status = 'reserved'")


class RoomAssignment(Base):
    __tablename__ = "room_assignments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    room_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    section_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    time_slot_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    semester: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[AssignmentStatus] = mapped_column(
        SAEnum(AssignmentStatus, name="assignment_status"),
        nullable=False,
        default=AssignmentStatus.reserved,
    )
    offering_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    course_request_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    assigned_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index(
            "uq_room_assignments_reserved_room_slot",
            "room_id",
            "time_slot_id",
            "semester",
            unique=True,
            postgresql_where=RESERVED_ONLY,
            sqlite_where=RESERVED_ONLY,
        ),
    )


class SlotReservation(Base):
    __tablename__ = "slot_reservations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    course_request_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    instructor_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    time_slot_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    room_assignment_id: Mapped[str] = mapped_column(String(36), nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        SAEnum(ReservationStatus, name="reservation_status"),
        nullable=False,
        default=ReservationStatus.reserved,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index(
            "uq_slot_reservations_reserved_instructor_slot",
            "instructor_id",
            "time_slot_id",
            unique=True,
            postgresql_where=RESERVED_ONLY,
            sqlite_where=RESERVED_ONLY,
        ),
    )
