import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Index, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.exceptions import StateError
from app.db.base import Base
from app.models.section import Shift


class RequestStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rescheduled = "rescheduled"


ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.pending: frozenset({RequestStatus.accepted}),
    RequestStatus.accepted: frozenset({RequestStatus.pending, RequestStatus.rescheduled}),
    RequestStatus.rescheduled: frozenset({RequestStatus.rescheduled}),
}

# Statuses whose reservations feed the published timetable.
SCHEDULED_STATUSES = (RequestStatus.accepted, RequestStatus.rescheduled)
ACTIVE_STATUSES = (RequestStatus.pending, RequestStatus.accepted, RequestStatus.rescheduled)


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class CourseRequest(Base):
    __tablename__ = "course_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    course_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    section_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    offering_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    semester: Mapped[str] = mapped_column(String(20), nullable=False)
    shift: Mapped[Shift] = mapped_column(SAEnum(Shift, name="shift"), nullable=False, default=Shift.morning)
    instructor_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    status: Mapped[RequestStatus] = mapped_column(
        SAEnum(RequestStatus, name="request_status"),
        nullable=False,
        default=RequestStatus.pending,
    )
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    preferences: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    requested_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (Index("ix_course_requests_status", "status"),)

    def ensure_transition(self, target: RequestStatus) -> None:
        current = RequestStatus(self.status)
        if not can_transition(current, target):
            reason = "already_processed" if current != RequestStatus.pending else "invalid_transition"
            raise StateError(
                f"Request is {current.value}; cannot move to {target.value}.",
                details={"request_id": self.id, "status": current.value, "target": target.value},
                reason=reason,
            )

    def transition_to(self, target: RequestStatus) -> None:
        self.ensure_transition(target)
        self.status = target

    def reset_to_pending(self) -> None:
        """Administrative release back to the open pool.

        Bypasses the instructor-facing transition table, which only lets an
        accepted request return to pending through undo.
        """
        self.status = RequestStatus.pending
        self.instructor_id = None
        self.accepted_at = None
        self.preferences = None
