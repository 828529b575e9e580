from __future__ import annotations

from collections.abc import Iterable
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.course import Course
from app.models.course_request import CourseRequest
from app.models.reservation import AssignmentStatus, ReservationStatus, RoomAssignment, SlotReservation
from app.models.room import Room
from app.models.section import Section
from app.models.time_slot import TimeSlot
from app.models.user import User
from app.schemas.conflict import BlockedSlot, SlotConflict

logger = logging.getLogger(__name__)


class ConflictChecker:
    """Answers whether an instructor, section or room is free at a time slot.

    Only live rows count: reservations in `reserved` status, plus the room
    assignments they point at. Rows belonging to `exclude_request_id` are
    ignored so a request can be checked against everything except itself.
    """

    def __init__(self, db: Session, *, lock: bool = False) -> None:
        self.db = db
        self.lock = lock

    def instructor_conflicts(
        self,
        instructor_id: str,
        time_slot_ids: Iterable[str] | None = None,
        *,
        exclude_request_id: str | None = None,
    ) -> dict[str, SlotConflict]:
        stmt = (
            select(SlotReservation.time_slot_id, CourseRequest.id, Course.code, Section.name)
            .join(CourseRequest, CourseRequest.id == SlotReservation.course_request_id)
            .outerjoin(Course, Course.id == CourseRequest.course_id)
            .outerjoin(Section, Section.id == CourseRequest.section_id)
            .where(
                SlotReservation.instructor_id == instructor_id,
                SlotReservation.status == ReservationStatus.reserved,
            )
            .order_by(SlotReservation.time_slot_id, CourseRequest.id)
        )
        stmt = self._narrow(stmt, time_slot_ids, exclude_request_id)

        found: dict[str, SlotConflict] = {}
        for slot_id, request_id, course_code, section_name in self.db.execute(stmt):
            if slot_id in found:
                continue
            label = f"{course_code or 'course'} - {section_name or 'section'}"
            found[slot_id] = SlotConflict(
                constraint="instructor",
                time_slot_id=slot_id,
                entity_id=request_id,
                entity_name=label,
                message=f"You already teach {label} in this slot",
            )
        return found

    def section_conflicts(
        self,
        section_id: str,
        time_slot_ids: Iterable[str] | None = None,
        *,
        exclude_request_id: str | None = None,
    ) -> dict[str, SlotConflict]:
        if time_slot_ids is not None:
            time_slot_ids = list(time_slot_ids)
        stmt = (
            select(SlotReservation.time_slot_id, SlotReservation.instructor_id, User.name, Course.code)
            .join(CourseRequest, CourseRequest.id == SlotReservation.course_request_id)
            .outerjoin(User, User.id == SlotReservation.instructor_id)
            .outerjoin(Course, Course.id == CourseRequest.course_id)
            .where(
                CourseRequest.section_id == section_id,
                SlotReservation.status == ReservationStatus.reserved,
            )
            .order_by(SlotReservation.time_slot_id, SlotReservation.instructor_id)
        )
        stmt = self._narrow(stmt, time_slot_ids, exclude_request_id)

        found: dict[str, SlotConflict] = {}
        for slot_id, instructor_id, instructor_name, course_code in self.db.execute(stmt):
            if slot_id in found:
                continue
            name = instructor_name or "another instructor"
            found[slot_id] = SlotConflict(
                constraint="section",
                time_slot_id=slot_id,
                entity_id=instructor_id,
                entity_name=name,
                message=f"Section already has {course_code or 'a class'} with {name} in this slot",
            )

        # Rooms handed out by the batch allocator carry no course request.
        batch_stmt = (
            select(RoomAssignment.time_slot_id, RoomAssignment.room_id, Room.name)
            .outerjoin(Room, Room.id == RoomAssignment.room_id)
            .where(
                RoomAssignment.section_id == section_id,
                RoomAssignment.status == AssignmentStatus.reserved,
                RoomAssignment.course_request_id.is_(None),
            )
            .order_by(RoomAssignment.time_slot_id, RoomAssignment.room_id)
        )
        if time_slot_ids is not None:
            batch_stmt = batch_stmt.where(RoomAssignment.time_slot_id.in_(time_slot_ids))
        if self.lock:
            batch_stmt = batch_stmt.with_for_update(of=RoomAssignment)
        for slot_id, room_id, room_name in self.db.execute(batch_stmt):
            if slot_id in found:
                continue
            found[slot_id] = SlotConflict(
                constraint="section",
                time_slot_id=slot_id,
                entity_id=room_id,
                entity_name=room_name or room_id,
                message=f"Section already holds room {room_name or room_id} from auto-assignment in this slot",
            )
        return found

    def room_conflict(
        self,
        room_id: str,
        time_slot_id: str,
        *,
        semester: str | None = None,
        exclude_request_id: str | None = None,
    ) -> SlotConflict | None:
        stmt = (
            select(RoomAssignment.id, Room.name)
            .outerjoin(Room, Room.id == RoomAssignment.room_id)
            .where(
                RoomAssignment.room_id == room_id,
                RoomAssignment.time_slot_id == time_slot_id,
                RoomAssignment.status == AssignmentStatus.reserved,
            )
        )
        if semester is not None:
            stmt = stmt.where(RoomAssignment.semester == semester)
        if exclude_request_id is not None:
            stmt = stmt.where(
                (RoomAssignment.course_request_id.is_(None))
                | (RoomAssignment.course_request_id != exclude_request_id)
            )
        row = self.db.execute(stmt.limit(1)).first()
        if row is None:
            return None
        return SlotConflict(
            constraint="room",
            time_slot_id=time_slot_id,
            entity_id=room_id,
            entity_name=row.name or room_id,
            message=f"Room {row.name or room_id} is already reserved in this slot",
        )

    def instructor_conflict(
        self, instructor_id: str, time_slot_id: str, *, exclude_request_id: str | None = None
    ) -> SlotConflict | None:
        return self.instructor_conflicts(
            instructor_id, [time_slot_id], exclude_request_id=exclude_request_id
        ).get(time_slot_id)

    def section_conflict(
        self, section_id: str, time_slot_id: str, *, exclude_request_id: str | None = None
    ) -> SlotConflict | None:
        return self.section_conflicts(section_id, [time_slot_id], exclude_request_id=exclude_request_id).get(
            time_slot_id
        )

    def check(
        self,
        *,
        time_slot_id: str,
        section_id: str,
        instructor_id: str | None = None,
        room_id: str | None = None,
        semester: str | None = None,
        exclude_request_id: str | None = None,
    ) -> SlotConflict | None:
        """First conflict found, checking instructor, then section, then room."""
        if instructor_id:
            conflict = self.instructor_conflict(instructor_id, time_slot_id, exclude_request_id=exclude_request_id)
            if conflict is not None:
                return conflict
        conflict = self.section_conflict(section_id, time_slot_id, exclude_request_id=exclude_request_id)
        if conflict is not None:
            return conflict
        if room_id:
            return self.room_conflict(
                room_id, time_slot_id, semester=semester, exclude_request_id=exclude_request_id
            )
        return None

    def section_booked(self, section_id: str, time_slot_id: str, *, semester: str) -> bool:
        """Whether the section already holds a reserved room at the slot in this semester."""
        stmt = (
            select(RoomAssignment.id)
            .where(
                RoomAssignment.section_id == section_id,
                RoomAssignment.time_slot_id == time_slot_id,
                RoomAssignment.semester == semester,
                RoomAssignment.status == AssignmentStatus.reserved,
            )
            .limit(1)
        )
        return self.db.execute(stmt).first() is not None

    def partition(
        self,
        slots: list[TimeSlot],
        *,
        section_id: str,
        instructor_id: str | None = None,
        exclude_request_id: str | None = None,
    ) -> tuple[list[TimeSlot], list[BlockedSlot]]:
        """Split candidate slots into free ones and blocked ones, preserving input order."""
        by_instructor = (
            self.instructor_conflicts(instructor_id, exclude_request_id=exclude_request_id)
            if instructor_id
            else {}
        )
        by_section = self.section_conflicts(section_id, exclude_request_id=exclude_request_id)

        available: list[TimeSlot] = []
        blocked: list[BlockedSlot] = []
        for slot in slots:
            conflict = by_instructor.get(slot.id) or by_section.get(slot.id)
            if conflict is None:
                available.append(slot)
                continue
            blocked.append(
                BlockedSlot(
                    time_slot_id=slot.id,
                    day_of_week=slot.day_of_week,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    label=slot.label,
                    blocked_by=conflict.constraint,
                    reason=conflict.message,
                )
            )
        logger.debug(
            "Section %s instructor %s: %d slots free, %d blocked",
            section_id,
            instructor_id,
            len(available),
            len(blocked),
        )
        return available, blocked

    def _narrow(self, stmt, time_slot_ids, exclude_request_id):
        if time_slot_ids is not None:
            stmt = stmt.where(SlotReservation.time_slot_id.in_(list(time_slot_ids)))
        if exclude_request_id is not None:
            stmt = stmt.where(SlotReservation.course_request_id != exclude_request_id)
        if self.lock:
            stmt = stmt.with_for_update(of=SlotReservation)
        return stmt
