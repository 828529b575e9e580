"""Room allocation for sections.

Two entry points share one ordering vocabulary:

* ``auto_assign`` is the batch pass run by schedulers. It walks every section
  of a shift and semester, largest first, and gives each one as many
  (room, slot) pairs as its primary course needs.
* ``find_room`` picks one free room for one slot while an instructor accepts
  a course request.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import RoomPolicyName, Settings, get_settings
from app.core.exceptions import ConflictError, NotFoundError, StateError
from app.db.transaction import atomic
from app.models.course import Course
from app.models.reservation import AssignmentStatus, ReservationStatus, RoomAssignment, SlotReservation
from app.models.room import Room
from app.models.section import CourseOffering, Section, Shift
from app.models.time_slot import DAY_INDEX, TimeSlot
from app.models.user import User
from app.schemas.room import (
    AssignedSection,
    AutoAssignResult,
    AutoAssignSummary,
    RoomAssignmentUpdate,
    SlotPlacement,
    SlotShortfall,
    UnassignedSection,
)
from app.services.audit import log_activity
from app.services.conflicts import ConflictChecker

logger = logging.getLogger(__name__)

DEFAULT_SLOT_COUNT = 2
_LEADING_INT = re.compile(r"^\s*(\d+)")


def required_slot_count(credit_hours: str | None) -> int:
    """Weekly slots for a course: leading credit-hour integer 1-4, otherwise 2."""
    if not credit_hours:
        return DEFAULT_SLOT_COUNT
    match = _LEADING_INT.match(str(credit_hours))
    if match is None:
        return DEFAULT_SLOT_COUNT
    value = int(match.group(1))
    return value if 1 <= value <= 4 else DEFAULT_SLOT_COUNT


def order_rooms(rooms: list[Room], policy: RoomPolicyName) -> list[Room]:
    if policy == "largest_available":
        return sorted(rooms, key=lambda room: (-room.capacity, room.id))
    return sorted(rooms, key=lambda room: (room.capacity, room.id))


def order_slots(slots: list[TimeSlot]) -> list[TimeSlot]:
    return sorted(slots, key=lambda slot: (slot.start_time, DAY_INDEX.get(slot.day_of_week, 7), slot.id))


def room_fits(room: Room, strength: int | None) -> bool:
    """Policies only change scan order; a room must always seat the section."""
    return strength is None or room.capacity >= strength


@dataclass
class _Occupancy:
    rooms: set[tuple[str, str]] = field(default_factory=set)
    sections: set[tuple[str, str]] = field(default_factory=set)

    def claim(self, room_id: str, section_id: str, slot_id: str) -> None:
        self.rooms.add((room_id, slot_id))
        self.sections.add((section_id, slot_id))

    def is_free(self, room_id: str, section_id: str, slot_id: str) -> bool:
        return (room_id, slot_id) not in self.rooms and (section_id, slot_id) not in self.sections


class RoomAllocator:
    def __init__(self, db: Session, *, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    def find_room(
        self,
        time_slot_id: str,
        *,
        section_strength: int | None = None,
        policy: RoomPolicyName | None = None,
        exclude_request_id: str | None = None,
    ) -> Room | None:
        """Return a room with no live assignment at the slot in any semester."""
        resolved = policy or self.settings.interactive_room_policy
        taken_stmt = select(RoomAssignment.room_id).where(
            RoomAssignment.time_slot_id == time_slot_id,
            RoomAssignment.status == AssignmentStatus.reserved,
        )
        if exclude_request_id is not None:
            taken_stmt = taken_stmt.where(
                (RoomAssignment.course_request_id.is_(None))
                | (RoomAssignment.course_request_id != exclude_request_id)
            )
        taken = set(self.db.execute(taken_stmt).scalars())

        for room in order_rooms(list(self.db.execute(select(Room)).scalars()), resolved):
            if room.id not in taken and room_fits(room, section_strength):
                return room
        logger.info("No free room at slot %s for strength %s (%s)", time_slot_id, section_strength, resolved)
        return None

    def primary_slot_count(self, section_id: str) -> tuple[int, str | None]:
        """Slots needed by the section's first offering ordered by course code."""
        row = self.db.execute(
            select(CourseOffering.id, Course.credit_hours)
            .join(Course, Course.id == CourseOffering.course_id)
            .where(CourseOffering.section_id == section_id)
            .order_by(Course.code, CourseOffering.id)
            .limit(1)
        ).first()
        if row is None:
            return DEFAULT_SLOT_COUNT, None
        return required_slot_count(row.credit_hours), row.id

    def auto_assign(
        self,
        *,
        shift: Shift,
        semester: str,
        policy: RoomPolicyName | None = None,
        actor: User | None = None,
    ) -> AutoAssignResult:
        resolved = policy or self.settings.batch_room_policy

        with atomic(self.db, operation="auto-assign rooms"):
            sections = list(
                self.db.execute(
                    select(Section)
                    .where(Section.shift == shift, Section.semester == semester)
                    .order_by(Section.student_strength.desc(), Section.id)
                ).scalars()
            )
            rooms = order_rooms(list(self.db.execute(select(Room)).scalars()), resolved)
            slots = order_slots(list(self.db.execute(select(TimeSlot).where(TimeSlot.shift == shift)).scalars()))
            occupancy = self._load_occupancy(semester)

            assigned: list[AssignedSection] = []
            unassigned: list[UnassignedSection] = []
            conflicts: list[SlotShortfall] = []

            for section in sections:
                needed, offering_id = self.primary_slot_count(section.id)
                placements: list[SlotPlacement] = []
                for slot_number in range(1, needed + 1):
                    placement = self._claim_next(
                        section,
                        offering_id=offering_id,
                        semester=semester,
                        rooms=rooms,
                        slots=slots,
                        occupancy=occupancy,
                        actor=actor,
                    )
                    if placement is None:
                        conflicts.append(
                            SlotShortfall(
                                section_id=section.id,
                                section_name=section.name,
                                slot_number=slot_number,
                                reason=f"No free room and slot for {section.student_strength} students",
                            )
                        )
                        continue
                    placements.append(placement)

                if placements:
                    assigned.append(
                        AssignedSection(
                            section_id=section.id,
                            section_name=section.name,
                            major=section.major,
                            assignments=placements,
                        )
                    )
                if len(placements) < needed:
                    unassigned.append(
                        UnassignedSection(
                            section_id=section.id,
                            section_name=section.name,
                            major=section.major,
                            assigned_count=len(placements),
                            required_count=needed,
                            shortfall=needed - len(placements),
                        )
                    )

            self.db.flush()
            log_activity(
                self.db,
                user=actor,
                action="rooms.auto_assign",
                entity_type="room_assignment",
                details={
                    "shift": shift.value,
                    "semester": semester,
                    "policy": resolved,
                    "sections": len(sections),
                    "placements": sum(len(item.assignments) for item in assigned),
                    "unassigned": len(unassigned),
                },
            )

        logger.info(
            "Auto-assigned rooms for %s/%s: %d sections placed, %d short",
            semester,
            shift.value,
            len(assigned),
            len(unassigned),
        )
        return AutoAssignResult(
            summary=AutoAssignSummary(
                total_sections=len(sections),
                assigned=len(assigned),
                unassigned=len(unassigned),
                conflicts=len({item.section_id for item in conflicts}),
            ),
            assigned=assigned,
            unassigned=unassigned,
            conflicts=conflicts,
        )

    def _claim_next(
        self,
        section: Section,
        *,
        offering_id: str | None,
        semester: str,
        rooms: list[Room],
        slots: list[TimeSlot],
        occupancy: _Occupancy,
        actor: User | None,
    ) -> SlotPlacement | None:
        for room in rooms:
            if not room_fits(room, section.student_strength):
                continue
            for slot in slots:
                if not occupancy.is_free(room.id, section.id, slot.id):
                    continue
                self.db.add(
                    RoomAssignment(
                        room_id=room.id,
                        section_id=section.id,
                        time_slot_id=slot.id,
                        semester=semester,
                        status=AssignmentStatus.reserved,
                        offering_id=offering_id,
                        assigned_by=actor.id if actor is not None else None,
                    )
                )
                occupancy.claim(room.id, section.id, slot.id)
                return SlotPlacement(
                    room_id=room.id,
                    room_name=room.name,
                    time_slot_id=slot.id,
                    time_slot_label=f"{slot.day_of_week.title()} {slot.label}",
                )
        return None

    def _load_occupancy(self, semester: str) -> _Occupancy:
        occupancy = _Occupancy()
        rows = self.db.execute(
            select(RoomAssignment.room_id, RoomAssignment.section_id, RoomAssignment.time_slot_id).where(
                RoomAssignment.semester == semester,
                RoomAssignment.status == AssignmentStatus.reserved,
            )
        )
        for room_id, section_id, slot_id in rows:
            occupancy.claim(room_id, section_id, slot_id)
        return occupancy

    def update_assignment(
        self, assignment_id: str, payload: RoomAssignmentUpdate, *, actor: User | None = None
    ) -> RoomAssignment:
        with atomic(self.db, operation="update room assignment"):
            assignment = self._get_for_update(assignment_id)
            room_id = payload.room_id or assignment.room_id
            time_slot_id = payload.time_slot_id or assignment.time_slot_id
            if self.db.get(Room, room_id) is None:
                raise NotFoundError("room", room_id)
            if self.db.get(TimeSlot, time_slot_id) is None:
                raise NotFoundError("time_slot", time_slot_id)
            self._ensure_not_linked(assignment, action="moved")

            moved = (room_id, time_slot_id) != (assignment.room_id, assignment.time_slot_id)
            if assignment.status == AssignmentStatus.reserved and moved:
                checker = ConflictChecker(self.db)
                conflict = checker.room_conflict(room_id, time_slot_id, semester=assignment.semester)
                if conflict is not None:
                    raise ConflictError(conflict.message, details=conflict.model_dump(), reason=conflict.reason)
                if time_slot_id != assignment.time_slot_id and checker.section_booked(
                    assignment.section_id, time_slot_id, semester=assignment.semester
                ):
                    raise ConflictError(
                        "Section already holds a room in this slot",
                        details={"section_id": assignment.section_id, "time_slot_id": time_slot_id},
                        reason="section_conflict",
                    )

            previous = {"room_id": assignment.room_id, "time_slot_id": assignment.time_slot_id}
            assignment.room_id = room_id
            assignment.time_slot_id = time_slot_id
            self.db.flush()
            log_activity(
                self.db,
                user=actor,
                action="rooms.assignment.update",
                entity_type="room_assignment",
                entity_id=assignment.id,
                details={"from": previous, "to": {"room_id": room_id, "time_slot_id": time_slot_id}},
            )
        self.db.refresh(assignment)
        return assignment

    def delete_assignment(self, assignment_id: str, *, actor: User | None = None) -> None:
        with atomic(self.db, operation="delete room assignment"):
            assignment = self._get_for_update(assignment_id)
            self._ensure_not_linked(assignment, action="deleted")
            self.db.delete(assignment)
            log_activity(
                self.db,
                user=actor,
                action="rooms.assignment.delete",
                entity_type="room_assignment",
                entity_id=assignment_id,
                details={"room_id": assignment.room_id, "time_slot_id": assignment.time_slot_id},
            )
        logger.info("Deleted room assignment %s", assignment_id)

    def _get_for_update(self, assignment_id: str) -> RoomAssignment:
        assignment = self.db.execute(
            select(RoomAssignment).where(RoomAssignment.id == assignment_id).with_for_update()
        ).scalar_one_or_none()
        if assignment is None:
            raise NotFoundError("room_assignment", assignment_id)
        return assignment

    def _ensure_not_linked(self, assignment: RoomAssignment, *, action: str) -> None:
        linked = self.db.execute(
            select(SlotReservation.id).where(
                SlotReservation.room_assignment_id == assignment.id,
                SlotReservation.status == ReservationStatus.reserved,
            )
        ).first()
        if linked is not None:
            raise StateError(
                f"Assignment belongs to an accepted course request and cannot be {action}; "
                "undo or reschedule the request instead.",
                details={"assignment_id": assignment.id, "course_request_id": assignment.course_request_id},
                reason="assignment_in_use",
            )
