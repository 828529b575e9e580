"""Course request lifecycle: accept, undo, reschedule and reassign, plus resets.

Every operation is one transaction that starts by locking the course request
row. Concurrent attempts on the same request serialize on that lock; the
loser then sees a non-pending status. Concurrent claims of the same room or
instructor slot by different requests are settled by the partial unique
indexes on reserved rows and surface as ``concurrent_claim`` conflicts.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.exceptions import AuthorizationError, ConflictError, NotFoundError, StateError, ValidationError
from app.db.transaction import atomic
from app.models.course_request import SCHEDULED_STATUSES, CourseRequest, RequestStatus
from app.models.reservation import AssignmentStatus, ReservationStatus, RoomAssignment, SlotReservation
from app.models.room import Room
from app.models.section import Section
from app.models.time_slot import TimeSlot
from app.models.timetable import Block
from app.models.user import User, UserRole
from app.services.audit import log_activity
from app.services.conflicts import ConflictChecker
from app.services.materializer import TimetableMaterializer
from app.services.room_allocator import RoomAllocator

logger = logging.getLogger(__name__)

RESET_SCOPES = ("slots", "assignments", "full")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class Booking:
    reservation: SlotReservation
    assignment: RoomAssignment
    room: Room
    time_slot: TimeSlot


@dataclass
class ReservationOutcome:
    request: CourseRequest
    bookings: list[Booking] = field(default_factory=list)
    cancelled_count: int = 0
    previous_instructor_id: str | None = None
    offered_to: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ResetOutcome:
    scope: str
    requests_reset: int
    time_slots_deleted: int = 0
    course_requests_deleted: int = 0


def clear_schedule(db: Session) -> int:
    """Return every scheduled request to pending and drop all booking rows.

    Removes slot reservations, room assignments and Blocks. Used by cascading
    slot regeneration and timetable resets. Does not commit.
    """
    scheduled = list(
        db.execute(
            select(CourseRequest).where(CourseRequest.status.in_(SCHEDULED_STATUSES)).with_for_update()
        ).scalars()
    )
    for request in scheduled:
        request.reset_to_pending()
    db.flush()

    db.execute(delete(SlotReservation))
    db.execute(delete(RoomAssignment))
    db.execute(delete(Block))
    return len(scheduled)


class ReservationCoordinator:
    def __init__(
        self,
        db: Session,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock or _utcnow
        self.checker = ConflictChecker(db, lock=True)
        self.allocator = RoomAllocator(db, settings=self.settings)
        self.materializer = TimetableMaterializer(db, clock=self.clock)

    def accept(self, request_id: str, *, instructor: User, time_slot_ids: list[str]) -> ReservationOutcome:
        with atomic(self.db, operation="accept course request"):
            request = self._lock_request(request_id)
            request.ensure_transition(RequestStatus.accepted)
            slots = self._load_slots(time_slot_ids, request)
            section = self._load_section(request)

            self._ensure_clear(request, instructor_id=instructor.id, slots=slots)
            bookings = self._book(request, section=section, instructor=instructor, slots=slots)

            now = self.clock()
            request.transition_to(RequestStatus.accepted)
            request.instructor_id = instructor.id
            request.accepted_at = now
            request.preferences = {
                "time_slot_ids": [slot.id for slot in slots],
                "selected_at": now.isoformat(),
            }
            log_activity(
                self.db,
                user=instructor,
                action="course_request.accept",
                entity_type="course_request",
                entity_id=request.id,
                details={"time_slot_ids": [slot.id for slot in slots], "rooms": [b.room.id for b in bookings]},
            )
            if self.settings.rebuild_timetable_on_change:
                self.materializer.rebuild(actor=instructor)

        logger.info("Instructor %s accepted request %s with %d slots", instructor.id, request.id, len(bookings))
        return ReservationOutcome(request=request, bookings=bookings)

    def undo(self, request_id: str, *, actor: User) -> ReservationOutcome:
        with atomic(self.db, operation="undo course request"):
            request = self._lock_request(request_id)
            if request.status != RequestStatus.accepted:
                raise StateError(
                    f"Only accepted requests can be undone; request is {RequestStatus(request.status).value}.",
                    details={"request_id": request.id, "status": RequestStatus(request.status).value},
                    reason="not_accepted",
                )
            if actor.role != UserRole.admin:
                self._ensure_owner(request, actor)
            self._ensure_within_undo_window(request)
            previous_instructor_id = request.instructor_id

            cancelled = self._release(request, assignment_status=AssignmentStatus.available)
            request.transition_to(RequestStatus.pending)
            request.instructor_id = None
            request.accepted_at = None
            request.preferences = None
            log_activity(
                self.db,
                user=actor,
                action="course_request.undo",
                entity_type="course_request",
                entity_id=request.id,
                details={"cancelled_reservations": cancelled},
            )
            if self.settings.rebuild_timetable_on_change:
                self.materializer.rebuild(actor=actor)

        logger.info("Request %s returned to pending by %s (%d reservations released)", request.id, actor.id, cancelled)
        return ReservationOutcome(
            request=request,
            cancelled_count=cancelled,
            previous_instructor_id=previous_instructor_id,
        )

    def reschedule(self, request_id: str, *, instructor: User, time_slot_ids: list[str]) -> ReservationOutcome:
        with atomic(self.db, operation="reschedule course request"):
            request = self._lock_request(request_id)
            if request.status not in SCHEDULED_STATUSES:
                raise StateError(
                    "Only accepted or rescheduled requests can be rescheduled.",
                    details={"request_id": request.id, "status": RequestStatus(request.status).value},
                    reason="not_scheduled",
                )
            self._ensure_owner(request, instructor)
            request.ensure_transition(RequestStatus.rescheduled)
            slots = self._load_slots(time_slot_ids, request)
            section = self._load_section(request)

            # Validate the whole new selection before touching the current booking.
            self._ensure_clear(request, instructor_id=instructor.id, slots=slots)

            cancelled = self._release(request, assignment_status=AssignmentStatus.cancelled)
            self.db.flush()
            bookings = self._book(request, section=section, instructor=instructor, slots=slots)

            now = self.clock()
            request.transition_to(RequestStatus.rescheduled)
            request.preferences = {
                "time_slot_ids": [slot.id for slot in slots],
                "rescheduled_at": now.isoformat(),
            }
            log_activity(
                self.db,
                user=instructor,
                action="course_request.reschedule",
                entity_type="course_request",
                entity_id=request.id,
                details={"time_slot_ids": [slot.id for slot in slots], "cancelled_reservations": cancelled},
            )
            self.materializer.rebuild(actor=instructor)

        logger.info("Instructor %s rescheduled request %s onto %d slots", instructor.id, request.id, len(bookings))
        return ReservationOutcome(request=request, bookings=bookings, cancelled_count=cancelled)

    def reassign(self, request_id: str, *, actor: User, instructor_ids: list[str]) -> ReservationOutcome:
        """Take a scheduled request away from its instructor and offer it to others.

        No undo window applies. The bookings are released, the request goes
        back to pending and the chosen instructors are recorded in its
        preferences so they can be notified.
        """
        offered_to = list(dict.fromkeys(item.strip() for item in instructor_ids if item.strip()))
        if not offered_to:
            raise ValidationError("Select at least one instructor", reason="no_instructors_selected")

        with atomic(self.db, operation="reassign course request"):
            request = self._lock_request(request_id)
            if request.status not in SCHEDULED_STATUSES:
                raise StateError(
                    "Only accepted or rescheduled requests can be reassigned.",
                    details={"request_id": request.id, "status": RequestStatus(request.status).value},
                    reason="not_scheduled",
                )
            self._ensure_instructors(offered_to, exclude_id=request.instructor_id)
            previous_instructor_id = request.instructor_id

            cancelled = self._release(request, assignment_status=AssignmentStatus.available)
            request.reset_to_pending()
            request.preferences = {"offered_to": offered_to, "reassigned_at": self.clock().isoformat()}
            log_activity(
                self.db,
                user=actor,
                action="course_request.reassign",
                entity_type="course_request",
                entity_id=request.id,
                details={
                    "previous_instructor_id": previous_instructor_id,
                    "offered_to": offered_to,
                    "cancelled_reservations": cancelled,
                },
            )
            if self.settings.rebuild_timetable_on_change:
                self.materializer.rebuild(actor=actor)

        logger.info("Request %s reassigned by %s to %d instructors", request.id, actor.id, len(offered_to))
        return ReservationOutcome(
            request=request,
            cancelled_count=cancelled,
            previous_instructor_id=previous_instructor_id,
            offered_to=offered_to,
        )

    def reset(self, scope: str, *, actor: User | None = None) -> ResetOutcome:
        """Administrative wipe of the schedule.

        ``assignments`` releases every booking and returns scheduled requests
        to pending. ``slots`` also removes the time slot catalog, and ``full``
        removes the course requests as well.
        """
        if scope not in RESET_SCOPES:
            raise ValidationError(
                f"Unknown reset scope: {scope}",
                details={"scope": scope, "allowed": list(RESET_SCOPES)},
            )

        with atomic(self.db, operation="reset timetable"):
            requests_reset = clear_schedule(self.db)
            slots_deleted = 0
            requests_deleted = 0
            if scope in ("slots", "full"):
                slots_deleted = self.db.execute(delete(TimeSlot)).rowcount or 0
            if scope == "full":
                requests_deleted = self.db.execute(delete(CourseRequest)).rowcount or 0
            log_activity(
                self.db,
                user=actor,
                action="timetable.reset",
                entity_type="timetable",
                details={
                    "scope": scope,
                    "requests_reset": requests_reset,
                    "time_slots_deleted": slots_deleted,
                    "course_requests_deleted": requests_deleted,
                },
            )
            self.materializer.rebuild(actor=actor)

        logger.warning(
            "Timetable reset (%s): %d requests reset, %d slots and %d requests deleted",
            scope,
            requests_reset,
            slots_deleted,
            requests_deleted,
        )
        return ResetOutcome(
            scope=scope,
            requests_reset=requests_reset,
            time_slots_deleted=slots_deleted,
            course_requests_deleted=requests_deleted,
        )

    def _ensure_instructors(self, instructor_ids: list[str], *, exclude_id: str | None) -> None:
        if exclude_id in instructor_ids:
            raise ValidationError(
                "A request cannot be reassigned to its current instructor",
                details={"instructor_id": exclude_id},
                reason="same_instructor",
            )
        users = {
            user.id: user
            for user in self.db.execute(select(User).where(User.id.in_(instructor_ids))).scalars()
        }
        for instructor_id in instructor_ids:
            user = users.get(instructor_id)
            if user is None:
                raise NotFoundError("user", instructor_id)
            if user.role != UserRole.instructor or not user.is_active:
                raise ValidationError(
                    f"{user.name} is not an active instructor",
                    details={"instructor_id": instructor_id},
                    reason="not_an_instructor",
                )

    def _lock_request(self, request_id: str) -> CourseRequest:
        request = self.db.execute(
            select(CourseRequest)
            .where(CourseRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if request is None:
            raise NotFoundError("course_request", request_id)
        return request

    def _load_section(self, request: CourseRequest) -> Section:
        section = self.db.get(Section, request.section_id)
        if section is None:
            raise NotFoundError("section", request.section_id)
        return section

    def _load_slots(self, time_slot_ids: list[str], request: CourseRequest) -> list[TimeSlot]:
        if not time_slot_ids:
            raise ValidationError("Select at least one time slot", reason="no_slots_selected")
        if len(set(time_slot_ids)) != len(time_slot_ids):
            raise ValidationError(
                "Time slot ids must be unique",
                details={"time_slot_ids": time_slot_ids},
                reason="duplicate_slots",
            )
        found = {
            slot.id: slot
            for slot in self.db.execute(select(TimeSlot).where(TimeSlot.id.in_(time_slot_ids))).scalars()
        }
        for slot_id in time_slot_ids:
            if slot_id not in found:
                raise NotFoundError("time_slot", slot_id)
        slots = [found[slot_id] for slot_id in time_slot_ids]
        mismatched = [slot.id for slot in slots if slot.shift != request.shift]
        if mismatched:
            raise ValidationError(
                f"Selected slots must belong to the {request.shift.value} shift",
                details={"time_slot_ids": mismatched},
                reason="shift_mismatch",
            )
        return slots

    def _ensure_owner(self, request: CourseRequest, actor: User) -> None:
        if request.instructor_id != actor.id:
            raise AuthorizationError(
                "You can only modify course requests you accepted",
                details={"request_id": request.id},
            )

    def _ensure_within_undo_window(self, request: CourseRequest) -> None:
        window = self.settings.undo_window_seconds
        if request.accepted_at is None:
            raise StateError("Undo window has expired", details={"window_seconds": window}, reason="undo_window_expired")
        elapsed = (as_utc(self.clock()) - as_utc(request.accepted_at)).total_seconds()
        if elapsed >= window:
            logger.info("Undo rejected for request %s: %.3fs elapsed", request.id, elapsed)
            raise StateError(
                f"Undo window has expired. Requests can only be undone within {window:g} seconds of acceptance.",
                details={"window_seconds": window, "elapsed_seconds": round(elapsed, 3)},
                reason="undo_window_expired",
            )

    def _ensure_clear(self, request: CourseRequest, *, instructor_id: str, slots: list[TimeSlot]) -> None:
        for slot in slots:
            conflict = self.checker.instructor_conflict(instructor_id, slot.id, exclude_request_id=request.id)
            if conflict is None:
                conflict = self.checker.section_conflict(request.section_id, slot.id, exclude_request_id=request.id)
            if conflict is not None:
                logger.info("Request %s blocked at slot %s: %s", request.id, slot.id, conflict.message)
                raise ConflictError(
                    f"{slot.day_of_week.title()} {slot.label}: {conflict.message}",
                    details=conflict.model_dump(),
                    reason=conflict.reason,
                )

    def _book(
        self,
        request: CourseRequest,
        *,
        section: Section,
        instructor: User,
        slots: list[TimeSlot],
    ) -> list[Booking]:
        rooms: list[tuple[TimeSlot, Room]] = []
        for slot in slots:
            room = self.allocator.find_room(
                slot.id,
                section_strength=section.student_strength,
                exclude_request_id=request.id,
            )
            if room is None:
                raise ConflictError(
                    f"No room is available on {slot.day_of_week.title()} at {slot.label}",
                    details={"time_slot_id": slot.id},
                    reason="no_room_available",
                )
            rooms.append((slot, room))

        bookings: list[Booking] = []
        for slot, room in rooms:
            assignment = RoomAssignment(
                room_id=room.id,
                section_id=request.section_id,
                time_slot_id=slot.id,
                semester=request.semester,
                status=AssignmentStatus.reserved,
                offering_id=request.offering_id,
                course_request_id=request.id,
                assigned_by=instructor.id,
            )
            self.db.add(assignment)
            self.db.flush()
            reservation = SlotReservation(
                course_request_id=request.id,
                instructor_id=instructor.id,
                time_slot_id=slot.id,
                room_assignment_id=assignment.id,
                status=ReservationStatus.reserved,
            )
            self.db.add(reservation)
            bookings.append(Booking(reservation=reservation, assignment=assignment, room=room, time_slot=slot))
        self.db.flush()
        return bookings

    def _release(self, request: CourseRequest, *, assignment_status: AssignmentStatus) -> int:
        reservations = list(
            self.db.execute(
                select(SlotReservation)
                .where(
                    SlotReservation.course_request_id == request.id,
                    SlotReservation.status == ReservationStatus.reserved,
                )
                .with_for_update()
            ).scalars()
        )
        assignment_ids = [item.room_assignment_id for item in reservations]
        for reservation in reservations:
            reservation.status = ReservationStatus.cancelled
        if assignment_ids:
            assignments = self.db.execute(
                select(RoomAssignment).where(
                    RoomAssignment.id.in_(assignment_ids),
                    RoomAssignment.status == AssignmentStatus.reserved,
                )
            ).scalars()
            for assignment in assignments:
                assignment.status = assignment_status
        return len(reservations)
