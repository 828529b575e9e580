"""Rebuilds the published timetable from live reservations.

Blocks and section course history are derived data. A rebuild deletes every
Block and regenerates the set from the reserved slot reservations of
accepted or rescheduled requests, so running it twice against the same
reservations yields the same rows.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.db.transaction import atomic
from app.models.course import Course, CourseType
from app.models.course_request import SCHEDULED_STATUSES, CourseRequest
from app.models.reservation import ReservationStatus, RoomAssignment, SlotReservation
from app.models.time_slot import DAY_INDEX, TimeSlot
from app.models.timetable import Block, BlockType, SectionRecord, TimetablePublication
from app.models.user import User
from app.services.audit import log_activity

logger = logging.getLogger(__name__)

PUBLICATION_ID = 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MaterializeOutcome:
    blocks_created: int
    sections_recorded: int
    published_at: datetime


class TimetableMaterializer:
    def __init__(self, db: Session, *, clock: Callable[[], datetime] | None = None) -> None:
        self.db = db
        self.clock = clock or _utcnow

    def generate(self, *, actor: User | None = None) -> MaterializeOutcome:
        """Rebuild and commit as a standalone operation."""
        with atomic(self.db, operation="materialize timetable"):
            outcome = self.rebuild(actor=actor)
        logger.info(
            "Published timetable: %d blocks, %d section records",
            outcome.blocks_created,
            outcome.sections_recorded,
        )
        return outcome

    def rebuild(self, *, actor: User | None = None) -> MaterializeOutcome:
        """Rebuild inside the caller's transaction. Does not commit."""
        # The session does not autoflush; pending status changes must reach the query.
        self.db.flush()
        publication = self._lock_publication()

        self.db.execute(delete(Block))
        rows = self.db.execute(
            select(SlotReservation, CourseRequest, RoomAssignment, TimeSlot, Course.type)
            .join(CourseRequest, CourseRequest.id == SlotReservation.course_request_id)
            .join(RoomAssignment, RoomAssignment.id == SlotReservation.room_assignment_id)
            .join(TimeSlot, TimeSlot.id == SlotReservation.time_slot_id)
            .outerjoin(Course, Course.id == CourseRequest.course_id)
            .where(
                SlotReservation.status == ReservationStatus.reserved,
                CourseRequest.status.in_(SCHEDULED_STATUSES),
            )
        ).all()
        rows.sort(
            key=lambda row: (
                row.CourseRequest.section_id,
                row.CourseRequest.course_id,
                DAY_INDEX.get(row.TimeSlot.day_of_week, 7),
                row.TimeSlot.start_time,
                row.TimeSlot.id,
            )
        )

        blocks = [
            Block(
                teacher_id=row.SlotReservation.instructor_id,
                course_id=row.CourseRequest.course_id,
                section_id=row.CourseRequest.section_id,
                room_id=row.RoomAssignment.room_id,
                day=row.TimeSlot.day_of_week,
                time_slot_id=row.TimeSlot.id,
                shift=row.TimeSlot.shift,
                type=BlockType.lab if row.type == CourseType.lab else BlockType.theory,
            )
            for row in rows
        ]
        self.db.add_all(blocks)

        history: dict[tuple[str, str], SectionRecord] = {}
        for row in rows:
            key = (row.CourseRequest.section_id, row.CourseRequest.course_id)
            if key in history:
                continue
            history[key] = SectionRecord(
                section_id=row.CourseRequest.section_id,
                course_id=row.CourseRequest.course_id,
                instructor_id=row.SlotReservation.instructor_id,
                semester=row.CourseRequest.semester,
            )
        touched = sorted({section_id for section_id, _ in history})
        if touched:
            self.db.execute(delete(SectionRecord).where(SectionRecord.section_id.in_(touched)))
        self.db.add_all(history.values())

        published_at = self.clock()
        publication.block_count = len(blocks)
        publication.published_at = published_at
        publication.published_by_id = actor.id if actor is not None else None
        self.db.flush()

        log_activity(
            self.db,
            user=actor,
            action="timetable.materialize",
            entity_type="timetable",
            entity_id=str(PUBLICATION_ID),
            details={"blocks": len(blocks), "sections": len(touched)},
        )
        logger.debug("Materialized %d blocks for %d sections", len(blocks), len(touched))
        return MaterializeOutcome(
            blocks_created=len(blocks),
            sections_recorded=len(history),
            published_at=published_at,
        )

    def _lock_publication(self) -> TimetablePublication:
        publication = self.db.execute(
            select(TimetablePublication).where(TimetablePublication.id == PUBLICATION_ID).with_for_update()
        ).scalar_one_or_none()
        if publication is None:
            publication = TimetablePublication(id=PUBLICATION_ID, block_count=0)
            self.db.add(publication)
            self.db.flush()
        return publication
