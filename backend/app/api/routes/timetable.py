import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_app_settings, get_current_user, get_db, require_roles
from app.core.config import Settings
from app.core.exceptions import AuthorizationError, NotFoundError
from app.models.course import Course
from app.models.notification import NotificationType
from app.models.room import Room
from app.models.section import Section, Shift
from app.models.time_slot import DAY_INDEX, TimeSlot
from app.models.timetable import Block, SectionRecord
from app.models.user import User, UserRole
from app.schemas.course_request import AvailableSlotsOut
from app.schemas.time_slot import TimeSlotOut
from app.schemas.timetable import (
    InstructorScheduleOut,
    MaterializeResult,
    SectionRecordOut,
    TimetableEntryOut,
    TimetableResetRequest,
    TimetableResetResult,
)
from app.services.conflicts import ConflictChecker
from app.services.materializer import TimetableMaterializer
from app.services.notifications import dispatch, notify_roles, timetable_published
from app.services.reservations import ReservationCoordinator

router = APIRouter()
logger = logging.getLogger(__name__)


def _timetable_entries(db: Session, *filters) -> list[TimetableEntryOut]:
    query = (
        select(Block, User.name, Course.code, Course.name, Section.name, Room.name, TimeSlot)
        .outerjoin(User, User.id == Block.teacher_id)
        .outerjoin(Course, Course.id == Block.course_id)
        .outerjoin(Section, Section.id == Block.section_id)
        .outerjoin(Room, Room.id == Block.room_id)
        .outerjoin(TimeSlot, TimeSlot.id == Block.time_slot_id)
        .where(*filters)
    )
    entries: list[TimetableEntryOut] = []
    for block, teacher_name, course_code, course_name, section_name, room_name, slot in db.execute(query):
        entry = TimetableEntryOut.model_validate(block)
        entry.teacher_name = teacher_name
        entry.course_code = course_code
        entry.course_name = course_name
        entry.section_name = section_name
        entry.room_name = room_name
        if slot is not None:
            entry.start_time = slot.start_time
            entry.end_time = slot.end_time
            entry.label = slot.label
        entries.append(entry)
    entries.sort(key=lambda item: (DAY_INDEX.get(item.day, 7), item.start_time or "", item.section_id, item.id))
    return entries


@router.post("/generate", response_model=MaterializeResult)
def generate_timetable(
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.scheduler)),
    db: Session = Depends(get_db),
) -> MaterializeResult:
    outcome = TimetableMaterializer(db).generate(actor=current_user)
    dispatch(db, timetable_published(current_user, block_count=outcome.blocks_created), event="timetable.generate")
    return MaterializeResult(
        blocks_created=outcome.blocks_created,
        sections_recorded=outcome.sections_recorded,
        published_at=outcome.published_at,
    )


@router.post("/reset", response_model=TimetableResetResult)
def reset_timetable(
    payload: TimetableResetRequest,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> TimetableResetResult:
    outcome = ReservationCoordinator(db, settings=settings).reset(payload.scope, actor=current_user)
    dispatch(
        db,
        lambda session: notify_roles(
            session,
            roles=(UserRole.admin, UserRole.scheduler, UserRole.instructor),
            title="Timetable reset",
            message=f"{current_user.name} reset the timetable ({outcome.scope}).",
            notification_type=NotificationType.timetable,
            exclude_user_id=current_user.id,
        ),
        event="timetable.reset",
    )
    return TimetableResetResult(
        scope=outcome.scope,
        requests_reset=outcome.requests_reset,
        time_slots_deleted=outcome.time_slots_deleted,
        course_requests_deleted=outcome.course_requests_deleted,
    )


@router.get("", response_model=list[TimetableEntryOut])
def get_timetable(
    section_id: str | None = Query(default=None),
    instructor_id: str | None = Query(default=None),
    room_id: str | None = Query(default=None),
    shift: Shift | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[TimetableEntryOut]:
    filters = []
    if section_id:
        filters.append(Block.section_id == section_id)
    if instructor_id:
        filters.append(Block.teacher_id == instructor_id)
    if room_id:
        filters.append(Block.room_id == room_id)
    if shift is not None:
        filters.append(Block.shift == shift)
    return _timetable_entries(db, *filters)


@router.get("/available-slots", response_model=AvailableSlotsOut)
def get_available_slots(
    section_id: str = Query(...),
    instructor_id: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AvailableSlotsOut:
    section = db.get(Section, section_id)
    if section is None:
        raise NotFoundError("section", section_id)
    slots = sorted(
        db.execute(select(TimeSlot).where(TimeSlot.shift == section.shift)).scalars(),
        key=lambda slot: slot.sort_key,
    )
    available, blocked = ConflictChecker(db).partition(slots, section_id=section.id, instructor_id=instructor_id)
    return AvailableSlotsOut(
        section_id=section.id,
        instructor_id=instructor_id,
        available_slots=[TimeSlotOut.model_validate(slot) for slot in available],
        blocked_slots=blocked,
        total_available=len(available),
        total_blocked=len(blocked),
    )


@router.get("/instructors/{instructor_id}/schedule", response_model=InstructorScheduleOut)
def get_instructor_schedule(
    instructor_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> InstructorScheduleOut:
    if current_user.id != instructor_id and current_user.role not in (UserRole.admin, UserRole.scheduler):
        raise AuthorizationError("You can only view your own schedule", details={"instructor_id": instructor_id})
    entries = _timetable_entries(db, Block.teacher_id == instructor_id)
    return InstructorScheduleOut(instructor_id=instructor_id, total_classes=len(entries), schedule=entries)


@router.get("/sections/{section_id}/history", response_model=list[SectionRecordOut])
def get_section_history(
    section_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[SectionRecordOut]:
    if db.get(Section, section_id) is None:
        raise NotFoundError("section", section_id)
    return list(
        db.execute(
            select(SectionRecord)
            .where(SectionRecord.section_id == section_id)
            .order_by(SectionRecord.semester, SectionRecord.course_id)
        ).scalars()
    )
