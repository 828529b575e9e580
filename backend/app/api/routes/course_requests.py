import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.api.deps import get_app_settings, get_current_user, get_db, require_roles
from app.core.config import Settings
from app.core.exceptions import AuthorizationError, NotFoundError
from app.models.course_request import CourseRequest, RequestStatus
from app.models.notification import NotificationType
from app.models.time_slot import TimeSlot
from app.models.user import User, UserRole
from app.schemas.course_request import (
    AcceptResponse,
    AvailableSlotsOut,
    CourseRequestOut,
    GenerateRequestsIn,
    GenerateRequestsOut,
    ReassignRequest,
    ReassignResponse,
    ReservationOut,
    SlotSelection,
    UndoResponse,
)
from app.schemas.time_slot import TimeSlotOut
from app.services import notifications
from app.services.conflicts import ConflictChecker
from app.services.course_requests import issue_course_requests
from app.services.reservations import ReservationCoordinator, ReservationOutcome

router = APIRouter()
logger = logging.getLogger(__name__)


def _accept_response(outcome: ReservationOutcome) -> AcceptResponse:
    return AcceptResponse(
        request=CourseRequestOut.model_validate(outcome.request),
        reservations=[
            ReservationOut(
                reservation_id=booking.reservation.id,
                room_assignment_id=booking.assignment.id,
                time_slot_id=booking.time_slot.id,
                room_id=booking.room.id,
                room_name=booking.room.name,
            )
            for booking in outcome.bookings
        ],
    )


@router.post("/generate", response_model=GenerateRequestsOut)
def generate_course_requests(
    payload: GenerateRequestsIn,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.scheduler)),
    db: Session = Depends(get_db),
) -> GenerateRequestsOut:
    outcome = issue_course_requests(db, payload, actor=current_user)
    if outcome.created:
        notifications.dispatch(
            db,
            lambda session: notifications.notify_roles(
                session,
                roles=(UserRole.instructor,),
                title="New course requests",
                message=f"{outcome.created} course requests are waiting for an instructor.",
                notification_type=NotificationType.request,
            ),
            event="course_requests.generate",
        )
    return GenerateRequestsOut(
        created=outcome.created,
        skipped=outcome.skipped,
        total_offerings=outcome.total_offerings,
    )


@router.get("", response_model=list[CourseRequestOut])
def list_course_requests(
    status: RequestStatus | None = Query(default=None),
    semester: str | None = Query(default=None),
    section_id: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[CourseRequestOut]:
    query = select(CourseRequest).order_by(CourseRequest.created_at, CourseRequest.id)
    if current_user.role == UserRole.instructor:
        query = query.where(
            or_(
                CourseRequest.status == RequestStatus.pending,
                CourseRequest.instructor_id == current_user.id,
            )
        )
    elif current_user.role not in (UserRole.admin, UserRole.scheduler):
        raise AuthorizationError("Insufficient permissions", reason="insufficient_role")
    if status is not None:
        query = query.where(CourseRequest.status == status)
    if semester:
        query = query.where(CourseRequest.semester == semester)
    if section_id:
        query = query.where(CourseRequest.section_id == section_id)
    return list(db.execute(query).scalars())


@router.post("/{request_id}/accept", response_model=AcceptResponse)
def accept_course_request(
    request_id: str,
    payload: SlotSelection,
    current_user: User = Depends(require_roles(UserRole.instructor)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> AcceptResponse:
    outcome = ReservationCoordinator(db, settings=settings).accept(
        request_id,
        instructor=current_user,
        time_slot_ids=payload.time_slot_ids,
    )
    response = _accept_response(outcome)
    notifications.dispatch(
        db,
        notifications.request_accepted(outcome.request, current_user),
        event="course_request.accept",
    )
    return response


@router.post("/{request_id}/undo", response_model=UndoResponse)
def undo_course_request(
    request_id: str,
    current_user: User = Depends(require_roles(UserRole.instructor, UserRole.admin)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> UndoResponse:
    outcome = ReservationCoordinator(db, settings=settings).undo(request_id, actor=current_user)
    response = UndoResponse(
        request=CourseRequestOut.model_validate(outcome.request),
        cancelled_count=outcome.cancelled_count,
    )
    notifications.dispatch(
        db,
        notifications.request_released(
            outcome.request, current_user, previous_instructor_id=outcome.previous_instructor_id
        ),
        event="course_request.undo",
    )
    return response


@router.post("/{request_id}/reschedule", response_model=AcceptResponse)
def reschedule_course_request(
    request_id: str,
    payload: SlotSelection,
    current_user: User = Depends(require_roles(UserRole.instructor)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> AcceptResponse:
    outcome = ReservationCoordinator(db, settings=settings).reschedule(
        request_id,
        instructor=current_user,
        time_slot_ids=payload.time_slot_ids,
    )
    response = _accept_response(outcome)
    notifications.dispatch(
        db,
        notifications.request_rescheduled(outcome.request, current_user),
        event="course_request.reschedule",
    )
    return response


@router.post("/{request_id}/reassign", response_model=ReassignResponse)
def reassign_course_request(
    request_id: str,
    payload: ReassignRequest,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> ReassignResponse:
    outcome = ReservationCoordinator(db, settings=settings).reassign(
        request_id,
        actor=current_user,
        instructor_ids=payload.instructor_ids,
    )
    response = ReassignResponse(
        request=CourseRequestOut.model_validate(outcome.request),
        cancelled_count=outcome.cancelled_count,
        previous_instructor_id=outcome.previous_instructor_id,
        offered_to=outcome.offered_to,
    )
    notifications.dispatch(
        db,
        notifications.request_reassigned(
            outcome.request,
            current_user,
            previous_instructor_id=outcome.previous_instructor_id,
            offered_to=outcome.offered_to,
        ),
        event="course_request.reassign",
    )
    return response


@router.get("/{request_id}/available-slots", response_model=AvailableSlotsOut)
def available_slots_for_request(
    request_id: str,
    current_user: User = Depends(require_roles(UserRole.instructor, UserRole.admin, UserRole.scheduler)),
    db: Session = Depends(get_db),
) -> AvailableSlotsOut:
    request = db.get(CourseRequest, request_id)
    if request is None:
        raise NotFoundError("course_request", request_id)
    instructor_id = current_user.id if current_user.role == UserRole.instructor else request.instructor_id

    slots = sorted(
        db.execute(select(TimeSlot).where(TimeSlot.shift == request.shift)).scalars(),
        key=lambda slot: slot.sort_key,
    )
    available, blocked = ConflictChecker(db).partition(
        slots,
        section_id=request.section_id,
        instructor_id=instructor_id,
        exclude_request_id=request.id,
    )
    return AvailableSlotsOut(
        request_id=request.id,
        section_id=request.section_id,
        instructor_id=instructor_id,
        available_slots=[TimeSlotOut.model_validate(slot) for slot in available],
        blocked_slots=blocked,
        total_available=len(available),
        total_blocked=len(blocked),
    )
