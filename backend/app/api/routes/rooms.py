from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_app_settings, get_current_user, get_db, require_roles
from app.core.config import Settings
from app.models.reservation import AssignmentStatus, RoomAssignment
from app.models.room import Room
from app.models.user import User, UserRole
from app.schemas.room import AutoAssignRequest, AutoAssignResult, RoomAssignmentOut, RoomAssignmentUpdate, RoomOut
from app.services.notifications import dispatch, notify_roles
from app.services.room_allocator import RoomAllocator

router = APIRouter()


@router.get("", response_model=list[RoomOut])
def list_rooms(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> list[RoomOut]:
    return list(db.execute(select(Room).order_by(Room.name)).scalars())


@router.post("/auto-assign", response_model=AutoAssignResult)
def auto_assign_rooms(
    payload: AutoAssignRequest,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.scheduler)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> AutoAssignResult:
    result = RoomAllocator(db, settings=settings).auto_assign(
        shift=payload.shift,
        semester=payload.semester,
        policy=payload.policy,
        actor=current_user,
    )
    dispatch(
        db,
        lambda session: notify_roles(
            session,
            title="Rooms auto-assigned",
            message=(
                f"{current_user.name} assigned rooms for {result.summary.assigned} of "
                f"{result.summary.total_sections} {payload.shift.value} sections in {payload.semester}."
            ),
            exclude_user_id=current_user.id,
        ),
        event="rooms.auto_assign",
    )
    return result


@router.get("/assignments", response_model=list[RoomAssignmentOut])
def list_room_assignments(
    section_id: str | None = Query(default=None),
    semester: str | None = Query(default=None),
    room_id: str | None = Query(default=None),
    status: AssignmentStatus | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[RoomAssignmentOut]:
    query = select(RoomAssignment).order_by(RoomAssignment.semester, RoomAssignment.section_id, RoomAssignment.id)
    if section_id:
        query = query.where(RoomAssignment.section_id == section_id)
    if semester:
        query = query.where(RoomAssignment.semester == semester)
    if room_id:
        query = query.where(RoomAssignment.room_id == room_id)
    if status is not None:
        query = query.where(RoomAssignment.status == status)
    return list(db.execute(query).scalars())


@router.put("/assignments/{assignment_id}", response_model=RoomAssignmentOut)
def update_room_assignment(
    assignment_id: str,
    payload: RoomAssignmentUpdate,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.scheduler)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> RoomAssignmentOut:
    return RoomAllocator(db, settings=settings).update_assignment(assignment_id, payload, actor=current_user)


@router.delete("/assignments/{assignment_id}")
def delete_room_assignment(
    assignment_id: str,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.scheduler)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    RoomAllocator(db, settings=settings).delete_assignment(assignment_id, actor=current_user)
    return {"success": True}
