from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_app_settings, get_current_user, get_db, require_roles
from app.core.config import Settings
from app.core.exceptions import ValidationError
from app.models.section import Shift
from app.models.time_slot import DAY_ORDER, TimeSlot
from app.models.user import User, UserRole
from app.schemas.time_slot import SlotGenerationRequest, SlotGenerationSummary, TimeSlotOut
from app.services.notifications import dispatch, notify_roles
from app.services.time_slots import TimeSlotGenerator

router = APIRouter()


@router.post("/generate", response_model=SlotGenerationSummary)
def generate_time_slots(
    payload: SlotGenerationRequest,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.scheduler)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> SlotGenerationSummary:
    summary = TimeSlotGenerator(db, settings=settings).regenerate(payload, actor=current_user)
    dispatch(
        db,
        lambda session: notify_roles(
            session,
            title="Time slots regenerated",
            message=f"{current_user.name} generated {summary.total_slots} time slots.",
            exclude_user_id=current_user.id,
        ),
        event="time_slots.generate",
    )
    return summary


@router.get("", response_model=list[TimeSlotOut])
def list_time_slots(
    day: str | None = Query(default=None),
    shift: Shift | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[TimeSlotOut]:
    query = select(TimeSlot)
    if day:
        normalized = day.strip().lower()
        if normalized not in DAY_ORDER:
            raise ValidationError(f"Invalid day value: {day}", details={"day": day})
        query = query.where(TimeSlot.day_of_week == normalized)
    if shift is not None:
        query = query.where(TimeSlot.shift == shift)
    return sorted(db.execute(query).scalars(), key=lambda slot: slot.sort_key)
