from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.models.course_request import RequestStatus
from app.models.section import Shift
from app.schemas.conflict import BlockedSlot
from app.schemas.time_slot import TimeSlotOut


class CourseRequestOut(BaseModel):
    id: str
    course_id: str
    section_id: str
    offering_id: str | None
    semester: str
    shift: Shift
    instructor_id: str | None
    status: RequestStatus
    accepted_at: datetime | None
    preferences: dict | None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class SlotSelection(BaseModel):
    time_slot_ids: list[str] = Field(min_length=1, max_length=20)

    @field_validator("time_slot_ids")
    @classmethod
    def strip_ids(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip() for item in value]
        if any(not item for item in cleaned):
            raise ValueError("Time slot ids cannot be empty")
        return cleaned


class ReservationOut(BaseModel):
    reservation_id: str
    room_assignment_id: str
    time_slot_id: str
    room_id: str
    room_name: str


class AcceptResponse(BaseModel):
    request: CourseRequestOut
    reservations: list[ReservationOut]


class UndoResponse(BaseModel):
    request: CourseRequestOut
    cancelled_count: int


class ReassignRequest(BaseModel):
    instructor_ids: list[str] = Field(min_length=1, max_length=50)


class ReassignResponse(BaseModel):
    request: CourseRequestOut
    cancelled_count: int
    previous_instructor_id: str | None
    offered_to: list[str]


class AvailableSlotsOut(BaseModel):
    request_id: str | None = None
    section_id: str
    instructor_id: str | None
    available_slots: list[TimeSlotOut]
    blocked_slots: list[BlockedSlot]
    total_available: int
    total_blocked: int


class GenerateRequestsIn(BaseModel):
    semester: str | None = None
    shift: Shift | None = None
    section_id: str | None = None
    major: str | None = None


class GenerateRequestsOut(BaseModel):
    created: int
    skipped: int
    total_offerings: int
