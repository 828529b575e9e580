from datetime import datetime

from pydantic import BaseModel, Field

from app.core.config import RoomPolicyName
from app.models.reservation import AssignmentStatus
from app.models.room import RoomType
from app.models.section import Shift


class RoomOut(BaseModel):
    id: str
    name: str
    building: str
    capacity: int
    type: RoomType

    model_config = {"from_attributes": True}


class AutoAssignRequest(BaseModel):
    shift: Shift
    semester: str = Field(min_length=1, max_length=20)
    policy: RoomPolicyName | None = None


class SlotPlacement(BaseModel):
    room_id: str
    room_name: str
    time_slot_id: str
    time_slot_label: str


class AssignedSection(BaseModel):
    section_id: str
    section_name: str
    major: str | None
    assignments: list[SlotPlacement]


class UnassignedSection(BaseModel):
    section_id: str
    section_name: str
    major: str | None
    assigned_count: int
    required_count: int
    shortfall: int


class SlotShortfall(BaseModel):
    section_id: str
    section_name: str
    slot_number: int
    reason: str


class AutoAssignSummary(BaseModel):
    total_sections: int
    assigned: int
    unassigned: int
    conflicts: int


class AutoAssignResult(BaseModel):
    summary: AutoAssignSummary
    assigned: list[AssignedSection]
    unassigned: list[UnassignedSection]
    conflicts: list[SlotShortfall]


class RoomAssignmentOut(BaseModel):
    id: str
    room_id: str
    section_id: str
    time_slot_id: str
    semester: str
    status: AssignmentStatus
    offering_id: str | None
    course_request_id: str | None
    assigned_by: str | None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class RoomAssignmentUpdate(BaseModel):
    room_id: str | None = None
    time_slot_id: str | None = None
