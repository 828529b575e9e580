from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from app.models.section import Shift
from app.models.timetable import BlockType


class BlockOut(BaseModel):
    id: str
    teacher_id: str
    course_id: str
    section_id: str
    room_id: str
    day: str
    time_slot_id: str
    shift: Shift
    type: BlockType

    model_config = {"from_attributes": True}


class TimetableEntryOut(BlockOut):
    teacher_name: str | None = None
    course_code: str | None = None
    course_name: str | None = None
    section_name: str | None = None
    room_name: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    label: str | None = None


class MaterializeResult(BaseModel):
    blocks_created: int
    sections_recorded: int
    published_at: datetime


ResetScope = Literal["slots", "assignments", "full"]


class TimetableResetRequest(BaseModel):
    scope: ResetScope


class TimetableResetResult(BaseModel):
    scope: ResetScope
    requests_reset: int
    time_slots_deleted: int
    course_requests_deleted: int


class InstructorScheduleOut(BaseModel):
    instructor_id: str
    total_classes: int
    schedule: list[TimetableEntryOut]


class SectionRecordOut(BaseModel):
    id: str
    section_id: str
    course_id: str
    instructor_id: str
    semester: str

    model_config = {"from_attributes": True}
