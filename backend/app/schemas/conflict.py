from typing import Literal

from pydantic import BaseModel

ConflictConstraint = Literal["instructor", "section", "room"]


class SlotConflict(BaseModel):
    constraint: ConflictConstraint
    time_slot_id: str
    entity_id: str
    entity_name: str
    message: str

    @property
    def reason(self) -> str:
        return f"{self.constraint}_conflict"


class BlockedSlot(BaseModel):
    time_slot_id: str
    day_of_week: str
    start_time: str
    end_time: str
    label: str
    blocked_by: ConflictConstraint
    reason: str
