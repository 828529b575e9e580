from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.section import Shift
from app.models.time_slot import DAY_ORDER

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


class SlotTypeGroup(BaseModel):
    duration: int = Field(ge=5, le=600)
    count: int = Field(ge=0, le=48)


class SlotGenerationRequest(BaseModel):
    start_time: str
    end_time: str
    days: dict[str, list[SlotTypeGroup]] = Field(min_length=1)
    cascade: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        minutes = parse_time_to_minutes(value.strip())
        return f"{minutes // 60:02d}:{minutes % 60:02d}"

    @field_validator("days")
    @classmethod
    def normalize_days(cls, value: dict[str, list[SlotTypeGroup]]) -> dict[str, list[SlotTypeGroup]]:
        normalized: dict[str, list[SlotTypeGroup]] = {}
        for day, groups in value.items():
            key = day.strip().lower()
            if key not in DAY_ORDER:
                raise ValueError(f"Invalid day value: {day}")
            if key in normalized:
                raise ValueError(f"Duplicate day entry: {key}")
            normalized[key] = groups
        return normalized

    @model_validator(mode="after")
    def validate_window(self) -> "SlotGenerationRequest":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class TimeSlotOut(BaseModel):
    id: str
    day_of_week: str
    start_time: str
    end_time: str
    duration_minutes: int
    label: str
    label_24h: str
    shift: Shift

    model_config = {"from_attributes": True}


class SlotGenerationSummary(BaseModel):
    total_slots: int
    days_configured: int
    slots_per_day: dict[str, int]
    cancelled_requests: int = 0
    preview: list[TimeSlotOut] = Field(default_factory=list)
