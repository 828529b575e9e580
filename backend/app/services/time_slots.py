"""Time slot catalog generation.

The catalog is rebuilt wholesale from a per-day list of {duration, count}
groups. Slots on a day are laid out back to back from the window start, in
the order the groups are given, with a fixed gap between consecutive slots.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.exceptions import StateError, ValidationError
from app.db.transaction import atomic
from app.models.reservation import AssignmentStatus, ReservationStatus, RoomAssignment, SlotReservation
from app.models.section import Shift
from app.models.time_slot import DAY_INDEX, DAY_ORDER, TimeSlot
from app.models.timetable import Block
from app.models.user import User
from app.schemas.time_slot import SlotGenerationRequest, SlotGenerationSummary, SlotTypeGroup, TimeSlotOut, parse_time_to_minutes
from app.services.audit import log_activity
from app.services.reservations import clear_schedule

logger = logging.getLogger(__name__)

PREVIEW_SIZE = 20


@dataclass(frozen=True)
class PlannedSlot:
    day: str
    start_minutes: int
    duration: int

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration


@dataclass(frozen=True)
class DayShortfall:
    day: str
    required: int
    available: int

    @property
    def shortfall(self) -> int:
        return self.required - self.available

    def as_dict(self) -> dict:
        return {
            "day": self.day,
            "required": self.required,
            "available": self.available,
            "shortfall": self.shortfall,
            "suggestion": f"{self.day}: reduce slots or widen the time window by {self.shortfall} minutes",
        }


def format_24h(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_12h(minutes: int) -> str:
    hours24, mins = divmod(minutes, 60)
    period = "PM" if hours24 >= 12 else "AM"
    hours12 = hours24 % 12 or 12
    return f"{hours12}:{mins:02d} {period}"


def required_minutes(groups: list[SlotTypeGroup], *, gap_minutes: int) -> int:
    teaching = sum(group.duration * group.count for group in groups)
    total_slots = sum(group.count for group in groups)
    return teaching + max(0, (total_slots - 1) * gap_minutes)


def find_shortfalls(
    start_time: str,
    end_time: str,
    days: dict[str, list[SlotTypeGroup]],
    *,
    gap_minutes: int,
) -> list[DayShortfall]:
    window = parse_time_to_minutes(end_time) - parse_time_to_minutes(start_time)
    shortfalls: list[DayShortfall] = []
    for day in sorted(days, key=lambda item: DAY_INDEX[item]):
        groups = days[day]
        if not groups:
            continue
        needed = required_minutes(groups, gap_minutes=gap_minutes)
        if needed > window:
            shortfalls.append(DayShortfall(day=day, required=needed, available=window))
    return shortfalls


def plan_catalog(
    start_time: str,
    end_time: str,
    days: dict[str, list[SlotTypeGroup]],
    *,
    gap_minutes: int,
) -> list[PlannedSlot]:
    shortfalls = find_shortfalls(start_time, end_time, days, gap_minutes=gap_minutes)
    if shortfalls:
        raise ValidationError(
            "Some days have slots that do not fit in the time window",
            details={"days": [item.as_dict() for item in shortfalls]},
            reason="slots_exceed_window",
        )

    window_start = parse_time_to_minutes(start_time)
    planned: list[PlannedSlot] = []
    for day in DAY_ORDER:
        groups = days.get(day) or []
        cursor = window_start
        for group in groups:
            for _ in range(group.count):
                planned.append(PlannedSlot(day=day, start_minutes=cursor, duration=group.duration))
                cursor += group.duration + gap_minutes
    return planned


def shift_for(start_minutes: int, boundary: str) -> Shift:
    return Shift.morning if start_minutes < parse_time_to_minutes(boundary) else Shift.evening


def build_time_slot(planned: PlannedSlot, *, shift_boundary: str) -> TimeSlot:
    return TimeSlot(
        day_of_week=planned.day,
        start_time=format_24h(planned.start_minutes),
        end_time=format_24h(planned.end_minutes),
        duration_minutes=planned.duration,
        label=f"{format_12h(planned.start_minutes)} - {format_12h(planned.end_minutes)}",
        label_24h=f"{format_24h(planned.start_minutes)} - {format_24h(planned.end_minutes)}",
        shift=shift_for(planned.start_minutes, shift_boundary),
    )


class TimeSlotGenerator:
    def __init__(self, db: Session, *, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    def regenerate(self, payload: SlotGenerationRequest, *, actor: User | None = None) -> SlotGenerationSummary:
        planned = plan_catalog(
            payload.start_time,
            payload.end_time,
            payload.days,
            gap_minutes=self.settings.slot_gap_minutes,
        )

        with atomic(self.db, operation="generate time slots"):
            reset_requests = self._clear_dependents(cascade=payload.cascade)
            self.db.execute(delete(TimeSlot))
            slots = [build_time_slot(item, shift_boundary=self.settings.shift_boundary) for item in planned]
            self.db.add_all(slots)
            self.db.flush()

            slots_per_day: dict[str, int] = {}
            for slot in slots:
                slots_per_day[slot.day_of_week] = slots_per_day.get(slot.day_of_week, 0) + 1

            log_activity(
                self.db,
                user=actor,
                action="time_slots.generate",
                entity_type="time_slot",
                details={
                    "total_slots": len(slots),
                    "window": [payload.start_time, payload.end_time],
                    "cascade": payload.cascade,
                    "reset_requests": reset_requests,
                },
            )
            summary = SlotGenerationSummary(
                total_slots=len(slots),
                days_configured=len([day for day, groups in payload.days.items() if groups]),
                slots_per_day=slots_per_day,
                cancelled_requests=reset_requests,
                preview=[TimeSlotOut.model_validate(slot) for slot in slots[:PREVIEW_SIZE]],
            )

        logger.info("Generated %d time slots across %d days", summary.total_slots, summary.days_configured)
        return summary

    def _clear_dependents(self, *, cascade: bool) -> int:
        live_assignments = self.db.execute(
            select(func.count()).select_from(RoomAssignment).where(RoomAssignment.status == AssignmentStatus.reserved)
        ).scalar_one()
        live_reservations = self.db.execute(
            select(func.count()).select_from(SlotReservation).where(SlotReservation.status == ReservationStatus.reserved)
        ).scalar_one()
        if (live_assignments or live_reservations) and not cascade:
            raise StateError(
                "Time slots are referenced by live reservations. Release them or regenerate with cascade.",
                details={
                    "reserved_room_assignments": live_assignments,
                    "reserved_slot_reservations": live_reservations,
                },
                reason="slots_in_use",
            )

        if not cascade:
            # Only released history rows are left; they go with the old catalog.
            self.db.execute(delete(SlotReservation))
            self.db.execute(delete(RoomAssignment))
            self.db.execute(delete(Block))
            return 0

        reset = clear_schedule(self.db)
        if reset:
            logger.warning("Slot regeneration reset %d scheduled course requests to pending", reset)
        return reset
