import pytest
from sqlalchemy import func, select

from app.core.exceptions import StateError, ValidationError
from app.models.course_request import RequestStatus
from app.models.reservation import RoomAssignment, SlotReservation
from app.models.section import Shift
from app.models.time_slot import TimeSlot
from app.models.user import UserRole
from app.schemas.time_slot import SlotGenerationRequest, SlotTypeGroup
from app.services.reservations import ReservationCoordinator
from app.services.time_slots import (
    TimeSlotGenerator,
    find_shortfalls,
    format_12h,
    plan_catalog,
    required_minutes,
)


def make_request(start="08:00", end="17:00", days=None, cascade=False):
    return SlotGenerationRequest(
        start_time=start,
        end_time=end,
        days=days or {"monday": [{"duration": 90, "count": 2}, {"duration": 60, "count": 1}]},
        cascade=cascade,
    )


def count_slots(db):
    return db.execute(select(func.count()).select_from(TimeSlot)).scalar_one()


def test_required_minutes_includes_gaps_between_slots():
    groups = [SlotTypeGroup(duration=90, count=2), SlotTypeGroup(duration=60, count=1)]
    assert required_minutes(groups, gap_minutes=15) == 90 * 2 + 60 + 2 * 15


def test_required_minutes_single_slot_has_no_gap():
    assert required_minutes([SlotTypeGroup(duration=50, count=1)], gap_minutes=15) == 50


def test_format_12h_handles_noon_and_midnight():
    assert format_12h(0) == "12:00 AM"
    assert format_12h(8 * 60) == "8:00 AM"
    assert format_12h(12 * 60 + 30) == "12:30 PM"
    assert format_12h(15 * 60 + 5) == "3:05 PM"


def test_plan_lays_out_slots_back_to_back_with_gap():
    planned = plan_catalog(
        "08:00",
        "17:00",
        {"tuesday": [SlotTypeGroup(duration=90, count=2)], "monday": [SlotTypeGroup(duration=60, count=1)]},
        gap_minutes=15,
    )
    assert [(item.day, item.start_minutes, item.end_minutes) for item in planned] == [
        ("monday", 480, 540),
        ("tuesday", 480, 570),
        ("tuesday", 585, 675),
    ]


def test_shortfall_reports_exact_minutes_per_day():
    days = {
        "monday": [SlotTypeGroup(duration=100, count=5), SlotTypeGroup(duration=50, count=1)],
        "tuesday": [SlotTypeGroup(duration=60, count=2)],
    }
    shortfalls = find_shortfalls("08:00", "17:00", days, gap_minutes=15)
    assert len(shortfalls) == 1
    monday = shortfalls[0]
    assert monday.day == "monday"
    assert monday.available == 540
    assert monday.required == 100 * 5 + 50 + 5 * 15
    assert monday.shortfall == monday.required - 540


def test_generation_rejects_overfull_day_and_writes_nothing(db_session, settings, seed):
    admin = seed.user(UserRole.admin)
    # 4 x 140 + 30 = 590 teaching minutes plus four 15 minute gaps.
    payload = make_request(
        days={"monday": [{"duration": 140, "count": 4}, {"duration": 30, "count": 1}]},
    )
    with pytest.raises(ValidationError) as exc_info:
        TimeSlotGenerator(db_session, settings=settings).regenerate(payload, actor=admin)

    error = exc_info.value
    assert error.status_code == 422
    assert error.reason_code == "slots_exceed_window"
    (monday,) = error.details["days"]
    assert monday["day"] == "monday"
    assert monday["required"] == 650
    assert monday["available"] == 540
    assert monday["shortfall"] == 110
    assert "110" in monday["suggestion"]
    assert count_slots(db_session) == 0


def test_generation_replaces_catalog_with_labels_and_shift(db_session, settings):
    generator = TimeSlotGenerator(db_session, settings=settings)
    generator.regenerate(make_request(days={"friday": [{"duration": 60, "count": 1}]}))
    summary = generator.regenerate(
        make_request(
            start="11:00",
            end="18:00",
            days={"monday": [{"duration": 90, "count": 2}, {"duration": 60, "count": 1}], "sunday": []},
        )
    )

    assert summary.total_slots == 3
    assert summary.days_configured == 1
    assert summary.slots_per_day == {"monday": 3}
    slots = sorted(db_session.execute(select(TimeSlot)).scalars(), key=lambda slot: slot.sort_key)
    assert [slot.day_of_week for slot in slots] == ["monday"] * 3
    assert [(slot.start_time, slot.end_time) for slot in slots] == [
        ("11:00", "12:30"),
        ("12:45", "14:15"),
        ("14:30", "15:30"),
    ]
    assert slots[0].label == "11:00 AM - 12:30 PM"
    assert slots[0].label_24h == "11:00 - 12:30"
    assert [slot.shift for slot in slots] == [Shift.morning, Shift.morning, Shift.evening]
    assert len(summary.preview) == 3


def test_preview_is_capped_at_twenty(db_session, settings):
    days = {day: [{"duration": 30, "count": 6}] for day in ("monday", "tuesday", "wednesday", "thursday")}
    summary = TimeSlotGenerator(db_session, settings=settings).regenerate(make_request(days=days))
    assert summary.total_slots == 24
    assert len(summary.preview) == 20


def test_regeneration_is_blocked_while_reservations_exist(db_session, settings, seed, clock):
    instructor = seed.user()
    course = seed.course("CS101")
    section = seed.section(30)
    seed.room(40)
    slot = seed.slot("monday", "08:00")
    request = seed.request(course, section)
    ReservationCoordinator(db_session, settings=settings, clock=clock).accept(
        request.id, instructor=instructor, time_slot_ids=[slot.id]
    )

    with pytest.raises(StateError) as exc_info:
        TimeSlotGenerator(db_session, settings=settings).regenerate(make_request())
    assert exc_info.value.reason_code == "slots_in_use"
    assert db_session.get(TimeSlot, slot.id) is not None


def test_cascade_regeneration_resets_scheduled_requests(db_session, settings, seed, clock):
    instructor = seed.user()
    course = seed.course("CS101")
    section = seed.section(30)
    seed.room(40)
    slot = seed.slot("monday", "08:00")
    request = seed.request(course, section)
    ReservationCoordinator(db_session, settings=settings, clock=clock).accept(
        request.id, instructor=instructor, time_slot_ids=[slot.id]
    )
    slot_id = slot.id

    summary = TimeSlotGenerator(db_session, settings=settings).regenerate(make_request(cascade=True))

    assert summary.cancelled_requests == 1
    db_session.refresh(request)
    assert request.status == RequestStatus.pending
    assert request.instructor_id is None
    assert request.accepted_at is None
    assert db_session.execute(select(func.count()).select_from(SlotReservation)).scalar_one() == 0
    assert db_session.execute(select(func.count()).select_from(RoomAssignment)).scalar_one() == 0
    assert db_session.execute(select(func.count()).select_from(TimeSlot).where(TimeSlot.id == slot_id)).scalar_one() == 0


def test_generate_endpoint_requires_scheduler_role(client, login_as):
    _, headers = login_as("instructor")
    response = client.post("/api/time-slots/generate", json=make_request().model_dump(), headers=headers)
    assert response.status_code == 403
    assert response.json()["details"]["reason"] == "insufficient_role"


def test_generate_and_list_endpoints(client, login_as):
    _, headers = login_as("scheduler")
    bad = client.post(
        "/api/time-slots/generate",
        json={
            "start_time": "08:00",
            "end_time": "17:00",
            "days": {"monday": [{"duration": 140, "count": 4}, {"duration": 30, "count": 1}]},
        },
        headers=headers,
    )
    assert bad.status_code == 422
    assert bad.json()["details"]["days"][0]["shortfall"] == 110

    response = client.post("/api/time-slots/generate", json=make_request().model_dump(), headers=headers)
    assert response.status_code == 200
    assert response.json()["total_slots"] == 3

    listing = client.get("/api/time-slots", params={"day": "Monday"}, headers=headers)
    assert listing.status_code == 200
    assert [item["start_time"] for item in listing.json()] == ["08:00", "09:45", "11:30"]
