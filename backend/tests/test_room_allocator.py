import pytest
from sqlalchemy import select

from app.core.exceptions import ConflictError, NotFoundError, StateError
from app.models.reservation import AssignmentStatus, RoomAssignment
from app.models.section import Shift
from app.models.user import UserRole
from app.schemas.room import RoomAssignmentUpdate
from app.services.reservations import ReservationCoordinator
from app.services.room_allocator import RoomAllocator, order_slots, required_slot_count


@pytest.mark.parametrize(
    ("credit_hours", "expected"),
    [("3", 3), ("3+1", 3), ("1", 1), ("4", 4), ("6", 2), ("0", 2), ("", 2), (None, 2), ("lab", 2)],
)
def test_required_slot_count(credit_hours, expected):
    assert required_slot_count(credit_hours) == expected


def test_slots_are_ordered_by_time_then_weekday(seed):
    late_monday = seed.slot("monday", "10:00")
    early_wednesday = seed.slot("wednesday", "08:00")
    early_monday = seed.slot("monday", "08:00")

    ordered = order_slots([late_monday, early_wednesday, early_monday])
    assert [slot.id for slot in ordered] == [early_monday.id, early_wednesday.id, late_monday.id]


def test_auto_assign_uses_smallest_room_that_fits(db_session, settings, seed):
    seed.room(30, name="Small")
    large = seed.room(50, name="Large")
    section = seed.section(40)
    seed.offering(seed.course("CS201", credit_hours="3"), section)
    slots = [seed.slot("monday", "08:00"), seed.slot("tuesday", "08:00"), seed.slot("wednesday", "08:00")]

    result = RoomAllocator(db_session, settings=settings).auto_assign(shift=Shift.morning, semester="Fall-2026")

    assert result.summary.total_sections == 1
    assert result.summary.assigned == 1
    assert result.summary.unassigned == 0
    assert result.conflicts == []
    (placed,) = result.assigned
    assert [item.room_id for item in placed.assignments] == [large.id] * 3
    assert [item.time_slot_id for item in placed.assignments] == [slot.id for slot in slots]

    rows = list(db_session.execute(select(RoomAssignment)).scalars())
    assert len(rows) == 3
    assert {row.status for row in rows} == {AssignmentStatus.reserved}
    assert {row.semester for row in rows} == {"Fall-2026"}


def test_auto_assign_is_deterministic_for_same_inputs(db_session, settings, seed):
    seed.room(60)
    seed.room(35)
    for strength in (30, 55):
        section = seed.section(strength)
        seed.offering(seed.course(f"CS{strength}", credit_hours="2"), section)
    seed.slot("monday", "08:00")
    seed.slot("monday", "09:45")

    allocator = RoomAllocator(db_session, settings=settings)
    first = allocator.auto_assign(shift=Shift.morning, semester="Fall-2026")
    db_session.query(RoomAssignment).delete()
    db_session.commit()
    second = allocator.auto_assign(shift=Shift.morning, semester="Fall-2026")

    assert first.model_dump() == second.model_dump()


def test_auto_assign_places_largest_section_first(db_session, settings, seed):
    seed.room(100)
    small = seed.section(20)
    big = seed.section(90)
    seed.slot("monday", "08:00")

    result = RoomAllocator(db_session, settings=settings).auto_assign(shift=Shift.morning, semester="Fall-2026")

    # Neither section has an offering, so each needs the default two slots and
    # only one room-slot pair exists.
    assert [item.section_id for item in result.assigned] == [big.id]
    assert [(item.section_id, item.shortfall) for item in result.unassigned] == [(big.id, 1), (small.id, 2)]
    assert [(item.section_id, item.slot_number) for item in result.conflicts] == [
        (big.id, 2),
        (small.id, 1),
        (small.id, 2),
    ]
    # Two sections came up short across three unfilled slots.
    assert result.summary.conflicts == 2


def test_auto_assign_reports_sections_with_no_room_big_enough(db_session, settings, seed):
    seed.room(20)
    section = seed.section(45)
    seed.offering(seed.course("EE101", credit_hours="1"), section)
    seed.slot("monday", "08:00")

    result = RoomAllocator(db_session, settings=settings).auto_assign(shift=Shift.morning, semester="Fall-2026")

    assert result.assigned == []
    assert result.unassigned[0].required_count == 1
    assert "45 students" in result.conflicts[0].reason


def test_largest_available_policy_still_requires_capacity(db_session, settings, seed):
    seed.room(20)
    seed.room(25)
    section = seed.section(45)
    seed.offering(seed.course("EE101", credit_hours="1"), section)
    seed.slot("monday", "08:00")

    result = RoomAllocator(db_session, settings=settings).auto_assign(
        shift=Shift.morning, semester="Fall-2026", policy="largest_available"
    )

    assert result.assigned == []
    assert [(item.section_id, item.shortfall) for item in result.unassigned] == [(section.id, 1)]
    assert db_session.execute(select(RoomAssignment)).first() is None


def test_largest_available_policy_scans_biggest_room_first(db_session, settings, seed):
    seed.room(50)
    big = seed.room(90)
    section = seed.section(45)
    seed.offering(seed.course("EE101", credit_hours="1"), section)
    seed.slot("monday", "08:00")

    result = RoomAllocator(db_session, settings=settings).auto_assign(
        shift=Shift.morning, semester="Fall-2026", policy="largest_available"
    )
    assert result.assigned[0].assignments[0].room_id == big.id


def test_auto_assign_respects_existing_assignments(db_session, settings, seed):
    room = seed.room(50)
    holder = seed.section(10, shift=Shift.evening)
    section = seed.section(40)
    seed.offering(seed.course("CS101", credit_hours="1"), section)
    monday = seed.slot("monday", "08:00")
    tuesday = seed.slot("tuesday", "08:00")
    db_session.add(
        RoomAssignment(
            room_id=room.id,
            section_id=holder.id,
            time_slot_id=monday.id,
            semester="Fall-2026",
            status=AssignmentStatus.reserved,
        )
    )
    db_session.commit()

    result = RoomAllocator(db_session, settings=settings).auto_assign(shift=Shift.morning, semester="Fall-2026")

    (placement,) = result.assigned[0].assignments
    assert (placement.room_id, placement.time_slot_id) == (room.id, tuesday.id)


def test_find_room_skips_rooms_taken_in_any_semester(db_session, settings, seed):
    taken = seed.room(80)
    free = seed.room(40)
    section = seed.section(30, semester="Spring-2027")
    slot = seed.slot("monday", "08:00")
    db_session.add(
        RoomAssignment(
            room_id=taken.id,
            section_id=section.id,
            time_slot_id=slot.id,
            semester="Spring-2027",
            status=AssignmentStatus.reserved,
        )
    )
    db_session.commit()

    allocator = RoomAllocator(db_session, settings=settings)
    assert allocator.find_room(slot.id, section_strength=30).id == free.id
    assert allocator.find_room(slot.id, section_strength=30, policy="smallest_adequate").id == free.id
    assert allocator.find_room(slot.id, section_strength=50, policy="smallest_adequate") is None


def test_update_assignment_moves_to_free_room(db_session, settings, seed):
    admin = seed.user(UserRole.admin)
    room = seed.room(50)
    other = seed.room(60)
    section = seed.section(40)
    seed.slot("monday", "08:00")
    allocator = RoomAllocator(db_session, settings=settings)
    allocator.auto_assign(shift=Shift.morning, semester="Fall-2026")
    assignment = db_session.execute(select(RoomAssignment).where(RoomAssignment.room_id == room.id)).scalars().first()
    assert assignment.section_id == section.id

    updated = allocator.update_assignment(assignment.id, RoomAssignmentUpdate(room_id=other.id), actor=admin)
    assert updated.room_id == other.id


def test_update_assignment_rejects_taken_room(db_session, settings, seed):
    room = seed.room(50)
    other = seed.room(60)
    seed.section(40)
    seed.section(45)
    seed.slot("monday", "08:00")
    seed.slot("tuesday", "08:00")
    allocator = RoomAllocator(db_session, settings=settings)
    allocator.auto_assign(shift=Shift.morning, semester="Fall-2026")

    rows = list(db_session.execute(select(RoomAssignment)).scalars())
    in_small = next(row for row in rows if row.room_id == room.id)
    in_large = next(
        row for row in rows if row.room_id == other.id and row.time_slot_id == in_small.time_slot_id
    )
    assert in_large is not None

    with pytest.raises(ConflictError) as exc_info:
        allocator.update_assignment(in_small.id, RoomAssignmentUpdate(room_id=other.id))
    assert exc_info.value.reason_code == "room_conflict"


def test_update_assignment_unknown_ids(db_session, settings, seed):
    allocator = RoomAllocator(db_session, settings=settings)
    with pytest.raises(NotFoundError):
        allocator.update_assignment("missing", RoomAssignmentUpdate(room_id="x"))

    seed.room(50)
    seed.section(40)
    seed.slot("monday", "08:00")
    allocator.auto_assign(shift=Shift.morning, semester="Fall-2026")
    assignment = db_session.execute(select(RoomAssignment)).scalars().first()
    with pytest.raises(NotFoundError) as exc_info:
        allocator.update_assignment(assignment.id, RoomAssignmentUpdate(time_slot_id="nope"))
    assert exc_info.value.details["resource_type"] == "time_slot"


def test_assignments_owned_by_accepted_requests_are_locked(db_session, settings, seed, clock):
    instructor = seed.user()
    seed.room(50)
    course = seed.course("CS101")
    section = seed.section(40)
    slot = seed.slot("monday", "08:00")
    request = seed.request(course, section)
    outcome = ReservationCoordinator(db_session, settings=settings, clock=clock).accept(
        request.id, instructor=instructor, time_slot_ids=[slot.id]
    )
    assignment_id = outcome.bookings[0].assignment.id

    allocator = RoomAllocator(db_session, settings=settings)
    with pytest.raises(StateError) as exc_info:
        allocator.delete_assignment(assignment_id)
    assert exc_info.value.reason_code == "assignment_in_use"
    with pytest.raises(StateError):
        allocator.update_assignment(assignment_id, RoomAssignmentUpdate(room_id=seed.room(60).id))
    assert db_session.get(RoomAssignment, assignment_id) is not None


def test_delete_assignment_frees_the_room(db_session, settings, seed):
    seed.room(50)
    seed.section(40)
    slot = seed.slot("monday", "08:00")
    allocator = RoomAllocator(db_session, settings=settings)
    allocator.auto_assign(shift=Shift.morning, semester="Fall-2026")
    assignment = db_session.execute(select(RoomAssignment)).scalars().first()

    allocator.delete_assignment(assignment.id)

    assert db_session.get(RoomAssignment, assignment.id) is None
    assert allocator.find_room(slot.id, section_strength=40) is not None


def test_auto_assign_endpoint(client, login_as, seed):
    _, headers = login_as("scheduler")
    seed.room(50)
    section = seed.section(40)
    seed.offering(seed.course("CS201", credit_hours="2"), section)
    seed.slot("monday", "08:00")
    seed.slot("tuesday", "08:00")
    section_id = section.id

    response = client.post(
        "/api/rooms/auto-assign",
        json={"shift": "morning", "semester": "Fall-2026"},
        headers=headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["summary"]["assigned"] == 1
    assert len(body["assigned"][0]["assignments"]) == 2

    listing = client.get("/api/rooms/assignments", params={"section_id": section_id}, headers=headers)
    assert listing.status_code == 200
    assert len(listing.json()) == 2

    _, instructor_headers = login_as("instructor")
    forbidden = client.post(
        "/api/rooms/auto-assign",
        json={"shift": "morning", "semester": "Fall-2026"},
        headers=instructor_headers,
    )
    assert forbidden.status_code == 403


def test_auto_assign_endpoint_falls_back_to_configured_policy(client, login_as, seed, settings):
    _, headers = login_as("scheduler")
    seed.room(30)
    big = seed.room(60)
    section = seed.section(25)
    seed.offering(seed.course("CS110", credit_hours="1"), section)
    seed.slot("monday", "08:00")
    big_id = big.id
    settings.batch_room_policy = "largest_available"

    response = client.post("/api/rooms/auto-assign", json={"shift": "morning", "semester": "Fall-2026"}, headers=headers)

    assert response.status_code == 200
    (placement,) = response.json()["assigned"][0]["assignments"]
    assert placement["room_id"] == big_id
