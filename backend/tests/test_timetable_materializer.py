from sqlalchemy import select

from app.models.course import CourseType
from app.models.timetable import Block, BlockType, SectionRecord, TimetablePublication
from app.services.materializer import TimetableMaterializer
from app.services.reservations import ReservationCoordinator


def accept(db_session, settings, clock, request, instructor, *slots):
    return ReservationCoordinator(db_session, settings=settings, clock=clock).accept(
        request.id, instructor=instructor, time_slot_ids=[slot.id for slot in slots]
    )


def block_rows(db):
    return sorted(
        (block.teacher_id, block.section_id, block.room_id, block.time_slot_id, block.type)
        for block in db.execute(select(Block)).scalars()
    )


def test_generate_is_idempotent(db_session, settings, clock, seed):
    instructor = seed.user()
    section = seed.section(30)
    seed.room(40)
    monday, tuesday = seed.slot("monday", "08:00"), seed.slot("tuesday", "08:00")
    accept(db_session, settings, clock, seed.request(seed.course("CS101"), section), instructor, monday, tuesday)

    materializer = TimetableMaterializer(db_session, clock=clock)
    first = materializer.generate()
    snapshot = block_rows(db_session)
    second = materializer.generate()

    assert first.blocks_created == second.blocks_created == 2
    assert block_rows(db_session) == snapshot
    publication = db_session.get(TimetablePublication, 1)
    assert publication.block_count == 2


def test_lab_courses_produce_lab_blocks(db_session, settings, clock, seed):
    instructor = seed.user()
    section = seed.section(20)
    seed.room(40)
    lab = seed.course("CS101L", credit_hours="1", course_type=CourseType.lab)
    accept(db_session, settings, clock, seed.request(lab, section), instructor, seed.slot("friday", "08:00"))

    (block,) = db_session.execute(select(Block)).scalars()
    assert block.type == BlockType.lab
    assert block.day == "friday"


def test_section_history_keeps_one_record_per_course(db_session, settings, clock, seed):
    instructor = seed.user()
    section = seed.section(30)
    seed.room(40)
    course = seed.course("CS101")
    slots = [seed.slot("monday", "08:00"), seed.slot("wednesday", "08:00")]
    accept(db_session, settings, clock, seed.request(course, section), instructor, *slots)

    TimetableMaterializer(db_session, clock=clock).generate()

    records = list(db_session.execute(select(SectionRecord)).scalars())
    assert [(item.section_id, item.course_id, item.instructor_id) for item in records] == [
        (section.id, course.id, instructor.id)
    ]
    assert records[0].semester == "Fall-2026"


def test_generate_with_nothing_reserved_publishes_empty_timetable(db_session, clock):
    outcome = TimetableMaterializer(db_session, clock=clock).generate()
    assert outcome.blocks_created == 0
    assert outcome.sections_recorded == 0
    assert outcome.published_at == clock()
