from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.api.deps import get_app_settings, get_db
from app.core.config import Settings
from app.db.base import Base
from app.main import app
from app.models.course import Course, CourseType
from app.models.course_request import CourseRequest, RequestStatus
from app.models.room import Room, RoomType
from app.models.section import CourseOffering, Section, Shift
from app.models.time_slot import TimeSlot
from app.models.user import User, UserRole
from app.services.time_slots import PlannedSlot, build_time_slot


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class Seeder:
    """Inserts read-only scheduling inputs straight through the ORM."""

    def __init__(self, db):
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def user(self, role: UserRole = UserRole.instructor, name: str | None = None) -> User:
        index = self._next()
        user = User(
            name=name or f"{role.value.title()} {index}",
            email=f"{role.value}{index}@example.com",
            hashed_password="not-a-real-hash",
            role=role,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def room(self, capacity: int, name: str | None = None, room_type: RoomType = RoomType.lecture) -> Room:
        room = Room(name=name or f"R-{self._next()}", capacity=capacity, type=room_type)
        self.db.add(room)
        self.db.commit()
        return room

    def course(self, code: str, credit_hours: str = "3", course_type: CourseType = CourseType.theory) -> Course:
        course = Course(code=code, name=f"Course {code}", credit_hours=credit_hours, type=course_type)
        self.db.add(course)
        self.db.commit()
        return course

    def section(
        self,
        strength: int,
        name: str | None = None,
        shift: Shift = Shift.morning,
        semester: str = "Fall-2026",
    ) -> Section:
        section = Section(
            name=name or f"S-{self._next()}",
            student_strength=strength,
            shift=shift,
            semester=semester,
            major="CS",
        )
        self.db.add(section)
        self.db.commit()
        return section

    def offering(self, course: Course, section: Section) -> CourseOffering:
        offering = CourseOffering(
            course_id=course.id,
            section_id=section.id,
            major=section.major,
            semester=section.semester,
            shift=section.shift,
        )
        self.db.add(offering)
        self.db.commit()
        return offering

    def slot(self, day: str, start: str, duration: int = 90) -> TimeSlot:
        hours, minutes = start.split(":")
        planned = PlannedSlot(day=day, start_minutes=int(hours) * 60 + int(minutes), duration=duration)
        slot = build_time_slot(planned, shift_boundary="13:00")
        self.db.add(slot)
        self.db.commit()
        return slot

    def request(self, course: Course, section: Section, offering: CourseOffering | None = None) -> CourseRequest:
        request = CourseRequest(
            course_id=course.id,
            section_id=section.id,
            offering_id=offering.id if offering is not None else None,
            semester=section.semester,
            shift=section.shift,
            status=RequestStatus.pending,
        )
        self.db.add(request)
        self.db.commit()
        return request


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def settings():
    return Settings(database_url="sqlite+pysqlite://", jwt_secret_key="test-secret")


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def seed(db_session):
    return Seeder(db_session)


@pytest.fixture()
def client(session_factory, settings):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_app_settings] = lambda: settings

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def register_user(client, payload):
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 201
    return response.json()


def login_user(client, email, password, role):
    response = client.post(
        "/api/auth/login",
        json={"email": email, "password": password, "role": role},
    )
    assert response.status_code == 200
    return response.json()["access_token"]


@pytest.fixture()
def login_as(client):
    """Register a user with the given role and return (user json, auth headers)."""
    counter = {"value": 0}

    def _login(role: str, name: str | None = None):
        counter["value"] += 1
        payload = {
            "name": name or f"{role.title()} User {counter['value']}",
            "email": f"{role}-{counter['value']}@example.com",
            "password": "password123",
            "role": role,
            "department": "CSE",
        }
        user = register_user(client, payload)
        token = login_user(client, payload["email"], payload["password"], role)
        return user, {"Authorization": f"Bearer {token}"}

    return _login
