from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.course import Course, CourseType  # noqa: F401
from app.models.course_request import CourseRequest, RequestStatus  # noqa: F401
from app.models.notification import Notification, NotificationType  # noqa: F401
from app.models.reservation import (  # noqa: F401
    AssignmentStatus,
    ReservationStatus,
    RoomAssignment,
    SlotReservation,
)
from app.models.room import Room, RoomType  # noqa: F401
from app.models.section import CourseOffering, Section, Shift  # noqa: F401
from app.models.time_slot import TimeSlot  # noqa: F401
from app.models.timetable import Block, BlockType, SectionRecord, TimetablePublication  # noqa: F401
from app.models.user import User, UserRole  # noqa: F401
