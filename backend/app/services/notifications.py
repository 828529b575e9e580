"""In-app notifications for scheduling events.

Notifications never share a transaction with scheduling state. Routes call
``dispatch`` after the engine has committed; the notification rows get their
own commit, and a failure there is logged and rolled back on its own.
"""
from __future__ import annotations

from collections.abc import Callable
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.course import Course
from app.models.course_request import CourseRequest
from app.models.notification import Notification, NotificationType
from app.models.section import Section
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

SCHEDULING_ROLES = (UserRole.admin, UserRole.scheduler)


def create_notification(
    db: Session,
    *,
    user_id: str,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
) -> Notification:
    record = Notification(
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
    )
    db.add(record)
    return record


def notify_users(
    db: Session,
    *,
    user_ids: list[str] | set[str] | tuple[str, ...],
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    exclude_user_id: str | None = None,
) -> list[Notification]:
    requested_ids = [item for item in dict.fromkeys(user_ids) if item and item != exclude_user_id]
    if not requested_ids:
        return []
    recipients = db.execute(
        select(User.id).where(User.id.in_(requested_ids), User.is_active.is_(True))
    ).scalars()
    return [
        create_notification(db, user_id=user_id, title=title, message=message, notification_type=notification_type)
        for user_id in recipients
    ]


def notify_roles(
    db: Session,
    *,
    roles: tuple[UserRole, ...] = SCHEDULING_ROLES,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    exclude_user_id: str | None = None,
) -> list[Notification]:
    recipients = db.execute(
        select(User.id).where(User.role.in_(list(roles)), User.is_active.is_(True)).order_by(User.id)
    ).scalars()
    return [
        create_notification(db, user_id=user_id, title=title, message=message, notification_type=notification_type)
        for user_id in recipients
        if user_id != exclude_user_id
    ]


def dispatch(db: Session, send: Callable[[Session], object], *, event: str) -> bool:
    """Write notifications in their own commit. Returns False if delivery failed."""
    try:
        send(db)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Notification delivery failed for %s", event, exc_info=True)
        return False
    return True


def describe_request(db: Session, request: CourseRequest) -> str:
    course = db.get(Course, request.course_id)
    section = db.get(Section, request.section_id)
    course_label = course.code if course is not None else "course"
    section_label = section.name if section is not None else "section"
    return f"{course_label} for {section_label}"


def request_accepted(request: CourseRequest, instructor: User) -> Callable[[Session], object]:
    def send(db: Session) -> list[Notification]:
        label = describe_request(db, request)
        return notify_roles(
            db,
            title="Course request accepted",
            message=f"{instructor.name} accepted {label}.",
            notification_type=NotificationType.request,
            exclude_user_id=instructor.id,
        )

    return send


def request_released(request: CourseRequest, actor: User, *, previous_instructor_id: str | None) -> Callable[[Session], object]:
    def send(db: Session) -> list[Notification]:
        label = describe_request(db, request)
        sent = notify_roles(
            db,
            title="Course request released",
            message=f"{label} is pending again after an undo by {actor.name}.",
            notification_type=NotificationType.request,
            exclude_user_id=actor.id,
        )
        if previous_instructor_id and previous_instructor_id != actor.id:
            sent += notify_users(
                db,
                user_ids=[previous_instructor_id],
                title="Your accepted request was undone",
                message=f"{label} was returned to pending by {actor.name}.",
                notification_type=NotificationType.request,
            )
        return sent

    return send


def request_rescheduled(request: CourseRequest, instructor: User) -> Callable[[Session], object]:
    def send(db: Session) -> list[Notification]:
        label = describe_request(db, request)
        return notify_roles(
            db,
            title="Class rescheduled",
            message=f"{instructor.name} moved {label} to new time slots.",
            notification_type=NotificationType.timetable,
            exclude_user_id=instructor.id,
        )

    return send


def timetable_published(actor: User, *, block_count: int) -> Callable[[Session], object]:
    def send(db: Session) -> list[Notification]:
        return notify_roles(
            db,
            roles=(UserRole.admin, UserRole.scheduler, UserRole.instructor),
            title="Timetable published",
            message=f"The timetable was regenerated with {block_count} classes.",
            notification_type=NotificationType.timetable,
            exclude_user_id=actor.id,
        )

    return send


def request_reassigned(
    request: CourseRequest,
    actor: User,
    *,
    previous_instructor_id: str | None,
    offered_to: list[str],
) -> Callable[[Session], object]:
    def send(db: Session) -> list[Notification]:
        label = describe_request(db, request)
        sent: list[Notification] = []
        if previous_instructor_id:
            sent += notify_users(
                db,
                user_ids=[previous_instructor_id],
                title="Course reassigned",
                message=f"You have been unassigned from {label} by {actor.name}.",
                notification_type=NotificationType.request,
            )
        sent += notify_users(
            db,
            user_ids=offered_to,
            title="Course request offered",
            message=f"{label} is waiting for you to pick time slots.",
            notification_type=NotificationType.request,
            exclude_user_id=previous_instructor_id,
        )
        return sent

    return send
