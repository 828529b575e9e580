from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.transaction import atomic
from app.models.course_request import ACTIVE_STATUSES, CourseRequest, RequestStatus
from app.models.section import CourseOffering
from app.models.user import User
from app.schemas.course_request import GenerateRequestsIn
from app.services.audit import log_activity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssueOutcome:
    created: int
    skipped: int
    total_offerings: int


def issue_course_requests(db: Session, filters: GenerateRequestsIn, *, actor: User | None = None) -> IssueOutcome:
    """Create one pending request for every offering that has no active one."""
    stmt = select(CourseOffering).order_by(CourseOffering.semester, CourseOffering.section_id, CourseOffering.id)
    if filters.semester:
        stmt = stmt.where(CourseOffering.semester == filters.semester)
    if filters.shift is not None:
        stmt = stmt.where(CourseOffering.shift == filters.shift)
    if filters.section_id:
        stmt = stmt.where(CourseOffering.section_id == filters.section_id)
    if filters.major:
        stmt = stmt.where(CourseOffering.major == filters.major)

    with atomic(db, operation="generate course requests"):
        offerings = list(db.execute(stmt).scalars())
        covered = set(
            db.execute(
                select(CourseRequest.offering_id).where(
                    CourseRequest.offering_id.in_([item.id for item in offerings]),
                    CourseRequest.status.in_(ACTIVE_STATUSES),
                )
            ).scalars()
        ) if offerings else set()

        created = 0
        for offering in offerings:
            if offering.id in covered:
                continue
            db.add(
                CourseRequest(
                    course_id=offering.course_id,
                    section_id=offering.section_id,
                    offering_id=offering.id,
                    semester=offering.semester,
                    shift=offering.shift,
                    status=RequestStatus.pending,
                    requested_by=actor.id if actor is not None else None,
                )
            )
            created += 1

        outcome = IssueOutcome(created=created, skipped=len(offerings) - created, total_offerings=len(offerings))
        log_activity(
            db,
            user=actor,
            action="course_requests.generate",
            entity_type="course_request",
            details={**filters.model_dump(mode="json", exclude_none=True), "created": created, "skipped": outcome.skipped},
        )

    logger.info("Issued %d course requests (%d offerings already covered)", outcome.created, outcome.skipped)
    return outcome
