import pytest

from app.core.exceptions import StateError
from app.models.course_request import CourseRequest, RequestStatus, can_transition

P, A, R = RequestStatus.pending, RequestStatus.accepted, RequestStatus.rescheduled


@pytest.mark.parametrize(
    ("current", "target", "allowed"),
    [
        (P, A, True),
        (P, R, False),
        (P, P, False),
        (A, P, True),
        (A, R, True),
        (A, A, False),
        (R, R, True),
        (R, P, False),
        (R, A, False),
    ],
)
def test_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_transition_to_updates_status():
    request = CourseRequest(id="r1", status=RequestStatus.pending)
    request.transition_to(RequestStatus.accepted)
    assert request.status == RequestStatus.accepted


def test_leaving_processed_request_reports_already_processed():
    request = CourseRequest(id="r1", status=RequestStatus.accepted)
    with pytest.raises(StateError) as exc_info:
        request.ensure_transition(RequestStatus.accepted)
    assert exc_info.value.reason_code == "already_processed"
    assert exc_info.value.details["status"] == "accepted"


def test_invalid_move_from_pending():
    request = CourseRequest(id="r1", status=RequestStatus.pending)
    with pytest.raises(StateError) as exc_info:
        request.transition_to(RequestStatus.rescheduled)
    assert exc_info.value.reason_code == "invalid_transition"
    assert request.status == RequestStatus.pending


@pytest.mark.parametrize("status", [RequestStatus.accepted, RequestStatus.rescheduled])
def test_administrative_reset_clears_binding(status):
    request = CourseRequest(
        id="r1",
        status=status,
        instructor_id="u1",
        preferences={"time_slot_ids": ["s1"]},
    )
    request.reset_to_pending()

    assert request.status == RequestStatus.pending
    assert request.instructor_id is None
    assert request.accepted_at is None
    assert request.preferences is None
