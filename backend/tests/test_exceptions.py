import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.exceptions import (
    AppError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    StorageError,
    ValidationError,
)
from app.main import app_error_handler


@pytest.mark.parametrize(
    ("error", "status_code", "reason"),
    [
        (ValidationError("bad"), 422, "invalid_input"),
        (ConflictError("taken"), 409, "conflict"),
        (NotFoundError("room", "r1"), 404, "not_found"),
        (AuthorizationError("nope"), 403, "not_owner"),
        (StateError("late"), 409, "invalid_state"),
        (StorageError(), 500, "storage_failure"),
    ],
)
def test_error_kinds_carry_status_and_default_reason(error, status_code, reason):
    assert error.status_code == status_code
    assert error.reason_code == reason


def test_explicit_reason_wins_over_default():
    error = ConflictError("taken", details={"time_slot_id": "s1"}, reason="room_conflict")
    assert error.details == {"time_slot_id": "s1", "reason": "room_conflict"}


def test_storage_error_hides_store_detail():
    assert StorageError().details == {"reason": "storage_failure"}


def test_handler_renders_message_and_details():
    probe = FastAPI()
    probe.add_exception_handler(AppError, app_error_handler)

    @probe.get("/raise-conflict")
    def raise_conflict():
        raise ConflictError("Room is taken", details={"room_id": "r1"}, reason="room_conflict")

    response = TestClient(probe).get("/raise-conflict")

    assert response.status_code == 409
    assert response.json() == {"message": "Room is taken", "details": {"room_id": "r1", "reason": "room_conflict"}}


def test_missing_resource_over_http(client, login_as):
    _, headers = login_as("admin")
    response = client.put("/api/rooms/assignments/missing", json={"room_id": "r1"}, headers=headers)
    assert response.status_code == 404
    assert response.json()["details"]["reason"] == "not_found"
