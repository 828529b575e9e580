class AppError(Exception):
    """Base class for all application exceptions."""
    reason = "error"

    def __init__(self, message: str, status_code: int = 500, details: dict = None, reason: str | None = None):
        self.message = message
        self.status_code = status_code
        self.details = dict(details or {})
        self.details.setdefault("reason", reason or self.reason)
        super().__init__(self.message)

    @property
    def reason_code(self) -> str:
        return self.details["reason"]


class ValidationError(AppError):
    """Raised for missing or malformed input before anything is written."""
    reason = "invalid_input"

    def __init__(self, message: str, details: dict = None, reason: str | None = None):
        super().__init__(message, status_code=422, details=details, reason=reason)


class ConflictError(AppError):
    """Raised when a room, instructor or section is already booked at a slot."""
    reason = "conflict"

    def __init__(self, message: str, details: dict = None, reason: str | None = None):
        super().__init__(message, status_code=409, details=details, reason=reason)


class NotFoundError(AppError):
    """Raised when a requested resource is not found."""
    reason = "not_found"

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class AuthorizationError(AppError):
    """Raised when the acting user does not own the resource or lacks the role."""
    reason = "not_owner"

    def __init__(self, message: str, details: dict = None, reason: str | None = None):
        super().__init__(message, status_code=403, details=details, reason=reason)


class StateError(AppError):
    """Raised when an operation is invalid for the current state of a resource."""
    reason = "invalid_state"

    def __init__(self, message: str, details: dict = None, reason: str | None = None):
        super().__init__(message, status_code=409, details=details, reason=reason)


class StorageError(AppError):
    """Raised when the backing store fails unexpectedly. Never carries store detail."""
    reason = "storage_failure"

    def __init__(self, message: str = "The scheduling store is unavailable. Please retry."):
        super().__init__(message, status_code=500)
