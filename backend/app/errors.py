"""Error taxonomy shared by services and the API layer."""
from typing import Any


class CoachError(Exception):
    """Base error carrying an API error code and HTTP status."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str = "", details: Any = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_body(self) -> dict:
        body = {"success": False, "error": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationFailedError(CoachError):
    code = "validation_error"
    status_code = 400


class NotFoundError(CoachError):
    code = "not_found"
    status_code = 404


class SessionCompletedError(CoachError):
    code = "session_completed"
    status_code = 400


class InsufficientContentError(CoachError):
    code = "insufficient_content"
    status_code = 400


class DatabaseError(CoachError):
    code = "database_error"
    status_code = 500


class GenerationTimeoutError(CoachError):
    """Raised when an external call exceeds its deadline. Always recovered locally."""

    code = "timeout_error"
    status_code = 504

    def __init__(self, deadline: float):
        super().__init__(f"Request exceeded {deadline:g}s timeout")
        self.deadline = deadline


class InvalidTransitionError(CoachError):
    """An event was delivered to a round state that does not accept it."""

    code = "invalid_transition"
    status_code = 409
