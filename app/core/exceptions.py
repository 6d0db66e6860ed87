"""
Domain errors raised by the attempt engine.

Each error carries the HTTP status it maps to and a stable ``error_type``
string; ``main.py`` renders them as ``{"error": ..., "type": ...}``.
"""

from typing import Optional


class AttemptError(Exception):
    status_code: int = 400
    error_type: str = "attempt_error"
    default_message: str = "Attempt operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AttemptNotFound(AttemptError):
    status_code = 404
    error_type = "attempt_not_found"
    default_message = "Test attempt not found"


class TestNotFound(AttemptError):
    __test__ = False

    status_code = 404
    error_type = "test_not_found"
    default_message = "Test not found"


class AccessDenied(AttemptError):
    status_code = 403
    error_type = "access_denied"
    default_message = "Access denied"


class AttemptNotActive(AttemptError):
    status_code = 409
    error_type = "attempt_not_active"
    default_message = "Test attempt is not active"


class AttemptExpired(AttemptError):
    status_code = 410
    error_type = "attempt_expired"
    default_message = "Test attempt time has expired"


class AlreadyCompleted(AttemptError):
    status_code = 409
    error_type = "already_completed"
    default_message = "You have already completed this test"


class UnknownQuestion(AttemptError):
    status_code = 422
    error_type = "unknown_question"
    default_message = "Question not found"

    def __init__(self, question_id, message: Optional[str] = None):
        self.question_id = question_id
        super().__init__(message or f"Question {question_id} not found")


class InvalidProctoringEvent(AttemptError):
    status_code = 422
    error_type = "invalid_proctoring_event"
    default_message = "Unknown proctoring event type"


class StoreConflict(AttemptError):
    status_code = 409
    error_type = "store_conflict"
    default_message = "The attempt was modified concurrently, please retry"


class DuplicateAttempt(StoreConflict):
    """An attempt already exists for this (test, candidate) pair."""

    error_type = "duplicate_attempt"
    default_message = "An attempt already exists for this test"


class TestNotAvailable(AttemptError):
    __test__ = False

    status_code = 400
    error_type = "test_not_available"
    default_message = "Test is not available"
