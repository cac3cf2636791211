"""
Error taxonomy for the submission pipeline.

Every failure a client can see is a RetestError carrying the HTTP status
and a short machine-readable code; main.py renders them as JSON.
"""


class RetestError(Exception):
    status_code = 400
    code = "RETEST_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SubmissionValidationError(RetestError):
    code = "VALIDATION_ERROR"


class NotAuthenticated(RetestError):
    status_code = 401
    code = "NOT_AUTHENTICATED"

    def __init__(self, message: str = "Student identity is missing"):
        super().__init__(message)


class NotAssigned(RetestError):
    code = "NOT_ASSIGNED"

    def __init__(self, message: str = "Retest not found or not assigned to this student"):
        super().__init__(message)


class WindowClosed(RetestError):
    code = "WINDOW_CLOSED"

    def __init__(self, message: str = "Retest window is not active"):
        super().__init__(message)


class AlreadyCompleted(RetestError):
    code = "ALREADY_COMPLETED"

    def __init__(self, message: str = "Retest is already completed"):
        super().__init__(message)


class AttemptsExhausted(RetestError):
    code = "ATTEMPTS_EXHAUSTED"

    def __init__(self, message: str = "Maximum retest attempts reached"):
        super().__init__(message)


class NotFound(RetestError):
    status_code = 404
    code = "NOT_FOUND"


class PersistenceError(RetestError):
    """A store operation failed; ``detail`` is logged, never shown in production."""
    status_code = 500
    code = "PERSISTENCE_ERROR"

    def __init__(self, detail: str, message: str = "Internal server error"):
        super().__init__(message)
        self.detail = detail


class StaleTargetError(Exception):
    """The target row changed between read and update. Internal, triggers a retry."""
