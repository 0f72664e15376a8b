"""
Error taxonomy for test submission.

Each error carries the exact message returned to the UI as
``{"error": message}`` and the HTTP status it is rendered with.
"""


class SubmissionError(Exception):
    """Base class for every failure the submission endpoints report."""
    status_code = 400
    default_message = "Unknown error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(SubmissionError):
    status_code = 401
    default_message = "Unauthorized"


class MissingAuthorization(Unauthorized):
    default_message = "Missing authorization header"


class InvalidRequest(SubmissionError):
    status_code = 400
    default_message = "attempt_id is required"


class NotFound(SubmissionError):
    status_code = 404
    default_message = "Test attempt not found"


class AlreadySubmitted(SubmissionError):
    """Terminal: the client must not retry."""
    status_code = 409
    default_message = "Test already submitted"


class ScoreCalculationFailure(SubmissionError):
    status_code = 400
    default_message = "Failed to calculate score"


class PersistenceFailure(SubmissionError):
    status_code = 400
    default_message = "Failed to save results"


class StoreError(SubmissionError):
    """A database failure reported with the driver's own message."""
    status_code = 400
    default_message = "Database error"

    @classmethod
    def from_exception(cls, exc: Exception) -> "StoreError":
        return cls(str(getattr(exc, "orig", None) or exc))
