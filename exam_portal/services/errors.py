"""
Business-rule failures raised by the services.

Routes never see raw store errors for these cases; the app-level handler
renders each one as {"detail": message} with its status code.
"""


class ExamServiceError(Exception):
    """Base class for recoverable, caller-facing failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ExamServiceError):
    status_code = 404


class ForbiddenError(ExamServiceError):
    status_code = 403


class InvalidStateError(ExamServiceError):
    """Operation attempted in the wrong phase (already submitted, not published...)."""
    status_code = 400


class ValidationFailure(ExamServiceError):
    """Malformed input or an unmet constraint (pool too small, bad date...)."""
    status_code = 400
