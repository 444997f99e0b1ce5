class ExamServiceError(Exception):
    """Base class for errors reported to callers of the exam service."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ExamServiceError):
    """Malformed input shape, unknown question type, or an exam that cannot be taken."""


class StateError(ExamServiceError):
    """Illegal attempt lifecycle transition."""


class ConflictError(ExamServiceError):
    """Duplicate in-progress attempt or a concurrent write on the same attempt."""


class NotFoundError(ExamServiceError):
    pass
