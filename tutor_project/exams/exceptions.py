"""Errors raised by the exam attempt services.

Views translate these into HTTP status codes (see ``utils/guards.py``).
"""


class ExamError(Exception):
    """Base class for attempt-related failures."""


class InvalidStateError(ExamError):
    """Mutation attempted on a terminal (or not yet started) attempt."""


class AppBackgroundedError(InvalidStateError):
    """Answer mutation attempted while the client app is in the background."""


class NotFoundError(ExamError):
    """Referenced attempt, exam or question does not exist."""


class AnswerIndexError(ExamError, ValueError):
    """Question index outside ``[0, question_count)``; a caller bug, never retried."""


class ConcurrentUpdateError(ExamError):
    """Answer write kept losing the version race; safe for the caller to retry."""
