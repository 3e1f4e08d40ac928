"""Domain errors of the progression engine.

Every error carries a stable ``code`` used in API responses and logs. The
HTTP mapping lives in ``dependencies.handle_progression_error``.
"""

from cassandra import DriverException, RequestExecutionException
from cassandra.cluster import NoHostAvailable
from redis.exceptions import RedisError


class ProgressionError(Exception):
    """Base progression error."""

    retryable = False

    def __init__(self, message: str, code: str = "progression_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class EnrollmentNotFoundError(ProgressionError):
    """Enrollment does not exist (or belongs to another worker)."""

    def __init__(self, message: str = "Enrollment not found"):
        super().__init__(message, "enrollment_not_found")


class ContentNotFoundError(ProgressionError):
    """Content item is not part of the enrollment's course level."""

    def __init__(self, message: str = "Content item not found"):
        super().__init__(message, "content_not_found")


class CourseLevelNotFoundError(ProgressionError):
    """Course level does not exist."""

    def __init__(self, message: str = "Course level not found"):
        super().__init__(message, "course_level_not_found")


class CertificateNotFoundError(ProgressionError):
    """No certificate for the enrollment or code."""

    def __init__(self, message: str = "Certificate not found"):
        super().__init__(message, "certificate_not_found")


class EnrollmentNotActiveError(ProgressionError):
    """Enrollment is in a terminal status and accepts no progress."""

    def __init__(self, message: str = "Enrollment is not active"):
        super().__init__(message, "enrollment_not_active")


class EnrollmentExpiredError(ProgressionError):
    """Enrollment deadline has passed."""

    def __init__(self, message: str = "Enrollment has expired"):
        super().__init__(message, "enrollment_expired")


class EnrollmentNotCompletedError(ProgressionError):
    """Certificate requested for an enrollment that is not completed."""

    def __init__(self, message: str = "Enrollment is not completed"):
        super().__init__(message, "enrollment_not_completed")


class AlreadyEnrolledError(ProgressionError):
    """Worker already has an active or completed enrollment in the level."""

    def __init__(self, message: str = "Worker already enrolled in this level"):
        super().__init__(message, "already_enrolled")


class ItemLockedError(ProgressionError):
    """Content item has not been unlocked yet."""

    def __init__(self, message: str = "Content item is locked"):
        super().__init__(message, "item_locked")


class AlreadyCompletedError(ProgressionError):
    """Content item was already passed."""

    def __init__(self, message: str = "Content item already completed"):
        super().__init__(message, "already_completed")


class MissingAnswerError(ProgressionError):
    """Answers do not cover every question exactly once."""

    def __init__(self, message: str = "Every question must be answered once"):
        super().__init__(message, "missing_answer")


class InvalidSubmissionError(ProgressionError):
    """Submission is malformed or does not fit the content item."""

    def __init__(self, message: str = "Invalid submission"):
        super().__init__(message, "invalid_submission")


class EnrollmentBusyError(ProgressionError):
    """Another operation holds the enrollment lock."""

    retryable = True

    def __init__(self, message: str = "Enrollment is busy, retry shortly"):
        super().__init__(message, "enrollment_busy")


# Persistence failures: the operation wrote nothing and may be retried
STORE_ERRORS: tuple[type[Exception], ...] = (
    RequestExecutionException,
    DriverException,
    NoHostAvailable,
    RedisError,
    ConnectionError,
)
