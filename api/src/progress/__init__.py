"""Enrollment and progress ledger module.

Provides:
- Enrollments of workers in course levels
- Per-item progress ledger (lock / unlock / completion, attempts, scores)
- Certificates of completed enrollments
- Cassandra repository with atomic batched writes
"""

from .models import (
    PROGRESS_TABLES_CQL,
    Certificate,
    Enrollment,
    EnrollmentStatus,
    FailureReason,
    ProgressRecord,
    ProgressStatus,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "Certificate",
    "Enrollment",
    "EnrollmentStatus",
    "FailureReason",
    "ProgressRecord",
    "ProgressStatus",
]
