"""Database models for enrollments, the progress ledger and certificates.

Cassandra table definitions for:
- Level enrollments: a worker's paid attempt at one course level
- Content progress: one ledger row per (enrollment, content item)
- Certificates: minted once per completed enrollment
- Lookup tables: by worker, by status (expiry sweep), by certificate code

Architecture: every change of an operation is written as one LOGGED batch
(see ``repository.UnitOfWork``) so main and lookup tables never diverge.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from src.courses.models import ensure_utc_aware


Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current UTC time (default clock)."""
    return datetime.now(UTC)


class EnrollmentStatus(str, Enum):
    """Enrollment lifecycle status. Everything but ACTIVE is terminal."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not EnrollmentStatus.ACTIVE


class FailureReason(str, Enum):
    """Why an enrollment failed."""

    ATTEMPTS_EXCEEDED = "attempts_exceeded"


class ProgressStatus(str, Enum):
    """Ledger status of one content item within an enrollment."""

    LOCKED = "locked"  # Not reachable yet
    UNLOCKED = "unlocked"  # Reachable, never submitted
    IN_PROGRESS = "in_progress"  # Submitted, not passed, retry allowed
    COMPLETED = "completed"  # Passed
    FAILED = "failed"  # Attempts exhausted

    @property
    def is_open(self) -> bool:
        """Item accepts submissions."""
        return self in (ProgressStatus.UNLOCKED, ProgressStatus.IN_PROGRESS)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

LEVEL_ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.level_enrollments (
    id UUID PRIMARY KEY,
    worker_id UUID,
    course_level_id UUID,
    status TEXT,
    start_date TIMESTAMP,
    deadline_date TIMESTAMP,
    completion_date TIMESTAMP,
    failure_reason TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Lookup: enrollments of a worker, newest first (full copy of the row)
ENROLLMENTS_BY_WORKER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_worker (
    worker_id UUID,
    created_at TIMESTAMP,
    id UUID,
    course_level_id UUID,
    status TEXT,
    start_date TIMESTAMP,
    deadline_date TIMESTAMP,
    completion_date TIMESTAMP,
    failure_reason TEXT,
    updated_at TIMESTAMP,
    PRIMARY KEY ((worker_id), created_at, id)
) WITH CLUSTERING ORDER BY (created_at DESC, id ASC)
"""

# Lookup: enrollments by status ordered by deadline (expiry sweep)
# Row moves partition when the status changes (delete + insert in one batch)
ENROLLMENTS_BY_STATUS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_status (
    status TEXT,
    deadline_date TIMESTAMP,
    id UUID,
    worker_id UUID,
    course_level_id UUID,
    PRIMARY KEY ((status), deadline_date, id)
) WITH CLUSTERING ORDER BY (deadline_date ASC, id ASC)
"""

# Ledger: one row per content item, clustered in content order
CONTENT_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.content_progress (
    enrollment_id UUID,
    sequence_order INT,
    content_item_id UUID,
    worker_id UUID,
    status TEXT,
    attempts_used INT,
    last_score INT,
    watch_percentage INT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    last_accessed_at TIMESTAMP,
    completed_at TIMESTAMP,
    PRIMARY KEY ((enrollment_id), sequence_order, content_item_id)
) WITH CLUSTERING ORDER BY (sequence_order ASC, content_item_id ASC)
"""

CERTIFICATES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates (
    enrollment_id UUID PRIMARY KEY,
    id UUID,
    worker_id UUID,
    course_level_id UUID,
    certificate_code TEXT,
    issue_date TIMESTAMP,
    pdf_url TEXT
)
"""

CERTIFICATES_BY_WORKER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates_by_worker (
    worker_id UUID,
    issue_date TIMESTAMP,
    enrollment_id UUID,
    id UUID,
    course_level_id UUID,
    certificate_code TEXT,
    pdf_url TEXT,
    PRIMARY KEY ((worker_id), issue_date, enrollment_id)
) WITH CLUSTERING ORDER BY (issue_date DESC, enrollment_id ASC)
"""

# Lookup: public verification by code
CERTIFICATES_BY_CODE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates_by_code (
    certificate_code TEXT PRIMARY KEY,
    id UUID,
    enrollment_id UUID,
    worker_id UUID,
    course_level_id UUID,
    issue_date TIMESTAMP,
    pdf_url TEXT
)
"""

PROGRESS_TABLES_CQL = [
    LEVEL_ENROLLMENTS_TABLE_CQL,
    ENROLLMENTS_BY_WORKER_TABLE_CQL,
    ENROLLMENTS_BY_STATUS_TABLE_CQL,
    CONTENT_PROGRESS_TABLE_CQL,
    CERTIFICATES_TABLE_CQL,
    CERTIFICATES_BY_WORKER_TABLE_CQL,
    CERTIFICATES_BY_CODE_TABLE_CQL,
]


# ==============================================================================
# Entities
# ==============================================================================


class Enrollment:
    """A worker's single paid attempt at one course level.

    Attributes:
        id: Enrollment UUID
        worker_id: Worker (user) UUID
        course_level_id: Course level UUID
        status: Lifecycle status
        start_date: When the enrollment started
        deadline_date: Content must be completed before this instant
        completion_date: Stamped on complete / fail
        failure_reason: Set on fail
        persisted_status: Status as last read from or written to the store
    """

    def __init__(
        self,
        worker_id: UUID,
        course_level_id: UUID,
        start_date: datetime,
        deadline_date: datetime,
        id: UUID | None = None,
        status: EnrollmentStatus = EnrollmentStatus.ACTIVE,
        completion_date: datetime | None = None,
        failure_reason: FailureReason | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        persisted_status: EnrollmentStatus | None = None,
    ):
        self.id = id or uuid4()
        self.worker_id = worker_id
        self.course_level_id = course_level_id
        self.status = EnrollmentStatus(status)
        self.start_date = ensure_utc_aware(start_date)
        self.deadline_date = ensure_utc_aware(deadline_date)
        self.completion_date = ensure_utc_aware(completion_date)
        self.failure_reason = FailureReason(failure_reason) if failure_reason else None
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at) or self.created_at
        self.persisted_status = persisted_status

    @property
    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_overdue(self, now: datetime) -> bool:
        """Deadline passed while still ACTIVE."""
        return self.is_active and now > self.deadline_date

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment instance from a level_enrollments or lookup row."""
        status = EnrollmentStatus(row.status)
        return cls(
            id=row.id,
            worker_id=row.worker_id,
            course_level_id=row.course_level_id,
            status=status,
            start_date=row.start_date,
            deadline_date=row.deadline_date,
            completion_date=row.completion_date,
            failure_reason=row.failure_reason,
            created_at=row.created_at,
            updated_at=row.updated_at,
            persisted_status=status,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "worker_id": self.worker_id,
            "course_level_id": self.course_level_id,
            "status": self.status.value,
            "start_date": self.start_date,
            "deadline_date": self.deadline_date,
            "completion_date": self.completion_date,
            "failure_reason": self.failure_reason.value
            if self.failure_reason
            else None,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<Enrollment {self.id} worker={self.worker_id} "
            f"level={self.course_level_id} {self.status.value}>"
        )


class ProgressRecord:
    """Ledger row of one content item within an enrollment.

    Attributes:
        enrollment_id: Enrollment UUID (partition key)
        content_item_id: Content item UUID
        sequence_order: Position of the item (clustering key)
        worker_id: Worker UUID (denormalized)
        status: Ledger status
        attempts_used: Submissions scored so far
        last_score: Achieved value of the latest submission
        watch_percentage: Best watch percentage seen (videos)
        completed_at: When the item was passed
    """

    def __init__(
        self,
        enrollment_id: UUID,
        content_item_id: UUID,
        sequence_order: int,
        worker_id: UUID,
        status: ProgressStatus = ProgressStatus.LOCKED,
        attempts_used: int = 0,
        last_score: int | None = None,
        watch_percentage: int = 0,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        last_accessed_at: datetime | None = None,
        completed_at: datetime | None = None,
    ):
        self.enrollment_id = enrollment_id
        self.content_item_id = content_item_id
        self.sequence_order = sequence_order
        self.worker_id = worker_id
        self.status = ProgressStatus(status)
        self.attempts_used = attempts_used
        self.last_score = last_score
        self.watch_percentage = watch_percentage
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at) or self.created_at
        self.last_accessed_at = ensure_utc_aware(last_accessed_at)
        self.completed_at = ensure_utc_aware(completed_at)

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED

    @classmethod
    def from_row(cls, row: Any) -> "ProgressRecord":
        """Create ProgressRecord instance from Cassandra row."""
        return cls(
            enrollment_id=row.enrollment_id,
            content_item_id=row.content_item_id,
            sequence_order=row.sequence_order,
            worker_id=row.worker_id,
            status=row.status or ProgressStatus.LOCKED.value,
            attempts_used=row.attempts_used or 0,
            last_score=row.last_score,
            watch_percentage=row.watch_percentage or 0,
            created_at=row.created_at,
            updated_at=row.updated_at,
            last_accessed_at=row.last_accessed_at,
            completed_at=row.completed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "enrollment_id": self.enrollment_id,
            "content_item_id": self.content_item_id,
            "sequence_order": self.sequence_order,
            "worker_id": self.worker_id,
            "status": self.status.value,
            "attempts_used": self.attempts_used,
            "last_score": self.last_score,
            "watch_percentage": self.watch_percentage,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "last_accessed_at": self.last_accessed_at,
            "completed_at": self.completed_at,
        }

    def __repr__(self) -> str:
        return (
            f"<ProgressRecord enrollment={self.enrollment_id} "
            f"item={self.content_item_id} #{self.sequence_order} "
            f"{self.status.value} attempts={self.attempts_used}>"
        )


class Certificate:
    """Certificate minted for a completed enrollment. Immutable once written."""

    def __init__(
        self,
        enrollment_id: UUID,
        worker_id: UUID,
        course_level_id: UUID,
        certificate_code: str,
        issue_date: datetime,
        id: UUID | None = None,
        pdf_url: str | None = None,
    ):
        self.id = id or uuid4()
        self.enrollment_id = enrollment_id
        self.worker_id = worker_id
        self.course_level_id = course_level_id
        self.certificate_code = certificate_code
        self.issue_date = ensure_utc_aware(issue_date)
        self.pdf_url = pdf_url

    @classmethod
    def from_row(cls, row: Any) -> "Certificate":
        """Create Certificate from any of the certificate tables."""
        return cls(
            id=row.id,
            enrollment_id=row.enrollment_id,
            worker_id=row.worker_id,
            course_level_id=row.course_level_id,
            certificate_code=row.certificate_code,
            issue_date=row.issue_date,
            pdf_url=row.pdf_url,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "enrollment_id": self.enrollment_id,
            "worker_id": self.worker_id,
            "course_level_id": self.course_level_id,
            "certificate_code": self.certificate_code,
            "issue_date": self.issue_date,
            "pdf_url": self.pdf_url,
        }

    def __repr__(self) -> str:
        return f"<Certificate {self.certificate_code} enrollment={self.enrollment_id}>"
