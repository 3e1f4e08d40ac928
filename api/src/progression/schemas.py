"""Pydantic schemas for the progression API.

Request and response models for:
- Progress submissions (watch percentage or quiz answers)
- Enrollments and their content tree
- Certificates
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.courses.models import ContentKind
from src.progress.models import (
    Certificate,
    Enrollment,
    EnrollmentStatus,
    FailureReason,
    ProgressStatus,
)

from .engine import ContentTree, ContentTreeEntry, ProgressResult
from .evaluator import Answer, AnswersSubmission, Submission, WatchSubmission


# ==============================================================================
# Submission Schemas
# ==============================================================================


class AnswerRequest(BaseModel):
    """One selected option of a quiz question."""

    question_id: UUID = Field(..., description="Question UUID")
    option_id: UUID = Field(..., description="Selected option UUID")


class SubmitProgressRequest(BaseModel):
    """Progress submission: a watch percentage OR quiz answers, never both."""

    enrollment_id: UUID = Field(..., description="Enrollment UUID")
    content_item_id: UUID = Field(..., description="Content item UUID")
    watch_percentage: int | None = Field(
        default=None, ge=0, le=100, description="Percentage of the video watched"
    )
    answers: list[AnswerRequest] | None = Field(
        default=None, description="One selected option per question"
    )

    @model_validator(mode="after")
    def exactly_one_payload(self) -> "SubmitProgressRequest":
        if (self.watch_percentage is None) == (self.answers is None):
            msg = "Provide either watch_percentage or answers"
            raise ValueError(msg)
        return self

    def to_submission(self) -> Submission:
        """Convert to the evaluator's submission variant."""
        if self.answers is not None:
            return AnswersSubmission(
                answers=tuple(
                    Answer(question_id=a.question_id, option_id=a.option_id)
                    for a in self.answers
                )
            )
        return WatchSubmission(watch_percentage=self.watch_percentage)


class ProgressResultResponse(BaseModel):
    """Result of a scored submission."""

    progress_status: ProgressStatus
    enrollment_status: EnrollmentStatus
    score: int = Field(description="Achieved percentage (0-100)")
    passed: bool
    attempts_used: int
    attempts_remaining: int | None = Field(
        default=None, description="Submissions left, null when unlimited"
    )
    next_content_item_id: UUID | None = None
    certificate_code: str | None = None
    message: str

    @classmethod
    def from_result(cls, result: ProgressResult) -> "ProgressResultResponse":
        """Create response from engine result."""
        return cls(
            progress_status=result.progress_status,
            enrollment_status=result.enrollment_status,
            score=result.score,
            passed=result.passed,
            attempts_used=result.attempts_used,
            attempts_remaining=result.attempts_remaining,
            next_content_item_id=result.next_content_item_id,
            certificate_code=result.certificate_code,
            message=result.message,
        )


# ==============================================================================
# Enrollment Schemas
# ==============================================================================


class CreateEnrollmentRequest(BaseModel):
    """Enrollment created after an approved purchase."""

    worker_id: UUID = Field(..., description="Worker UUID")
    course_level_id: UUID = Field(..., description="Course level UUID")


class EnrollmentResponse(BaseModel):
    """Enrollment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    worker_id: UUID
    course_level_id: UUID
    status: EnrollmentStatus
    start_date: datetime
    deadline_date: datetime
    completion_date: datetime | None = None
    failure_reason: FailureReason | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, entity: Enrollment) -> "EnrollmentResponse":
        """Create response from entity."""
        return cls(**entity.to_dict())


class EnrollmentListResponse(BaseModel):
    """List of enrollments."""

    items: list[EnrollmentResponse]
    total: int


class ContentProgressResponse(BaseModel):
    """One content item with the worker's progress on it."""

    content_item_id: UUID
    title: str
    kind: ContentKind
    sequence_order: int
    status: ProgressStatus
    attempts_used: int
    max_attempts: int | None = None
    last_score: int | None = None
    watch_percentage: int = 0
    min_watch_percentage: int | None = None
    passing_score: int | None = None
    video_url: str | None = None
    video_duration_seconds: int | None = None
    is_eligibility_check: bool = False
    is_final_exam: bool = False
    completed_at: datetime | None = None

    @classmethod
    def from_entry(cls, entry: ContentTreeEntry) -> "ContentProgressResponse":
        """Create response from a content tree entry."""
        item, record = entry.item, entry.record
        return cls(
            content_item_id=item.id,
            title=item.title,
            kind=item.kind,
            sequence_order=item.sequence_order,
            status=record.status,
            attempts_used=record.attempts_used,
            max_attempts=item.max_attempts,
            last_score=record.last_score,
            watch_percentage=record.watch_percentage,
            min_watch_percentage=item.min_watch_percentage
            if item.is_watchable
            else None,
            passing_score=item.passing_score if item.is_assessable else None,
            video_url=item.video_url,
            video_duration_seconds=item.video_duration_seconds,
            is_eligibility_check=item.is_eligibility_check,
            is_final_exam=item.is_final_exam,
            completed_at=record.completed_at,
        )


class ContentTreeResponse(BaseModel):
    """Enrollment with its content sequence and progress summary."""

    enrollment: EnrollmentResponse
    items: list[ContentProgressResponse]
    items_total: int
    items_completed: int
    progress_percent: int = Field(description="0-100 percentage")
    current_content_item_id: UUID | None = None

    @classmethod
    def from_tree(cls, tree: ContentTree) -> "ContentTreeResponse":
        """Create response from a content tree."""
        return cls(
            enrollment=EnrollmentResponse.from_entity(tree.enrollment),
            items=[ContentProgressResponse.from_entry(e) for e in tree.entries],
            items_total=tree.items_total,
            items_completed=tree.items_completed,
            progress_percent=tree.progress_percent,
            current_content_item_id=tree.current_content_item_id,
        )


# ==============================================================================
# Certificate Schemas
# ==============================================================================


class CertificateResponse(BaseModel):
    """Certificate response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    enrollment_id: UUID
    worker_id: UUID
    course_level_id: UUID
    certificate_code: str
    issue_date: datetime
    pdf_url: str | None = None

    @classmethod
    def from_entity(cls, entity: Certificate) -> "CertificateResponse":
        """Create response from entity."""
        return cls(**entity.to_dict())


class CertificateListResponse(BaseModel):
    """List of certificates."""

    items: list[CertificateResponse]
    total: int
