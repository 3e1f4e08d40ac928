"""Progression engine.

Decides which content item of an enrollment is accessible and how a
submission changes that. State lives in the per-item progress ledger:
UNLOCKED / IN_PROGRESS / COMPLETED rows always form a prefix of the content
order, so there is no separate "current item" pointer to keep in sync.

Every submission runs under the enrollment lock and commits all of its
writes (ledger rows, enrollment transition, certificate) in one batch.
"""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

import structlog

from src.core.context import bind_enrollment
from src.courses.models import ContentItem
from src.courses.service import ContentGraph
from src.progress.models import (
    Clock,
    Enrollment,
    EnrollmentStatus,
    FailureReason,
    ProgressRecord,
    ProgressStatus,
    utcnow,
)
from src.progress.repository import ProgressRepository, UnitOfWork

from .certificates import log_issued
from .errors import (
    AlreadyCompletedError,
    ContentNotFoundError,
    EnrollmentExpiredError,
    EnrollmentNotActiveError,
    ItemLockedError,
    ProgressionError,
)
from .evaluator import Submission, WatchSubmission, evaluate, percentage
from .lifecycle import EnrollmentLifecycle, log_transition
from .locks import EnrollmentLocks


logger = structlog.get_logger(__name__)

MSG_PASSED = "Content completed"
MSG_LEVEL_COMPLETED = "Course level completed"
MSG_RETRY = "Threshold not reached, try again"
MSG_REVIEW = "Score below the retry threshold, review the previous video"
MSG_ATTEMPTS_EXHAUSTED = "Attempts exhausted, re-enrollment required"


@dataclass(frozen=True)
class ProgressResult:
    """Outcome of one scored submission."""

    progress_status: ProgressStatus
    enrollment_status: EnrollmentStatus
    score: int
    passed: bool
    attempts_used: int
    attempts_remaining: int | None  # None: no attempt limit
    next_content_item_id: UUID | None = None
    certificate_code: str | None = None
    message: str = ""


@dataclass(frozen=True)
class ContentTreeEntry:
    """One content item with its ledger row."""

    item: ContentItem
    record: ProgressRecord


@dataclass(frozen=True)
class ContentTree:
    """Content of an enrollment's level with per-item progress."""

    enrollment: Enrollment
    entries: list[ContentTreeEntry] = field(default_factory=list)

    @property
    def items_total(self) -> int:
        return len(self.entries)

    @property
    def items_completed(self) -> int:
        return sum(1 for e in self.entries if e.record.is_completed)

    @property
    def progress_percent(self) -> int:
        return percentage(self.items_completed, self.items_total)

    @property
    def current_content_item_id(self) -> UUID | None:
        """First item that accepts submissions, if any."""
        for entry in self.entries:
            if entry.record.status.is_open:
                return entry.item.id
        return None


class ProgressionEngine:
    """Applies submissions to the progress ledger."""

    def __init__(
        self,
        repository: ProgressRepository,
        content: ContentGraph,
        lifecycle: EnrollmentLifecycle,
        locks: EnrollmentLocks,
        clock: Clock = utcnow,
    ):
        self.repository = repository
        self.content = content
        self.lifecycle = lifecycle
        self.locks = locks
        self.clock = clock

    async def _expire_and_raise(self, enrollment: Enrollment, now: datetime) -> None:
        uow = self.repository.unit_of_work()
        self.lifecycle.stage_expire(enrollment, uow, now)
        await uow.commit()
        log_transition(enrollment)
        raise EnrollmentExpiredError

    # ==========================================================================
    # Submissions
    # ==========================================================================

    async def submit_progress(
        self,
        enrollment_id: UUID,
        content_item_id: UUID,
        submission: Submission,
        worker_id: UUID | None = None,
    ) -> ProgressResult:
        """Score a submission and advance the enrollment.

        Args:
            enrollment_id: Enrollment UUID
            content_item_id: Content item being attempted
            submission: Watch or answers submission
            worker_id: When given, the enrollment must belong to this worker

        Returns:
            ProgressResult with the new item and enrollment status

        Raises:
            EnrollmentNotFoundError: Unknown enrollment (or not the worker's)
            EnrollmentExpiredError: Deadline passed (expires the enrollment)
            EnrollmentNotActiveError: Enrollment completed or failed
            ContentNotFoundError: Item not in the enrollment's level
            ItemLockedError: Item not unlocked yet
            AlreadyCompletedError: Item already passed
            MissingAnswerError, InvalidSubmissionError: Malformed submission
        """
        with bind_enrollment(enrollment_id):
            try:
                async with self.locks.hold(enrollment_id):
                    return await self._submit(
                        enrollment_id, content_item_id, submission, worker_id
                    )
            except ProgressionError as e:
                logger.info(
                    "submission_rejected",
                    content_item_id=str(content_item_id),
                    code=e.code,
                    reason=e.message,
                )
                raise

    async def _submit(
        self,
        enrollment_id: UUID,
        content_item_id: UUID,
        submission: Submission,
        worker_id: UUID | None,
    ) -> ProgressResult:
        now = self.clock()
        enrollment = await self.lifecycle.get_enrollment(enrollment_id, worker_id)

        if enrollment.status == EnrollmentStatus.EXPIRED:
            raise EnrollmentExpiredError
        if enrollment.is_overdue(now):
            await self._expire_and_raise(enrollment, now)
        if not enrollment.is_active:
            raise EnrollmentNotActiveError

        items = await self.content.get_items(enrollment.course_level_id)
        item = next((i for i in items if i.id == content_item_id), None)
        if item is None:
            raise ContentNotFoundError

        records = {
            r.content_item_id: r
            for r in await self.repository.get_progress_records(enrollment_id)
        }
        record = records.get(item.id)
        if record is None:
            raise ContentNotFoundError("Content item has no progress record")
        if record.status in (ProgressStatus.LOCKED, ProgressStatus.FAILED):
            raise ItemLockedError
        if record.status == ProgressStatus.COMPLETED:
            raise AlreadyCompletedError

        question_set = (
            await self.content.get_question_set(item.id) if item.is_assessable else None
        )
        evaluation = evaluate(item, submission, question_set)

        record.attempts_used += 1
        record.last_score = evaluation.achieved
        if isinstance(submission, WatchSubmission):
            record.watch_percentage = max(record.watch_percentage, evaluation.achieved)
        record.last_accessed_at = now
        record.updated_at = now

        uow = self.repository.unit_of_work()
        next_item_id: UUID | None = None
        certificate = None
        certificate_created = False

        if evaluation.passed:
            record.status = ProgressStatus.COMPLETED
            record.completed_at = now
            next_item = self._unlock_next(items, item, records, enrollment, uow, now)

            if next_item is None or item.is_final_exam:
                certificate, certificate_created = await self.lifecycle.stage_complete(
                    enrollment, uow, now
                )
                message = MSG_LEVEL_COMPLETED
            else:
                next_item_id = next_item.id
                message = MSG_PASSED

        elif item.attempts_left(record.attempts_used) == 0:
            record.status = ProgressStatus.FAILED
            self.lifecycle.stage_fail(
                enrollment, uow, now, FailureReason.ATTEMPTS_EXCEEDED
            )
            message = MSG_ATTEMPTS_EXHAUSTED

        else:
            review = self._reopen_previous_video(
                items, item, records, evaluation.achieved, uow, now
            )
            if review is not None:
                record.status = ProgressStatus.LOCKED
                next_item_id = review.content_item_id
                message = MSG_REVIEW
            else:
                record.status = ProgressStatus.IN_PROGRESS
                next_item_id = item.id
                message = MSG_RETRY

        uow.save_progress(record)
        await uow.commit()

        logger.info(
            "progress_submitted",
            content_item_id=str(item.id),
            kind=item.kind.value,
            score=evaluation.achieved,
            passed=evaluation.passed,
            attempts_used=record.attempts_used,
            progress_status=record.status.value,
        )
        if enrollment.is_terminal:
            log_transition(enrollment)
        if certificate_created:
            log_issued(certificate)

        return ProgressResult(
            progress_status=record.status,
            enrollment_status=enrollment.status,
            score=evaluation.achieved,
            passed=evaluation.passed,
            attempts_used=record.attempts_used,
            attempts_remaining=item.attempts_left(record.attempts_used),
            next_content_item_id=next_item_id,
            certificate_code=certificate.certificate_code if certificate else None,
            message=message,
        )

    def _unlock_next(
        self,
        items: list[ContentItem],
        current: ContentItem,
        records: dict[UUID, ProgressRecord],
        enrollment: Enrollment,
        uow: UnitOfWork,
        now: datetime,
    ) -> ContentItem | None:
        """Unlock the first later item that is not completed yet.

        Later items are normally all LOCKED; after a review detour the
        item that sent the worker back is the one reopened here.
        """
        position = items.index(current)
        for candidate in items[position + 1 :]:
            next_record = records.get(candidate.id)
            if next_record is None:
                next_record = ProgressRecord(
                    enrollment_id=enrollment.id,
                    content_item_id=candidate.id,
                    sequence_order=candidate.sequence_order,
                    worker_id=enrollment.worker_id,
                    created_at=now,
                )
            elif next_record.is_completed:
                continue

            if next_record.status == ProgressStatus.LOCKED:
                next_record.status = ProgressStatus.UNLOCKED
                next_record.updated_at = now
                uow.save_progress(next_record)
                logger.info("content_unlocked", content_item_id=str(candidate.id))
            return candidate
        return None

    def _reopen_previous_video(
        self,
        items: list[ContentItem],
        current: ContentItem,
        records: dict[UUID, ProgressRecord],
        achieved: int,
        uow: UnitOfWork,
        now: datetime,
    ) -> ProgressRecord | None:
        """Send the worker back to the closest earlier video.

        Applies when the item has a retry threshold and the score is below
        it. The video is reopened with its watch percentage reset.
        """
        if current.retry_threshold is None or achieved >= current.retry_threshold:
            return None

        position = items.index(current)
        for candidate in reversed(items[:position]):
            if not candidate.is_watchable:
                continue
            previous = records.get(candidate.id)
            if previous is None:
                return None
            previous.status = ProgressStatus.UNLOCKED
            previous.watch_percentage = 0
            previous.attempts_used = 0
            previous.last_score = None
            previous.completed_at = None
            previous.updated_at = now
            uow.save_progress(previous)
            logger.info(
                "content_review_required",
                content_item_id=str(current.id),
                review_content_item_id=str(candidate.id),
                score=achieved,
                retry_threshold=current.retry_threshold,
            )
            return previous
        return None

    # ==========================================================================
    # Content tree
    # ==========================================================================

    async def get_content_tree(
        self, enrollment_id: UUID, worker_id: UUID | None = None
    ) -> ContentTree:
        """Content of the enrollment's level with per-item progress.

        Expires an overdue enrollment and creates ledger rows for items that
        have none (first item UNLOCKED, others LOCKED).
        """
        with bind_enrollment(enrollment_id):
            async with self.locks.hold(enrollment_id):
                now = self.clock()
                enrollment = await self.lifecycle.get_enrollment(
                    enrollment_id, worker_id
                )
                items = await self.content.get_items(enrollment.course_level_id)
                records = {
                    r.content_item_id: r
                    for r in await self.repository.get_progress_records(enrollment_id)
                }

                uow = self.repository.unit_of_work()
                expired = False
                if enrollment.is_overdue(now):
                    expired = self.lifecycle.stage_expire(enrollment, uow, now)

                entries = []
                for index, item in enumerate(items):
                    record = records.get(item.id)
                    if record is None:
                        record = ProgressRecord(
                            enrollment_id=enrollment.id,
                            content_item_id=item.id,
                            sequence_order=item.sequence_order,
                            worker_id=enrollment.worker_id,
                            status=ProgressStatus.UNLOCKED
                            if index == 0
                            else ProgressStatus.LOCKED,
                            created_at=now,
                        )
                        uow.save_progress(record)
                    entries.append(ContentTreeEntry(item=item, record=record))

                await uow.commit()

        if expired:
            log_transition(enrollment)
        return ContentTree(enrollment=enrollment, entries=entries)
