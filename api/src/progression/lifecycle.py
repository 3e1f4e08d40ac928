"""Enrollment lifecycle.

State machine with initial state ACTIVE and terminal states COMPLETED,
FAILED and EXPIRED. Transitions out of a terminal state never happen;
repeating ``complete``/``fail``/``expire`` on a terminal enrollment is a
no-op so callers may deliver at least once.

The ``stage_*`` methods only stage writes on a unit of work and expect the
caller to hold the enrollment lock; the progression engine uses them to
commit a transition together with the ledger changes that caused it.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID

import structlog

from src.core.context import bind_enrollment
from src.courses.service import ContentGraph
from src.progress.models import (
    Certificate,
    Clock,
    Enrollment,
    EnrollmentStatus,
    FailureReason,
    ProgressRecord,
    ProgressStatus,
    utcnow,
)
from src.progress.repository import ProgressRepository, UnitOfWork

from .certificates import CertificateIssuer, log_issued
from .errors import (
    AlreadyEnrolledError,
    ContentNotFoundError,
    CourseLevelNotFoundError,
    EnrollmentNotFoundError,
)
from .locks import EnrollmentLocks


logger = structlog.get_logger(__name__)


def log_transition(enrollment: Enrollment) -> None:
    """Log a committed transition into a terminal status."""
    logger.info(
        f"enrollment_{enrollment.status.value}",
        enrollment_id=str(enrollment.id),
        worker_id=str(enrollment.worker_id),
        course_level_id=str(enrollment.course_level_id),
        failure_reason=enrollment.failure_reason.value
        if enrollment.failure_reason
        else None,
    )


class EnrollmentLifecycle:
    """Creates enrollments and moves them into terminal states."""

    def __init__(
        self,
        repository: ProgressRepository,
        content: ContentGraph,
        issuer: CertificateIssuer,
        locks: EnrollmentLocks,
        clock: Clock = utcnow,
    ):
        self.repository = repository
        self.content = content
        self.issuer = issuer
        self.locks = locks
        self.clock = clock

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get_enrollment(
        self, enrollment_id: UUID, worker_id: UUID | None = None
    ) -> Enrollment:
        """Get an enrollment, optionally scoped to its worker.

        Raises:
            EnrollmentNotFoundError: Unknown, or owned by another worker
        """
        enrollment = await self.repository.get_enrollment(enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError
        if worker_id is not None and enrollment.worker_id != worker_id:
            raise EnrollmentNotFoundError
        return enrollment

    async def list_worker_enrollments(self, worker_id: UUID) -> list[Enrollment]:
        """Get every enrollment of a worker, newest first."""
        return await self.repository.list_worker_enrollments(worker_id)

    # ==========================================================================
    # Creation
    # ==========================================================================

    async def create_enrollment(
        self, worker_id: UUID, course_level_id: UUID
    ) -> Enrollment:
        """Create an ACTIVE enrollment with its full ledger.

        Called once per approved purchase. The first content item starts
        UNLOCKED, every other item LOCKED, all in one batch.

        Raises:
            CourseLevelNotFoundError: Unknown level
            ContentNotFoundError: Level has no content
            AlreadyEnrolledError: Worker has an active or completed
                enrollment in the level
        """
        level = await self.content.get_level(course_level_id)
        if level is None:
            raise CourseLevelNotFoundError
        items = await self.content.get_items(course_level_id)
        if not items:
            raise ContentNotFoundError("Course level has no content")

        async with self.locks.hold(f"worker:{worker_id}:level:{course_level_id}"):
            for existing in await self.repository.find_worker_level_enrollments(
                worker_id, course_level_id
            ):
                if existing.is_overdue(self.clock()):
                    await self.expire(existing.id)
                    continue
                if existing.status in (
                    EnrollmentStatus.ACTIVE,
                    EnrollmentStatus.COMPLETED,
                ):
                    raise AlreadyEnrolledError

            now = self.clock()
            enrollment = Enrollment(
                worker_id=worker_id,
                course_level_id=course_level_id,
                start_date=now,
                deadline_date=now + timedelta(days=level.completion_window_days),
                created_at=now,
            )

            uow = self.repository.unit_of_work()
            uow.save_enrollment(enrollment)
            for index, item in enumerate(items):
                uow.save_progress(
                    ProgressRecord(
                        enrollment_id=enrollment.id,
                        content_item_id=item.id,
                        sequence_order=item.sequence_order,
                        worker_id=worker_id,
                        status=ProgressStatus.UNLOCKED
                        if index == 0
                        else ProgressStatus.LOCKED,
                        created_at=now,
                    )
                )
            await uow.commit()

        logger.info(
            "enrollment_created",
            enrollment_id=str(enrollment.id),
            worker_id=str(worker_id),
            course_level_id=str(course_level_id),
            deadline_date=enrollment.deadline_date.isoformat(),
            items=len(items),
        )
        return enrollment

    # ==========================================================================
    # Staged transitions (caller holds the lock and commits)
    # ==========================================================================

    async def stage_complete(
        self, enrollment: Enrollment, uow: UnitOfWork, now: datetime
    ) -> tuple[Certificate, bool]:
        """ACTIVE -> COMPLETED and stage the certificate in the same batch."""
        if enrollment.is_active:
            enrollment.status = EnrollmentStatus.COMPLETED
            enrollment.completion_date = now
            enrollment.updated_at = now
            uow.save_enrollment(enrollment)
        return await self.issuer.stage_issue(enrollment, uow)

    def stage_fail(
        self,
        enrollment: Enrollment,
        uow: UnitOfWork,
        now: datetime,
        reason: FailureReason = FailureReason.ATTEMPTS_EXCEEDED,
    ) -> bool:
        """ACTIVE -> FAILED. Returns whether a transition was staged."""
        if not enrollment.is_active:
            return False
        enrollment.status = EnrollmentStatus.FAILED
        enrollment.failure_reason = reason
        enrollment.completion_date = now
        enrollment.updated_at = now
        uow.save_enrollment(enrollment)
        return True

    def stage_expire(
        self, enrollment: Enrollment, uow: UnitOfWork, now: datetime
    ) -> bool:
        """ACTIVE -> EXPIRED. Returns whether a transition was staged."""
        if not enrollment.is_active:
            return False
        enrollment.status = EnrollmentStatus.EXPIRED
        enrollment.updated_at = now
        uow.save_enrollment(enrollment)
        return True

    # ==========================================================================
    # Public transitions
    # ==========================================================================

    async def _transition(
        self,
        enrollment_id: UUID,
        stage: Callable[[Enrollment, UnitOfWork, datetime], bool],
    ) -> tuple[Enrollment, bool]:
        with bind_enrollment(enrollment_id):
            async with self.locks.hold(enrollment_id):
                enrollment = await self.get_enrollment(enrollment_id)
                uow = self.repository.unit_of_work()
                changed = stage(enrollment, uow, self.clock())
                await uow.commit()

            if changed:
                log_transition(enrollment)
        return enrollment, changed

    async def complete(self, enrollment_id: UUID) -> Enrollment:
        """Complete an enrollment and issue its certificate.

        On an already COMPLETED enrollment the certificate is ensured again,
        which repairs an issuance that never committed.
        """
        with bind_enrollment(enrollment_id):
            async with self.locks.hold(enrollment_id):
                enrollment = await self.get_enrollment(enrollment_id)
                if enrollment.status in (
                    EnrollmentStatus.FAILED,
                    EnrollmentStatus.EXPIRED,
                ):
                    return enrollment

                was_active = enrollment.is_active
                uow = self.repository.unit_of_work()
                certificate, created = await self.stage_complete(
                    enrollment, uow, self.clock()
                )
                await uow.commit()

            if was_active:
                log_transition(enrollment)
            if created:
                log_issued(certificate)
        return enrollment

    async def fail(
        self,
        enrollment_id: UUID,
        reason: FailureReason = FailureReason.ATTEMPTS_EXCEEDED,
    ) -> Enrollment:
        """Fail an enrollment. No-op when already terminal."""
        enrollment, _ = await self._transition(
            enrollment_id,
            lambda e, uow, now: self.stage_fail(e, uow, now, reason),
        )
        return enrollment

    async def expire(self, enrollment_id: UUID) -> Enrollment:
        """Expire an enrollment. No-op when already terminal."""
        enrollment, _ = await self._transition(enrollment_id, self.stage_expire)
        return enrollment

    async def expire_overdue(self, now: datetime | None = None) -> int:
        """Expire every ACTIVE enrollment past its deadline.

        Used by the periodic sweep. Returns how many enrollments expired.
        """
        now = now or self.clock()
        expired = 0
        for enrollment in await self.repository.list_overdue_enrollments(now):
            _, changed = await self._transition(enrollment.id, self.stage_expire)
            if changed:
                expired += 1
        logger.info("expiry_sweep_finished", expired=expired)
        return expired
