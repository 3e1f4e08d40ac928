"""Tests for the enrollment lifecycle."""

from uuid import uuid4

import pytest

from src.progress.models import EnrollmentStatus, FailureReason, ProgressStatus
from src.progression.errors import (
    AlreadyEnrolledError,
    ContentNotFoundError,
    CourseLevelNotFoundError,
    EnrollmentNotFoundError,
)
from tests.fakes import video


class TestCreateEnrollment:
    """Tests for create_enrollment."""

    @pytest.mark.asyncio
    async def test_creates_active_enrollment_with_ledger(
        self, services, course, repository, worker_id, clock
    ) -> None:
        enrollment = await services.lifecycle.create_enrollment(
            worker_id, course.level.id
        )

        assert enrollment.status == EnrollmentStatus.ACTIVE
        assert enrollment.worker_id == worker_id
        assert enrollment.start_date == clock.now
        stored = repository.enrollments[enrollment.id]
        assert stored.persisted_status == EnrollmentStatus.ACTIVE
        assert [
            repository.record(enrollment.id, item.id).status for item in course.items
        ] == [
            ProgressStatus.UNLOCKED,
            ProgressStatus.LOCKED,
            ProgressStatus.LOCKED,
            ProgressStatus.LOCKED,
        ]
        assert repository.commits == 1

    @pytest.mark.asyncio
    async def test_unknown_level(self, services, worker_id) -> None:
        with pytest.raises(CourseLevelNotFoundError):
            await services.lifecycle.create_enrollment(worker_id, uuid4())

    @pytest.mark.asyncio
    async def test_level_without_content(
        self, services, content, worker_id
    ) -> None:
        level = content.add_level([])
        with pytest.raises(ContentNotFoundError):
            await services.lifecycle.create_enrollment(worker_id, level.id)

    @pytest.mark.asyncio
    async def test_second_active_enrollment_rejected(
        self, services, course, worker_id
    ) -> None:
        await services.lifecycle.create_enrollment(worker_id, course.level.id)
        with pytest.raises(AlreadyEnrolledError):
            await services.lifecycle.create_enrollment(worker_id, course.level.id)

    @pytest.mark.asyncio
    async def test_reenrollment_after_failure(
        self, services, course, worker_id
    ) -> None:
        first = await services.lifecycle.create_enrollment(worker_id, course.level.id)
        await services.lifecycle.fail(first.id)

        second = await services.lifecycle.create_enrollment(
            worker_id, course.level.id
        )

        assert second.id != first.id
        assert second.status == EnrollmentStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_overdue_enrollment_expired_before_reenrollment(
        self, services, course, repository, clock, worker_id
    ) -> None:
        first = await services.lifecycle.create_enrollment(worker_id, course.level.id)
        clock.advance(days=31)

        second = await services.lifecycle.create_enrollment(
            worker_id, course.level.id
        )

        assert repository.enrollments[first.id].status == EnrollmentStatus.EXPIRED
        assert second.status == EnrollmentStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_other_worker_may_enroll(
        self, services, course, worker_id
    ) -> None:
        await services.lifecycle.create_enrollment(worker_id, course.level.id)
        other = await services.lifecycle.create_enrollment(uuid4(), course.level.id)
        assert other.status == EnrollmentStatus.ACTIVE


class TestTransitions:
    """Terminal states are final; repeated transitions are no-ops."""

    @pytest.mark.asyncio
    async def test_fail_sets_reason_and_date(
        self, services, course, worker_id, clock
    ) -> None:
        enrollment = await services.lifecycle.create_enrollment(
            worker_id, course.level.id
        )

        failed = await services.lifecycle.fail(enrollment.id)

        assert failed.status == EnrollmentStatus.FAILED
        assert failed.failure_reason == FailureReason.ATTEMPTS_EXCEEDED
        assert failed.completion_date == clock.now

    @pytest.mark.asyncio
    async def test_expire_is_idempotent(
        self, services, course, repository, worker_id
    ) -> None:
        enrollment = await services.lifecycle.create_enrollment(
            worker_id, course.level.id
        )

        await services.lifecycle.expire(enrollment.id)
        commits = repository.commits
        again = await services.lifecycle.expire(enrollment.id)

        assert again.status == EnrollmentStatus.EXPIRED
        assert repository.commits == commits

    @pytest.mark.asyncio
    async def test_terminal_state_never_changes(
        self, services, course, repository, worker_id
    ) -> None:
        enrollment = await services.lifecycle.create_enrollment(
            worker_id, course.level.id
        )
        await services.lifecycle.expire(enrollment.id)

        completed = await services.lifecycle.complete(enrollment.id)
        failed = await services.lifecycle.fail(enrollment.id)

        assert completed.status == EnrollmentStatus.EXPIRED
        assert failed.status == EnrollmentStatus.EXPIRED
        assert repository.certificates == {}

    @pytest.mark.asyncio
    async def test_complete_issues_certificate_once(
        self, services, course, repository, worker_id, clock
    ) -> None:
        enrollment = await services.lifecycle.create_enrollment(
            worker_id, course.level.id
        )

        completed = await services.lifecycle.complete(enrollment.id)
        await services.lifecycle.complete(enrollment.id)

        assert completed.status == EnrollmentStatus.COMPLETED
        assert completed.completion_date == clock.now
        assert len(repository.certificates) == 1

    @pytest.mark.asyncio
    async def test_complete_repairs_missing_certificate(
        self, services, course, repository, worker_id
    ) -> None:
        enrollment = await services.lifecycle.create_enrollment(
            worker_id, course.level.id
        )
        await services.lifecycle.complete(enrollment.id)
        repository.certificates.clear()

        await services.lifecycle.complete(enrollment.id)

        assert enrollment.id in repository.certificates

    @pytest.mark.asyncio
    async def test_unknown_enrollment(self, services) -> None:
        with pytest.raises(EnrollmentNotFoundError):
            await services.lifecycle.expire(uuid4())


class TestExpirySweep:
    """Tests for expire_overdue."""

    @pytest.mark.asyncio
    async def test_expires_only_overdue(
        self, services, course, content, repository, clock, worker_id
    ) -> None:
        old = await services.lifecycle.create_enrollment(worker_id, course.level.id)
        clock.advance(days=20)
        short_level = content.add_level([video(uuid4(), 1)])
        recent = await services.lifecycle.create_enrollment(worker_id, short_level.id)
        clock.advance(days=11)

        expired = await services.lifecycle.expire_overdue()

        assert expired == 1
        assert repository.enrollments[old.id].status == EnrollmentStatus.EXPIRED
        assert repository.enrollments[recent.id].status == EnrollmentStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_second_sweep_expires_nothing(
        self, services, course, clock, worker_id
    ) -> None:
        await services.lifecycle.create_enrollment(worker_id, course.level.id)
        clock.advance(days=31)

        assert await services.lifecycle.expire_overdue() == 1
        assert await services.lifecycle.expire_overdue() == 0


class TestQueries:
    """Tests for enrollment reads."""

    @pytest.mark.asyncio
    async def test_get_enrollment_scoped_to_worker(
        self, services, course, worker_id
    ) -> None:
        enrollment = await services.lifecycle.create_enrollment(
            worker_id, course.level.id
        )

        found = await services.lifecycle.get_enrollment(enrollment.id, worker_id)
        assert found.id == enrollment.id
        with pytest.raises(EnrollmentNotFoundError):
            await services.lifecycle.get_enrollment(enrollment.id, uuid4())

    @pytest.mark.asyncio
    async def test_list_worker_enrollments(
        self, services, course, worker_id
    ) -> None:
        enrollment = await services.lifecycle.create_enrollment(
            worker_id, course.level.id
        )

        enrollments = await services.lifecycle.list_worker_enrollments(worker_id)

        assert [e.id for e in enrollments] == [enrollment.id]
        assert await services.lifecycle.list_worker_enrollments(uuid4()) == []
