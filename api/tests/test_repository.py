"""Tests for the Cassandra progress repository and its unit of work."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch
from uuid import uuid4

import pytest
from cassandra.cluster import Session
from cassandra.query import BatchType

from src.progress.models import (
    Certificate,
    Enrollment,
    EnrollmentStatus,
    ProgressStatus,
)
from src.progress.repository import ProgressRepository


NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def mock_session():
    """Mock Cassandra session returning one prepared mock per statement."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda cql: Mock(query_string=cql))
    # cassandra-asyncio-driver
    session.aexecute = AsyncMock(return_value=Mock())
    return session


@pytest.fixture
def repository(mock_session) -> ProgressRepository:
    return ProgressRepository(mock_session, "test_keyspace")


def make_enrollment(**overrides) -> Enrollment:
    fields = {
        "worker_id": uuid4(),
        "course_level_id": uuid4(),
        "start_date": NOW,
        "deadline_date": NOW + timedelta(days=30),
        "created_at": NOW,
    }
    fields.update(overrides)
    return Enrollment(**fields)


def enrollment_row(enrollment: Enrollment, **overrides) -> SimpleNamespace:
    values = enrollment.to_dict()
    values.update(overrides)
    return SimpleNamespace(**values)


def staged(uow) -> list:
    return [statement for statement, _ in uow._statements]


class TestUnitOfWork:
    """Tests for staging and committing writes."""

    def test_new_enrollment_writes_lookup_rows(self, repository) -> None:
        uow = repository.unit_of_work()
        enrollment = make_enrollment()

        uow.save_enrollment(enrollment)

        assert staged(uow) == [
            repository._upsert_enrollment,
            repository._upsert_enrollment_by_worker,
            repository._insert_enrollment_by_status,
        ]

    def test_status_change_moves_status_row(self, repository) -> None:
        uow = repository.unit_of_work()
        enrollment = make_enrollment(persisted_status=EnrollmentStatus.ACTIVE)
        enrollment.status = EnrollmentStatus.EXPIRED

        uow.save_enrollment(enrollment)

        assert repository._delete_enrollment_by_status in staged(uow)
        delete_params = dict(uow._statements)[repository._delete_enrollment_by_status]
        assert delete_params == ["active", enrollment.deadline_date, enrollment.id]
        insert_params = dict(uow._statements)[repository._insert_enrollment_by_status]
        assert insert_params[0] == "expired"

    def test_unchanged_status_keeps_status_row(self, repository) -> None:
        uow = repository.unit_of_work()
        enrollment = make_enrollment(persisted_status=EnrollmentStatus.ACTIVE)

        uow.save_enrollment(enrollment)

        assert len(uow) == 2

    def test_certificate_written_to_three_tables(self, repository) -> None:
        uow = repository.unit_of_work()
        certificate = Certificate(
            enrollment_id=uuid4(),
            worker_id=uuid4(),
            course_level_id=uuid4(),
            certificate_code="CERT-1-ABCD",
            issue_date=NOW,
        )

        uow.save_certificate(certificate)

        assert staged(uow) == [
            repository._insert_certificate,
            repository._insert_certificate_by_worker,
            repository._insert_certificate_by_code,
        ]

    @pytest.mark.asyncio
    async def test_commit_sends_one_logged_batch(
        self, repository, mock_session
    ) -> None:
        uow = repository.unit_of_work()
        enrollment = make_enrollment()
        uow.save_enrollment(enrollment)

        with patch("src.progress.repository.BatchStatement") as batch_cls:
            await uow.commit()

        batch_cls.assert_called_once_with(batch_type=BatchType.LOGGED)
        batch = batch_cls.return_value
        assert batch.add.call_count == 3
        mock_session.aexecute.assert_awaited_once_with(batch)
        assert uow.committed is True
        assert enrollment.persisted_status == EnrollmentStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_empty_commit_skips_store(self, repository, mock_session) -> None:
        uow = repository.unit_of_work()

        await uow.commit()

        mock_session.aexecute.assert_not_awaited()
        assert uow.committed is True

    @pytest.mark.asyncio
    async def test_commit_twice_rejected(self, repository) -> None:
        uow = repository.unit_of_work()
        await uow.commit()

        with pytest.raises(RuntimeError):
            await uow.commit()
        with pytest.raises(RuntimeError):
            uow.save_enrollment(make_enrollment())

    @pytest.mark.asyncio
    async def test_failed_commit_keeps_persisted_status(
        self, repository, mock_session
    ) -> None:
        uow = repository.unit_of_work()
        enrollment = make_enrollment(persisted_status=EnrollmentStatus.ACTIVE)
        enrollment.status = EnrollmentStatus.COMPLETED
        uow.save_enrollment(enrollment)
        mock_session.aexecute.side_effect = ConnectionError("down")

        with (
            patch("src.progress.repository.BatchStatement"),
            pytest.raises(ConnectionError),
        ):
            await uow.commit()

        assert uow.committed is False
        assert enrollment.persisted_status == EnrollmentStatus.ACTIVE


class TestReads:
    """Tests for repository reads."""

    @pytest.mark.asyncio
    async def test_get_enrollment(self, repository, mock_session) -> None:
        enrollment = make_enrollment()
        result = Mock()
        result.one.return_value = enrollment_row(
            enrollment, created_at=NOW.replace(tzinfo=None)
        )
        mock_session.aexecute.return_value = result

        found = await repository.get_enrollment(enrollment.id)

        assert found.id == enrollment.id
        assert found.status == EnrollmentStatus.ACTIVE
        assert found.persisted_status == EnrollmentStatus.ACTIVE
        assert found.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_get_enrollment_missing(self, repository, mock_session) -> None:
        result = Mock()
        result.one.return_value = None
        mock_session.aexecute.return_value = result

        assert await repository.get_enrollment(uuid4()) is None

    @pytest.mark.asyncio
    async def test_find_worker_level_enrollments(
        self, repository, mock_session
    ) -> None:
        worker_id = uuid4()
        level_id = uuid4()
        wanted = make_enrollment(worker_id=worker_id, course_level_id=level_id)
        other = make_enrollment(worker_id=worker_id)
        mock_session.aexecute.return_value = [
            enrollment_row(wanted),
            enrollment_row(other),
        ]

        found = await repository.find_worker_level_enrollments(worker_id, level_id)

        assert [e.id for e in found] == [wanted.id]

    @pytest.mark.asyncio
    async def test_overdue_filters_stale_lookup_rows(
        self, repository, mock_session
    ) -> None:
        overdue = make_enrollment(deadline_date=NOW - timedelta(days=1))
        already_expired = make_enrollment(deadline_date=NOW - timedelta(days=2))

        def one(row):
            result = Mock()
            result.one.return_value = row
            return result

        mock_session.aexecute.side_effect = [
            [SimpleNamespace(id=overdue.id), SimpleNamespace(id=already_expired.id)],
            one(enrollment_row(overdue)),
            one(enrollment_row(already_expired, status="expired")),
        ]

        found = await repository.list_overdue_enrollments(NOW)

        assert [e.id for e in found] == [overdue.id]

    @pytest.mark.asyncio
    async def test_progress_records_in_content_order(
        self, repository, mock_session
    ) -> None:
        enrollment_id = uuid4()

        def progress_row(order: int, status: str) -> SimpleNamespace:
            return SimpleNamespace(
                enrollment_id=enrollment_id,
                content_item_id=uuid4(),
                sequence_order=order,
                worker_id=uuid4(),
                status=status,
                attempts_used=None,
                last_score=None,
                watch_percentage=None,
                created_at=NOW,
                updated_at=None,
                last_accessed_at=None,
                completed_at=None,
            )

        mock_session.aexecute.return_value = [
            progress_row(2, "locked"),
            progress_row(1, "unlocked"),
        ]

        records = await repository.get_progress_records(enrollment_id)

        assert [r.sequence_order for r in records] == [1, 2]
        assert records[0].status == ProgressStatus.UNLOCKED
        assert records[0].attempts_used == 0
        assert records[0].watch_percentage == 0
