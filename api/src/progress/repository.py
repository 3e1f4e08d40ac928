"""Cassandra persistence for enrollments, the progress ledger and certificates.

Reads go straight to the tables. Writes are staged on a ``UnitOfWork`` and
committed as a single LOGGED batch, which makes the whole step list of an
operation atomic: either every row (including lookup tables) is written,
or none is.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from cassandra.query import BatchStatement, BatchType

from .models import (
    Certificate,
    Enrollment,
    EnrollmentStatus,
    ProgressRecord,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class UnitOfWork:
    """Collects the writes of one operation and commits them together."""

    def __init__(self, repository: "ProgressRepository"):
        self._repo = repository
        self._statements: list[tuple[Any, list[Any]]] = []
        self._enrollments: list[Enrollment] = []
        self.committed = False

    def __len__(self) -> int:
        return len(self._statements)

    def _add(self, statement: Any, params: list[Any]) -> None:
        if self.committed:
            raise RuntimeError("Unit of work already committed")
        self._statements.append((statement, params))

    def save_enrollment(self, enrollment: Enrollment) -> None:
        """Stage an enrollment upsert with its lookup rows."""
        repo = self._repo
        failure_reason = (
            enrollment.failure_reason.value if enrollment.failure_reason else None
        )
        self._add(
            repo._upsert_enrollment,
            [
                enrollment.id,
                enrollment.worker_id,
                enrollment.course_level_id,
                enrollment.status.value,
                enrollment.start_date,
                enrollment.deadline_date,
                enrollment.completion_date,
                failure_reason,
                enrollment.created_at,
                enrollment.updated_at,
            ],
        )
        self._add(
            repo._upsert_enrollment_by_worker,
            [
                enrollment.worker_id,
                enrollment.created_at,
                enrollment.id,
                enrollment.course_level_id,
                enrollment.status.value,
                enrollment.start_date,
                enrollment.deadline_date,
                enrollment.completion_date,
                failure_reason,
                enrollment.updated_at,
            ],
        )

        previous = enrollment.persisted_status
        if previous is not None and previous != enrollment.status:
            self._add(
                repo._delete_enrollment_by_status,
                [previous.value, enrollment.deadline_date, enrollment.id],
            )
        if previous != enrollment.status:
            self._add(
                repo._insert_enrollment_by_status,
                [
                    enrollment.status.value,
                    enrollment.deadline_date,
                    enrollment.id,
                    enrollment.worker_id,
                    enrollment.course_level_id,
                ],
            )
        self._enrollments.append(enrollment)

    def save_progress(self, record: ProgressRecord) -> None:
        """Stage a ledger row upsert."""
        self._add(
            self._repo._upsert_progress,
            [
                record.enrollment_id,
                record.sequence_order,
                record.content_item_id,
                record.worker_id,
                record.status.value,
                record.attempts_used,
                record.last_score,
                record.watch_percentage,
                record.created_at,
                record.updated_at,
                record.last_accessed_at,
                record.completed_at,
            ],
        )

    def save_certificate(self, certificate: Certificate) -> None:
        """Stage a certificate insert into all three certificate tables."""
        repo = self._repo
        self._add(
            repo._insert_certificate,
            [
                certificate.enrollment_id,
                certificate.id,
                certificate.worker_id,
                certificate.course_level_id,
                certificate.certificate_code,
                certificate.issue_date,
                certificate.pdf_url,
            ],
        )
        self._add(
            repo._insert_certificate_by_worker,
            [
                certificate.worker_id,
                certificate.issue_date,
                certificate.enrollment_id,
                certificate.id,
                certificate.course_level_id,
                certificate.certificate_code,
                certificate.pdf_url,
            ],
        )
        self._add(
            repo._insert_certificate_by_code,
            [
                certificate.certificate_code,
                certificate.id,
                certificate.enrollment_id,
                certificate.worker_id,
                certificate.course_level_id,
                certificate.issue_date,
                certificate.pdf_url,
            ],
        )

    async def commit(self) -> None:
        """Write every staged statement in one LOGGED batch."""
        if self.committed:
            raise RuntimeError("Unit of work already committed")
        if not self._statements:
            self.committed = True
            return

        batch = BatchStatement(batch_type=BatchType.LOGGED)
        for statement, params in self._statements:
            batch.add(statement, params)

        await self._repo.session.aexecute(batch)

        self.committed = True
        for enrollment in self._enrollments:
            enrollment.persisted_status = enrollment.status
        logger.debug("unit_of_work_committed", statements=len(self._statements))


class ProgressRepository:
    """Reads and batched writes of the progression tables."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        ks = self.keyspace

        # Enrollments
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {ks}.level_enrollments WHERE id = ?
        """)

        self._upsert_enrollment = self.session.prepare(f"""
            INSERT INTO {ks}.level_enrollments
            (id, worker_id, course_level_id, status, start_date, deadline_date,
             completion_date, failure_reason, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_worker_enrollments = self.session.prepare(f"""
            SELECT * FROM {ks}.enrollments_by_worker WHERE worker_id = ?
        """)

        self._upsert_enrollment_by_worker = self.session.prepare(f"""
            INSERT INTO {ks}.enrollments_by_worker
            (worker_id, created_at, id, course_level_id, status, start_date,
             deadline_date, completion_date, failure_reason, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_enrollments_due = self.session.prepare(f"""
            SELECT id FROM {ks}.enrollments_by_status
            WHERE status = ? AND deadline_date < ?
        """)

        self._insert_enrollment_by_status = self.session.prepare(f"""
            INSERT INTO {ks}.enrollments_by_status
            (status, deadline_date, id, worker_id, course_level_id)
            VALUES (?, ?, ?, ?, ?)
        """)

        self._delete_enrollment_by_status = self.session.prepare(f"""
            DELETE FROM {ks}.enrollments_by_status
            WHERE status = ? AND deadline_date = ? AND id = ?
        """)

        # Progress ledger
        self._get_progress = self.session.prepare(f"""
            SELECT * FROM {ks}.content_progress WHERE enrollment_id = ?
        """)

        self._upsert_progress = self.session.prepare(f"""
            INSERT INTO {ks}.content_progress
            (enrollment_id, sequence_order, content_item_id, worker_id, status,
             attempts_used, last_score, watch_percentage, created_at,
             updated_at, last_accessed_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        # Certificates
        self._get_certificate = self.session.prepare(f"""
            SELECT * FROM {ks}.certificates WHERE enrollment_id = ?
        """)

        self._get_certificate_by_code = self.session.prepare(f"""
            SELECT * FROM {ks}.certificates_by_code WHERE certificate_code = ?
        """)

        self._get_worker_certificates = self.session.prepare(f"""
            SELECT * FROM {ks}.certificates_by_worker WHERE worker_id = ?
        """)

        self._insert_certificate = self.session.prepare(f"""
            INSERT INTO {ks}.certificates
            (enrollment_id, id, worker_id, course_level_id, certificate_code,
             issue_date, pdf_url)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

        self._insert_certificate_by_worker = self.session.prepare(f"""
            INSERT INTO {ks}.certificates_by_worker
            (worker_id, issue_date, enrollment_id, id, course_level_id,
             certificate_code, pdf_url)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

        self._insert_certificate_by_code = self.session.prepare(f"""
            INSERT INTO {ks}.certificates_by_code
            (certificate_code, id, enrollment_id, worker_id, course_level_id,
             issue_date, pdf_url)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

    def unit_of_work(self) -> UnitOfWork:
        """Start collecting the writes of one operation."""
        return UnitOfWork(self)

    # ==========================================================================
    # Enrollments
    # ==========================================================================

    async def get_enrollment(self, enrollment_id: UUID) -> Enrollment | None:
        """Get enrollment by ID."""
        result = await self.session.aexecute(self._get_enrollment, [enrollment_id])
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def list_worker_enrollments(self, worker_id: UUID) -> list[Enrollment]:
        """Get all enrollments of a worker, newest first."""
        rows = await self.session.aexecute(self._get_worker_enrollments, [worker_id])
        return [Enrollment.from_row(row) for row in rows]

    async def find_worker_level_enrollments(
        self, worker_id: UUID, course_level_id: UUID
    ) -> list[Enrollment]:
        """Get the enrollments of a worker in one course level."""
        return [
            e
            for e in await self.list_worker_enrollments(worker_id)
            if e.course_level_id == course_level_id
        ]

    async def list_overdue_enrollments(self, now: datetime) -> list[Enrollment]:
        """Get ACTIVE enrollments whose deadline is before ``now``."""
        rows = await self.session.aexecute(
            self._get_enrollments_due, [EnrollmentStatus.ACTIVE.value, now]
        )
        overdue = []
        for row in rows:
            enrollment = await self.get_enrollment(row.id)
            # Lookup rows can lag behind a status change in flight
            if enrollment and enrollment.is_overdue(now):
                overdue.append(enrollment)
        return overdue

    # ==========================================================================
    # Progress ledger
    # ==========================================================================

    async def get_progress_records(self, enrollment_id: UUID) -> list[ProgressRecord]:
        """Get every ledger row of an enrollment in content order."""
        rows = await self.session.aexecute(self._get_progress, [enrollment_id])
        records = [ProgressRecord.from_row(row) for row in rows]
        records.sort(key=lambda r: (r.sequence_order, str(r.content_item_id)))
        return records

    # ==========================================================================
    # Certificates
    # ==========================================================================

    async def get_certificate(self, enrollment_id: UUID) -> Certificate | None:
        """Get the certificate of an enrollment."""
        result = await self.session.aexecute(self._get_certificate, [enrollment_id])
        row = result.one()
        return Certificate.from_row(row) if row else None

    async def get_certificate_by_code(self, code: str) -> Certificate | None:
        """Get a certificate by its public code."""
        result = await self.session.aexecute(self._get_certificate_by_code, [code])
        row = result.one()
        return Certificate.from_row(row) if row else None

    async def list_worker_certificates(self, worker_id: UUID) -> list[Certificate]:
        """Get all certificates of a worker, newest first."""
        rows = await self.session.aexecute(self._get_worker_certificates, [worker_id])
        return [Certificate.from_row(row) for row in rows]
