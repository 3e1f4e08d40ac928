"""Certificate issuer.

At most one certificate exists per enrollment. Issuing is lookup-or-create
under the enrollment lock, so repeated or concurrent calls return the same
certificate.
"""

from uuid import UUID, uuid4

import structlog

from src.core.context import bind_enrollment
from src.progress.models import (
    Certificate,
    Clock,
    Enrollment,
    EnrollmentStatus,
    utcnow,
)
from src.progress.repository import ProgressRepository, UnitOfWork

from .errors import (
    CertificateNotFoundError,
    EnrollmentNotCompletedError,
    EnrollmentNotFoundError,
)
from .locks import EnrollmentLocks


logger = structlog.get_logger(__name__)

CODE_PREFIX = "CERT"
_MAX_CODE_ATTEMPTS = 5


class CertificateIssuer:
    """Mints and looks up certificates of completed enrollments."""

    def __init__(
        self,
        repository: ProgressRepository,
        locks: EnrollmentLocks,
        clock: Clock = utcnow,
    ):
        self.repository = repository
        self.locks = locks
        self.clock = clock

    def generate_code(self) -> str:
        """Opaque code: CERT-<epoch ms>-<4 hex>, upper-cased."""
        epoch_ms = int(self.clock().timestamp() * 1000)
        return f"{CODE_PREFIX}-{epoch_ms}-{uuid4().hex[:4]}".upper()

    async def _unique_code(self) -> str:
        for _ in range(_MAX_CODE_ATTEMPTS):
            code = self.generate_code()
            if await self.repository.get_certificate_by_code(code) is None:
                return code
            logger.warning("certificate_code_collision", certificate_code=code)
        raise RuntimeError("Could not generate a unique certificate code")

    async def stage_issue(
        self, enrollment: Enrollment, uow: UnitOfWork
    ) -> tuple[Certificate, bool]:
        """Stage a certificate for ``enrollment`` unless one exists.

        Caller holds the enrollment lock and commits ``uow``.

        Returns:
            The certificate and whether it was newly created
        """
        existing = await self.repository.get_certificate(enrollment.id)
        if existing:
            return existing, False

        certificate = Certificate(
            enrollment_id=enrollment.id,
            worker_id=enrollment.worker_id,
            course_level_id=enrollment.course_level_id,
            certificate_code=await self._unique_code(),
            issue_date=self.clock(),
        )
        uow.save_certificate(certificate)
        return certificate, True

    async def issue(self, enrollment_id: UUID) -> Certificate:
        """Issue the certificate of a completed enrollment (idempotent).

        Raises:
            EnrollmentNotFoundError: Unknown enrollment
            EnrollmentNotCompletedError: Enrollment is not COMPLETED
        """
        with bind_enrollment(enrollment_id):
            async with self.locks.hold(enrollment_id):
                enrollment = await self.repository.get_enrollment(enrollment_id)
                if enrollment is None:
                    raise EnrollmentNotFoundError
                if enrollment.status != EnrollmentStatus.COMPLETED:
                    raise EnrollmentNotCompletedError

                uow = self.repository.unit_of_work()
                certificate, created = await self.stage_issue(enrollment, uow)
                await uow.commit()

        if created:
            log_issued(certificate)
        return certificate

    async def get_for_enrollment(self, enrollment_id: UUID) -> Certificate:
        """Get the certificate of an enrollment."""
        certificate = await self.repository.get_certificate(enrollment_id)
        if certificate is None:
            raise CertificateNotFoundError
        return certificate

    async def get_by_code(self, code: str) -> Certificate:
        """Verify a certificate by its public code."""
        certificate = await self.repository.get_certificate_by_code(code.upper())
        if certificate is None:
            raise CertificateNotFoundError
        return certificate

    async def list_for_worker(self, worker_id: UUID) -> list[Certificate]:
        """Get every certificate of a worker, newest first."""
        return await self.repository.list_worker_certificates(worker_id)


def log_issued(certificate: Certificate) -> None:
    logger.info(
        "certificate_issued",
        enrollment_id=str(certificate.enrollment_id),
        worker_id=str(certificate.worker_id),
        certificate_code=certificate.certificate_code,
    )
