"""Progression API endpoints.

Provides routes for:
- Workers: their enrollments, content tree, progress submissions, certificates
- Admins: enrollment creation (payment approval), expiry, certificate issuance
- Public: certificate verification by code
"""

from uuid import UUID

from fastapi import APIRouter, status

from src.auth.dependencies import AdminUser, CurrentUser
from src.auth.permissions import sees_only_own_enrollments

from .dependencies import (
    EngineDep,
    IssuerDep,
    LifecycleDep,
    handle_progression_error,
)
from .errors import ProgressionError
from .schemas import (
    CertificateListResponse,
    CertificateResponse,
    ContentTreeResponse,
    CreateEnrollmentRequest,
    EnrollmentListResponse,
    EnrollmentResponse,
    ProgressResultResponse,
    SubmitProgressRequest,
)


worker_router = APIRouter(prefix="/v1/worker", tags=["worker"])
enrollments_router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])
certificates_router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


# ==============================================================================
# Worker Endpoints
# ==============================================================================


@worker_router.get(
    "/enrollments",
    response_model=EnrollmentListResponse,
    summary="List my enrollments",
)
async def list_my_enrollments(
    lifecycle: LifecycleDep,
    user: CurrentUser,
) -> EnrollmentListResponse:
    """Get the authenticated worker's enrollments, newest first."""
    try:
        enrollments = await lifecycle.list_worker_enrollments(user.id)
    except ProgressionError as e:
        raise handle_progression_error(e) from e
    return EnrollmentListResponse(
        items=[EnrollmentResponse.from_entity(e) for e in enrollments],
        total=len(enrollments),
    )


@worker_router.get(
    "/enrollments/{enrollment_id}",
    response_model=ContentTreeResponse,
    summary="Get enrollment content tree",
)
async def get_enrollment_content(
    enrollment_id: UUID,
    engine: EngineDep,
    user: CurrentUser,
) -> ContentTreeResponse:
    """Get the content sequence of an enrollment with per-item progress.

    Workers only see their own enrollments; supervisors and admins see any.
    """
    owner = user.id if sees_only_own_enrollments(user.role) else None
    try:
        tree = await engine.get_content_tree(enrollment_id, worker_id=owner)
    except ProgressionError as e:
        raise handle_progression_error(e) from e
    return ContentTreeResponse.from_tree(tree)


@worker_router.post(
    "/progress",
    response_model=ProgressResultResponse,
    summary="Submit progress",
)
async def submit_progress(
    data: SubmitProgressRequest,
    engine: EngineDep,
    user: CurrentUser,
) -> ProgressResultResponse:
    """Submit a watch percentage or quiz answers for a content item.

    Only the enrolled worker submits, whatever their role: supervisors and
    admins can read any content tree but get 404 here for enrollments that
    are not theirs. A failing score is not an error: the response reports
    ``passed=false`` with the attempts left.
    """
    try:
        result = await engine.submit_progress(
            enrollment_id=data.enrollment_id,
            content_item_id=data.content_item_id,
            submission=data.to_submission(),
            worker_id=user.id,
        )
    except ProgressionError as e:
        raise handle_progression_error(e) from e
    return ProgressResultResponse.from_result(result)


@worker_router.get(
    "/certificates",
    response_model=CertificateListResponse,
    summary="List my certificates",
)
async def list_my_certificates(
    issuer: IssuerDep,
    user: CurrentUser,
) -> CertificateListResponse:
    """Get the authenticated worker's certificates, newest first."""
    certificates = await issuer.list_for_worker(user.id)
    return CertificateListResponse(
        items=[CertificateResponse.from_entity(c) for c in certificates],
        total=len(certificates),
    )


# ==============================================================================
# Admin Endpoints
# ==============================================================================


@enrollments_router.post(
    "",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create enrollment",
)
async def create_enrollment(
    data: CreateEnrollmentRequest,
    lifecycle: LifecycleDep,
    _admin: AdminUser,
) -> EnrollmentResponse:
    """Create an enrollment for an approved purchase.

    The first content item starts unlocked, all others locked.
    """
    try:
        enrollment = await lifecycle.create_enrollment(
            worker_id=data.worker_id,
            course_level_id=data.course_level_id,
        )
    except ProgressionError as e:
        raise handle_progression_error(e) from e
    return EnrollmentResponse.from_entity(enrollment)


@enrollments_router.post(
    "/{enrollment_id}/expire",
    response_model=EnrollmentResponse,
    summary="Expire enrollment",
)
async def expire_enrollment(
    enrollment_id: UUID,
    lifecycle: LifecycleDep,
    _admin: AdminUser,
) -> EnrollmentResponse:
    """Expire an enrollment. Terminal enrollments are returned unchanged."""
    try:
        enrollment = await lifecycle.expire(enrollment_id)
    except ProgressionError as e:
        raise handle_progression_error(e) from e
    return EnrollmentResponse.from_entity(enrollment)


@enrollments_router.get(
    "/{enrollment_id}/certificate",
    response_model=CertificateResponse,
    summary="Get enrollment certificate",
)
async def get_enrollment_certificate(
    enrollment_id: UUID,
    issuer: IssuerDep,
    _admin: AdminUser,
) -> CertificateResponse:
    """Get the certificate of an enrollment."""
    try:
        certificate = await issuer.get_for_enrollment(enrollment_id)
    except ProgressionError as e:
        raise handle_progression_error(e) from e
    return CertificateResponse.from_entity(certificate)


@enrollments_router.post(
    "/{enrollment_id}/certificate",
    response_model=CertificateResponse,
    summary="Issue enrollment certificate",
)
async def issue_enrollment_certificate(
    enrollment_id: UUID,
    issuer: IssuerDep,
    _admin: AdminUser,
) -> CertificateResponse:
    """Issue the certificate of a completed enrollment (idempotent)."""
    try:
        certificate = await issuer.issue(enrollment_id)
    except ProgressionError as e:
        raise handle_progression_error(e) from e
    return CertificateResponse.from_entity(certificate)


# ==============================================================================
# Public Endpoints
# ==============================================================================


@certificates_router.get(
    "/{certificate_code}",
    response_model=CertificateResponse,
    summary="Verify certificate",
)
async def verify_certificate(
    certificate_code: str,
    issuer: IssuerDep,
) -> CertificateResponse:
    """Look up a certificate by its public code."""
    try:
        certificate = await issuer.get_by_code(certificate_code)
    except ProgressionError as e:
        raise handle_progression_error(e) from e
    return CertificateResponse.from_entity(certificate)
