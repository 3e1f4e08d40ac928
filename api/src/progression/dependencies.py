"""FastAPI dependencies for the progression engine.

Provides dependency injection for:
- The progression services bundle (engine, lifecycle, certificate issuer)
- Error handlers
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status

from src.config.settings import Settings
from src.courses.models import GradingDefaults
from src.courses.service import ContentGraph
from src.progress.models import Clock, utcnow
from src.progress.repository import ProgressRepository

from .certificates import CertificateIssuer
from .engine import ProgressionEngine
from .errors import ProgressionError
from .lifecycle import EnrollmentLifecycle
from .locks import EnrollmentLocks


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from redis.asyncio import Redis


@dataclass
class ProgressionServices:
    """Wired progression components sharing one repository and lock registry."""

    content: ContentGraph
    repository: ProgressRepository
    locks: EnrollmentLocks
    issuer: CertificateIssuer
    lifecycle: EnrollmentLifecycle
    engine: ProgressionEngine


def create_progression_services(
    session: "Session",
    settings: Settings,
    redis: "Redis | None" = None,
    clock: Clock = utcnow,
) -> ProgressionServices:
    """Build the progression components on a Cassandra session."""
    content = ContentGraph(
        session,
        settings.cassandra_keyspace,
        defaults=GradingDefaults.from_settings(settings),
        cache_ttl_seconds=settings.content_cache_ttl_seconds,
    )
    repository = ProgressRepository(session, settings.cassandra_keyspace)
    locks = EnrollmentLocks(
        redis=redis,
        timeout_seconds=settings.progression_lock_timeout_seconds,
        blocking_timeout_seconds=settings.progression_lock_blocking_timeout_seconds,
    )
    issuer = CertificateIssuer(repository, locks, clock=clock)
    lifecycle = EnrollmentLifecycle(repository, content, issuer, locks, clock=clock)
    engine = ProgressionEngine(repository, content, lifecycle, locks, clock=clock)
    return ProgressionServices(
        content=content,
        repository=repository,
        locks=locks,
        issuer=issuer,
        lifecycle=lifecycle,
        engine=engine,
    )


async def get_progression_services(request: Request) -> ProgressionServices:
    """Get progression services from app state."""
    app_state = request.app.state
    services = getattr(app_state, "progression", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progression service not available",
        )
    return services


async def get_engine(
    services: Annotated[ProgressionServices, Depends(get_progression_services)],
) -> ProgressionEngine:
    return services.engine


async def get_lifecycle(
    services: Annotated[ProgressionServices, Depends(get_progression_services)],
) -> EnrollmentLifecycle:
    return services.lifecycle


async def get_issuer(
    services: Annotated[ProgressionServices, Depends(get_progression_services)],
) -> CertificateIssuer:
    return services.issuer


# Type aliases for dependency injection
EngineDep = Annotated[ProgressionEngine, Depends(get_engine)]
LifecycleDep = Annotated[EnrollmentLifecycle, Depends(get_lifecycle)]
IssuerDep = Annotated[CertificateIssuer, Depends(get_issuer)]


ERROR_STATUS_MAP: dict[str, int] = {
    "enrollment_not_found": status.HTTP_404_NOT_FOUND,
    "content_not_found": status.HTTP_404_NOT_FOUND,
    "course_level_not_found": status.HTTP_404_NOT_FOUND,
    "certificate_not_found": status.HTTP_404_NOT_FOUND,
    "enrollment_not_active": status.HTTP_409_CONFLICT,
    "enrollment_expired": status.HTTP_403_FORBIDDEN,
    "enrollment_not_completed": status.HTTP_409_CONFLICT,
    "already_enrolled": status.HTTP_409_CONFLICT,
    "item_locked": status.HTTP_423_LOCKED,
    "already_completed": status.HTTP_409_CONFLICT,
    "missing_answer": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "invalid_submission": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "enrollment_busy": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def handle_progression_error(error: ProgressionError) -> HTTPException:
    """Convert progression errors to HTTP exceptions.

    The error code travels in the ``X-Error-Code`` header; retryable errors
    also carry ``Retry-After``.
    """
    status_code = ERROR_STATUS_MAP.get(
        error.code, status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    headers = {"X-Error-Code": error.code}
    if error.retryable:
        headers["Retry-After"] = "1"

    return HTTPException(
        status_code=status_code,
        detail=error.message,
        headers=headers,
    )
