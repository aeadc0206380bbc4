from __future__ import annotations

import logging
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from attempt_service.db.engine import get_async_session
from attempt_service.models.principal import Principal
from attempt_service.repos.assessment_repo import (
    AssessmentCatalog,
    InMemoryAssessmentCatalog,
)
from attempt_service.repos.attempt_repo import AttemptRepo, InMemoryAttemptRepo
from attempt_service.repos.pg_assessment_repo import PgAssessmentCatalog
from attempt_service.repos.pg_attempt_repo import PgAttemptRepo
from attempt_service.services import token_service
from attempt_service.services.attempts_service import AttemptsService
from attempt_service.services.events import EventPublisher
from attempt_service.services.grading_service import GradingService
from attempt_service.services.task_queue import task_queue

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# --- Module-level singletons used when DATABASE_URL is not configured ---
attempt_repo = InMemoryAttemptRepo()
assessment_catalog = InMemoryAssessmentCatalog()
event_publisher = EventPublisher(task_queue)


def require_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal.

    Used as a FastAPI dependency on every attempt endpoint.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        claims = token_service.decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    principal = Principal(
        user_id=claims["sub"],
        roles=frozenset(claims.get("roles", [])),
    )
    logger.debug(
        "Token validated for user=%s roles=%s",
        principal.user_id,
        principal.roles,
    )
    return principal


def require_any_role(roles: set[str] | frozenset[str]):
    """Dependency factory: demand at least one of the given roles.

    Usage: Depends(require_any_role({"admin", "instructor"}))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s has none of roles=%s",
                principal.user_id,
                roles,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


# ---------------------------------------------------------------------------
# Store and service providers
# ---------------------------------------------------------------------------
# With a database, every request gets Postgres-backed stores bound to its
# own session (one request = one transaction). Without one, every request
# shares the in-memory singletons above.


def get_attempt_repo(
    session: Annotated[AsyncSession | None, Depends(get_async_session)],
) -> AttemptRepo:
    if session is None:
        return attempt_repo
    return PgAttemptRepo(session)


def get_assessment_catalog(
    session: Annotated[AsyncSession | None, Depends(get_async_session)],
) -> AssessmentCatalog:
    if session is None:
        return assessment_catalog
    return PgAssessmentCatalog(session)


def get_event_publisher(
    session: Annotated[AsyncSession | None, Depends(get_async_session)],
) -> EventPublisher:
    if session is None:
        return event_publisher
    return EventPublisher(task_queue, session)


def get_attempts_service(
    catalog: Annotated[AssessmentCatalog, Depends(get_assessment_catalog)],
    repo: Annotated[AttemptRepo, Depends(get_attempt_repo)],
    events: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> AttemptsService:
    return AttemptsService(catalog, repo, events)


def get_grading_service(
    catalog: Annotated[AssessmentCatalog, Depends(get_assessment_catalog)],
    repo: Annotated[AttemptRepo, Depends(get_attempt_repo)],
    events: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> GradingService:
    return GradingService(catalog, repo, events)
