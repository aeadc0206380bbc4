"""Translate engine errors into HTTP responses.

Routers catch AttemptError and raise the HTTPException built here, so the
response body always carries the error's stable ``kind`` plus its extra
fields (reason, existing_attempt_id, marks_awarded, ...):

  {"detail": {"kind": "not-mutable", "message": "...", "reason": "after-window"}}
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from attempt_service.core.errors import (
    AccessDeniedError,
    AttemptError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_CLASS: tuple[tuple[type[AttemptError], int], ...] = (
    (AccessDeniedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def status_for(exc: AttemptError) -> int:
    for cls, code in _STATUS_BY_CLASS:
        if isinstance(exc, cls):
            return code
    return status.HTTP_400_BAD_REQUEST


def http_error(exc: AttemptError, *, operation: str, user_id: str) -> HTTPException:
    code = status_for(exc)
    logger.warning(
        "%s rejected: user=%s kind=%s status=%d %s",
        operation,
        user_id,
        exc.kind,
        code,
        exc.message,
    )
    return HTTPException(status_code=code, detail=exc.to_detail())
