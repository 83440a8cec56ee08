"""Domain error → HTTP response mapping.

Routers never catch ProgressError; this handler turns each class into a
status code and a ``{"detail", "code"}`` body.
"""

from __future__ import annotations

import logging
from typing import cast

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from progress_engine.services.errors import (
    AlreadyEnrolled,
    AlreadyGranted,
    InactiveCohort,
    LearnerNotActive,
    NotEnrolled,
    NotFound,
    ProgressError,
    StorageConflict,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order; the first matching class wins.
_STATUS_BY_ERROR: list[tuple[type[ProgressError], int]] = [
    (NotFound, status.HTTP_404_NOT_FOUND),
    (NotEnrolled, status.HTTP_403_FORBIDDEN),
    (AlreadyEnrolled, status.HTTP_409_CONFLICT),
    (AlreadyGranted, status.HTTP_409_CONFLICT),
    (StorageConflict, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InactiveCohort, status.HTTP_400_BAD_REQUEST),
    (LearnerNotActive, status.HTTP_400_BAD_REQUEST),
]


def status_for(exc: ProgressError) -> int:
    for error_cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return code
    return status.HTTP_400_BAD_REQUEST


async def progress_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Registered for ProgressError only.
    error = cast(ProgressError, exc)
    status_code = status_for(error)
    logger.warning(
        "Request rejected: %s %s -> %d %s",
        request.method,
        request.url.path,
        status_code,
        error.code,
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": error.message, "code": error.code},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProgressError, progress_error_handler)
