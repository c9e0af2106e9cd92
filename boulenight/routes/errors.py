"""
Translation of service-layer exceptions into HTTP errors.
"""

from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException

from boulenight.services.errors import (
    AttendanceConflictError,
    AttendanceError,
    DrawValidationError,
    NotFoundError,
    ResultConflictError,
    ResultValidationError,
    RoundConflictError,
)

# Checked in order: conflict subclasses before their validation bases
_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (RoundConflictError, 409),
    (ResultConflictError, 409),
    (AttendanceConflictError, 409),
    (DrawValidationError, 400),
    (ResultValidationError, 400),
    (AttendanceError, 400),
)


@contextmanager
def service_errors() -> Iterator[None]:
    """Re-raise known service exceptions as HTTPException; anything else propagates."""
    try:
        yield
    except tuple(error for error, _ in _STATUS_BY_ERROR) as e:
        status_code = next(code for error, code in _STATUS_BY_ERROR if isinstance(e, error))
        raise HTTPException(status_code=status_code, detail=str(e))
