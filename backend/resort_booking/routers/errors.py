import logging

from fastapi import HTTPException, status
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from ..domain.errors import (
    BookingError,
    CapacityExceededError,
    ClosedError,
    NotFoundError,
    RateLimitedError,
    SlotConflictError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Database and rate-limit store failures, reported as a structured 500.
BACKEND_ERRORS: tuple[type[Exception], ...] = (SQLAlchemyError, RedisError)

_STATUS_BY_ERROR: tuple[tuple[type[BookingError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (CapacityExceededError, status.HTTP_409_CONFLICT),
    (SlotConflictError, status.HTTP_409_CONFLICT),
    (ClosedError, status.HTTP_409_CONFLICT),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
)


def booking_http_error(exc: BookingError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=status_code, detail={"kind": exc.kind, "message": exc.message})


def internal_http_error(exc: Exception, *, context: str) -> HTTPException:
    logger.exception("%s failed: %s", context, exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"kind": "internal_error", "message": "internal error"},
    )
