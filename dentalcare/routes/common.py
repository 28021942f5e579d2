import logging
from contextlib import contextmanager

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dentalcare.scheduling.errors import (
    AuthError,
    BookingError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TransientError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE = 'Database unavailable. Please try again.'

ERROR_STATUS_CODES = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    AuthError: status.HTTP_401_UNAUTHORIZED,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    TransientError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_code_for(error: BookingError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


@contextmanager
def translate_errors(db: Session | None = None):
    """Turn booking failures and database errors raised inside the block into HTTP errors."""
    try:
        yield
    except BookingError as exc:
        raise HTTPException(status_code=status_code_for(exc), detail=exc.message) from exc
    except SQLAlchemyError as exc:
        logger.exception('Database operation failed')
        if db is not None:
            db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc
