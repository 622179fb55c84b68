from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from booking_backend.core.errors import (
    BookingError,
    InvalidStateTransition,
    InvalidValidationCode,
    NotFound,
    PersistenceFailure,
    ScheduleViolation,
    SlotConflict,
    ValidationAttemptsExceeded,
)
from booking_backend.database import ensure_appointment_schema, ensure_balance_schema

DATABASE_UNAVAILABLE = 'Database unavailable. Verify DATABASE_URL and database credentials.'

_STATUS_BY_ERROR = (
    (ValidationAttemptsExceeded, status.HTTP_423_LOCKED),
    (InvalidValidationCode, status.HTTP_400_BAD_REQUEST),
    (SlotConflict, status.HTTP_409_CONFLICT),
    (InvalidStateTransition, status.HTTP_409_CONFLICT),
    (ScheduleViolation, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (PersistenceFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_exception(exc: BookingError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            detail = DATABASE_UNAVAILABLE if error_type is PersistenceFailure else str(exc)
            return HTTPException(status_code=status_code, detail=detail)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
        ensure_balance_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc
