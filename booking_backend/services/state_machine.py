"""Appointment lifecycle rules.

    processing_payment -> pending -> confirmed -> executing -> completed
                                          \\-----------------/
Cancellation is reachable from processing_payment, pending and confirmed;
no_show only from confirmed. Completion requires the client's validation code.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from booking_backend.core import config
from booking_backend.core.errors import (
    InvalidStateTransition,
    InvalidValidationCode,
    ValidationAttemptsExceeded,
)
from booking_backend.models.appointment import AppointmentStatus, TERMINAL_STATUSES
from booking_backend.services.validation_codes import codes_match

logger = logging.getLogger(__name__)


class BookingEvent(str, enum.Enum):
    PAYMENT_CAPTURED = 'payment_captured'
    CONFIRM = 'confirm'
    START = 'start'
    COMPLETE = 'complete'
    CANCEL = 'cancel'
    NO_SHOW = 'no_show'


TRANSITIONS: dict[tuple[AppointmentStatus, BookingEvent], AppointmentStatus] = {
    (AppointmentStatus.PROCESSING_PAYMENT, BookingEvent.PAYMENT_CAPTURED): AppointmentStatus.PENDING,
    (AppointmentStatus.PROCESSING_PAYMENT, BookingEvent.CANCEL): AppointmentStatus.CANCELED,
    (AppointmentStatus.PENDING, BookingEvent.CONFIRM): AppointmentStatus.CONFIRMED,
    (AppointmentStatus.PENDING, BookingEvent.CANCEL): AppointmentStatus.CANCELED,
    (AppointmentStatus.CONFIRMED, BookingEvent.START): AppointmentStatus.EXECUTING,
    (AppointmentStatus.CONFIRMED, BookingEvent.COMPLETE): AppointmentStatus.COMPLETED,
    (AppointmentStatus.CONFIRMED, BookingEvent.CANCEL): AppointmentStatus.CANCELED,
    (AppointmentStatus.CONFIRMED, BookingEvent.NO_SHOW): AppointmentStatus.NO_SHOW,
    (AppointmentStatus.EXECUTING, BookingEvent.COMPLETE): AppointmentStatus.COMPLETED,
}


def is_terminal(status: AppointmentStatus) -> bool:
    return AppointmentStatus(status) in TERMINAL_STATUSES


def next_status(current: AppointmentStatus, event: BookingEvent) -> AppointmentStatus:
    current = AppointmentStatus(current)
    event = BookingEvent(event)
    if current in TERMINAL_STATUSES:
        raise InvalidStateTransition(current, event)
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidStateTransition(current, event) from None


def allowed_events(current: AppointmentStatus) -> list[BookingEvent]:
    current = AppointmentStatus(current)
    return [event for (status, event) in TRANSITIONS if status == current]


def check_validation_code(appointment, provided_code: str | None, max_attempts: int | None = None) -> None:
    """Verify the completion code, counting failed attempts on the appointment."""
    if max_attempts is None:
        max_attempts = config.VALIDATION_MAX_ATTEMPTS
    attempts = appointment.validation_attempts or 0

    if attempts >= max_attempts:
        raise ValidationAttemptsExceeded(
            'Too many incorrect validation attempts. This appointment is locked for validation.'
        )

    if not codes_match(provided_code, appointment.validation_code):
        attempts += 1
        appointment.validation_attempts = attempts
        logger.info(
            'Validation code mismatch for appointment %s (%s/%s attempts)',
            appointment.id, attempts, max_attempts,
        )
        if attempts >= max_attempts:
            raise ValidationAttemptsExceeded(
                'Incorrect validation code. Maximum attempts reached; appointment locked for validation.'
            )
        raise InvalidValidationCode(
            f'Incorrect validation code. Remaining attempts: {max_attempts - attempts}.'
        )


@dataclass(frozen=True)
class ValidationStatus:
    appointment_id: int
    status: AppointmentStatus
    has_validation_code: bool
    attempts: int
    max_attempts: int
    remaining_attempts: int
    is_blocked: bool
    can_complete: bool


def validation_status(appointment, max_attempts: int | None = None) -> ValidationStatus:
    """Attempt counters of the completion code, as shown to the provider."""
    if max_attempts is None:
        max_attempts = config.VALIDATION_MAX_ATTEMPTS
    attempts = appointment.validation_attempts or 0
    status = AppointmentStatus(appointment.status)
    is_blocked = attempts >= max_attempts
    return ValidationStatus(
        appointment_id=appointment.id,
        status=status,
        has_validation_code=bool(appointment.validation_code),
        attempts=attempts,
        max_attempts=max_attempts,
        remaining_attempts=max(0, max_attempts - attempts),
        is_blocked=is_blocked,
        can_complete=not is_blocked and BookingEvent.COMPLETE in allowed_events(status),
    )


def apply_event(
    appointment,
    event: BookingEvent,
    validation_code: str | None = None,
    now: datetime | None = None,
) -> AppointmentStatus:
    """Move ``appointment`` to the status reached by ``event``.

    Raises ``InvalidStateTransition`` for disallowed events and
    ``InvalidValidationCode`` when a completion code does not match; in both
    cases the status is left untouched.
    """
    previous = AppointmentStatus(appointment.status)
    target = next_status(previous, event)

    if target == AppointmentStatus.COMPLETED:
        check_validation_code(appointment, validation_code)
        appointment.completed_at = now or datetime.now(timezone.utc)

    appointment.status = target
    logger.info('Appointment %s moved from %s to %s', appointment.id, previous.value, target.value)
    return target
