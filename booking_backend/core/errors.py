"""Errors raised by the scheduling and settlement core."""


class BookingError(Exception):
    """Base exception for booking operations."""


class SlotConflict(BookingError):
    """Raised when a requested window overlaps a non-canceled appointment."""


class ScheduleViolation(BookingError):
    """Raised when a requested window falls outside working hours or is blocked."""


class InvalidStateTransition(BookingError):
    """Raised when an appointment cannot move from its current status."""

    def __init__(self, current, event):
        self.current = current
        self.event = event
        super().__init__(f"Cannot {getattr(event, 'value', event)} an appointment that is {getattr(current, 'value', current)}.")


class InvalidValidationCode(BookingError):
    """Raised when completion is attempted with a wrong or missing code."""


class ValidationAttemptsExceeded(InvalidValidationCode):
    """Raised once an appointment has used up its validation attempts."""


class NotFound(BookingError):
    pass


class AppointmentNotFound(NotFound):
    pass


class ServiceNotFound(NotFound):
    pass


class ScheduleNotFound(NotFound):
    pass


class PersistenceFailure(BookingError):
    """Wraps a storage error after the session has been rolled back."""
