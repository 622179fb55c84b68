"""Appointment booking and lifecycle operations backed by the database."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from threading import Lock
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.core import config
from booking_backend.core.errors import (
    AppointmentNotFound,
    BookingError,
    InvalidStateTransition,
    InvalidValidationCode,
    PersistenceFailure,
    ScheduleNotFound,
    ScheduleViolation,
    SlotConflict,
)
from booking_backend.models.appointment import Appointment, AppointmentStatus, PaymentStatus
from booking_backend.models.schedule import ProviderSchedule
from booking_backend.scheduling import availability
from booking_backend.scheduling.availability import TimeSlot, evaluate_slot, filter_slots
from booking_backend.scheduling.slot_generator import generate_slot_starts
from booking_backend.scheduling.time_of_day import TimeOfDay, crosses_midnight
from booking_backend.services.balance_service import BalanceService
from booking_backend.services.payments import is_async_payment_method, map_processor_status
from booking_backend.services.schedule_service import ScheduleService
from booking_backend.services.state_machine import BookingEvent, ValidationStatus, apply_event, validation_status
from booking_backend.services.validation_codes import generate_validation_code

logger = logging.getLogger(__name__)

_REJECTION_MESSAGES = {
    availability.OUTSIDE_HOURS: 'Appointment is outside the provider working hours.',
    availability.BLOCKED: 'This time is blocked by the provider.',
}

# Serializes check-then-insert for one provider/day inside this process; the
# row lock on the provider schedule does the same across processes. Keys share
# a fixed set of stripes so the registry never grows.
BOOKING_LOCK_STRIPES = 64
_booking_locks: tuple[Lock, ...] = tuple(Lock() for _ in range(BOOKING_LOCK_STRIPES))


def _booking_lock(provider_id: int, day: date) -> Lock:
    return _booking_locks[hash((provider_id, day)) % BOOKING_LOCK_STRIPES]


class BookingService:
    def __init__(
        self,
        db: Session,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] | None = None,
        on_completed: Callable[[int], object] | None = None,
        auto_confirm_paid: bool | None = None,
    ):
        self.db = db
        self.today = today
        self.now = now or (lambda: datetime.now(timezone.utc))
        self.on_completed = on_completed or (lambda provider_id: BalanceService(db).recompute(provider_id))
        self.auto_confirm_paid = (
            config.AUTO_CONFIRM_PAID_BOOKINGS if auto_confirm_paid is None else auto_confirm_paid
        )
        self.schedules = ScheduleService(db)

    def list_slots(self, provider_id: int, day: date, service_id: int) -> list[TimeSlot]:
        service = self.schedules.get_provider_service(provider_id, service_id)
        template = self.schedules.get_template(provider_id, day)
        candidates = generate_slot_starts(template, day, service.duration_minutes)
        return filter_slots(
            candidates,
            service.duration_minutes,
            day,
            self._day_appointments(provider_id, day),
            template.blocked_on(day),
            template.end_time,
            template.id,
        )

    def create_appointment(
        self,
        client_id: int,
        provider_id: int,
        service_id: int,
        day: date,
        start_time,
        notes: str | None = None,
        payment_method: str | None = None,
    ) -> Appointment:
        """Book a slot, re-checking availability atomically before the insert."""
        if day < self.today():
            raise ScheduleViolation('Appointments must be scheduled for today or a future date.')

        service = self.schedules.get_provider_service(provider_id, service_id)
        start = TimeOfDay.coerce(start_time)
        initial_status = (
            AppointmentStatus.PROCESSING_PAYMENT
            if is_async_payment_method(payment_method)
            else AppointmentStatus.PENDING
        )

        with _booking_lock(provider_id, day):
            try:
                schedule = self.db.query(ProviderSchedule).filter(
                    ProviderSchedule.provider_id == provider_id,
                ).with_for_update().first()
                if schedule is None:
                    raise ScheduleNotFound(f'Provider {provider_id} has no schedule.')

                template = self.schedules.template_for(schedule, day)
                slot = self._revalidate(template, provider_id, day, start, service.duration_minutes)

                appointment = Appointment(
                    client_id=client_id,
                    provider_id=provider_id,
                    service_id=service_id,
                    date=day,
                    start_time=slot.start_time.to_time(),
                    end_time=slot.end_time.to_time(),
                    status=initial_status,
                    payment_method=payment_method,
                    payment_status=PaymentStatus.PENDING,
                    total_price=service.price,
                    validation_code=generate_validation_code(),
                    validation_attempts=0,
                    notes=notes,
                )
                self.db.add(appointment)
                self.db.commit()
            except BookingError:
                self.db.rollback()
                raise
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception('Appointment creation failed for provider %s on %s', provider_id, day)
                raise PersistenceFailure('Could not save the appointment.') from exc

        self.db.refresh(appointment)
        logger.info(
            'Appointment %s booked with provider %s on %s at %s (%s)',
            appointment.id, provider_id, day, start, appointment.status.value,
        )
        return appointment

    def _revalidate(self, template, provider_id: int, day: date, start: TimeOfDay, duration: int) -> TimeSlot:
        if not template.works_on(day):
            raise ScheduleViolation('The provider does not work on this day.')
        if crosses_midnight(start, duration):
            raise ScheduleViolation('Appointments cannot run past midnight.')

        slot = evaluate_slot(
            start,
            duration,
            day,
            self._day_appointments(provider_id, day),
            template.blocked_on(day),
            template.end_time,
            template.id,
        )
        if slot.rejection == availability.BOOKED:
            raise SlotConflict('This time is already booked.')
        if slot.rejection is not None:
            raise ScheduleViolation(_REJECTION_MESSAGES[slot.rejection])
        if start not in generate_slot_starts(template, day, duration):
            raise ScheduleViolation('Appointments must start at one of the provider slot times.')
        return slot

    def _day_appointments(self, provider_id: int, day: date) -> list[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.provider_id == provider_id,
            Appointment.date == day,
            Appointment.status != AppointmentStatus.CANCELED,
        ).order_by(Appointment.start_time.asc()).all()

    def get_appointment(self, appointment_id: int, lock: bool = False) -> Appointment:
        query = self.db.query(Appointment).filter(Appointment.id == appointment_id)
        if lock:
            query = query.with_for_update()
        appointment = query.first()
        if appointment is None:
            raise AppointmentNotFound('Appointment not found.')
        return appointment

    def validation_status(self, appointment_id: int) -> ValidationStatus:
        return validation_status(self.get_appointment(appointment_id))

    def confirm(self, appointment_id: int) -> Appointment:
        return self._transition(appointment_id, BookingEvent.CONFIRM)

    def start(self, appointment_id: int) -> Appointment:
        return self._transition(appointment_id, BookingEvent.START)

    def complete(self, appointment_id: int, validation_code: str | None) -> Appointment:
        return self._transition(appointment_id, BookingEvent.COMPLETE, validation_code)

    def cancel(self, appointment_id: int) -> Appointment:
        return self._transition(appointment_id, BookingEvent.CANCEL)

    def mark_no_show(self, appointment_id: int) -> Appointment:
        return self._transition(appointment_id, BookingEvent.NO_SHOW)

    def _transition(self, appointment_id: int, event: BookingEvent, validation_code: str | None = None) -> Appointment:
        appointment = self.get_appointment(appointment_id, lock=True)
        previous = appointment.status

        try:
            apply_event(appointment, event, validation_code, now=self.now())
        except InvalidValidationCode:
            # Keep the failed attempt counted even though the status is unchanged.
            self._commit(f'Could not record validation attempt for appointment {appointment_id}.')
            raise
        except InvalidStateTransition:
            self.db.rollback()
            raise

        self._commit(f'Could not update appointment {appointment_id}.')
        self.db.refresh(appointment)
        self._after_transition(appointment, previous)
        return appointment

    def apply_payment_update(self, appointment_id: int, processor_status: str) -> Appointment:
        """Record a processor-reported payment status and advance the booking."""
        payment_status = map_processor_status(processor_status)
        appointment = self.get_appointment(appointment_id, lock=True)
        previous = appointment.status
        appointment.payment_status = payment_status

        try:
            if payment_status == PaymentStatus.PAID:
                if appointment.status == AppointmentStatus.PROCESSING_PAYMENT:
                    apply_event(appointment, BookingEvent.PAYMENT_CAPTURED)
                if self.auto_confirm_paid and appointment.status == AppointmentStatus.PENDING:
                    apply_event(appointment, BookingEvent.CONFIRM)
            elif payment_status == PaymentStatus.FAILED:
                if appointment.status == AppointmentStatus.PROCESSING_PAYMENT:
                    apply_event(appointment, BookingEvent.CANCEL)
        except BookingError:
            self.db.rollback()
            raise

        self._commit(f'Could not update payment of appointment {appointment_id}.')
        self.db.refresh(appointment)
        logger.info('Appointment %s payment status is now %s', appointment.id, payment_status.value)
        self._after_transition(appointment, previous)
        return appointment

    def _after_transition(self, appointment: Appointment, previous: AppointmentStatus) -> None:
        if previous == appointment.status:
            return
        if AppointmentStatus.COMPLETED not in (previous, appointment.status):
            return
        try:
            self.on_completed(appointment.provider_id)
        except PersistenceFailure:
            # The status change is already committed; sync_balances repairs the balance.
            logger.exception(
                'Balance recompute failed after appointment %s moved to %s',
                appointment.id, appointment.status.value,
            )

    def _commit(self, failure_message: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception(failure_message)
            raise PersistenceFailure(failure_message) from exc
