import logging
import threading
from datetime import date, time, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from booking_backend.core.errors import (
    AppointmentNotFound,
    InvalidStateTransition,
    InvalidValidationCode,
    PersistenceFailure,
    ScheduleNotFound,
    ScheduleViolation,
    ServiceNotFound,
    SlotConflict,
)
from booking_backend.database import Base
from booking_backend.models.appointment import Appointment, AppointmentStatus, PaymentStatus
from booking_backend.models.balance import ProviderBalance
from booking_backend.models.schedule import BlockedTimeSlot, ProviderSchedule
from booking_backend.services import booking_service
from booking_backend.services.booking_service import BookingService

from conftest import (
    BOOKING_DAY,
    CLIENT_ID,
    OTHER_CLIENT_ID,
    PROVIDER_ID,
    SERVICE_ID,
    SERVICE_PRICE,
    SUNDAY,
    TODAY,
    add_appointment,
    seed_marketplace,
)


def _service(db, **kwargs) -> BookingService:
    kwargs.setdefault('today', lambda: TODAY)
    return BookingService(db, **kwargs)


def _book(service: BookingService, start: str = '10:00', client_id: int = CLIENT_ID, **kwargs) -> Appointment:
    return service.create_appointment(
        client_id=client_id,
        provider_id=PROVIDER_ID,
        service_id=SERVICE_ID,
        day=kwargs.pop('day', BOOKING_DAY),
        start_time=start,
        **kwargs,
    )


def test_list_slots_marks_booked_slot_unavailable(seeded_db) -> None:
    add_appointment(seeded_db, time(10, 0), time(10, 30))

    slots = _service(seeded_db).list_slots(PROVIDER_ID, BOOKING_DAY, SERVICE_ID)
    by_start = {str(slot.start_time): slot.is_available for slot in slots}

    assert list(by_start) == ['09:00', '09:30', '10:00', '10:30', '11:00', '11:30']
    assert by_start['10:00'] is False
    assert by_start['09:30'] is True
    assert by_start['10:30'] is True


def test_list_slots_requires_offered_service(seeded_db) -> None:
    with pytest.raises(ServiceNotFound):
        _service(seeded_db).list_slots(PROVIDER_ID, BOOKING_DAY, 999)


def test_create_appointment_stores_pending_booking_with_code(seeded_db) -> None:
    appointment = _book(_service(seeded_db), notes='Short cut')

    assert appointment.id is not None
    assert appointment.status == AppointmentStatus.PENDING
    assert appointment.payment_status == PaymentStatus.PENDING
    assert appointment.start_time == time(10, 0)
    assert appointment.end_time == time(10, 30)
    assert appointment.total_price == SERVICE_PRICE
    assert len(appointment.validation_code) == 6
    assert appointment.validation_code.isalnum()
    assert appointment.notes == 'Short cut'


def test_create_appointment_with_pix_starts_processing_payment(seeded_db) -> None:
    appointment = _book(_service(seeded_db), payment_method='pix')

    assert appointment.status == AppointmentStatus.PROCESSING_PAYMENT


def test_create_appointment_rejects_overlap(seeded_db) -> None:
    service = _service(seeded_db)
    _book(service, '10:00')

    with pytest.raises(SlotConflict):
        _book(service, '10:00', client_id=OTHER_CLIENT_ID)

    assert seeded_db.query(Appointment).count() == 1


def test_create_appointment_allows_slot_freed_by_cancellation(seeded_db) -> None:
    add_appointment(seeded_db, time(10, 0), time(10, 30), status=AppointmentStatus.CANCELED)

    appointment = _book(_service(seeded_db), '10:00')

    assert appointment.status == AppointmentStatus.PENDING


@pytest.mark.parametrize(
    ('start', 'message'),
    [
        ('11:45', 'Appointment is outside the provider working hours.'),
        ('10:10', 'Appointments must start at one of the provider slot times.'),
        ('08:30', 'Appointments must start at one of the provider slot times.'),
        ('23:30', 'Appointments cannot run past midnight.'),
    ],
)
def test_create_appointment_rejects_schedule_violations(seeded_db, start: str, message: str) -> None:
    with pytest.raises(ScheduleViolation) as exception_info:
        _book(_service(seeded_db), start)

    assert str(exception_info.value) == message


def test_create_appointment_rejects_non_working_day(seeded_db) -> None:
    with pytest.raises(ScheduleViolation) as exception_info:
        _book(_service(seeded_db), day=SUNDAY)

    assert str(exception_info.value) == 'The provider does not work on this day.'


def test_create_appointment_rejects_past_dates(seeded_db) -> None:
    service = _service(seeded_db, today=lambda: date(2030, 2, 1))

    with pytest.raises(ScheduleViolation):
        _book(service)


def test_create_appointment_rejects_blocked_time(seeded_db) -> None:
    seeded_db.add(BlockedTimeSlot(provider_id=PROVIDER_ID, date=BOOKING_DAY, start_time=time(9, 45), end_time=time(10, 15)))
    seeded_db.commit()

    with pytest.raises(ScheduleViolation) as exception_info:
        _book(_service(seeded_db), '10:00')

    assert str(exception_info.value) == 'This time is blocked by the provider.'


def test_create_appointment_without_schedule_fails(seeded_db) -> None:
    seeded_db.query(ProviderSchedule).delete()
    seeded_db.commit()

    with pytest.raises(ScheduleNotFound):
        _book(_service(seeded_db))


def test_concurrent_bookings_for_same_window_yield_one_conflict(tmp_path) -> None:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={'check_same_thread': False},
    )
    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = session_factory()
    seed_marketplace(setup)
    setup.close()

    barrier = threading.Barrier(2)
    results: list[str] = []
    results_lock = threading.Lock()

    def book(client_id: int) -> None:
        session = session_factory()
        try:
            service = _service(session)
            barrier.wait()
            try:
                _book(service, '10:00', client_id=client_id)
                outcome = 'created'
            except SlotConflict:
                outcome = 'conflict'
            with results_lock:
                results.append(outcome)
        finally:
            session.close()

    threads = [threading.Thread(target=book, args=(client_id,)) for client_id in (CLIENT_ID, OTHER_CLIENT_ID)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(results) == ['conflict', 'created']

    check = session_factory()
    try:
        assert check.query(Appointment).count() == 1
    finally:
        check.close()
        engine.dispose()


def test_full_lifecycle_updates_balance_on_completion(seeded_db) -> None:
    service = _service(seeded_db)
    appointment = _book(service)

    service.confirm(appointment.id)
    service.start(appointment.id)
    assert seeded_db.query(ProviderBalance).count() == 0

    completed = service.complete(appointment.id, appointment.validation_code.lower())

    assert completed.status == AppointmentStatus.COMPLETED
    assert completed.completed_at is not None
    provider_balance = seeded_db.query(ProviderBalance).filter_by(provider_id=PROVIDER_ID).one()
    assert provider_balance.balance == Decimal('50.00')
    assert provider_balance.available_balance == Decimal('50.00')


def test_complete_with_wrong_code_keeps_status_and_counts_attempt(seeded_db) -> None:
    appointment = add_appointment(seeded_db, time(10, 0), time(10, 30), validation_code='XYZ987')
    service = _service(seeded_db)

    with pytest.raises(InvalidValidationCode):
        service.complete(appointment.id, 'ABC123')

    seeded_db.expire_all()
    stored = seeded_db.get(Appointment, appointment.id)
    assert stored.status == AppointmentStatus.CONFIRMED
    assert stored.validation_attempts == 1


def test_transitions_from_terminal_states_fail(seeded_db) -> None:
    service = _service(seeded_db)
    appointment = add_appointment(seeded_db, time(10, 0), time(10, 30), status=AppointmentStatus.CANCELED)

    for operation in (service.confirm, service.start, service.cancel, service.mark_no_show):
        with pytest.raises(InvalidStateTransition):
            operation(appointment.id)
    with pytest.raises(InvalidStateTransition):
        service.complete(appointment.id, 'XYZ987')

    seeded_db.expire_all()
    assert seeded_db.get(Appointment, appointment.id).status == AppointmentStatus.CANCELED


def test_cancel_keeps_row_and_frees_slot(seeded_db) -> None:
    service = _service(seeded_db)
    appointment = _book(service, '10:00')

    service.cancel(appointment.id)
    rebooked = _book(service, '10:00', client_id=OTHER_CLIENT_ID)

    assert seeded_db.query(Appointment).count() == 2
    assert rebooked.status == AppointmentStatus.PENDING


def test_no_show_only_from_confirmed(seeded_db) -> None:
    service = _service(seeded_db)
    appointment = _book(service)

    with pytest.raises(InvalidStateTransition):
        service.mark_no_show(appointment.id)

    service.confirm(appointment.id)
    assert service.mark_no_show(appointment.id).status == AppointmentStatus.NO_SHOW


def test_unknown_appointment_raises_not_found(seeded_db) -> None:
    with pytest.raises(AppointmentNotFound):
        _service(seeded_db).confirm(999)


def test_captured_payment_moves_processing_booking_to_pending(seeded_db) -> None:
    service = _service(seeded_db, auto_confirm_paid=False)
    appointment = _book(service, payment_method='pix')

    updated = service.apply_payment_update(appointment.id, 'RECEIVED')

    assert updated.payment_status == PaymentStatus.PAID
    assert updated.status == AppointmentStatus.PENDING


def test_captured_payment_auto_confirms_when_enabled(seeded_db) -> None:
    service = _service(seeded_db, auto_confirm_paid=True)
    appointment = _book(service, payment_method='pix')

    updated = service.apply_payment_update(appointment.id, 'paid')

    assert updated.status == AppointmentStatus.CONFIRMED


def test_failed_payment_cancels_processing_booking(seeded_db) -> None:
    service = _service(seeded_db)
    appointment = _book(service, payment_method='pix')

    updated = service.apply_payment_update(appointment.id, 'declined')

    assert updated.payment_status == PaymentStatus.FAILED
    assert updated.status == AppointmentStatus.CANCELED


def test_unknown_payment_status_is_rejected(seeded_db) -> None:
    appointment = _book(_service(seeded_db))

    with pytest.raises(ValueError):
        _service(seeded_db).apply_payment_update(appointment.id, 'mystery')


def test_completion_hook_receives_provider_id(seeded_db) -> None:
    calls: list[int] = []
    service = _service(seeded_db, on_completed=calls.append)
    appointment = add_appointment(seeded_db, time(10, 0), time(10, 30), validation_code='ABC123')

    service.complete(appointment.id, 'ABC123')

    assert calls == [PROVIDER_ID]


def test_completion_stays_saved_when_balance_recompute_fails(seeded_db, caplog) -> None:
    def failing_recompute(provider_id: int) -> None:
        raise PersistenceFailure(f'Could not recompute balance for provider {provider_id}.')

    service = _service(seeded_db, on_completed=failing_recompute)
    appointment = add_appointment(seeded_db, time(10, 0), time(10, 30), validation_code='ABC123')

    with caplog.at_level(logging.ERROR, logger='booking_backend.services.booking_service'):
        completed = service.complete(appointment.id, 'ABC123')

    assert completed.status == AppointmentStatus.COMPLETED
    assert 'Balance recompute failed' in caplog.text
    seeded_db.expire_all()
    assert seeded_db.get(Appointment, appointment.id).status == AppointmentStatus.COMPLETED


def test_lock_registry_does_not_grow_with_booking_days(seeded_db) -> None:
    locks_before = len(booking_service._booking_locks)
    service = _service(seeded_db)

    for week in range(20):
        _book(service, day=BOOKING_DAY + timedelta(weeks=week))

    assert len(booking_service._booking_locks) == locks_before == booking_service.BOOKING_LOCK_STRIPES
    assert booking_service._booking_lock(PROVIDER_ID, BOOKING_DAY) is booking_service._booking_lock(PROVIDER_ID, BOOKING_DAY)


def test_booking_follows_date_specific_hours(seeded_db) -> None:
    service = _service(seeded_db)
    override = service.schedules.set_hours_override(PROVIDER_ID, time(14, 0), time(15, 0), day=BOOKING_DAY)

    slots = service.list_slots(PROVIDER_ID, BOOKING_DAY, SERVICE_ID)
    assert [str(slot.start_time) for slot in slots] == ['14:00', '14:30']
    assert {slot.source_availability_id for slot in slots} == {override.id}

    assert _book(service, '14:30').end_time == time(15, 0)
    with pytest.raises(ScheduleViolation):
        _book(service, '10:00', client_id=OTHER_CLIENT_ID)


def test_validation_status_reports_remaining_attempts(seeded_db) -> None:
    service = _service(seeded_db)
    appointment = add_appointment(seeded_db, time(10, 0), time(10, 30), validation_code='XYZ987')

    with pytest.raises(InvalidValidationCode):
        service.complete(appointment.id, 'AAAAAA')
    summary = service.validation_status(appointment.id)

    assert (summary.attempts, summary.remaining_attempts, summary.max_attempts) == (1, 2, 3)
    assert summary.is_blocked is False
    assert summary.can_complete is True
    assert summary.has_validation_code is True
