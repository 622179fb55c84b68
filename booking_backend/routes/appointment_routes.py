from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from booking_backend.auth.dependencies import ensure_provider_access, ensure_role, get_current_user
from booking_backend.core import config
from booking_backend.core.errors import BookingError
from booking_backend.database import get_db
from booking_backend.models.appointment import Appointment
from booking_backend.models.user import ADMIN_ROLE, CLIENT_ROLE, PROVIDER_ROLE, User
from booking_backend.routes.http_errors import ensure_database_ready, to_http_exception
from booking_backend.services.booking_service import BookingService
from booking_backend.services.validation_codes import normalize_code

router = APIRouter(tags=['appointments'])


class CreateAppointmentRequest(BaseModel):
    provider_id: int
    service_id: int
    date: date
    start_time: time
    payment_method: str | None = None
    notes: str | None = None

    @field_validator('payment_method')
    @classmethod
    def validate_payment_method(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        return normalized or None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class CompleteAppointmentRequest(BaseModel):
    validation_code: str | None = None

    @field_validator('validation_code')
    @classmethod
    def validate_code(cls, value: str | None) -> str | None:
        # Malformed codes still go to the service so they count as attempts.
        return normalize_code(value) or None


class PaymentStatusRequest(BaseModel):
    payment_status: str


class AppointmentResponse(BaseModel):
    id: int
    client_id: int
    provider_id: int
    service_id: int
    date: date
    start_time: time
    end_time: time
    status: str
    payment_status: str | None = None
    payment_method: str | None = None
    total_price: int
    notes: str | None = None
    validation_code: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None


class ValidationStatusResponse(BaseModel):
    appointment_id: int
    status: str
    has_validation_code: bool
    attempts: int
    max_attempts: int
    remaining_attempts: int
    is_blocked: bool
    can_complete: bool


def _appointment_response(appointment: Appointment, viewer: User) -> AppointmentResponse:
    # Only the client sees the code; the provider must obtain it in person.
    show_code = viewer.id == appointment.client_id
    return AppointmentResponse(
        id=appointment.id,
        client_id=appointment.client_id,
        provider_id=appointment.provider_id,
        service_id=appointment.service_id,
        date=appointment.date,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        status=appointment.status.value,
        payment_status=appointment.payment_status.value if appointment.payment_status else None,
        payment_method=appointment.payment_method,
        total_price=appointment.total_price,
        notes=appointment.notes,
        validation_code=appointment.validation_code if show_code else None,
        created_at=appointment.created_at,
        completed_at=appointment.completed_at,
    )


def _load_for_provider(service: BookingService, appointment_id: int, current_user: User) -> Appointment:
    try:
        appointment = service.get_appointment(appointment_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    ensure_provider_access(current_user, appointment.provider_id)
    return appointment


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_role(current_user, CLIENT_ROLE)
    ensure_database_ready()

    try:
        appointment = BookingService(db).create_appointment(
            client_id=current_user.id,
            provider_id=data.provider_id,
            service_id=data.service_id,
            day=data.date,
            start_time=data.start_time,
            notes=data.notes,
            payment_method=data.payment_method,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return _appointment_response(appointment, current_user)


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = BookingService(db).get_appointment(appointment_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    if current_user.role != ADMIN_ROLE and current_user.id not in (appointment.client_id, appointment.provider_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='You do not have access to this appointment.',
        )

    return _appointment_response(appointment, current_user)


@router.get('/{appointment_id}/validation-status', response_model=ValidationStatusResponse)
def get_validation_status(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_role(current_user, PROVIDER_ROLE, ADMIN_ROLE)
    ensure_database_ready()

    service = BookingService(db)
    _load_for_provider(service, appointment_id, current_user)
    summary = service.validation_status(appointment_id)

    return ValidationStatusResponse(
        appointment_id=summary.appointment_id,
        status=summary.status.value,
        has_validation_code=summary.has_validation_code,
        attempts=summary.attempts,
        max_attempts=summary.max_attempts,
        remaining_attempts=summary.remaining_attempts,
        is_blocked=summary.is_blocked,
        can_complete=summary.can_complete,
    )


@router.post('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_role(current_user, PROVIDER_ROLE, ADMIN_ROLE)
    ensure_database_ready()

    service = BookingService(db)
    _load_for_provider(service, appointment_id, current_user)
    try:
        appointment = service.confirm(appointment_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return _appointment_response(appointment, current_user)


@router.post('/{appointment_id}/start', response_model=AppointmentResponse)
def start_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_role(current_user, PROVIDER_ROLE, ADMIN_ROLE)
    ensure_database_ready()

    service = BookingService(db)
    _load_for_provider(service, appointment_id, current_user)
    try:
        appointment = service.start(appointment_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return _appointment_response(appointment, current_user)


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    data: CompleteAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_role(current_user, PROVIDER_ROLE)
    ensure_database_ready()

    service = BookingService(db)
    _load_for_provider(service, appointment_id, current_user)
    try:
        appointment = service.complete(appointment_id, data.validation_code)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return _appointment_response(appointment, current_user)


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    service = BookingService(db)
    try:
        appointment = service.get_appointment(appointment_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    if current_user.role != ADMIN_ROLE and current_user.id not in (appointment.client_id, appointment.provider_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the client or provider of this appointment can cancel it.',
        )

    try:
        appointment = service.cancel(appointment_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return _appointment_response(appointment, current_user)


@router.post('/{appointment_id}/no-show', response_model=AppointmentResponse)
def mark_no_show(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_role(current_user, PROVIDER_ROLE, ADMIN_ROLE)
    ensure_database_ready()

    service = BookingService(db)
    _load_for_provider(service, appointment_id, current_user)
    try:
        appointment = service.mark_no_show(appointment_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return _appointment_response(appointment, current_user)


@router.post('/{appointment_id}/payment-status', response_model=AppointmentResponse)
def update_payment_status(
    appointment_id: int,
    data: PaymentStatusRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_role(current_user, ADMIN_ROLE)
    ensure_database_ready()

    try:
        appointment = BookingService(db).apply_payment_update(appointment_id, data.payment_status)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return _appointment_response(appointment, current_user)
