from datetime import date, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from booking_backend.auth.dependencies import ensure_provider_access, get_current_user
from booking_backend.core.errors import BookingError
from booking_backend.database import get_db
from booking_backend.models.user import User
from booking_backend.routes.http_errors import ensure_database_ready, to_http_exception
from booking_backend.scheduling.slot_generator import prioritize_slots
from booking_backend.services.booking_service import BookingService
from booking_backend.services.schedule_service import ScheduleService

router = APIRouter(tags=['availability'])

OptionalDate = date | None


class ScheduleRequest(BaseModel):
    start_time: time
    end_time: time
    working_days: list[int]
    slot_interval_minutes: int

    @field_validator('working_days')
    @classmethod
    def validate_working_days(cls, value: list[int]) -> list[int]:
        if any(day < 0 or day > 6 for day in value):
            raise ValueError('Working days must be numbers from 0 (Sunday) to 6 (Saturday).')
        return sorted(set(value))

    @field_validator('slot_interval_minutes')
    @classmethod
    def validate_interval(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('Slot interval must be a positive number of minutes.')
        return value


class ScheduleResponse(BaseModel):
    provider_id: int
    start_time: time
    end_time: time
    working_days: list[int]
    slot_interval_minutes: int


class CreateBlockedTimeRequest(BaseModel):
    date: OptionalDate = None
    start_time: time
    end_time: time
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None


class BlockedTimeResponse(BaseModel):
    id: int
    date: OptionalDate = None
    start_time: time
    end_time: time
    reason: str | None = None

    class Config:
        from_attributes = True


class HoursOverrideRequest(BaseModel):
    day_of_week: int | None = None
    date: OptionalDate = None
    start_time: time | None = None
    end_time: time | None = None
    slot_interval_minutes: int | None = None
    is_available: bool = True


class HoursOverrideResponse(BaseModel):
    id: int
    day_of_week: int | None = None
    date: OptionalDate = None
    start_time: time | None = None
    end_time: time | None = None
    slot_interval_minutes: int | None = None
    is_available: bool

    class Config:
        from_attributes = True


class ProviderServiceRequest(BaseModel):
    duration_minutes: int
    price: int
    name: str | None = None
    is_active: bool = True


class ProviderServiceResponse(BaseModel):
    provider_id: int
    service_id: int
    name: str | None = None
    duration_minutes: int
    price: int
    is_active: bool

    class Config:
        from_attributes = True


class TimeSlotResponse(BaseModel):
    start_time: time
    end_time: time
    is_available: bool
    source_availability_id: int | None = None
    reason: str | None = None


def _schedule_response(schedule) -> ScheduleResponse:
    return ScheduleResponse(
        provider_id=schedule.provider_id,
        start_time=schedule.start_time,
        end_time=schedule.end_time,
        working_days=sorted(schedule.working_day_numbers),
        slot_interval_minutes=schedule.slot_interval_minutes,
    )


@router.get('/providers/{provider_id}/slots', response_model=list[TimeSlotResponse])
def list_provider_slots(
    provider_id: int,
    slot_date: date = Query(..., alias='date'),
    service_id: int = Query(...),
    available_only: bool = Query(default=False),
    prioritize: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        slots = BookingService(db).list_slots(provider_id, slot_date, service_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    if available_only:
        slots = [slot for slot in slots if slot.is_available]
    if prioritize:
        slots = prioritize_slots(slots)

    return [
        TimeSlotResponse(
            start_time=slot.start_time.to_time(),
            end_time=slot.end_time.to_time(),
            is_available=slot.is_available,
            source_availability_id=slot.source_availability_id,
            reason=slot.rejection,
        )
        for slot in slots
    ]


@router.get('/providers/{provider_id}/schedule', response_model=ScheduleResponse)
def get_provider_schedule(provider_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return _schedule_response(ScheduleService(db).get_schedule(provider_id))
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.put('/providers/{provider_id}/schedule', response_model=ScheduleResponse)
def update_provider_schedule(
    provider_id: int,
    data: ScheduleRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_provider_access(current_user, provider_id)
    ensure_database_ready()

    try:
        schedule = ScheduleService(db).upsert_schedule(
            provider_id,
            data.start_time,
            data.end_time,
            data.working_days,
            data.slot_interval_minutes,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return _schedule_response(schedule)


@router.get('/providers/{provider_id}/hours-overrides', response_model=list[HoursOverrideResponse])
def list_hours_overrides(provider_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    return ScheduleService(db).list_hours_overrides(provider_id)


@router.put('/providers/{provider_id}/hours-overrides', response_model=HoursOverrideResponse)
def set_hours_override(
    provider_id: int,
    data: HoursOverrideRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_provider_access(current_user, provider_id)
    ensure_database_ready()

    try:
        return ScheduleService(db).set_hours_override(
            provider_id,
            start_time=data.start_time,
            end_time=data.end_time,
            day_of_week=data.day_of_week,
            day=data.date,
            slot_interval_minutes=data.slot_interval_minutes,
            is_available=data.is_available,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.delete('/providers/{provider_id}/hours-overrides/{override_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_hours_override(
    provider_id: int,
    override_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_provider_access(current_user, provider_id)
    ensure_database_ready()

    try:
        ScheduleService(db).remove_hours_override(provider_id, override_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/providers/{provider_id}/blocked-times', response_model=list[BlockedTimeResponse])
def list_blocked_times(
    provider_id: int,
    slot_date: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return ScheduleService(db).list_blocked_ranges(provider_id, slot_date)
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.post(
    '/providers/{provider_id}/blocked-times',
    response_model=BlockedTimeResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_blocked_time(
    provider_id: int,
    data: CreateBlockedTimeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_provider_access(current_user, provider_id)
    ensure_database_ready()

    try:
        return ScheduleService(db).add_blocked_range(
            provider_id,
            data.start_time,
            data.end_time,
            day=data.date,
            reason=data.reason,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.delete('/providers/{provider_id}/blocked-times/{block_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_blocked_time(
    provider_id: int,
    block_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_provider_access(current_user, provider_id)
    ensure_database_ready()

    try:
        ScheduleService(db).remove_blocked_range(provider_id, block_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.put('/providers/{provider_id}/services/{service_id}', response_model=ProviderServiceResponse)
def upsert_provider_service(
    provider_id: int,
    service_id: int,
    data: ProviderServiceRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_provider_access(current_user, provider_id)
    ensure_database_ready()

    try:
        return ScheduleService(db).upsert_provider_service(
            provider_id,
            service_id,
            data.duration_minutes,
            data.price,
            name=data.name,
            is_active=data.is_active,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc
