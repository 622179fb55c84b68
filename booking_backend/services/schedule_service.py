"""Provider schedule, blocked time and offered service management."""

from __future__ import annotations

import logging
from datetime import date, time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.core.errors import (
    NotFound,
    PersistenceFailure,
    ScheduleNotFound,
    ScheduleViolation,
    ServiceNotFound,
    SlotConflict,
)
from booking_backend.models.appointment import Appointment, AppointmentStatus
from booking_backend.models.schedule import (
    BlockedTimeSlot,
    ProviderSchedule,
    ProviderService,
    ScheduleOverride,
    format_working_days,
)
from booking_backend.scheduling.slot_generator import (
    HoursOverride,
    ProviderSchedule as ScheduleTemplate,
    resolve_schedule,
    weekday_number,
)
from booking_backend.scheduling.time_of_day import TimeOfDay, intervals_overlap

logger = logging.getLogger(__name__)


class ScheduleService:
    def __init__(self, db: Session):
        self.db = db

    def get_schedule(self, provider_id: int) -> ProviderSchedule:
        schedule = self.db.query(ProviderSchedule).filter(ProviderSchedule.provider_id == provider_id).first()
        if schedule is None:
            raise ScheduleNotFound(f'Provider {provider_id} has no schedule.')
        return schedule

    def get_template(self, provider_id: int, day: date | None = None) -> ScheduleTemplate:
        return self.template_for(self.get_schedule(provider_id), day)

    def template_for(self, schedule: ProviderSchedule, day: date | None = None) -> ScheduleTemplate:
        """Weekly template of ``schedule`` with the blocks and hours in force on ``day``."""
        template = schedule.to_template(self.list_blocked_ranges(schedule.provider_id, day))
        if day is None:
            return template
        overrides = [row.to_override() for row in self.list_hours_overrides(schedule.provider_id, day)]
        return resolve_schedule(template, overrides, day)

    def upsert_schedule(
        self,
        provider_id: int,
        start_time: time,
        end_time: time,
        working_days,
        slot_interval_minutes: int,
    ) -> ProviderSchedule:
        try:
            ScheduleTemplate.build(start_time, end_time, working_days, slot_interval_minutes)
        except ValueError as exc:
            raise ScheduleViolation(str(exc)) from exc

        schedule = self.db.query(ProviderSchedule).filter(ProviderSchedule.provider_id == provider_id).first()
        if schedule is None:
            schedule = ProviderSchedule(provider_id=provider_id)
            self.db.add(schedule)

        schedule.start_time = start_time
        schedule.end_time = end_time
        schedule.working_days = format_working_days(working_days)
        schedule.slot_interval_minutes = slot_interval_minutes

        self._commit(f'Could not save the schedule of provider {provider_id}.')
        self.db.refresh(schedule)
        logger.info('Schedule updated for provider %s', provider_id)
        return schedule

    def list_hours_overrides(self, provider_id: int, day: date | None = None) -> list[ScheduleOverride]:
        query = self.db.query(ScheduleOverride).filter(ScheduleOverride.provider_id == provider_id)
        if day is not None:
            query = query.filter(
                (ScheduleOverride.date == day) | (ScheduleOverride.day_of_week == weekday_number(day))
            )
        return query.order_by(ScheduleOverride.day_of_week.asc(), ScheduleOverride.date.asc()).all()

    def set_hours_override(
        self,
        provider_id: int,
        start_time: time | None = None,
        end_time: time | None = None,
        day_of_week: int | None = None,
        day: date | None = None,
        slot_interval_minutes: int | None = None,
        is_available: bool = True,
    ) -> ScheduleOverride:
        """Create or replace the hours of one weekday or one date."""
        try:
            HoursOverride.build(start_time, end_time, day_of_week, day, slot_interval_minutes, is_available)
        except ValueError as exc:
            raise ScheduleViolation(str(exc)) from exc

        self.get_schedule(provider_id)

        query = self.db.query(ScheduleOverride).filter(ScheduleOverride.provider_id == provider_id)
        if day is not None:
            query = query.filter(ScheduleOverride.date == day)
        else:
            query = query.filter(ScheduleOverride.day_of_week == day_of_week)
        override = query.first()
        if override is None:
            override = ScheduleOverride(provider_id=provider_id, day_of_week=day_of_week, date=day)
            self.db.add(override)

        override.start_time = start_time if is_available else None
        override.end_time = end_time if is_available else None
        override.slot_interval_minutes = slot_interval_minutes
        override.is_available = is_available

        self._commit(f'Could not save working hours for provider {provider_id}.')
        self.db.refresh(override)
        logger.info('Hours override %s saved for provider %s', override.id, provider_id)
        return override

    def remove_hours_override(self, provider_id: int, override_id: int) -> None:
        override = self.db.query(ScheduleOverride).filter(
            ScheduleOverride.id == override_id,
            ScheduleOverride.provider_id == provider_id,
        ).first()
        if override is None:
            raise NotFound('Working hours override not found.')

        self.db.delete(override)
        self._commit(f'Could not remove working hours for provider {provider_id}.')

    def list_blocked_ranges(self, provider_id: int, day: date | None = None) -> list[BlockedTimeSlot]:
        query = self.db.query(BlockedTimeSlot).filter(BlockedTimeSlot.provider_id == provider_id)
        if day is not None:
            query = query.filter((BlockedTimeSlot.date == day) | (BlockedTimeSlot.date.is_(None)))
        return query.order_by(BlockedTimeSlot.date.asc(), BlockedTimeSlot.start_time.asc()).all()

    def add_blocked_range(
        self,
        provider_id: int,
        start_time: time,
        end_time: time,
        day: date | None = None,
        reason: str | None = None,
    ) -> BlockedTimeSlot:
        if TimeOfDay.from_time(start_time) >= TimeOfDay.from_time(end_time):
            raise ScheduleViolation('Blocked time must start before it ends.')

        self.get_schedule(provider_id)

        overlapping = self.db.query(Appointment).filter(
            Appointment.provider_id == provider_id,
            Appointment.status != AppointmentStatus.CANCELED,
        )
        if day is not None:
            overlapping = overlapping.filter(Appointment.date == day)
        for appointment in overlapping.all():
            if intervals_overlap(start_time, end_time, appointment.start_time, appointment.end_time):
                raise SlotConflict('This time is already booked by a client appointment.')

        blocked = BlockedTimeSlot(
            provider_id=provider_id,
            date=day,
            start_time=start_time,
            end_time=end_time,
            reason=reason,
        )
        self.db.add(blocked)
        self._commit(f'Could not block time for provider {provider_id}.')
        self.db.refresh(blocked)
        return blocked

    def remove_blocked_range(self, provider_id: int, block_id: int) -> None:
        blocked = self.db.query(BlockedTimeSlot).filter(
            BlockedTimeSlot.id == block_id,
            BlockedTimeSlot.provider_id == provider_id,
        ).first()
        if blocked is None:
            raise NotFound('Blocked time not found.')

        self.db.delete(blocked)
        self._commit(f'Could not unblock time for provider {provider_id}.')

    def get_provider_service(self, provider_id: int, service_id: int) -> ProviderService:
        service = self.db.query(ProviderService).filter(
            ProviderService.provider_id == provider_id,
            ProviderService.service_id == service_id,
            ProviderService.is_active.is_(True),
        ).first()
        if service is None:
            raise ServiceNotFound(f'Provider {provider_id} does not offer service {service_id}.')
        return service

    def upsert_provider_service(
        self,
        provider_id: int,
        service_id: int,
        duration_minutes: int,
        price: int,
        name: str | None = None,
        is_active: bool = True,
    ) -> ProviderService:
        if duration_minutes <= 0:
            raise ScheduleViolation('Service duration must be a positive number of minutes.')
        if price < 0:
            raise ScheduleViolation('Service price cannot be negative.')

        service = self.db.query(ProviderService).filter(
            ProviderService.provider_id == provider_id,
            ProviderService.service_id == service_id,
        ).first()
        if service is None:
            service = ProviderService(provider_id=provider_id, service_id=service_id)
            self.db.add(service)

        service.duration_minutes = duration_minutes
        service.price = price
        service.name = name
        service.is_active = is_active

        self._commit(f'Could not save service {service_id} of provider {provider_id}.')
        self.db.refresh(service)
        return service

    def _commit(self, failure_message: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception(failure_message)
            raise PersistenceFailure(failure_message) from exc
