"""Provider schedule, blocked time and offered service model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String, Time, UniqueConstraint
from booking_backend.database import Base
from booking_backend.scheduling.slot_generator import BlockedRange, HoursOverride, ProviderSchedule as ScheduleTemplate
from booking_backend.scheduling.time_of_day import TimeOfDay


def parse_working_days(value: str | None) -> frozenset[int]:
    if not value:
        return frozenset()
    return frozenset(int(part) for part in value.split(',') if part.strip())


def format_working_days(days) -> str:
    return ','.join(str(day) for day in sorted(set(days)))


class ProviderSchedule(Base):
    """Working-hours template of a provider (one row per provider)."""
    __tablename__ = "provider_schedules"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    working_days = Column(String, nullable=False, default='1,2,3,4,5')  # 0 = Sunday
    slot_interval_minutes = Column(Integer, nullable=False, default=30)

    @property
    def working_day_numbers(self) -> frozenset[int]:
        return parse_working_days(self.working_days)

    def to_template(self, blocked_slots=()) -> ScheduleTemplate:
        return ScheduleTemplate.build(
            start_time=self.start_time,
            end_time=self.end_time,
            working_days=self.working_day_numbers,
            slot_interval_minutes=self.slot_interval_minutes,
            blocked_ranges=[blocked.to_range() for blocked in blocked_slots],
            id=self.id,
        )


class ScheduleOverride(Base):
    """Working hours for one weekday or one date, replacing the weekly template."""
    __tablename__ = "schedule_overrides"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=True)  # 0 = Sunday
    date = Column(Date, nullable=True)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    slot_interval_minutes = Column(Integer, nullable=True)
    is_available = Column(Boolean, nullable=False, default=True)

    def to_override(self) -> HoursOverride:
        return HoursOverride.build(
            start_time=self.start_time,
            end_time=self.end_time,
            day_of_week=self.day_of_week,
            date=self.date,
            slot_interval_minutes=self.slot_interval_minutes,
            is_available=self.is_available,
            id=self.id,
        )


class BlockedTimeSlot(Base):
    """Blocked range inside working hours; a null date repeats every day."""
    __tablename__ = "blocked_time_slots"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    reason = Column(String)

    def to_range(self) -> BlockedRange:
        return BlockedRange(
            start_time=TimeOfDay.from_time(self.start_time),
            end_time=TimeOfDay.from_time(self.end_time),
            date=self.date,
            id=self.id,
        )


class ProviderService(Base):
    """A service offered by a provider with its duration and price."""
    __tablename__ = "provider_services"
    __table_args__ = (UniqueConstraint('provider_id', 'service_id', name='uq_provider_service'),)

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    service_id = Column(Integer, nullable=False)
    name = Column(String)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False, default=0)  # minor currency units
    is_active = Column(Boolean, default=True)
