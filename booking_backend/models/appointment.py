"""Appointment model definitions."""

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Integer, String, Time
from booking_backend.database import Base


class AppointmentStatus(str, enum.Enum):
    PROCESSING_PAYMENT = 'processing_payment'
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    EXECUTING = 'executing'
    COMPLETED = 'completed'
    CANCELED = 'canceled'
    NO_SHOW = 'no_show'


class PaymentStatus(str, enum.Enum):
    PENDING = 'pending'
    PAID = 'paid'
    FAILED = 'failed'
    REFUNDED = 'refunded'


TERMINAL_STATUSES = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELED,
    AppointmentStatus.NO_SHOW,
})


def _enum_values(enum_type):
    return [member.value for member in enum_type]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Appointment(Base):
    """Represents a booked appointment. Rows are never deleted."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(Integer, nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(
        Enum(AppointmentStatus, native_enum=False, length=32, values_callable=_enum_values),
        nullable=False,
        default=AppointmentStatus.PENDING,
    )
    payment_method = Column(String)
    payment_status = Column(
        Enum(PaymentStatus, native_enum=False, length=16, values_callable=_enum_values),
        nullable=True,
    )
    total_price = Column(Integer, nullable=False, default=0)  # minor currency units
    validation_code = Column(String(16))
    validation_attempts = Column(Integer, nullable=False, default=0)
    notes = Column(String)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    completed_at = Column(DateTime(timezone=True))
