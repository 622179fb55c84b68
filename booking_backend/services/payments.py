"""Mapping of payment processor status strings onto ``PaymentStatus``."""

from booking_backend.core import config
from booking_backend.models.appointment import PaymentStatus

PROCESSOR_STATUS_ALIASES = {
    'paid': PaymentStatus.PAID,
    'pago': PaymentStatus.PAID,
    'confirmed': PaymentStatus.PAID,
    'confirmado': PaymentStatus.PAID,
    'completed': PaymentStatus.PAID,
    'received': PaymentStatus.PAID,
    'succeeded': PaymentStatus.PAID,
    'pending': PaymentStatus.PENDING,
    'processing': PaymentStatus.PENDING,
    'awaiting_payment': PaymentStatus.PENDING,
    'failed': PaymentStatus.FAILED,
    'declined': PaymentStatus.FAILED,
    'overdue': PaymentStatus.FAILED,
    'canceled': PaymentStatus.FAILED,
    'cancelled': PaymentStatus.FAILED,
    'refunded': PaymentStatus.REFUNDED,
    'chargeback': PaymentStatus.REFUNDED,
}


def map_processor_status(value: str) -> PaymentStatus:
    normalized = (value or '').strip().lower()
    try:
        return PROCESSOR_STATUS_ALIASES[normalized]
    except KeyError:
        raise ValueError(f'Unknown payment status: {value!r}.') from None


def is_async_payment_method(payment_method: str | None) -> bool:
    return (payment_method or '').strip().lower() in config.ASYNC_PAYMENT_METHODS
