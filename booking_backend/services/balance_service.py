"""Provider balance reconciliation.

The balance is always recomputed from the full appointment set of a provider
instead of being patched incrementally, so a missed update is repaired by the
next run. Only ``completed`` appointments count as earned revenue.
"""

from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.core.errors import PersistenceFailure
from booking_backend.models.appointment import Appointment, AppointmentStatus
from booking_backend.models.balance import ProviderBalance

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')
ZERO = Decimal('0.00')


def to_major_units(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENTS, rounding=ROUND_HALF_UP)


def earned_total(appointments: Iterable) -> Decimal:
    total_cents = sum(
        appointment.total_price
        for appointment in appointments
        if AppointmentStatus(appointment.status) == AppointmentStatus.COMPLETED
        and appointment.total_price
        and appointment.total_price > 0
    )
    return to_major_units(total_cents)


def reconcile(earned: Decimal, pending: Decimal | None) -> tuple[Decimal, Decimal]:
    """Return ``(balance, available_balance)`` for the given totals."""
    balance = max(ZERO, Decimal(earned)).quantize(CENTS)
    pending = Decimal(pending or 0)
    available = max(ZERO, balance - pending).quantize(CENTS)
    return balance, available


class BalanceService:
    def __init__(self, db: Session):
        self.db = db

    def recompute(self, provider_id: int) -> ProviderBalance:
        """Rebuild ``balance``/``available_balance`` of a provider in one commit.

        ``pending_balance`` belongs to the withdrawal flow and is only read.
        """
        try:
            appointments = self.db.query(Appointment).filter(Appointment.provider_id == provider_id).all()
            earned = earned_total(appointments)

            provider_balance = self.db.query(ProviderBalance).filter(ProviderBalance.provider_id == provider_id).first()
            if provider_balance is None:
                provider_balance = ProviderBalance(provider_id=provider_id, pending_balance=ZERO)
                self.db.add(provider_balance)

            balance, available = reconcile(earned, provider_balance.pending_balance)
            provider_balance.balance = balance
            provider_balance.available_balance = available

            self.db.commit()
            self.db.refresh(provider_balance)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Balance recompute failed for provider %s', provider_id)
            raise PersistenceFailure(f'Could not recompute balance for provider {provider_id}.') from exc

        logger.info(
            'Balance recomputed for provider %s: balance=%s pending=%s available=%s',
            provider_id, provider_balance.balance, provider_balance.pending_balance,
            provider_balance.available_balance,
        )
        return provider_balance

    def get_balance(self, provider_id: int) -> ProviderBalance | None:
        return self.db.query(ProviderBalance).filter(ProviderBalance.provider_id == provider_id).first()

    def sync_all(self) -> list[ProviderBalance]:
        provider_ids = [
            provider_id
            for (provider_id,) in self.db.query(Appointment.provider_id).distinct().order_by(Appointment.provider_id).all()
        ]
        logger.info('Syncing balances for %s providers', len(provider_ids))
        return [self.recompute(provider_id) for provider_id in provider_ids if provider_id]
