"""Recompute the balance of every provider that has appointments.

Usage:
    python -m booking_backend.sync_balances
"""
import logging
import sys

from booking_backend.core import config
from booking_backend.core.errors import PersistenceFailure
from booking_backend.database import SessionLocal
from booking_backend.models import appointment, balance, schedule, user  # noqa: F401
from booking_backend.services.balance_service import BalanceService

logger = logging.getLogger(__name__)


def main() -> None:
    logging.basicConfig(level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))

    db = SessionLocal()
    try:
        for provider_balance in BalanceService(db).sync_all():
            print(
                f'provider={provider_balance.provider_id} balance={provider_balance.balance} '
                f'pending={provider_balance.pending_balance} available={provider_balance.available_balance}'
            )
    except PersistenceFailure:
        logger.exception('Balance sync failed')
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
