"""Provider balance model definitions."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric
from booking_backend.database import Base


class ProviderBalance(Base):
    """Ledger totals of a provider, recomputed from its appointments."""
    __tablename__ = "provider_balances"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    balance = Column(Numeric(10, 2), nullable=False, default=Decimal('0.00'))
    available_balance = Column(Numeric(10, 2), nullable=False, default=Decimal('0.00'))
    pending_balance = Column(Numeric(10, 2), nullable=False, default=Decimal('0.00'))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
