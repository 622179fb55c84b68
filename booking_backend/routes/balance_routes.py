from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from booking_backend.auth.dependencies import ensure_provider_access, get_current_user
from booking_backend.core.errors import BookingError
from booking_backend.database import get_db
from booking_backend.models.user import User
from booking_backend.routes.http_errors import ensure_database_ready, to_http_exception
from booking_backend.services.balance_service import ZERO, BalanceService

router = APIRouter(tags=['balances'])


class ProviderBalanceResponse(BaseModel):
    provider_id: int
    balance: Decimal
    available_balance: Decimal
    pending_balance: Decimal
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


@router.get('/providers/{provider_id}', response_model=ProviderBalanceResponse)
def get_provider_balance(
    provider_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_provider_access(current_user, provider_id)
    ensure_database_ready()

    provider_balance = BalanceService(db).get_balance(provider_id)
    if provider_balance is None:
        return ProviderBalanceResponse(
            provider_id=provider_id,
            balance=ZERO,
            available_balance=ZERO,
            pending_balance=ZERO,
        )
    return provider_balance


@router.post(
    '/providers/{provider_id}/recompute',
    response_model=ProviderBalanceResponse,
    status_code=status.HTTP_200_OK,
)
def recompute_provider_balance(
    provider_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_provider_access(current_user, provider_id)
    ensure_database_ready()

    try:
        return BalanceService(db).recompute(provider_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
