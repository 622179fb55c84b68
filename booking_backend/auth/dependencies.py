from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWTError
from sqlalchemy.orm import Session

from booking_backend.auth import jwt_handler
from booking_backend.database import get_db
from booking_backend.models.user import ADMIN_ROLE, User

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.query(User).filter(User.id == int(subject)).first()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def ensure_role(user: User, *roles: str) -> None:
    if user.role not in roles:
        raise HTTPException(status_code=403, detail="You do not have permission to perform this action.")


def ensure_provider_access(user: User, provider_id: int) -> None:
    """Only the provider itself (or an admin) may manage provider resources."""
    if user.role == ADMIN_ROLE:
        return
    if user.id != provider_id:
        raise HTTPException(status_code=403, detail="You can only manage your own schedule and appointments.")
