"""User model definitions."""

from sqlalchemy import Column, Integer, String
from booking_backend.database import Base

CLIENT_ROLE = 'client'
PROVIDER_ROLE = 'provider'
ADMIN_ROLE = 'admin'


class User(Base):
    """Represents a marketplace user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    name = Column(String)
    role = Column(String, default=CLIENT_ROLE)  # client/provider/admin
