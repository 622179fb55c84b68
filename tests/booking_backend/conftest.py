import os
from datetime import date, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from booking_backend.database import Base  # noqa: E402
from booking_backend.models.appointment import Appointment, AppointmentStatus, PaymentStatus  # noqa: E402
from booking_backend.models.balance import ProviderBalance  # noqa: E402,F401
from booking_backend.models.schedule import ProviderSchedule, ProviderService  # noqa: E402
from booking_backend.models.user import ADMIN_ROLE, CLIENT_ROLE, PROVIDER_ROLE, User  # noqa: E402

CLIENT_ID = 1
PROVIDER_ID = 2
OTHER_CLIENT_ID = 3
ADMIN_ID = 4
OTHER_PROVIDER_ID = 5
SERVICE_ID = 10
SERVICE_PRICE = 5000

TODAY = date(2030, 1, 1)
BOOKING_DAY = date(2030, 1, 7)  # Monday
SUNDAY = date(2030, 1, 6)


def seed_marketplace(session, working_days: str = '1,2,3,4,5') -> None:
    session.add_all([
        User(id=CLIENT_ID, email='client@example.com', role=CLIENT_ROLE),
        User(id=PROVIDER_ID, email='provider@example.com', role=PROVIDER_ROLE),
        User(id=OTHER_CLIENT_ID, email='other@example.com', role=CLIENT_ROLE),
        User(id=ADMIN_ID, email='admin@example.com', role=ADMIN_ROLE),
        User(id=OTHER_PROVIDER_ID, email='other-provider@example.com', role=PROVIDER_ROLE),
        ProviderSchedule(
            provider_id=PROVIDER_ID,
            start_time=time(9, 0),
            end_time=time(12, 0),
            working_days=working_days,
            slot_interval_minutes=30,
        ),
        ProviderService(
            provider_id=PROVIDER_ID,
            service_id=SERVICE_ID,
            name='Haircut',
            duration_minutes=30,
            price=SERVICE_PRICE,
        ),
    ])
    session.commit()


def add_appointment(
    session,
    start: time,
    end: time,
    status: AppointmentStatus = AppointmentStatus.CONFIRMED,
    total_price: int = SERVICE_PRICE,
    day: date = BOOKING_DAY,
    provider_id: int = PROVIDER_ID,
    validation_code: str = 'XYZ987',
) -> Appointment:
    appointment = Appointment(
        client_id=CLIENT_ID,
        provider_id=provider_id,
        service_id=SERVICE_ID,
        date=day,
        start_time=start,
        end_time=end,
        status=status,
        payment_status=PaymentStatus.PAID,
        total_price=total_price,
        validation_code=validation_code,
        validation_attempts=0,
    )
    session.add(appointment)
    session.commit()
    session.refresh(appointment)
    return appointment


@pytest.fixture
def booking_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seeded_db(booking_db):
    seed_marketplace(booking_db)
    return booking_db


@pytest.fixture
def users(seeded_db):
    return {user.id: user for user in seeded_db.query(User).all()}
