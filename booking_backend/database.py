from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from booking_backend.core import config

engine = create_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False
_balance_schema_checked = False


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('payment_method', 'ALTER TABLE appointments ADD COLUMN payment_method VARCHAR'),
            ('payment_status', 'ALTER TABLE appointments ADD COLUMN payment_status VARCHAR(16)'),
            ('validation_code', 'ALTER TABLE appointments ADD COLUMN validation_code VARCHAR(16)'),
            ('validation_attempts', 'ALTER TABLE appointments ADD COLUMN validation_attempts INTEGER DEFAULT 0'),
            ('completed_at', 'ALTER TABLE appointments ADD COLUMN completed_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_provider_date ON appointments(provider_id, date)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_provider_status ON appointments(provider_id, status)')
            )

        _appointment_schema_checked = True


def ensure_balance_schema() -> None:
    global _balance_schema_checked

    if _balance_schema_checked:
        return

    with _schema_lock:
        if _balance_schema_checked:
            return

        inspector = inspect(engine)

        if 'provider_balances' not in inspector.get_table_names():
            _balance_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('provider_balances')}
        migration_steps = [
            ('pending_balance', 'ALTER TABLE provider_balances ADD COLUMN pending_balance NUMERIC(10, 2) DEFAULT 0'),
            ('updated_at', 'ALTER TABLE provider_balances ADD COLUMN updated_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))

        _balance_schema_checked = True


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
