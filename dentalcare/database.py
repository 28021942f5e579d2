import logging
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from dentalcare.core import config

logger = logging.getLogger(__name__)

_connect_args = {"check_same_thread": False} if config.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(config.DATABASE_URL, echo=config.DATABASE_ECHO, connect_args=_connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_appointment_schema(bind=None) -> None:
    """Bring an ``appointments`` table created by an older release up to date.

    Adds the idempotency column and the partial unique slot index when they are
    missing. Runs once per process.
    """
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    target = bind or engine

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(target)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        existing_indexes = {index['name'] for index in inspector.get_indexes('appointments')}

        with target.begin() as connection:
            if 'idempotency_key' not in existing_columns:
                logger.info('Adding appointments.idempotency_key column')
                connection.execute(text('ALTER TABLE appointments ADD COLUMN idempotency_key VARCHAR'))
            if 'uq_appointments_active_slot' not in existing_indexes:
                logger.info('Creating unique index on active appointment slots')
                connection.execute(
                    text(
                        'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot '
                        "ON appointments(dentist_id, date, time) WHERE status != 'cancelled'"
                    )
                )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_dentist_date ON appointments(dentist_id, date)')
            )

        _appointment_schema_checked = True
