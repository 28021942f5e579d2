import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from dentalcare import database


@pytest.fixture
def legacy_engine(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(database, '_appointment_schema_checked', False)
    engine = create_engine('sqlite://', connect_args={'check_same_thread': False}, poolclass=StaticPool)
    with engine.begin() as connection:
        connection.execute(
            text(
                'CREATE TABLE appointments ('
                'id INTEGER PRIMARY KEY, patient_id INTEGER, dentist_id INTEGER, service_id INTEGER, '
                'date DATE, time TIME, duration INTEGER, notes VARCHAR, status VARCHAR)'
            )
        )
    yield engine
    engine.dispose()


def _insert(connection, appointment_id: int, status: str) -> None:
    connection.execute(
        text(
            'INSERT INTO appointments (id, patient_id, dentist_id, service_id, date, time, duration, status) '
            "VALUES (:id, 1, 1, 1, '2030-01-07', '09:00:00', 30, :status)"
        ),
        {'id': appointment_id, 'status': status},
    )


def test_ensure_appointment_schema_upgrades_an_old_table(legacy_engine) -> None:
    database.ensure_appointment_schema(bind=legacy_engine)

    inspector = inspect(legacy_engine)
    columns = {column['name'] for column in inspector.get_columns('appointments')}
    indexes = {index['name'] for index in inspector.get_indexes('appointments')}

    assert 'idempotency_key' in columns
    assert {'uq_appointments_active_slot', 'idx_appointments_dentist_date'} <= indexes
    assert database._appointment_schema_checked is True


def test_upgraded_index_only_counts_live_bookings(legacy_engine) -> None:
    database.ensure_appointment_schema(bind=legacy_engine)

    with legacy_engine.begin() as connection:
        _insert(connection, 1, 'cancelled')
        _insert(connection, 2, 'pending')

    with pytest.raises(IntegrityError):
        with legacy_engine.begin() as connection:
            _insert(connection, 3, 'confirmed')
