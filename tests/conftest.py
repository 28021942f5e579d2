import itertools
import os
from datetime import date, datetime, time

import pytest
import pytz

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('CLINIC_TIMEZONE', 'UTC')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret-key-that-is-at-least-32-bytes')

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from dentalcare.auth import jwt_handler  # noqa: E402
from dentalcare.auth.passwords import hash_password  # noqa: E402
from dentalcare.database import Base, get_db  # noqa: E402
from dentalcare.main import app  # noqa: E402
from dentalcare.models.user import User  # noqa: E402
from dentalcare.scheduling import lifecycle  # noqa: E402
from dentalcare.services import accounts, catalog  # noqa: E402

# 2030-01-07 is a Monday; NOW is the Tuesday before it.
MONDAY = date(2030, 1, 7)
NOW = pytz.utc.localize(datetime(2030, 1, 1, 8, 0))
PASSWORD = 'Secret123'


@pytest.fixture
def monday() -> date:
    return MONDAY


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def db():
    engine = create_engine('sqlite://', connect_args={'check_same_thread': False}, poolclass=StaticPool)
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def make_patient(db):
    counter = itertools.count(1)

    def factory(email: str | None = None) -> User:
        number = next(counter)
        return accounts.register_patient(
            db,
            email=email or f'patient{number}@example.com',
            password=PASSWORD,
            first_name='Pat',
            last_name=f'Patient{number}',
        )

    return factory


@pytest.fixture
def make_dentist(db):
    counter = itertools.count(1)

    def factory(working_hours=None):
        number = next(counter)
        return accounts.create_dentist(
            db,
            email=f'dentist{number}@clinic.example.com',
            password=PASSWORD,
            first_name='Dana',
            last_name=f'Dentist{number}',
            working_hours=working_hours,
        )

    return factory


@pytest.fixture
def admin(db) -> User:
    user = User(
        email='admin@clinic.example.com',
        hashed_password=hash_password(PASSWORD),
        first_name='Ada',
        last_name='Admin',
        role=lifecycle.ROLE_ADMIN,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_service(db):
    counter = itertools.count(1)

    def factory(dentist=None, default_duration: int = 30, custom_duration: int | None = None):
        service = catalog.create_service(
            db,
            name=f'Cleaning {next(counter)}',
            category='preventive',
            default_duration=default_duration,
            default_price=80.0,
        )
        if dentist is not None:
            catalog.assign_service(db, dentist.id, service.id, custom_duration=custom_duration)
        return service

    return factory


@pytest.fixture
def auth_headers():
    def build(user: User) -> dict:
        token = jwt_handler.create_access_token(subject=user.email, role=user.role)
        return {'Authorization': f'Bearer {token}'}

    return build


@pytest.fixture
def api_client(db, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(lifecycle, 'clinic_now', lambda tz=None: NOW)
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def at(hour: int, minute: int = 0) -> time:
    return time(hour, minute)
