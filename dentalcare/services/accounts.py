"""Patient registration, password login and dentist onboarding."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dentalcare.auth.passwords import hash_password, verify_password
from dentalcare.models.dentist import Dentist
from dentalcare.models.user import User
from dentalcare.scheduling import lifecycle
from dentalcare.scheduling.availability import WorkingHours, default_working_hours
from dentalcare.scheduling.errors import AuthError, ConflictError
from dentalcare.services.appointments import replace_working_hours

logger = logging.getLogger(__name__)


def _create_user(db: Session, email: str, password: str, role: str, **profile) -> User:
    user = User(email=email, hashed_password=hash_password(password), role=role, **profile)
    db.add(user)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('An account with this email already exists.') from exc
    return user


def register_patient(
    db: Session,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    phone: str | None = None,
) -> User:
    user = _create_user(
        db,
        email,
        password,
        lifecycle.ROLE_PATIENT,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
    )
    db.commit()
    db.refresh(user)
    logger.info('Registered patient %s', user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user is None or not verify_password(password, user.hashed_password):
        raise AuthError('Invalid email or password.')
    return user


def create_dentist(
    db: Session,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    license_number: str = '',
    specialization: str = '',
    bio: str = '',
    consultation_fee: float = 0.0,
    working_hours: WorkingHours | None = None,
) -> Dentist:
    """Create the user account, the dentist profile and a weekly schedule in one commit."""
    user = _create_user(
        db,
        email,
        password,
        lifecycle.ROLE_DENTIST,
        first_name=first_name,
        last_name=last_name,
    )
    dentist = Dentist(
        user_id=user.id,
        license_number=license_number,
        specialization=specialization,
        bio=bio,
        consultation_fee=consultation_fee,
    )
    db.add(dentist)
    db.flush()

    replace_working_hours(db, dentist.id, working_hours or default_working_hours())
    db.commit()
    db.refresh(dentist)
    logger.info('Created dentist %s for user %s', dentist.id, user.id)
    return dentist
