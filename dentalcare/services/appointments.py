"""Appointment operations against the database of record.

Every operation validates through the availability calculator and the
lifecycle rules before writing; the partial unique index on
``(dentist_id, date, time)`` settles races between concurrent bookings.
"""

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dentalcare.core import config
from dentalcare.models.appointment import Appointment
from dentalcare.models.dentist import Dentist, WorkingHoursEntry
from dentalcare.models.service import DentistService, Service
from dentalcare.models.user import User
from dentalcare.scheduling import lifecycle
from dentalcare.scheduling.availability import (
    WEEKDAYS,
    DayAvailability,
    WorkingDay,
    WorkingHours,
    calculate_availability,
    ensure_slot_bookable,
    validate_date_range,
    validate_slot_time,
)
from dentalcare.scheduling.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = 'This time is already booked. Please pick another time.'


def dentist_for_user(db: Session, user: User) -> Dentist | None:
    if user.role != lifecycle.ROLE_DENTIST:
        return None
    return db.query(Dentist).filter(Dentist.user_id == user.id).first()


def get_dentist(db: Session, dentist_id: int, active_only: bool = True) -> Dentist:
    dentist = db.query(Dentist).filter(Dentist.id == dentist_id).first()
    if dentist is None or (active_only and not dentist.is_active):
        raise NotFoundError('Dentist not found.')
    return dentist


def _ensure_manages_dentist(db: Session, actor: User, dentist: Dentist) -> None:
    if actor.role == lifecycle.ROLE_ADMIN:
        return
    own = dentist_for_user(db, actor)
    if own is None or own.id != dentist.id:
        raise PermissionDeniedError('Only this dentist or an admin can manage their schedule.')


def load_working_hours(db: Session, dentist_id: int) -> WorkingHours:
    entries = db.query(WorkingHoursEntry).filter(WorkingHoursEntry.dentist_id == dentist_id).all()
    days = {
        WEEKDAYS[entry.weekday]: WorkingDay(start=entry.start, end=entry.end, is_working=entry.is_working)
        for entry in entries
    }
    return WorkingHours(**days)


def get_working_hours(db: Session, dentist_id: int) -> WorkingHours:
    get_dentist(db, dentist_id, active_only=False)
    return load_working_hours(db, dentist_id)


def replace_working_hours(db: Session, dentist_id: int, hours: WorkingHours) -> None:
    """Write ``hours`` for a dentist without committing. ``None`` weekdays are removed."""
    existing = {
        entry.weekday: entry
        for entry in db.query(WorkingHoursEntry).filter(WorkingHoursEntry.dentist_id == dentist_id).all()
    }

    for weekday in range(len(WEEKDAYS)):
        day = hours.for_weekday(weekday)
        entry = existing.get(weekday)

        if day is None:
            if entry is not None:
                db.delete(entry)
            continue

        if entry is None:
            entry = WorkingHoursEntry(dentist_id=dentist_id, weekday=weekday)
            db.add(entry)
        entry.start = day.start
        entry.end = day.end
        entry.is_working = day.is_working


def set_working_hours(db: Session, actor: User, dentist_id: int, hours: WorkingHours) -> WorkingHours:
    dentist = get_dentist(db, dentist_id, active_only=False)
    _ensure_manages_dentist(db, actor, dentist)

    replace_working_hours(db, dentist.id, hours)
    db.commit()
    logger.info('Working hours updated for dentist %s by user %s', dentist.id, actor.id)
    return load_working_hours(db, dentist.id)


def _active_appointments(
    db: Session,
    dentist_id: int,
    start_date: date,
    end_date: date,
    exclude_id: int | None = None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(
        Appointment.dentist_id == dentist_id,
        Appointment.date >= start_date,
        Appointment.date <= end_date,
        Appointment.status != lifecycle.CANCELLED,
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return query.all()


def get_availability(
    db: Session,
    dentist_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    today: date | None = None,
) -> list[DayAvailability]:
    dentist = get_dentist(db, dentist_id)

    today = today or lifecycle.clinic_now().date()
    start_date = start_date or today
    end_date = end_date or start_date + timedelta(days=config.AVAILABILITY_RANGE_DAYS)
    validate_date_range(start_date, end_date)

    hours = load_working_hours(db, dentist.id)
    appointments = _active_appointments(db, dentist.id, start_date, end_date)
    return calculate_availability(hours, appointments, start_date, end_date)


def list_appointments(
    db: Session,
    actor: User,
    appointment_date: date | None = None,
    status: str | None = None,
    dentist_id: int | None = None,
) -> list[Appointment]:
    query = db.query(Appointment)

    if actor.role == lifecycle.ROLE_PATIENT:
        query = query.filter(Appointment.patient_id == actor.id)
    elif actor.role == lifecycle.ROLE_DENTIST:
        own = dentist_for_user(db, actor)
        if own is None:
            return []
        query = query.filter(Appointment.dentist_id == own.id)

    if dentist_id is not None:
        query = query.filter(Appointment.dentist_id == dentist_id)
    if appointment_date is not None:
        query = query.filter(Appointment.date == appointment_date)
    if status:
        query = query.filter(Appointment.status == lifecycle.normalize_status(status))

    return query.order_by(Appointment.date.asc(), Appointment.time.asc()).all()


def _resolve_patient(db: Session, actor: User, patient_id: int | None) -> User:
    if actor.role == lifecycle.ROLE_PATIENT:
        if patient_id is not None and patient_id != actor.id:
            raise PermissionDeniedError('Patients can only book appointments for themselves.')
        return actor

    if patient_id is None:
        raise ValidationError('A patient is required when booking on behalf of someone.')

    patient = db.query(User).filter(User.id == patient_id, User.role == lifecycle.ROLE_PATIENT).first()
    if patient is None:
        raise NotFoundError('Patient not found.')
    return patient


def _get_assignment(db: Session, dentist_id: int, service_id: int) -> DentistService:
    assignment = (
        db.query(DentistService)
        .join(Service, Service.id == DentistService.service_id)
        .filter(
            DentistService.dentist_id == dentist_id,
            DentistService.service_id == service_id,
            Service.is_active.is_(True),
        )
        .first()
    )
    if assignment is None:
        raise ValidationError('This dentist does not offer the selected service.')
    return assignment


def _clean_notes(notes: str | None) -> str | None:
    if notes is None:
        return None
    normalized = notes.strip()
    if not normalized:
        return None
    if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValidationError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')
    return normalized


def _commit_slot(db: Session, appointment: Appointment) -> Appointment:
    slot = (appointment.date, appointment.time, appointment.dentist_id)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info('Slot %s %s for dentist %s lost a booking race', *slot)
        raise ConflictError(SLOT_TAKEN_MESSAGE) from exc
    db.refresh(appointment)
    return appointment


def _find_replay(db: Session, patient_id: int, idempotency_key: str) -> Appointment | None:
    return db.query(Appointment).filter(
        Appointment.patient_id == patient_id,
        Appointment.idempotency_key == idempotency_key,
    ).first()


def create_appointment(
    db: Session,
    actor: User,
    dentist_id: int,
    service_id: int,
    appointment_date: date,
    appointment_time: time,
    notes: str | None = None,
    patient_id: int | None = None,
    idempotency_key: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    patient = _resolve_patient(db, actor, patient_id)

    if idempotency_key:
        existing = _find_replay(db, patient.id, idempotency_key)
        if existing is not None:
            logger.info('Replayed booking attempt %s resolved to appointment %s', idempotency_key, existing.id)
            return existing

    dentist = get_dentist(db, dentist_id)
    if actor.role == lifecycle.ROLE_DENTIST:
        _ensure_manages_dentist(db, actor, dentist)

    assignment = _get_assignment(db, dentist.id, service_id)
    slot_time = validate_slot_time(appointment_time)
    lifecycle.ensure_future_slot(appointment_date, slot_time, now or lifecycle.clinic_now())

    hours = load_working_hours(db, dentist.id)
    booked = _active_appointments(db, dentist.id, appointment_date, appointment_date)
    ensure_slot_bookable(hours, booked, appointment_date, slot_time)

    appointment = Appointment(
        patient_id=patient.id,
        dentist_id=dentist.id,
        service_id=service_id,
        date=appointment_date,
        time=slot_time,
        duration=assignment.duration,
        notes=_clean_notes(notes),
        status=lifecycle.PENDING,
        idempotency_key=idempotency_key or None,
    )
    db.add(appointment)
    try:
        _commit_slot(db, appointment)
    except ConflictError:
        # A concurrent request with the same key may have won the insert.
        replay = _find_replay(db, patient.id, idempotency_key) if idempotency_key else None
        if replay is None:
            raise
        logger.info('Booking attempt %s lost a race to its own replay, appointment %s', idempotency_key, replay.id)
        return replay

    logger.info('Appointment %s booked for patient %s with dentist %s', appointment.id, patient.id, dentist.id)
    return appointment


def get_appointment_for(db: Session, actor: User, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFoundError('Appointment not found.')

    if actor.role == lifecycle.ROLE_PATIENT and appointment.patient_id != actor.id:
        raise PermissionDeniedError('Only the patient who booked this appointment can change it.')
    if actor.role == lifecycle.ROLE_DENTIST:
        own = dentist_for_user(db, actor)
        if own is None or own.id != appointment.dentist_id:
            raise PermissionDeniedError('Only the assigned dentist can change this appointment.')

    return appointment


def _apply_action(db: Session, actor: User, appointment: Appointment, action: str, now: datetime) -> Appointment:
    previous = appointment.status
    appointment.status = lifecycle.check_action(
        action,
        appointment.status,
        actor.role,
        appointment.date,
        appointment.time,
        now,
    )
    db.commit()
    db.refresh(appointment)
    logger.info('Appointment %s moved from %s to %s by user %s', appointment.id, previous, appointment.status, actor.id)
    return appointment


def update_status(
    db: Session,
    actor: User,
    appointment_id: int,
    status: str,
    now: datetime | None = None,
) -> Appointment:
    appointment = get_appointment_for(db, actor, appointment_id)
    target = lifecycle.normalize_status(status)
    action = lifecycle.resolve_action(appointment.status, target, actor.role)
    return _apply_action(db, actor, appointment, action, now or lifecycle.clinic_now())


def cancel_appointment(db: Session, actor: User, appointment_id: int, now: datetime | None = None) -> Appointment:
    appointment = get_appointment_for(db, actor, appointment_id)
    return _apply_action(db, actor, appointment, lifecycle.ACTION_CANCEL, now or lifecycle.clinic_now())


def reschedule_appointment(
    db: Session,
    actor: User,
    appointment_id: int,
    appointment_date: date,
    appointment_time: time,
    now: datetime | None = None,
) -> Appointment:
    now = now or lifecycle.clinic_now()
    appointment = get_appointment_for(db, actor, appointment_id)
    lifecycle.ensure_modifiable(appointment.status, appointment.date, appointment.time, now)

    slot_time = validate_slot_time(appointment_time)
    lifecycle.ensure_future_slot(appointment_date, slot_time, now)

    hours = load_working_hours(db, appointment.dentist_id)
    others = _active_appointments(
        db,
        appointment.dentist_id,
        appointment_date,
        appointment_date,
        exclude_id=appointment.id,
    )
    ensure_slot_bookable(hours, others, appointment_date, slot_time)

    previous = (appointment.date, appointment.time)
    appointment.date = appointment_date
    appointment.time = slot_time
    _commit_slot(db, appointment)

    logger.info('Appointment %s rescheduled from %s %s to %s %s', appointment.id, *previous, appointment.date, appointment.time)
    return appointment
