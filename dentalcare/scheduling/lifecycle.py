"""Appointment status machine.

pending -> confirmed -> completed, plus pending -> cancelled,
confirmed -> cancelled and confirmed -> no-show. Completed, cancelled and
no-show are terminal. Only pending and confirmed appointments may be
cancelled or rescheduled, and a confirmed one only while more than
``CANCELLATION_NOTICE_HOURS`` remain before it starts.

Dates and times are clinic-local wall time (``config.CLINIC_TIMEZONE``).
"""

from datetime import date, datetime, time, timedelta

import pytz

from dentalcare.core import config
from dentalcare.scheduling.errors import ConflictError, PermissionDeniedError, ValidationError

PENDING = 'pending'
CONFIRMED = 'confirmed'
COMPLETED = 'completed'
CANCELLED = 'cancelled'
NO_SHOW = 'no-show'

STATUSES = (PENDING, CONFIRMED, COMPLETED, CANCELLED, NO_SHOW)
TERMINAL_STATUSES = frozenset({COMPLETED, CANCELLED, NO_SHOW})
MODIFIABLE_STATUSES = frozenset({PENDING, CONFIRMED})

TRANSITIONS = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({COMPLETED, CANCELLED, NO_SHOW}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
    NO_SHOW: frozenset(),
}

ROLE_PATIENT = 'patient'
ROLE_DENTIST = 'dentist'
ROLE_ADMIN = 'admin'
ROLES = (ROLE_PATIENT, ROLE_DENTIST, ROLE_ADMIN)
STAFF_ROLES = frozenset({ROLE_DENTIST, ROLE_ADMIN})

ACTION_CONFIRM = 'confirm'
ACTION_DECLINE = 'decline'
ACTION_COMPLETE = 'complete'
ACTION_MARK_NO_SHOW = 'mark-no-show'
ACTION_CANCEL = 'cancel'

# action -> (statuses it may start from, resulting status, roles allowed)
ACTIONS = {
    ACTION_CONFIRM: (frozenset({PENDING}), CONFIRMED, STAFF_ROLES),
    ACTION_DECLINE: (frozenset({PENDING}), CANCELLED, STAFF_ROLES),
    ACTION_COMPLETE: (frozenset({CONFIRMED}), COMPLETED, STAFF_ROLES),
    ACTION_MARK_NO_SHOW: (frozenset({CONFIRMED}), NO_SHOW, STAFF_ROLES),
    ACTION_CANCEL: (MODIFIABLE_STATUSES, CANCELLED, frozenset(ROLES)),
}


def normalize_status(value: str) -> str:
    normalized = (value or '').strip().lower()
    if normalized not in STATUSES:
        raise ValidationError(f"Unknown appointment status '{value}'.")
    return normalized


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise ConflictError(f'An appointment cannot move from {current} to {target}.')


def clinic_now(tz: pytz.BaseTzInfo | None = None) -> datetime:
    return datetime.now(tz or config.clinic_timezone())


def scheduled_at(appointment_date: date, appointment_time: time, tz: pytz.BaseTzInfo | None = None) -> datetime:
    """Localize a stored date/time pair to an aware datetime in the clinic timezone."""
    return (tz or config.clinic_timezone()).localize(datetime.combine(appointment_date, appointment_time))


def ensure_future_slot(appointment_date: date, appointment_time: time, now: datetime) -> None:
    if scheduled_at(appointment_date, appointment_time) <= now:
        raise ValidationError('Appointments must be scheduled in the future.')


def ensure_modifiable(
    status: str,
    appointment_date: date,
    appointment_time: time,
    now: datetime,
    notice_hours: int | None = None,
) -> None:
    """Raise unless a cancel or reschedule is still allowed for this appointment.

    ``now`` must be timezone aware; the appointment itself is read as clinic-local time.
    """
    if status not in MODIFIABLE_STATUSES:
        raise ConflictError(f'A {status} appointment can no longer be changed.')

    if status == PENDING:
        return

    notice = timedelta(hours=config.CANCELLATION_NOTICE_HOURS if notice_hours is None else notice_hours)
    starts_at = scheduled_at(appointment_date, appointment_time)
    if starts_at - now <= notice:
        hours = int(notice.total_seconds() // 3600)
        raise ConflictError(f'Confirmed appointments cannot be changed within {hours} hours of the start time.')


def resolve_action(current: str, target: str, role: str) -> str:
    """Map a requested status to the action that produces it."""
    if target == CONFIRMED:
        return ACTION_CONFIRM
    if target == COMPLETED:
        return ACTION_COMPLETE
    if target == NO_SHOW:
        return ACTION_MARK_NO_SHOW
    if target == CANCELLED:
        if current == PENDING and role in STAFF_ROLES:
            return ACTION_DECLINE
        return ACTION_CANCEL

    raise ConflictError(f'An appointment cannot move from {current} to {target}.')


def check_action(
    action: str,
    current: str,
    role: str,
    appointment_date: date,
    appointment_time: time,
    now: datetime,
) -> str:
    """Validate ``action`` for an appointment and return the status it leads to."""
    from_statuses, target, roles = ACTIONS[action]

    if role not in roles:
        raise PermissionDeniedError(f'Only dentists and admins can {action.replace("-", " ")} appointments.')

    if current not in from_statuses:
        raise ConflictError(f'An appointment cannot move from {current} to {target}.')
    ensure_transition(current, target)

    if action == ACTION_CANCEL:
        ensure_modifiable(current, appointment_date, appointment_time, now)

    return target
