from datetime import datetime, time, timedelta

import pytest
import pytz

from dentalcare.models.appointment import Appointment
from dentalcare.scheduling import lifecycle
from dentalcare.scheduling.availability import DAY_NOT_CONFIGURED, WorkingDay, WorkingHours
from dentalcare.scheduling.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from dentalcare.services import appointments


@pytest.fixture
def clinic(db, make_patient, make_dentist, make_service):
    dentist = make_dentist()
    return {
        'patient': make_patient(),
        'dentist': dentist,
        'service': make_service(dentist=dentist, default_duration=45),
    }


def _book(db, clinic, monday, now, at=time(9, 0), **kwargs):
    return appointments.create_appointment(
        db,
        kwargs.pop('actor', clinic['patient']),
        dentist_id=clinic['dentist'].id,
        service_id=clinic['service'].id,
        appointment_date=kwargs.pop('appointment_date', monday),
        appointment_time=at,
        now=now,
        **kwargs,
    )


def test_create_appointment_starts_pending_with_service_duration(db, clinic, monday, now) -> None:
    appointment = _book(db, clinic, monday, now, notes='  First visit  ')

    assert appointment.id is not None
    assert appointment.status == lifecycle.PENDING
    assert appointment.duration == 45
    assert appointment.notes == 'First visit'
    assert appointment.patient_id == clinic['patient'].id


def test_booking_a_taken_slot_is_a_conflict(db, clinic, monday, now, make_patient) -> None:
    _book(db, clinic, monday, now)

    with pytest.raises(ConflictError) as exception_info:
        _book(db, clinic, monday, now, actor=make_patient())

    assert exception_info.value.message == 'This time is already booked. Please pick another time.'
    assert db.query(Appointment).count() == 1


def test_cancelled_slot_can_be_booked_again(db, clinic, monday, now, make_patient) -> None:
    first = _book(db, clinic, monday, now)
    appointments.cancel_appointment(db, clinic['patient'], first.id, now=now)

    second = _book(db, clinic, monday, now, actor=make_patient())

    assert second.id != first.id
    assert second.status == lifecycle.PENDING


def test_database_index_settles_a_lost_race(db, clinic, monday, now, make_patient, monkeypatch) -> None:
    _book(db, clinic, monday, now)
    # Simulate a competing request that checked availability before the first one committed.
    monkeypatch.setattr(appointments, '_active_appointments', lambda *args, **kwargs: [])

    with pytest.raises(ConflictError):
        _book(db, clinic, monday, now, actor=make_patient())

    assert db.query(Appointment).count() == 1


@pytest.mark.parametrize(
    ('offset_days', 'slot_time'),
    [
        (0, time(8, 0)),
        (0, time(17, 0)),
        (0, time(9, 10)),
        (5, time(10, 0)),
    ],
)
def test_booking_outside_working_hours_is_rejected(db, clinic, monday, now, offset_days, slot_time) -> None:
    with pytest.raises(ValidationError):
        _book(db, clinic, monday, now, at=slot_time, appointment_date=monday + timedelta(days=offset_days))


def test_booking_in_the_past_is_rejected(db, clinic, monday) -> None:
    later = pytz.utc.localize(datetime.combine(monday, time(12, 0)))

    with pytest.raises(ValidationError) as exception_info:
        _book(db, clinic, monday, later, at=time(9, 0))

    assert exception_info.value.message == 'Appointments must be scheduled in the future.'


def test_booking_requires_the_service_to_be_assigned(db, clinic, monday, now, make_service) -> None:
    other = make_service()

    with pytest.raises(ValidationError) as exception_info:
        appointments.create_appointment(
            db,
            clinic['patient'],
            dentist_id=clinic['dentist'].id,
            service_id=other.id,
            appointment_date=monday,
            appointment_time=time(9, 0),
            now=now,
        )

    assert exception_info.value.message == 'This dentist does not offer the selected service.'


def test_booking_an_unknown_dentist_is_not_found(db, clinic, monday, now) -> None:
    with pytest.raises(NotFoundError):
        appointments.create_appointment(
            db,
            clinic['patient'],
            dentist_id=999,
            service_id=clinic['service'].id,
            appointment_date=monday,
            appointment_time=time(9, 0),
            now=now,
        )


def test_patient_cannot_book_for_someone_else(db, clinic, monday, now, make_patient) -> None:
    other = make_patient()

    with pytest.raises(PermissionDeniedError):
        _book(db, clinic, monday, now, patient_id=other.id)


def test_admin_books_on_behalf_of_a_patient(db, clinic, monday, now, admin) -> None:
    appointment = _book(db, clinic, monday, now, actor=admin, patient_id=clinic['patient'].id)

    assert appointment.patient_id == clinic['patient'].id


def test_replayed_attempt_returns_the_same_appointment(db, clinic, monday, now) -> None:
    first = _book(db, clinic, monday, now, idempotency_key='login-abc')
    replay = _book(db, clinic, monday, now, idempotency_key='login-abc')

    assert replay.id == first.id
    assert db.query(Appointment).count() == 1


def test_replay_that_loses_the_insert_race_returns_the_winner(db, clinic, monday, now, monkeypatch) -> None:
    first = _book(db, clinic, monday, now, idempotency_key='login-abc')
    find_replay = appointments._find_replay
    lookups = []

    # The duplicate passes every check before the first request has committed.
    def not_yet_committed(*args):
        lookups.append(args)
        return None if len(lookups) == 1 else find_replay(*args)

    monkeypatch.setattr(appointments, '_find_replay', not_yet_committed)
    monkeypatch.setattr(appointments, '_active_appointments', lambda *args, **kwargs: [])

    replay = _book(db, clinic, monday, now, idempotency_key='login-abc')

    assert replay.id == first.id
    assert len(lookups) == 2
    assert db.query(Appointment).count() == 1


def test_lost_race_with_a_different_key_is_still_a_conflict(db, clinic, monday, now, make_patient, monkeypatch) -> None:
    _book(db, clinic, monday, now, idempotency_key='login-abc')
    monkeypatch.setattr(appointments, '_active_appointments', lambda *args, **kwargs: [])

    with pytest.raises(ConflictError):
        _book(db, clinic, monday, now, actor=make_patient(), idempotency_key='login-xyz')

    assert db.query(Appointment).count() == 1


def test_booking_a_time_with_seconds_is_rejected(db, clinic, monday, now) -> None:
    with pytest.raises(ValidationError):
        _book(db, clinic, monday, now, at=time(9, 0, 45))

    assert db.query(Appointment).count() == 0


def test_confirm_then_complete(db, clinic, monday, now) -> None:
    appointment = _book(db, clinic, monday, now)
    dentist_user = clinic['dentist'].user

    confirmed = appointments.update_status(db, dentist_user, appointment.id, 'confirmed', now=now)
    completed = appointments.update_status(db, dentist_user, appointment.id, 'completed', now=now)

    assert confirmed.status == lifecycle.CONFIRMED
    assert completed.status == lifecycle.COMPLETED


def test_staff_cancelling_a_pending_appointment_declines_it(db, clinic, monday, now) -> None:
    appointment = _book(db, clinic, monday, now)

    declined = appointments.update_status(db, clinic['dentist'].user, appointment.id, 'cancelled', now=now)

    assert declined.status == lifecycle.CANCELLED


def test_patient_cannot_confirm(db, clinic, monday, now) -> None:
    appointment = _book(db, clinic, monday, now)

    with pytest.raises(PermissionDeniedError):
        appointments.update_status(db, clinic['patient'], appointment.id, 'confirmed', now=now)


def test_other_dentist_cannot_touch_the_appointment(db, clinic, monday, now, make_dentist) -> None:
    appointment = _book(db, clinic, monday, now)
    stranger = make_dentist().user

    with pytest.raises(PermissionDeniedError):
        appointments.update_status(db, stranger, appointment.id, 'confirmed', now=now)


def test_confirmed_appointment_cannot_be_cancelled_23_hours_before(db, clinic, monday, now) -> None:
    appointment = _book(db, clinic, monday, now)
    appointments.update_status(db, clinic['dentist'].user, appointment.id, 'confirmed', now=now)
    late = pytz.utc.localize(datetime.combine(monday, time(9, 0))) - timedelta(hours=23)

    with pytest.raises(ConflictError):
        appointments.cancel_appointment(db, clinic['patient'], appointment.id, now=late)

    db.refresh(appointment)
    assert appointment.status == lifecycle.CONFIRMED


def test_cancelled_appointment_cannot_be_cancelled_again(db, clinic, monday, now) -> None:
    appointment = _book(db, clinic, monday, now)
    appointments.cancel_appointment(db, clinic['patient'], appointment.id, now=now)

    with pytest.raises(ConflictError):
        appointments.cancel_appointment(db, clinic['patient'], appointment.id, now=now)


def test_reschedule_moves_the_appointment(db, clinic, monday, now) -> None:
    appointment = _book(db, clinic, monday, now)

    moved = appointments.reschedule_appointment(db, clinic['patient'], appointment.id, monday, time(14, 30), now=now)

    assert moved.time == time(14, 30)
    assert moved.status == lifecycle.PENDING
    days = appointments.get_availability(db, clinic['dentist'].id, monday, monday, today=monday)
    booked = [slot.time_24 for slot in days[0].time_slots if slot.is_booked]
    assert booked == ['14:30']


def test_reschedule_to_the_same_slot_is_allowed(db, clinic, monday, now) -> None:
    appointment = _book(db, clinic, monday, now)

    moved = appointments.reschedule_appointment(db, clinic['patient'], appointment.id, monday, time(9, 0), now=now)

    assert moved.time == time(9, 0)


def test_reschedule_into_a_taken_slot_is_a_conflict(db, clinic, monday, now, make_patient) -> None:
    first = _book(db, clinic, monday, now)
    _book(db, clinic, monday, now, at=time(10, 0), actor=make_patient())

    with pytest.raises(ConflictError):
        appointments.reschedule_appointment(db, clinic['patient'], first.id, monday, time(10, 0), now=now)


def test_confirmed_appointment_cannot_be_rescheduled_23_hours_before(db, clinic, monday, now) -> None:
    appointment = _book(db, clinic, monday, now)
    appointments.update_status(db, clinic['dentist'].user, appointment.id, 'confirmed', now=now)
    late = pytz.utc.localize(datetime.combine(monday, time(9, 0))) - timedelta(hours=23)

    with pytest.raises(ConflictError):
        appointments.reschedule_appointment(
            db, clinic['patient'], appointment.id, monday + timedelta(days=1), time(10, 0), now=late
        )

    db.refresh(appointment)
    assert (appointment.date, appointment.time) == (monday, time(9, 0))
    assert appointment.status == lifecycle.CONFIRMED


def test_reschedule_to_a_time_with_seconds_is_rejected(db, clinic, monday, now) -> None:
    appointment = _book(db, clinic, monday, now)

    with pytest.raises(ValidationError):
        appointments.reschedule_appointment(db, clinic['patient'], appointment.id, monday, time(10, 0, 30), now=now)

    db.refresh(appointment)
    assert appointment.time == time(9, 0)


def test_availability_reflects_bookings(db, clinic, monday, now) -> None:
    _book(db, clinic, monday, now)

    days = appointments.get_availability(db, clinic['dentist'].id, monday, monday + timedelta(days=6), today=monday)

    assert len(days) == 7
    assert days[0].total_slots == 16
    assert days[0].available_slots == 15
    assert days[5].total_slots == 0


def test_working_hours_are_replaced_by_the_dentist(db, clinic, monday) -> None:
    hours = WorkingHours(monday=WorkingDay(start=time(10, 0), end=time(12, 0)))

    saved = appointments.set_working_hours(db, clinic['dentist'].user, clinic['dentist'].id, hours)

    assert saved == hours
    days = appointments.get_availability(db, clinic['dentist'].id, monday, monday + timedelta(days=1), today=monday)
    assert days[0].total_slots == 4
    assert days[1].status == DAY_NOT_CONFIGURED


def test_patients_cannot_change_working_hours(db, clinic) -> None:
    with pytest.raises(PermissionDeniedError):
        appointments.set_working_hours(db, clinic['patient'], clinic['dentist'].id, WorkingHours())


def test_list_appointments_is_scoped_by_role(db, clinic, monday, now, make_patient, admin) -> None:
    other_patient = make_patient()
    _book(db, clinic, monday, now)
    _book(db, clinic, monday, now, at=time(11, 0), actor=other_patient)

    assert len(appointments.list_appointments(db, clinic['patient'])) == 1
    assert len(appointments.list_appointments(db, clinic['dentist'].user)) == 2
    assert len(appointments.list_appointments(db, admin, status='pending')) == 2
    assert appointments.list_appointments(db, admin, status='confirmed') == []
