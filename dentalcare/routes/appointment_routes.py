from datetime import date, datetime, time

from fastapi import APIRouter, Depends, Header, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from dentalcare.auth.dependencies import get_current_user
from dentalcare.core import config
from dentalcare.database import get_db
from dentalcare.models.appointment import Appointment
from dentalcare.models.user import User
from dentalcare.routes.common import translate_errors
from dentalcare.scheduling.availability import format_time_12h, format_time_24h
from dentalcare.services import appointments

router = APIRouter(tags=['appointments'])


class CreateAppointmentRequest(BaseModel):
    dentist_id: int
    service_id: int
    date: date
    time: time
    notes: str | None = None
    patient_id: int | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class UpdateStatusRequest(BaseModel):
    status: str


class RescheduleRequest(BaseModel):
    date: date
    time: time


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    dentist_id: int
    service_id: int
    date: date
    time: str
    time_12: str
    duration: int
    notes: str | None = None
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        patient_id=appointment.patient_id,
        dentist_id=appointment.dentist_id,
        service_id=appointment.service_id,
        date=appointment.date,
        time=format_time_24h(appointment.time),
        time_12=format_time_12h(appointment.time),
        duration=appointment.duration,
        notes=appointment.notes,
        status=appointment.status,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
    )


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    appointment_date: date | None = Query(default=None, alias='date'),
    appointment_status: str | None = Query(default=None, alias='status'),
    dentist_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    with translate_errors(db):
        found = appointments.list_appointments(
            db,
            current_user,
            appointment_date=appointment_date,
            status=appointment_status,
            dentist_id=dentist_id,
        )
        return [to_appointment_response(appointment) for appointment in found]


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    idempotency_key: str | None = Header(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    with translate_errors(db):
        appointment = appointments.create_appointment(
            db,
            current_user,
            dentist_id=data.dentist_id,
            service_id=data.service_id,
            appointment_date=data.date,
            appointment_time=data.time,
            notes=data.notes,
            patient_id=data.patient_id,
            idempotency_key=idempotency_key,
        )
        return to_appointment_response(appointment)


@router.put('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    with translate_errors(db):
        appointment = appointments.update_status(db, current_user, appointment_id, data.status)
        return to_appointment_response(appointment)


@router.put('/{appointment_id}/schedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    with translate_errors(db):
        appointment = appointments.reschedule_appointment(db, current_user, appointment_id, data.date, data.time)
        return to_appointment_response(appointment)


@router.patch('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    with translate_errors(db):
        appointment = appointments.cancel_appointment(db, current_user, appointment_id)
        return to_appointment_response(appointment)
