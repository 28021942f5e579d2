from datetime import date, datetime, time

from pydantic import BaseModel, field_validator

from dentalcare.auth import rules
from dentalcare.core import config
from dentalcare.scheduling.availability import format_time_24h, normalize_slot_time


class BookingIntent(BaseModel):
    """The slot a visitor picked, kept until the booking is created."""

    dentist_id: int
    service_id: int
    date: date
    time: time
    notes: str | None = None

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: time) -> time:
        normalized = normalize_slot_time(value)
        if normalized.minute % config.SLOT_MINUTES != 0:
            raise ValueError(f'Times must be on {config.SLOT_MINUTES}-minute boundaries.')
        return normalized

    def to_payload(self) -> dict:
        return {
            'dentist_id': self.dentist_id,
            'service_id': self.service_id,
            'date': self.date.isoformat(),
            'time': format_time_24h(self.time),
            'notes': self.notes,
        }


class GuestProfile(BaseModel):
    email: str
    password: str
    first_name: str
    last_name: str
    phone: str | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return rules.normalize_email(value)

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return rules.validate_password_strength(value)


class UserInfo(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    phone: str | None = None
    role: str


class AuthSession(BaseModel):
    access_token: str
    token_type: str = 'bearer'
    user: UserInfo


class AppointmentRecord(BaseModel):
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
