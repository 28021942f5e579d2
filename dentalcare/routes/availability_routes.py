from datetime import date

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from dentalcare.auth import rules
from dentalcare.auth.dependencies import get_current_user, require_roles
from dentalcare.database import get_db
from dentalcare.models.dentist import Dentist
from dentalcare.models.service import DentistService
from dentalcare.models.user import User
from dentalcare.routes.common import translate_errors
from dentalcare.scheduling.availability import DayAvailability, WorkingHours
from dentalcare.scheduling.lifecycle import ROLE_ADMIN
from dentalcare.services import accounts, appointments, catalog

router = APIRouter(tags=['dentists'])


class CreateDentistRequest(BaseModel):
    email: str
    password: str
    first_name: str
    last_name: str
    license_number: str = ''
    specialization: str = ''
    bio: str = ''
    consultation_fee: float = 0.0
    working_hours: WorkingHours | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return rules.normalize_email(value)

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return rules.validate_password_strength(value)


class DentistResponse(BaseModel):
    id: int
    user_id: int
    name: str
    email: str
    license_number: str
    specialization: str
    bio: str
    consultation_fee: float
    is_active: bool


class DentistServiceResponse(BaseModel):
    service_id: int
    name: str
    category: str
    description: str
    duration: int
    price: float
    notes: str | None = None


def to_dentist_response(dentist: Dentist) -> DentistResponse:
    return DentistResponse(
        id=dentist.id,
        user_id=dentist.user_id,
        name=dentist.user.full_name,
        email=dentist.user.email,
        license_number=dentist.license_number,
        specialization=dentist.specialization,
        bio=dentist.bio,
        consultation_fee=dentist.consultation_fee,
        is_active=dentist.is_active,
    )


def to_dentist_service_response(assignment: DentistService) -> DentistServiceResponse:
    return DentistServiceResponse(
        service_id=assignment.service_id,
        name=assignment.service.name,
        category=assignment.service.category,
        description=assignment.service.description,
        duration=assignment.duration,
        price=assignment.price,
        notes=assignment.notes,
    )


@router.get('', response_model=list[DentistResponse])
def list_dentists(db: Session = Depends(get_db)):
    with translate_errors(db):
        return [to_dentist_response(dentist) for dentist in catalog.list_dentists(db)]


@router.post('', response_model=DentistResponse, status_code=status.HTTP_201_CREATED)
def create_dentist(
    data: CreateDentistRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
):
    with translate_errors(db):
        dentist = accounts.create_dentist(db, **data.model_dump(exclude={'working_hours'}), working_hours=data.working_hours)
        return to_dentist_response(dentist)


@router.get('/{dentist_id}/working-hours', response_model=WorkingHours)
def get_working_hours(dentist_id: int, db: Session = Depends(get_db)):
    with translate_errors(db):
        return appointments.get_working_hours(db, dentist_id)


@router.put('/{dentist_id}/working-hours', response_model=WorkingHours)
def set_working_hours(
    dentist_id: int,
    data: WorkingHours,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    with translate_errors(db):
        return appointments.set_working_hours(db, current_user, dentist_id, data)


@router.get('/{dentist_id}/availability', response_model=list[DayAvailability])
def get_availability(
    dentist_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    with translate_errors(db):
        return appointments.get_availability(db, dentist_id, start_date, end_date)


@router.get('/{dentist_id}/services', response_model=list[DentistServiceResponse])
def list_dentist_services(dentist_id: int, db: Session = Depends(get_db)):
    with translate_errors(db):
        return [to_dentist_service_response(item) for item in catalog.list_dentist_services(db, dentist_id)]


@router.delete('/{dentist_id}/services/{service_id}', status_code=status.HTTP_204_NO_CONTENT)
def unassign_service(
    dentist_id: int,
    service_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
):
    with translate_errors(db):
        catalog.unassign_service(db, dentist_id, service_id)
