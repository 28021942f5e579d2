from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from dentalcare.auth.dependencies import require_roles
from dentalcare.database import get_db
from dentalcare.models.user import User
from dentalcare.routes.availability_routes import DentistServiceResponse, to_dentist_service_response
from dentalcare.routes.common import translate_errors
from dentalcare.scheduling.lifecycle import ROLE_ADMIN
from dentalcare.services import catalog

router = APIRouter(tags=['services'])


class ServiceRequest(BaseModel):
    name: str
    category: str = 'general'
    default_duration: int = Field(default=30, gt=0)
    default_price: float = Field(default=0.0, ge=0)
    description: str = ''
    is_active: bool = True

    @field_validator('name', 'category')
    @classmethod
    def validate_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized


class UpdateServiceRequest(BaseModel):
    name: str | None = None
    category: str | None = None
    default_duration: int | None = Field(default=None, gt=0)
    default_price: float | None = Field(default=None, ge=0)
    description: str | None = None
    is_active: bool | None = None


class AssignServiceRequest(BaseModel):
    dentist_id: int
    service_id: int
    custom_price: float | None = Field(default=None, ge=0)
    custom_duration: int | None = Field(default=None, gt=0)
    notes: str | None = None


class ServiceResponse(BaseModel):
    id: int
    name: str
    category: str
    default_duration: int
    default_price: float
    description: str
    is_active: bool

    class Config:
        from_attributes = True


@router.get('', response_model=list[ServiceResponse])
def list_services(
    category: str | None = Query(default=None),
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    with translate_errors(db):
        return catalog.list_services(db, include_inactive=include_inactive, category=category)


@router.post('', response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
def create_service(
    data: ServiceRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
):
    with translate_errors(db):
        return catalog.create_service(db, **data.model_dump())


@router.put('/{service_id}', response_model=ServiceResponse)
def update_service(
    service_id: int,
    data: UpdateServiceRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
):
    with translate_errors(db):
        return catalog.update_service(db, service_id, **data.model_dump(exclude_unset=True))


@router.post('/assign', response_model=DentistServiceResponse, status_code=status.HTTP_201_CREATED)
def assign_service(
    data: AssignServiceRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
):
    with translate_errors(db):
        assignment = catalog.assign_service(db, **data.model_dump())
        return to_dentist_service_response(assignment)
