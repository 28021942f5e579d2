"""Service catalog and per-dentist service assignments."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dentalcare.models.dentist import Dentist
from dentalcare.models.service import DentistService, Service
from dentalcare.scheduling.errors import ConflictError, NotFoundError
from dentalcare.services.appointments import get_dentist

logger = logging.getLogger(__name__)

SERVICE_FIELDS = ('name', 'category', 'default_duration', 'default_price', 'description', 'is_active')


def list_services(db: Session, include_inactive: bool = False, category: str | None = None) -> list[Service]:
    query = db.query(Service)
    if not include_inactive:
        query = query.filter(Service.is_active.is_(True))
    if category:
        query = query.filter(Service.category == category)
    return query.order_by(Service.name.asc()).all()


def get_service(db: Session, service_id: int) -> Service:
    service = db.query(Service).filter(Service.id == service_id).first()
    if service is None:
        raise NotFoundError('Service not found.')
    return service


def create_service(db: Session, **fields) -> Service:
    service = Service(**{key: value for key, value in fields.items() if key in SERVICE_FIELDS})
    db.add(service)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('A service with this name already exists.') from exc
    db.refresh(service)
    logger.info('Service %s created', service.id)
    return service


def update_service(db: Session, service_id: int, **changes) -> Service:
    service = get_service(db, service_id)
    for key, value in changes.items():
        if key in SERVICE_FIELDS and value is not None:
            setattr(service, key, value)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('A service with this name already exists.') from exc
    db.refresh(service)
    return service


def assign_service(
    db: Session,
    dentist_id: int,
    service_id: int,
    custom_price: float | None = None,
    custom_duration: int | None = None,
    notes: str | None = None,
) -> DentistService:
    dentist = get_dentist(db, dentist_id, active_only=False)
    service = get_service(db, service_id)

    assignment = DentistService(
        dentist_id=dentist.id,
        service_id=service.id,
        custom_price=custom_price,
        custom_duration=custom_duration,
        notes=notes,
    )
    db.add(assignment)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('This service is already assigned to the dentist.') from exc
    db.refresh(assignment)
    logger.info('Service %s assigned to dentist %s', service.id, dentist.id)
    return assignment


def unassign_service(db: Session, dentist_id: int, service_id: int) -> None:
    assignment = db.query(DentistService).filter(
        DentistService.dentist_id == dentist_id,
        DentistService.service_id == service_id,
    ).first()
    if assignment is None:
        raise NotFoundError('This service is not assigned to the dentist.')
    db.delete(assignment)
    db.commit()


def list_dentist_services(db: Session, dentist_id: int, include_inactive: bool = False) -> list[DentistService]:
    get_dentist(db, dentist_id, active_only=False)
    query = (
        db.query(DentistService)
        .join(Service, Service.id == DentistService.service_id)
        .filter(DentistService.dentist_id == dentist_id)
    )
    if not include_inactive:
        query = query.filter(Service.is_active.is_(True))
    return query.order_by(Service.name.asc()).all()


def list_dentists(db: Session) -> list[Dentist]:
    return db.query(Dentist).filter(Dentist.is_active.is_(True)).order_by(Dentist.id.asc()).all()
