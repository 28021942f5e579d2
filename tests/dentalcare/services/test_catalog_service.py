import pytest

from dentalcare.scheduling.errors import AuthError, ConflictError, NotFoundError
from dentalcare.services import accounts, catalog


def test_custom_duration_and_price_override_the_catalog(db, make_dentist, make_service) -> None:
    dentist = make_dentist()
    service = make_service(default_duration=30)

    assignment = catalog.assign_service(db, dentist.id, service.id, custom_price=120.0, custom_duration=60)

    assert assignment.duration == 60
    assert assignment.price == 120.0


def test_assignment_without_overrides_uses_catalog_values(db, make_dentist, make_service) -> None:
    dentist = make_dentist()
    service = make_service(dentist=dentist, default_duration=45)

    [assignment] = catalog.list_dentist_services(db, dentist.id)

    assert assignment.service_id == service.id
    assert assignment.duration == 45
    assert assignment.price == 80.0


def test_assigning_twice_is_a_conflict(db, make_dentist, make_service) -> None:
    dentist = make_dentist()
    service = make_service(dentist=dentist)

    with pytest.raises(ConflictError):
        catalog.assign_service(db, dentist.id, service.id)


def test_unassign_service(db, make_dentist, make_service) -> None:
    dentist = make_dentist()
    service = make_service(dentist=dentist)

    catalog.unassign_service(db, dentist.id, service.id)

    assert catalog.list_dentist_services(db, dentist.id) == []
    with pytest.raises(NotFoundError):
        catalog.unassign_service(db, dentist.id, service.id)


def test_inactive_services_are_hidden_by_default(db, make_dentist, make_service) -> None:
    dentist = make_dentist()
    service = make_service(dentist=dentist)

    catalog.update_service(db, service.id, is_active=False)

    assert catalog.list_services(db) == []
    assert [item.id for item in catalog.list_services(db, include_inactive=True)] == [service.id]
    assert catalog.list_dentist_services(db, dentist.id) == []


def test_service_names_are_unique(db, make_service) -> None:
    service = make_service()

    with pytest.raises(ConflictError):
        catalog.create_service(db, name=service.name, category='preventive')


def test_list_dentists_returns_active_profiles(db, make_dentist) -> None:
    first = make_dentist()
    second = make_dentist()
    second.is_active = False
    db.commit()

    assert [dentist.id for dentist in catalog.list_dentists(db)] == [first.id]


def test_duplicate_email_is_a_conflict(db, make_patient) -> None:
    make_patient(email='pat@example.com')

    with pytest.raises(ConflictError):
        make_patient(email='pat@example.com')


def test_authenticate_checks_the_password(db, make_patient) -> None:
    patient = make_patient(email='pat@example.com')

    assert accounts.authenticate(db, 'pat@example.com', 'Secret123').id == patient.id
    with pytest.raises(AuthError):
        accounts.authenticate(db, 'pat@example.com', 'Wrong123')
    with pytest.raises(AuthError):
        accounts.authenticate(db, 'nobody@example.com', 'Secret123')
