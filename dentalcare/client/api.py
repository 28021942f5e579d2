"""Async HTTP client for the booking API.

Responses are mapped onto the typed failures in
:mod:`dentalcare.scheduling.errors` so callers can branch on the kind of
failure instead of on status codes.
"""

import logging
from datetime import date, time, timedelta

import httpx

from dentalcare.client.models import AppointmentRecord, AuthSession, BookingIntent, GuestProfile
from dentalcare.core import config
from dentalcare.scheduling.availability import DayAvailability, WorkingHours, drop_past_days, format_time_24h
from dentalcare.scheduling.errors import (
    AuthError,
    BookingError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TransientError,
    ValidationError,
)
from dentalcare.scheduling.lifecycle import clinic_now

logger = logging.getLogger(__name__)

UNREACHABLE_MESSAGE = 'Could not reach the booking service. Please try again.'

ERROR_TYPES = {
    400: ValidationError,
    401: AuthError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
}


def _detail_message(response: httpx.Response) -> str:
    try:
        detail = response.json().get('detail')
    except (ValueError, AttributeError):
        detail = None

    if isinstance(detail, str) and detail:
        return detail
    if isinstance(detail, list) and detail:
        return '; '.join(str(item.get('msg', item)) if isinstance(item, dict) else str(item) for item in detail)
    return f'Request failed with status {response.status_code}.'


def error_from_response(response: httpx.Response) -> BookingError:
    message = _detail_message(response)
    if response.status_code >= 500:
        return TransientError(message)
    error_type = ERROR_TYPES.get(response.status_code, BookingError)
    return error_type(message)


class DentalCareClient:
    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token = token
        self._client = httpx.AsyncClient(
            base_url=base_url or config.DENTALCARE_API_URL,
            timeout=timeout or config.CLIENT_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> 'DentalCareClient':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    async def _request(self, method: str, path: str, headers: dict | None = None, **kwargs) -> httpx.Response:
        headers = dict(headers or {})
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'

        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning('%s %s failed: %s', method, path, exc)
            raise TransientError(UNREACHABLE_MESSAGE) from exc

        if response.is_success:
            return response

        error = error_from_response(response)
        logger.info('%s %s rejected with %s: %s', method, path, response.status_code, error.message)
        raise error

    async def login(self, email: str, password: str) -> AuthSession:
        response = await self._request('POST', '/auth/login', json={'email': email, 'password': password})
        session = AuthSession.model_validate(response.json())
        self.token = session.access_token
        return session

    async def register(self, profile: GuestProfile) -> AuthSession:
        response = await self._request('POST', '/auth/register', json=profile.model_dump())
        session = AuthSession.model_validate(response.json())
        self.token = session.access_token
        return session

    def logout(self) -> None:
        self.token = None

    async def get_working_hours(self, dentist_id: int) -> WorkingHours:
        response = await self._request('GET', f'/dentists/{dentist_id}/working-hours')
        return WorkingHours.model_validate(response.json())

    async def set_working_hours(self, dentist_id: int, hours: WorkingHours) -> WorkingHours:
        response = await self._request(
            'PUT',
            f'/dentists/{dentist_id}/working-hours',
            json=hours.model_dump(mode='json'),
        )
        return WorkingHours.model_validate(response.json())

    async def get_availability(
        self,
        dentist_id: int,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[DayAvailability]:
        params = {}
        if start_date is not None:
            params['start_date'] = start_date.isoformat()
        if end_date is not None:
            params['end_date'] = end_date.isoformat()

        response = await self._request('GET', f'/dentists/{dentist_id}/availability', params=params)
        return [DayAvailability.model_validate(day) for day in response.json()]

    async def fetch_availability(
        self,
        dentist_id: int,
        days: int | None = None,
        today: date | None = None,
    ) -> list[DayAvailability]:
        """Bookable days from today onward; past days are never offered."""
        today = today or clinic_now().date()
        end_date = today + timedelta(days=config.AVAILABILITY_RANGE_DAYS if days is None else days)
        found = await self.get_availability(dentist_id, today, end_date)
        return drop_past_days(found, today)

    async def list_appointments(
        self,
        appointment_date: date | None = None,
        status: str | None = None,
        dentist_id: int | None = None,
    ) -> list[AppointmentRecord]:
        params = {}
        if appointment_date is not None:
            params['date'] = appointment_date.isoformat()
        if status:
            params['status'] = status
        if dentist_id is not None:
            params['dentist_id'] = dentist_id

        response = await self._request('GET', '/appointments', params=params)
        return [AppointmentRecord.model_validate(item) for item in response.json()]

    async def create_appointment(
        self,
        intent: BookingIntent,
        idempotency_key: str | None = None,
        patient_id: int | None = None,
    ) -> AppointmentRecord:
        payload = intent.to_payload()
        if patient_id is not None:
            payload['patient_id'] = patient_id
        headers = {'Idempotency-Key': idempotency_key} if idempotency_key else None

        response = await self._request('POST', '/appointments', json=payload, headers=headers)
        return AppointmentRecord.model_validate(response.json())

    async def update_status(self, appointment_id: int, status: str) -> AppointmentRecord:
        response = await self._request('PUT', f'/appointments/{appointment_id}/status', json={'status': status})
        return AppointmentRecord.model_validate(response.json())

    async def reschedule(self, appointment_id: int, new_date: date, new_time: time) -> AppointmentRecord:
        response = await self._request(
            'PUT',
            f'/appointments/{appointment_id}/schedule',
            json={'date': new_date.isoformat(), 'time': format_time_24h(new_time)},
        )
        return AppointmentRecord.model_validate(response.json())

    async def cancel(self, appointment_id: int) -> AppointmentRecord:
        response = await self._request('PATCH', f'/appointments/{appointment_id}/cancel')
        return AppointmentRecord.model_validate(response.json())
