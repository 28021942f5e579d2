"""Explicit appointment-list state for one signed-in user.

Owned by whoever composes the client, never a module-level singleton.
Changes are two-phase: a pending marker is set as soon as a change is
requested and replaced by the server's record once it answers. Nothing in
``appointments`` is ever written from a guess.
"""

import logging
from datetime import date, time

from dentalcare.client.api import DentalCareClient
from dentalcare.client.models import AppointmentRecord, BookingIntent
from dentalcare.scheduling import lifecycle
from dentalcare.scheduling.errors import BookingError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)


class AppointmentListState:
    def __init__(self, client: DentalCareClient):
        self.client = client
        self.appointments: dict[int, AppointmentRecord] = {}
        self.pending: dict[int, str] = {}
        self.loading = False
        self.error: str | None = None

    def items(self) -> list[AppointmentRecord]:
        return sorted(self.appointments.values(), key=lambda item: (item.date, item.time))

    def display_status(self, appointment_id: int) -> str:
        """Status to show: the requested one while the server has not answered yet."""
        if appointment_id in self.pending:
            return self.pending[appointment_id]
        if appointment_id not in self.appointments:
            raise NotFoundError(f'Appointment {appointment_id} is not in this list.')
        return self.appointments[appointment_id].status

    def is_pending(self, appointment_id: int) -> bool:
        return appointment_id in self.pending

    async def refresh(
        self,
        appointment_date: date | None = None,
        status: str | None = None,
    ) -> list[AppointmentRecord]:
        self.loading = True
        self.error = None
        try:
            found = await self.client.list_appointments(appointment_date=appointment_date, status=status)
        except BookingError as exc:
            self.error = exc.message
            raise
        finally:
            self.loading = False

        self.appointments = {item.id: item for item in found}
        return self.items()

    async def _change(self, appointment_id: int, marker: str, request) -> AppointmentRecord:
        if appointment_id in self.pending:
            raise ConflictError(f'Appointment {appointment_id} already has a change in progress.')

        self.pending[appointment_id] = marker
        self.error = None
        try:
            updated = await request()
        except BookingError as exc:
            self.error = exc.message
            logger.info('Change to appointment %s rejected: %s', appointment_id, exc.message)
            raise
        finally:
            self.pending.pop(appointment_id, None)

        self.appointments[updated.id] = updated
        return updated

    async def cancel(self, appointment_id: int) -> AppointmentRecord:
        return await self._change(
            appointment_id,
            lifecycle.CANCELLED,
            lambda: self.client.cancel(appointment_id),
        )

    async def update_status(self, appointment_id: int, status: str) -> AppointmentRecord:
        return await self._change(
            appointment_id,
            status,
            lambda: self.client.update_status(appointment_id, status),
        )

    async def reschedule(self, appointment_id: int, new_date: date, new_time: time) -> AppointmentRecord:
        return await self._change(
            appointment_id,
            'rescheduling',
            lambda: self.client.reschedule(appointment_id, new_date, new_time),
        )

    async def book(self, intent: BookingIntent, idempotency_key: str | None = None) -> AppointmentRecord:
        self.loading = True
        self.error = None
        try:
            created = await self.client.create_appointment(intent, idempotency_key=idempotency_key)
        except BookingError as exc:
            self.error = exc.message
            raise
        finally:
            self.loading = False

        self.appointments[created.id] = created
        return created

