"""Guest booking: pick a slot first, sign in or register, then book exactly once.

The picked slot and a freshly generated attempt id are written to the
scratch area *before* the authentication call. The attempt id stays there
until the create call has resolved, so a second invocation during the
asynchronous gap (a duplicated effect, a reload that calls :meth:`resume`)
finds it and backs off instead of booking again. The same id is sent as the
``Idempotency-Key`` header so the server can also drop a replayed request.

An attempt id left behind by a run that stopped while Create was in flight
(a cancelled task, a crash, an unreadable response) is finished by
:meth:`resume`, which re-sends Create under the same id. The server answers
a replay with the appointment it already made.
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Awaitable, Callable

from dentalcare.client.api import UNREACHABLE_MESSAGE, DentalCareClient
from dentalcare.client.models import AppointmentRecord, BookingIntent, GuestProfile
from dentalcare.client.scratch import ScratchStore
from dentalcare.scheduling import lifecycle
from dentalcare.scheduling.errors import (
    AuthError,
    BookingAfterAuthError,
    BookingError,
    ConflictError,
    TransientError,
)

logger = logging.getLogger(__name__)

PENDING_BOOKING_KEY = 'pending_booking'
GUEST_PROFILE_KEY = 'guest_profile'
ACTIVE_ATTEMPT_KEY = 'active_booking_attempt'

LOGIN_FAILED_MESSAGE = 'Login failed. Please check your credentials.'
REGISTRATION_FAILED_MESSAGE = 'Registration failed. Please try again.'
BOOKING_AFTER_LOGIN_MESSAGE = 'Signed in, but booking failed. Please try booking again from your dashboard.'
UNFINISHED_ATTEMPT_MESSAGE = 'An earlier booking has not been confirmed yet. Finish it before booking again.'


class GuestBookingFlow:
    def __init__(
        self,
        client: DentalCareClient,
        scratch: ScratchStore,
        clock: Callable[[], datetime] = lifecycle.clinic_now,
    ):
        self.client = client
        self.scratch = scratch
        self.clock = clock
        # Attempt id this flow is currently awaiting, if any.
        self._running: str | None = None

    def pending_intent(self) -> BookingIntent | None:
        saved = self.scratch.get(PENDING_BOOKING_KEY)
        if saved is None:
            return None
        try:
            return BookingIntent.model_validate_json(saved)
        except ValueError:
            logger.warning('Discarding unreadable saved booking')
            self.abandon()
            return None

    def draft_profile(self) -> dict | None:
        """The registration form as last submitted, without the password."""
        saved = self.scratch.get(GUEST_PROFILE_KEY)
        return json.loads(saved) if saved is not None else None

    def active_attempt(self) -> str | None:
        return self.scratch.get(ACTIVE_ATTEMPT_KEY)

    def abandon(self) -> None:
        for key in (PENDING_BOOKING_KEY, GUEST_PROFILE_KEY, ACTIVE_ATTEMPT_KEY):
            self.scratch.delete(key)

    def _ensure_bookable(self, intent: BookingIntent) -> None:
        lifecycle.ensure_future_slot(intent.date, intent.time, self.clock())

    def _attempt_in_progress(self) -> bool:
        """True while this flow awaits an attempt; an attempt nobody awaits must be resumed first."""
        active = self.active_attempt()
        if active is None:
            return False
        if active == self._running:
            return True
        raise ConflictError(UNFINISHED_ATTEMPT_MESSAGE)

    def _claim_attempt(self, prefix: str) -> str | None:
        # Check and claim with no await in between, so concurrent callers on one loop cannot both win.
        if self._attempt_in_progress():
            return None
        attempt_id = f'{prefix}-{uuid.uuid4().hex}'
        self.scratch.set(ACTIVE_ATTEMPT_KEY, attempt_id)
        self._running = attempt_id
        return attempt_id

    def _release_attempt(self) -> None:
        self.scratch.delete(ACTIVE_ATTEMPT_KEY)
        self._running = None

    async def _create_once(self, intent: BookingIntent, attempt_id: str, after_auth: bool) -> AppointmentRecord:
        logger.info('Booking attempt %s: creating appointment', attempt_id)
        try:
            appointment = await self.client.create_appointment(intent, idempotency_key=attempt_id)
        except BookingError as exc:
            logger.info('Booking attempt %s failed: %s', attempt_id, exc.message)
            self.abandon()
            if after_auth:
                raise BookingAfterAuthError(BOOKING_AFTER_LOGIN_MESSAGE, exc) from exc
            raise
        finally:
            # Anything else leaves the attempt in scratch for resume() to re-send under the same key.
            self._running = None

        self.abandon()
        logger.info('Booking attempt %s created appointment %s', attempt_id, appointment.id)
        return appointment

    async def _authenticate_then_book(
        self,
        intent: BookingIntent,
        prefix: str,
        authenticate: Callable[[], Awaitable[object]],
        failure_message: str,
    ) -> AppointmentRecord | None:
        attempt_id = self._claim_attempt(prefix)
        if attempt_id is None:
            logger.info('A booking attempt is already in progress; not starting another')
            return None

        authenticated = False
        try:
            await authenticate()
            authenticated = True
        except BookingError as exc:
            logger.info('Booking attempt %s: authentication failed: %s', attempt_id, exc.message)
            message = UNREACHABLE_MESSAGE if isinstance(exc, TransientError) else failure_message
            raise AuthError(message) from exc
        finally:
            if not authenticated:
                self._release_attempt()

        return await self._create_once(intent, attempt_id, after_auth=True)

    async def book(self, intent: BookingIntent) -> AppointmentRecord | None:
        """Book for an already signed-in user."""
        self._ensure_bookable(intent)
        if self._attempt_in_progress():
            return None
        self.scratch.set(PENDING_BOOKING_KEY, intent.model_dump_json())
        attempt_id = self._claim_attempt('book')
        return await self._create_once(intent, attempt_id, after_auth=False)

    async def book_with_login(self, intent: BookingIntent, email: str, password: str) -> AppointmentRecord | None:
        self._ensure_bookable(intent)
        if self._attempt_in_progress():
            return None
        self.scratch.set(PENDING_BOOKING_KEY, intent.model_dump_json())

        async def authenticate():
            return await self.client.login(email, password)

        return await self._authenticate_then_book(intent, 'login', authenticate, LOGIN_FAILED_MESSAGE)

    async def book_with_registration(self, intent: BookingIntent, profile: GuestProfile) -> AppointmentRecord | None:
        self._ensure_bookable(intent)
        if self._attempt_in_progress():
            return None
        self.scratch.set(PENDING_BOOKING_KEY, intent.model_dump_json())
        self.scratch.set(GUEST_PROFILE_KEY, profile.model_dump_json(exclude={'password'}))

        async def authenticate():
            return await self.client.register(profile)

        return await self._authenticate_then_book(intent, 'register', authenticate, REGISTRATION_FAILED_MESSAGE)

    async def resume(self) -> AppointmentRecord | None:
        """Finish a saved booking after a reload, if the user is signed in and nothing is in flight here."""
        active = self.active_attempt()
        if active is not None and active == self._running:
            logger.info('Saved booking already has an attempt in flight; skipping')
            return None

        intent = self.pending_intent()
        if intent is None:
            if active is not None:
                logger.info('Dropping booking attempt %s with no saved booking', active)
                self._release_attempt()
            return None
        if not self.client.is_authenticated:
            return None

        try:
            self._ensure_bookable(intent)
        except BookingError:
            self.abandon()
            raise

        if active is None:
            attempt_id = self._claim_attempt('resume')
        else:
            logger.info('Re-sending unfinished booking attempt %s', active)
            attempt_id = active
            self._running = active

        return await self._create_once(intent, attempt_id, after_auth=True)
