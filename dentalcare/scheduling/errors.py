"""Typed booking failures shared by the API and the client.

Callers branch on the exception class; ``message`` is safe to show a user.
"""


class BookingError(Exception):
    """Base class for every failure the booking core reports."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BookingError):
    """Input that can never succeed: malformed, in the past, outside working hours."""


class ConflictError(BookingError):
    """The request is well formed but collides with current state."""


class NotFoundError(BookingError):
    pass


class PermissionDeniedError(BookingError):
    pass


class TransientError(BookingError):
    """Network or storage failure. The same request may succeed if retried by the user."""


class AuthError(BookingError):
    """Login or registration failed."""


class BookingAfterAuthError(BookingError):
    """The user is signed in, but the appointment could not be created."""

    def __init__(self, message: str, cause: BookingError):
        self.cause = cause
        super().__init__(message)
