"""Bookable slot calculation for one dentist.

Turns a weekly working-hours template plus the dentist's existing
appointments into per-day slot lists. Everything here is a pure function of
its arguments: no database, no clock, no caching.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, Protocol

from pydantic import BaseModel, ConfigDict, model_validator

from dentalcare.core import config
from dentalcare.scheduling.errors import ConflictError, ValidationError
from dentalcare.scheduling.lifecycle import CANCELLED

WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')

DAY_AVAILABLE = 'available'
DAY_LIMITED = 'limited'
DAY_FULLY_BOOKED = 'fully-booked'
DAY_UNAVAILABLE = 'unavailable'
DAY_NOT_CONFIGURED = 'not-configured'


class WorkingDay(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: time
    end: time
    is_working: bool = True

    @model_validator(mode='after')
    def validate_range(self) -> 'WorkingDay':
        if self.is_working and self.start >= self.end:
            raise ValueError('A working day must start before it ends.')
        return self


class WorkingHours(BaseModel):
    """Weekly template. A weekday left as ``None`` has not been configured."""

    model_config = ConfigDict(frozen=True)

    monday: WorkingDay | None = None
    tuesday: WorkingDay | None = None
    wednesday: WorkingDay | None = None
    thursday: WorkingDay | None = None
    friday: WorkingDay | None = None
    saturday: WorkingDay | None = None
    sunday: WorkingDay | None = None

    def for_weekday(self, weekday: int) -> WorkingDay | None:
        return getattr(self, WEEKDAYS[weekday])

    def for_date(self, day: date) -> WorkingDay | None:
        return self.for_weekday(day.weekday())

    @property
    def is_configured(self) -> bool:
        return any(self.for_weekday(index) is not None for index in range(len(WEEKDAYS)))


class BookedSlot(Protocol):
    date: date
    time: time
    status: str


class TimeSlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    time_24: str
    time_12: str
    is_available: bool
    is_booked: bool

    @classmethod
    def at(cls, slot_time: time, is_booked: bool) -> 'TimeSlot':
        return cls(
            time_24=format_time_24h(slot_time),
            time_12=format_time_12h(slot_time),
            is_available=not is_booked,
            is_booked=is_booked,
        )


class DayAvailability(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: date
    status: str
    available_slots: int
    total_slots: int
    time_slots: list[TimeSlot]

    @property
    def booked_slots(self) -> int:
        return sum(1 for slot in self.time_slots if slot.is_booked)


def default_working_hours() -> WorkingHours:
    weekday = WorkingDay(start=time(9, 0), end=time(17, 0), is_working=True)
    return WorkingHours(
        monday=weekday,
        tuesday=weekday,
        wednesday=weekday,
        thursday=weekday,
        friday=weekday,
        saturday=WorkingDay(start=time(9, 0), end=time(13, 0), is_working=False),
        sunday=WorkingDay(start=time(0, 0), end=time(0, 0), is_working=False),
    )


def format_time_24h(value: time) -> str:
    return f'{value.hour:02d}:{value.minute:02d}'


def format_time_12h(value: time) -> str:
    period = 'PM' if value.hour >= 12 else 'AM'
    hour = value.hour % 12 or 12
    return f'{hour}:{value.minute:02d} {period}'


def parse_time_24h(value: str) -> time:
    try:
        return datetime.strptime(value.strip(), '%H:%M').time()
    except (AttributeError, ValueError) as exc:
        raise ValidationError(f"Invalid time '{value}'. Use HH:MM.") from exc


def normalize_slot_time(value: time) -> time:
    return value.replace(second=0, microsecond=0, tzinfo=None)


def validate_slot_time(value: time) -> time:
    """A requested start time; unlike stored ones it must already be a whole minute."""
    if value.second or value.microsecond:
        raise ValidationError(f"Invalid time '{value.isoformat()}'. Appointment times are whole minutes, like 09:30.")
    return value.replace(tzinfo=None)


def slot_times(day: WorkingDay, slot_minutes: int | None = None) -> list[time]:
    """Slot start times for a working day; the last one ends exactly at or before ``day.end``."""
    if not day.is_working:
        return []

    step = timedelta(minutes=slot_minutes or config.SLOT_MINUTES)
    anchor = date(2000, 1, 3)
    current = datetime.combine(anchor, day.start)
    day_end = datetime.combine(anchor, day.end)

    starts: list[time] = []
    while current + step <= day_end:
        starts.append(current.time())
        current += step

    return starts


def booked_slot_keys(appointments: Iterable[BookedSlot]) -> set[tuple[date, time]]:
    return {
        (appointment.date, normalize_slot_time(appointment.time))
        for appointment in appointments
        if appointment.status != CANCELLED
    }


def day_status(working_day: WorkingDay | None, available: int, total: int) -> str:
    if working_day is None:
        return DAY_NOT_CONFIGURED
    if not working_day.is_working or total == 0:
        return DAY_UNAVAILABLE
    if available == 0:
        return DAY_FULLY_BOOKED
    if available < total / 2:
        return DAY_LIMITED
    return DAY_AVAILABLE


def compute_day(
    working_hours: WorkingHours,
    booked: set[tuple[date, time]],
    day: date,
    slot_minutes: int | None = None,
) -> DayAvailability:
    working_day = working_hours.for_date(day)
    starts = slot_times(working_day, slot_minutes) if working_day is not None else []

    time_slots = [TimeSlot.at(start, (day, start) in booked) for start in starts]
    available = sum(1 for slot in time_slots if slot.is_available)

    return DayAvailability(
        date=day,
        status=day_status(working_day, available, len(time_slots)),
        available_slots=available,
        total_slots=len(time_slots),
        time_slots=time_slots,
    )


def validate_date_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise ValidationError('The end date must not be before the start date.')
    if (end_date - start_date).days > config.MAX_AVAILABILITY_RANGE_DAYS:
        raise ValidationError(
            f'Availability can be requested for at most {config.MAX_AVAILABILITY_RANGE_DAYS} days at a time.'
        )


def calculate_availability(
    working_hours: WorkingHours,
    appointments: Iterable[BookedSlot],
    start_date: date,
    end_date: date,
    slot_minutes: int | None = None,
) -> list[DayAvailability]:
    """Per-day availability for ``start_date``..``end_date`` inclusive.

    ``appointments`` are the dentist's appointments in range; cancelled ones
    are ignored. Past days are included; callers drop them with
    :func:`drop_past_days` before offering them.
    """
    validate_date_range(start_date, end_date)
    booked = booked_slot_keys(appointments)

    days: list[DayAvailability] = []
    current = start_date
    while current <= end_date:
        days.append(compute_day(working_hours, booked, current, slot_minutes))
        current += timedelta(days=1)

    return days


def drop_past_days(days: Iterable[DayAvailability], today: date) -> list[DayAvailability]:
    return [day for day in days if day.date >= today]


def ensure_slot_bookable(
    working_hours: WorkingHours,
    appointments: Iterable[BookedSlot],
    slot_date: date,
    slot_time: time,
    slot_minutes: int | None = None,
) -> None:
    """Raise ``ValidationError`` for a slot outside working hours, ``ConflictError`` if it is taken."""
    weekday_name = WEEKDAYS[slot_date.weekday()].capitalize()
    working_day = working_hours.for_date(slot_date)

    if working_day is None:
        raise ValidationError(f'Working hours are not configured for {weekday_name}.')
    if not working_day.is_working:
        raise ValidationError(f'The dentist is not available on {weekday_name}s.')

    normalized = normalize_slot_time(slot_time)
    if normalized not in slot_times(working_day, slot_minutes):
        raise ValidationError('The requested time is outside the dentist\'s working hours.')

    if (slot_date, normalized) in booked_slot_keys(appointments):
        raise ConflictError('This time is already booked. Please pick another time.')
