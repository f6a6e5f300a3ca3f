"""
Slot and calendar rules for lesson booking.

Everything here is a pure function of its inputs so the same rules can run in
the API, in background jobs and in the client booking flow:

- availability maps are keyed by canonical lowercase weekday and hold unique
  ``HH:MM`` UTC times
- the weekday of a requested date is derived with the date anchored at noon,
  never midnight, so a zone offset can not move it onto a neighbouring day
- slot membership is an exact string match, there is no nearest-slot logic
- recurring series are ``weeks`` dates spaced exactly seven days apart
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
import re
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Union

import pytz

from ..core.constants import (
    DATE_FORMAT,
    DEFAULT_TIMEZONE,
    RECURRING_WEEK_OPTIONS,
    SELECT_DATE_AND_TIME_MESSAGE,
    TIME_FORMAT,
    WEEKDAYS,
)

TIME_PATTERN = re.compile(r"^(?:[01]\d|2[0-3]):[0-5]\d$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
LOCAL_LABEL_PATTERN = re.compile(r"^(1[0-2]|[1-9]):([0-5]\d) (AM|PM)$")

NOON = time(12, 0)

AvailabilityMap = Dict[str, List[str]]
DateLike = Union[date, str]


class SchedulingError(ValueError):
    """Raised when a date, time or availability value is malformed."""


class SelectionMissingError(SchedulingError):
    """Raised when a slot request lacks its date or time."""

    def __init__(self, message: str = SELECT_DATE_AND_TIME_MESSAGE) -> None:
        super().__init__(message)


class LocalDisplay(NamedTuple):
    """A UTC slot as the viewer sees it."""

    date: date
    time: str
    timezone: str

    def __str__(self) -> str:
        return self.time


def parse_time_str(value: str) -> time:
    """Parse a strict 24-hour ``HH:MM`` string."""
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise SchedulingError(f"Invalid time '{value}'. Expected HH:MM in 24-hour format")
    return datetime.strptime(value, TIME_FORMAT).time()


def format_time(value: time) -> str:
    return value.strftime(TIME_FORMAT)


def parse_date_str(value: DateLike) -> date:
    """Parse a ``YYYY-MM-DD`` string; ``date`` instances pass through."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise SchedulingError(f"Invalid date '{value}'. Expected YYYY-MM-DD")
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError as exc:
        raise SchedulingError(f"Invalid date '{value}'. Expected YYYY-MM-DD") from exc


def weekday_of(value: DateLike) -> str:
    """Canonical weekday name of a calendar date, evaluated at local noon."""
    anchored = datetime.combine(parse_date_str(value), NOON)
    return WEEKDAYS[anchored.weekday()]


def normalize_availability(
    raw: Optional[Mapping[str, Iterable[str]]],
    *,
    include_empty_days: bool = False,
) -> AvailabilityMap:
    """
    Validate and canonicalise an availability map.

    Unknown weekday keys and malformed times raise ``SchedulingError``.
    Duplicate times collapse; each day is sorted ascending. Days without
    slots are dropped unless ``include_empty_days`` is set, in which case all
    seven days are present.
    """
    normalized: AvailabilityMap = {day: [] for day in WEEKDAYS} if include_empty_days else {}
    if not raw:
        return normalized

    for day, times in raw.items():
        if day not in WEEKDAYS:
            raise SchedulingError(
                f"Unknown weekday '{day}'. Expected one of: {', '.join(WEEKDAYS)}"
            )
        if isinstance(times, str):
            raise SchedulingError(f"Times for '{day}' must be a list of HH:MM strings")
        unique = {format_time(parse_time_str(t)) for t in times}
        if unique or include_empty_days:
            normalized[day] = sorted(unique)

    return {day: normalized[day] for day in WEEKDAYS if day in normalized}


def is_slot_bookable(
    availability: Mapping[str, Iterable[str]],
    booking_date: Optional[DateLike],
    start_time: Optional[str],
) -> bool:
    """
    True when ``start_time`` is literally listed for the weekday of ``booking_date``.

    Raises ``SelectionMissingError`` when either part of the selection is absent.
    """
    if not booking_date or not start_time:
        raise SelectionMissingError()
    day_slots = availability.get(weekday_of(booking_date)) or ()
    return start_time in set(day_slots)


def slots_for_date(availability: Mapping[str, Iterable[str]], booking_date: DateLike) -> List[str]:
    """Sorted UTC slots offered on the weekday of ``booking_date``."""
    return sorted(set(availability.get(weekday_of(booking_date)) or ()))


def generate_series_dates(start_date: DateLike, weeks: int) -> List[date]:
    """Lesson dates of a recurring series: ``weeks`` dates, seven days apart."""
    if weeks not in RECURRING_WEEK_OPTIONS:
        options = ", ".join(str(w) for w in RECURRING_WEEK_OPTIONS)
        raise SchedulingError(f"Recurring weeks must be one of: {options}")
    first = parse_date_str(start_date)
    return [first + timedelta(weeks=index) for index in range(weeks)]


def lesson_start_utc(booking_date: DateLike, start_time: Union[time, str]) -> datetime:
    """Timezone-aware UTC start of a lesson stored as UTC date and time."""
    slot_time = parse_time_str(start_time) if isinstance(start_time, str) else start_time
    return datetime.combine(parse_date_str(booking_date), slot_time, tzinfo=timezone.utc)


def get_zone(zone_name: Optional[str]) -> pytz.BaseTzInfo:
    """Resolve an IANA zone, falling back to the platform default."""
    try:
        return pytz.timezone(zone_name or DEFAULT_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone(DEFAULT_TIMEZONE)


def format_12h(value: time) -> str:
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{value.hour % 12 or 12}:{value.minute:02d} {suffix}"


def local_display(booking_date: DateLike, utc_time: str, zone_name: Optional[str]) -> LocalDisplay:
    """
    Present a stored UTC slot in the viewer's zone as a 12-hour clock time.

    The returned date can differ from ``booking_date`` when the zone offset
    crosses midnight.
    """
    zone = get_zone(zone_name)
    local_dt = lesson_start_utc(booking_date, utc_time).astimezone(zone)
    return LocalDisplay(date=local_dt.date(), time=format_12h(local_dt.time()), timezone=zone.zone)


def local_to_utc(local_date: DateLike, local_label: str, zone_name: Optional[str]) -> tuple[date, str]:
    """
    Inverse of ``local_display``: map a local 12-hour label back to UTC date and ``HH:MM``.

    Times that do not exist locally (spring-forward gap) raise ``SchedulingError``;
    ambiguous fall-back times resolve to the first occurrence.
    """
    match = LOCAL_LABEL_PATTERN.match(local_label or "")
    if not match:
        raise SchedulingError(f"Invalid local time '{local_label}'. Expected e.g. 9:00 AM")
    hour = int(match.group(1)) % 12 + (12 if match.group(3) == "PM" else 0)
    naive = datetime.combine(parse_date_str(local_date), time(hour, int(match.group(2))))

    zone = get_zone(zone_name)
    try:
        localized = zone.localize(naive, is_dst=None)
    except pytz.exceptions.AmbiguousTimeError:
        localized = zone.localize(naive, is_dst=True)
    except pytz.exceptions.NonExistentTimeError as exc:
        raise SchedulingError(
            f"The time {local_label} does not exist on {naive.date()} in {zone.zone}"
        ) from exc

    utc_dt = localized.astimezone(timezone.utc)
    return utc_dt.date(), format_time(utc_dt.time())
