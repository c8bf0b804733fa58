# ethree/domain/slots.py

"""
Hourly slot computation.

Slots are never stored. They are derived per request from the booking
details of existing orders plus a deterministic baseline occupancy that
keeps demo and staging environments looking realistically busy.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Mapping

from ethree.domain.exceptions import InvalidInputError
from ethree.domain.locations import Location

SLOT_START_HOUR = 10
SLOT_END_HOUR = 22
PRICE_PER_HOUR = 2000

# Venue wall clock (IST). Fixed offset, no DST.
REFERENCE_TZ = timezone(timedelta(hours=5, minutes=30))

BASELINE_HOURS: dict[Location, frozenset[int]] = {
    Location.E3: frozenset({11, 14, 17, 20}),
    Location.E4: frozenset({12, 15, 18, 21}),
}

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    PAST = "past"


@dataclass(frozen=True)
class Slot:
    hour: int
    start_time: str
    end_time: str
    label: str
    status: SlotStatus
    price: int

    @property
    def bookable(self) -> bool:
        return self.status == SlotStatus.AVAILABLE


def parse_query_date(value: str) -> str:
    """Validates a YYYY-MM-DD calendar date and returns it unchanged."""
    if not isinstance(value, str) or not _DATE_PATTERN.match(value):
        raise InvalidInputError("Date must be YYYY-MM-DD")
    try:
        date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid calendar date: {value}") from exc
    return value


def parse_hour(value: str | None) -> int | None:
    """Hour component of an HH:MM string, or None when unparseable."""
    if not isinstance(value, str):
        return None
    match = _TIME_PATTERN.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour


def require_time(value: str) -> int:
    hour = parse_hour(value)
    if hour is None:
        raise InvalidInputError("Time must be HH:MM")
    return hour


def date_hash(value: str) -> int:
    return sum(ord(ch) for ch in value)


def baseline_hours(query_date: str, location: Location) -> frozenset[int]:
    """
    Pseudo-booked hours for (date, location).
    Pure function of its inputs: the location's baseline set is shifted
    cyclically through the operating window by date_hash % 3.
    """
    span = SLOT_END_HOUR - SLOT_START_HOUR
    shift = date_hash(query_date) % 3
    shifted = {
        SLOT_START_HOUR + (hour - SLOT_START_HOUR + shift) % span
        for hour in BASELINE_HOURS[location]
    }
    return frozenset(
        hour for hour in shifted if SLOT_START_HOUR <= hour < SLOT_END_HOUR
    )


def booked_hours(
    orders_items: Iterable[Iterable[Mapping] | None],
    query_date: str,
) -> set[int]:
    """
    Start hours of every line item whose booking details fall on query_date.
    Items without details or with an unparseable start time are skipped.
    """
    hours: set[int] = set()
    for items in orders_items:
        for item in items or []:
            if not isinstance(item, Mapping):
                continue
            details = item.get("details")
            if not isinstance(details, Mapping):
                continue
            if details.get("date") != query_date:
                continue
            hour = parse_hour(details.get("startTime"))
            if hour is not None:
                hours.add(hour)
    return hours


def format_time_12h(value: str) -> str:
    hour = parse_hour(value)
    if hour is None:
        return value
    minute = value.strip().split(":")[1]
    suffix = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12}:{minute} {suffix}"


def build_slots(
    query_date: str,
    occupied: set[int] | frozenset[int],
    now: datetime,
) -> list[Slot]:
    """
    One slot per operating hour, ascending.
    past outranks booked: both are unbookable, past is more informative.
    """
    local_now = now.astimezone(REFERENCE_TZ)
    is_today = local_now.date().isoformat() == query_date

    slots = []
    for hour in range(SLOT_START_HOUR, SLOT_END_HOUR):
        if is_today and hour <= local_now.hour:
            status = SlotStatus.PAST
        elif hour in occupied:
            status = SlotStatus.BOOKED
        else:
            status = SlotStatus.AVAILABLE

        start_time = f"{hour:02d}:00"
        end_time = f"{hour + 1:02d}:00"
        slots.append(
            Slot(
                hour=hour,
                start_time=start_time,
                end_time=end_time,
                label=f"{format_time_12h(start_time)} - {format_time_12h(end_time)}",
                status=status,
                price=PRICE_PER_HOUR,
            )
        )
    return slots


def is_available(query_date: str, start_time: str, location: Location) -> bool:
    """
    Single-slot check against the baseline only.
    Live orders are not consulted here, unlike the full availability
    listing, so a slot can be reported free here and booked there.
    """
    parse_query_date(query_date)
    hour = require_time(start_time)
    if not SLOT_START_HOUR <= hour < SLOT_END_HOUR:
        return False
    return hour not in baseline_hours(query_date, location)
