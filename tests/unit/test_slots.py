# tests/unit/test_slots.py

from datetime import datetime

import pytest

from ethree.application.slot_service import SlotAvailabilityService
from ethree.domain.exceptions import InvalidInputError, StorageError
from ethree.domain.locations import Location
from ethree.domain.slots import (
    REFERENCE_TZ,
    SlotStatus,
    baseline_hours,
    booked_hours,
    build_slots,
    format_time_12h,
    is_available,
    parse_query_date,
)


def _ist(year, month, day, hour, minute=0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=REFERENCE_TZ)


class StaticItems:
    def __init__(self, items_by_location=None, error=None):
        self.items_by_location = items_by_location or {}
        self.error = error

    def list_items(self, location):
        if self.error is not None:
            raise self.error
        return self.items_by_location.get(location, [])


# ---------------------
# BASELINE OCCUPANCY
# ---------------------

def test_baseline_is_shifted_by_date_hash():
    # "2026-02-20" has an ordinal sum of 488, so the shift is 2.
    assert baseline_hours("2026-02-20", Location.E3) == {10, 13, 16, 19}
    assert baseline_hours("2026-02-20", Location.E4) == {11, 14, 17, 20}


def test_baseline_is_deterministic():
    first = baseline_hours("2026-03-14", Location.E4)
    second = baseline_hours("2026-03-14", Location.E4)
    assert first == second


def test_baseline_stays_inside_operating_hours():
    for day in range(1, 29):
        for location in Location:
            hours = baseline_hours(f"2026-02-{day:02d}", location)
            assert len(hours) == 4
            assert all(10 <= hour < 22 for hour in hours)


# ---------------------
# SLOT LISTING
# ---------------------

def test_twelve_hourly_slots_in_order():
    slots = build_slots("2026-02-21", set(), _ist(2026, 2, 20, 9))

    assert [slot.hour for slot in slots] == list(range(10, 22))
    assert slots[0].start_time == "10:00"
    assert slots[0].end_time == "11:00"
    assert slots[0].label == "10:00 AM - 11:00 AM"
    assert slots[-1].label == "9:00 PM - 10:00 PM"
    assert all(slot.price == 2000 for slot in slots)


def test_current_hour_and_earlier_are_past_today():
    slots = build_slots("2026-02-20", {16}, _ist(2026, 2, 20, 14, 30))
    by_hour = {slot.hour: slot.status for slot in slots}

    assert all(by_hour[hour] == SlotStatus.PAST for hour in range(10, 15))
    assert by_hour[15] == SlotStatus.AVAILABLE
    assert by_hour[16] == SlotStatus.BOOKED


def test_past_outranks_booked():
    slots = build_slots("2026-02-20", {11}, _ist(2026, 2, 20, 14))
    assert slots[1].status == SlotStatus.PAST
    assert not slots[1].bookable


def test_other_dates_have_no_past_slots():
    slots = build_slots("2026-02-21", set(), _ist(2026, 2, 20, 23))
    assert all(slot.status == SlotStatus.AVAILABLE for slot in slots)


def test_now_is_read_on_the_venue_clock():
    # 20:00 UTC on the 19th is already 01:30 on the 20th in IST.
    utc_evening = datetime.fromisoformat("2026-02-19T20:00:00+00:00")
    slots = build_slots("2026-02-20", set(), utc_evening)
    assert all(slot.status == SlotStatus.AVAILABLE for slot in slots)


# ---------------------
# OCCUPANCY FROM ORDERS
# ---------------------

def test_booked_hours_read_matching_date_only():
    orders_items = [
        [{"name": "Party Hall", "details": {"date": "2026-02-20", "startTime": "15:00"}}],
        [
            {"name": "Bowling", "details": {"date": "2026-02-21", "startTime": "12:00"}},
            {"name": "Cafe Combo"},
            {"name": "Hall", "details": {"date": "2026-02-20", "startTime": "late"}},
        ],
        None,
    ]
    assert booked_hours(orders_items, "2026-02-20") == {15}


# ---------------------
# INPUT PARSING
# ---------------------

@pytest.mark.parametrize("value", ["2026-2-20", "20-02-2026", "2026-02-30", ""])
def test_bad_dates_rejected(value):
    with pytest.raises(InvalidInputError):
        parse_query_date(value)


def test_twelve_hour_formatting():
    assert format_time_12h("00:15") == "12:15 AM"
    assert format_time_12h("12:00") == "12:00 PM"
    assert format_time_12h("21:30") == "9:30 PM"


# ---------------------
# SINGLE SLOT CHECK
# ---------------------

def test_single_check_uses_baseline_only():
    assert not is_available("2026-02-20", "13:00", Location.E3)
    assert is_available("2026-02-20", "14:00", Location.E3)


def test_single_check_outside_operating_hours():
    assert not is_available("2026-02-20", "09:00", Location.E3)
    assert not is_available("2026-02-20", "22:00", Location.E3)


def test_single_check_rejects_bad_time():
    with pytest.raises(InvalidInputError):
        is_available("2026-02-20", "2pm", Location.E3)


# ---------------------
# SERVICE
# ---------------------

def test_service_merges_orders_and_baseline():
    source = StaticItems(
        {Location.E3: [[{"details": {"date": "2026-02-21", "startTime": "21:00"}}]]}
    )
    service = SlotAvailabilityService(source, clock=lambda: _ist(2026, 2, 20, 9))

    availability = service.get_availability("2026-02-21", "e3")
    booked = {slot.hour for slot in availability.slots if slot.status == SlotStatus.BOOKED}

    assert availability.location == Location.E3
    assert not availability.degraded
    assert booked == set(baseline_hours("2026-02-21", Location.E3)) | {21}


def test_service_defaults_to_primary_location():
    service = SlotAvailabilityService(StaticItems(), clock=lambda: _ist(2026, 2, 20, 9))
    assert service.get_availability("2026-02-21", None).location == Location.E3


def test_service_degrades_to_baseline_when_store_fails(caplog):
    source = StaticItems(error=StorageError("Failed to read e4orders"))
    service = SlotAvailabilityService(source, clock=lambda: _ist(2026, 2, 20, 9))

    with caplog.at_level("WARNING"):
        availability = service.get_availability("2026-02-21", "E4")

    booked = {slot.hour for slot in availability.slots if slot.status == SlotStatus.BOOKED}
    assert availability.degraded
    assert booked == set(baseline_hours("2026-02-21", Location.E4))
    assert "availability degraded" in caplog.text


def test_service_rejects_unknown_location():
    service = SlotAvailabilityService(StaticItems())
    with pytest.raises(InvalidInputError):
        service.get_availability("2026-02-21", "E9")
