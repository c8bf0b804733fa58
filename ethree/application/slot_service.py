import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Protocol

from ethree.domain.exceptions import StorageError
from ethree.domain.locations import Location
from ethree.domain.slots import (
    PRICE_PER_HOUR,
    Slot,
    baseline_hours,
    booked_hours,
    build_slots,
    is_available,
    parse_query_date,
)

logger = logging.getLogger(__name__)


class OrderItemsSource(Protocol):
    def list_items(self, location: Location) -> list[list]: ...


@dataclass(frozen=True)
class Availability:
    date: str
    location: Location
    price_per_hour: int
    slots: list[Slot]
    degraded: bool = False


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SlotAvailabilityService:
    """
    Read-only availability over existing orders.

    When the order store cannot be read the service answers from the
    baseline alone and flags the result as degraded.
    """

    def __init__(
        self,
        orders: OrderItemsSource,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.orders = orders
        self.clock = clock

    def get_availability(self, date: str, location: str | None) -> Availability:
        query_date = parse_query_date(date)
        resolved = Location.parse(location)

        degraded = False
        try:
            orders_items = self.orders.list_items(resolved)
        except StorageError:
            logger.warning(
                "availability degraded: order store unreadable, serving baseline only. "
                "date=%s location=%s",
                query_date,
                resolved.value,
                exc_info=True,
            )
            orders_items = []
            degraded = True

        occupied = booked_hours(orders_items, query_date) | baseline_hours(query_date, resolved)
        return Availability(
            date=query_date,
            location=resolved,
            price_per_hour=PRICE_PER_HOUR,
            slots=build_slots(query_date, occupied, self.clock()),
            degraded=degraded,
        )

    @staticmethod
    def check_slot(date: str, start_time: str, location: str | None) -> bool:
        return is_available(date, start_time, Location.parse(location))
