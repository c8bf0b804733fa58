from sqlalchemy.orm import Session

from ethree.domain.locations import Location
from ethree.domain.slots import format_time_12h
from ethree.domain.state_machine import OrderStatus
from ethree.infrastructure.db.models import OrderColumns
from ethree.infrastructure.repositories.order_repository import OrderRepository


def _is_event_item(item: dict) -> bool:
    product = str(item.get("product") or item.get("id") or "")
    details = item.get("details")
    return product.startswith("event-") or (isinstance(details, dict) and bool(details.get("date")))


class OrderQueryService:
    """Read side over both location order tables."""

    def __init__(self, db: Session):
        self.order_repository = OrderRepository(db)

    def orders_for_user(self, user_id: str) -> list[tuple[Location, OrderColumns]]:
        tagged = [
            (location, order)
            for location in Location
            for order in self.order_repository.list_for_user(user_id, location)
        ]
        tagged.sort(key=lambda pair: pair[1].created_at, reverse=True)
        return tagged

    def orders_at(self, location: Location) -> list[OrderColumns]:
        return self.order_repository.list_all(location)

    def event_bookings(self, location: Location) -> list[dict]:
        """Paid event line items flattened into one row per booking."""
        rows = []
        for order in self.order_repository.list_all(location):
            if order.status != OrderStatus.SUCCESS:
                continue
            for index, item in enumerate(order.items or []):
                if not isinstance(item, dict) or not _is_event_item(item):
                    continue
                details = item.get("details") or {}
                start, end = details.get("startTime"), details.get("endTime")
                rows.append(
                    {
                        "id": str(item.get("product") or f"{order.txnid}-{index}"),
                        "booking_id": order.txnid,
                        "user_id": order.user_id,
                        "facility": item.get("name", ""),
                        "date": details.get("date") or "N/A",
                        "time": (
                            f"{format_time_12h(start)} - {format_time_12h(end or '')}"
                            if start
                            else "N/A"
                        ),
                        "status": order.status.value,
                        "price": item.get("price"),
                        "quantity": item.get("quantity"),
                    }
                )
        return rows
