from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select

from ethree.domain.locations import Location
from ethree.domain.slots import REFERENCE_TZ
from ethree.domain.state_machine import OrderStatus
from ethree.infrastructure.db.models import ORDER_MODELS, Base, UserProfile
from ethree.infrastructure.db.session import engine, get_db_session


def _date(days_from_now: int) -> str:
    now_ist = datetime.now(REFERENCE_TZ)
    return (now_ist + timedelta(days=days_from_now)).date().isoformat()


def seed_users(db) -> None:
    users = [
        {
            "id": "demo-customer",
            "name": "Demo Customer",
            "mobile": "9876543210",
            "email": "customer@example.com",
            "role": "customer",
        },
        {
            "id": "demo-admin",
            "name": "Venue Admin",
            "mobile": "9123456780",
            "email": "admin@example.com",
            "role": "admin",
        },
    ]

    for item in users:
        existing = db.execute(
            select(UserProfile).where(UserProfile.id == item["id"])
        ).scalar_one_or_none()
        if existing:
            existing.name = item["name"]
            existing.mobile = item["mobile"]
            existing.email = item["email"]
            existing.role = item["role"]
            continue
        db.add(UserProfile(**item))


def seed_orders(db) -> None:
    orders = [
        {
            "location": Location.E3,
            "txnid": "E3-900001",
            "status": OrderStatus.SUCCESS,
            "items": [
                {
                    "product": "event-holi-bash",
                    "name": "Holi Bash",
                    "price": 1200.0,
                    "quantity": 2,
                    "details": {"date": _date(3), "startTime": "15:00", "endTime": "16:00"},
                },
            ],
        },
        {
            "location": Location.E4,
            "txnid": "E4-900001",
            "status": OrderStatus.PLACED,
            "items": [
                {
                    "product": "party-hall",
                    "name": "Party Hall",
                    "price": 2000.0,
                    "quantity": 1,
                    "details": {"date": _date(2), "startTime": "19:00", "endTime": "20:00"},
                },
            ],
        },
    ]

    for item in orders:
        model = ORDER_MODELS[item["location"]]
        total = sum(Decimal(str(line["price"])) * line["quantity"] for line in item["items"])
        existing = db.execute(
            select(model).where(model.txnid == item["txnid"])
        ).scalar_one_or_none()
        if existing:
            existing.items = item["items"]
            existing.total_amount = total
            existing.status = item["status"]
            continue

        db.add(
            model(
                txnid=item["txnid"],
                user_id="demo-customer",
                items=item["items"],
                total_amount=total,
                status=item["status"],
            )
        )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_db_session() as db:
        seed_users(db)
        seed_orders(db)
    print("Seed complete: demo customer and admin profiles, one E3 event order, one E4 hall order.")


if __name__ == "__main__":
    main()
