import logging
import random
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ethree.config import Settings
from ethree.domain.exceptions import (
    GatewayRejectedError,
    InvalidInputError,
    StorageError,
    UserNotFoundError,
)
from ethree.domain.locations import Location
from ethree.domain.slots import parse_hour, parse_query_date
from ethree.infrastructure.gateway.easebuzz import EasebuzzClient, GatewayOrder
from ethree.infrastructure.repositories.order_repository import OrderRepository
from ethree.infrastructure.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class CartLine:
    product_id: str
    name: str
    price: Decimal
    quantity: int
    details: dict | None = None

    def as_order_item(self) -> dict:
        item = {
            "product": self.product_id,
            "name": self.name,
            "price": float(self.price),
            "quantity": self.quantity,
        }
        if self.details:
            item["details"] = self.details
        return item


@dataclass(frozen=True)
class CheckoutResult:
    txnid: str
    location: Location
    total_amount: Decimal
    payment_url: str
    access_key: str
    mode: str
    merchant_key: str
    env: str


def compute_total(lines: Sequence[CartLine]) -> Decimal:
    total = sum((line.price * line.quantity for line in lines), Decimal("0"))
    return total.quantize(CENTS)


def generate_txnid(location: Location) -> str:
    # Not collision-proof; six random digits per location prefix.
    return f"{location.value}-{random.randint(100000, 999999)}"


def validate_cart(lines: Sequence[CartLine]) -> None:
    if not lines:
        raise InvalidInputError("Cart is empty")

    for line in lines:
        if line.price < 0:
            raise InvalidInputError(f"Invalid price for {line.name}")
        if line.price != line.price.quantize(CENTS):
            # Stored totals carry two decimal places.
            raise InvalidInputError(f"Price for {line.name} has more than two decimal places")
        if not isinstance(line.quantity, int) or line.quantity <= 0:
            raise InvalidInputError(f"Invalid quantity for {line.name}")
        if not line.details:
            continue
        if line.details.get("date") is not None:
            parse_query_date(line.details["date"])
        for key in ("startTime", "endTime"):
            value = line.details.get(key)
            if value is not None and parse_hour(value) is None:
                raise InvalidInputError(f"{key} must be HH:MM")


class CheckoutService:
    """Turns a validated cart into a placed order and an initiated payment."""

    def __init__(self, db: Session, gateway: EasebuzzClient, settings: Settings):
        self.db = db
        self.gateway = gateway
        self.settings = settings
        self.order_repository = OrderRepository(db)
        self.user_repository = UserRepository(db)

    def checkout(
        self,
        user_id: str,
        location: Location,
        lines: Sequence[CartLine],
    ) -> CheckoutResult:
        validate_cart(lines)

        user = self.user_repository.get_by_id(user_id)
        if not user:
            raise UserNotFoundError("User not found")

        total_amount = compute_total(lines)
        txnid = generate_txnid(location)

        # Committed before the gateway ever sees the txnid.
        try:
            self.order_repository.create_order(
                location=location,
                txnid=txnid,
                user_id=user_id,
                items=[line.as_order_item() for line in lines],
                total_amount=total_amount,
            )
            self.db.commit()
        except (StorageError, SQLAlchemyError) as exc:
            self.db.rollback()
            logger.exception("Order insert failed. txnid=%s location=%s", txnid, location.value)
            if isinstance(exc, StorageError):
                raise
            raise StorageError(f"Failed to commit order {txnid}") from exc

        logger.info(
            "Order placed. txnid=%s location=%s user_id=%s total=%s",
            txnid,
            location.value,
            user_id,
            total_amount,
        )

        try:
            initiation = self.gateway.initiate(
                GatewayOrder(
                    txnid=txnid,
                    amount=total_amount,
                    productinfo=", ".join(line.name for line in lines),
                    firstname=user.name,
                    email=user.email,
                    phone=user.mobile,
                    location=location.value,
                    user_id=user_id,
                )
            )
        except GatewayRejectedError:
            # The placed row stays behind; it is never rolled back.
            logger.warning("Order left in placed state after gateway rejection. txnid=%s", txnid)
            raise

        return CheckoutResult(
            txnid=txnid,
            location=location,
            total_amount=total_amount,
            payment_url=initiation.payment_url,
            access_key=initiation.access_key,
            mode=self.settings.checkout_mode,
            merchant_key=self.settings.merchant_key,
            env=self.settings.gateway_env,
        )
