# ethree/infrastructure/repositories/order_repository.py

from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ethree.domain.exceptions import StorageError
from ethree.domain.locations import Location
from ethree.domain.state_machine import OrderStatus
from ethree.infrastructure.db.models import ORDER_MODELS, OrderColumns


class OrderRepository:

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def model_for(location: Location) -> type[OrderColumns]:
        return ORDER_MODELS[location]

    def list_all(self, location: Location) -> list[OrderColumns]:
        model = self.model_for(location)
        stmt = select(model).order_by(model.created_at.desc())
        try:
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read {model.__tablename__}") from exc

    def list_for_user(
        self,
        user_id: str,
        location: Location,
    ) -> list[OrderColumns]:
        model = self.model_for(location)
        stmt = select(model).where(model.user_id == user_id)
        try:
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read {model.__tablename__}") from exc

    def list_items(self, location: Location) -> list[list]:
        """Line items of every order at the location, for slot occupancy."""
        model = self.model_for(location)
        try:
            return list(self.db.execute(select(model.items)).scalars().all())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read {model.__tablename__}") from exc

    def get_by_txnid(
        self,
        location: Location,
        txnid: str,
    ) -> OrderColumns | None:
        model = self.model_for(location)
        stmt = select(model).where(model.txnid == txnid)
        try:
            return self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read order {txnid}") from exc

    def create_order(
        self,
        location: Location,
        txnid: str,
        user_id: str,
        items: list[dict],
        total_amount: Decimal,
    ) -> OrderColumns:
        order = self.model_for(location)(
            txnid=txnid,
            user_id=user_id,
            items=items,
            total_amount=total_amount,
            status=OrderStatus.PLACED,
        )

        self.db.add(order)
        try:
            self.db.flush()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to insert order {txnid}") from exc
        return order

    def update_status(
        self,
        order: OrderColumns,
        new_status: OrderStatus,
        payment_id: str | None = None,
    ) -> None:

        order.status = new_status
        if payment_id:
            order.payment_id = payment_id
        try:
            self.db.flush()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to update order {order.txnid}") from exc
