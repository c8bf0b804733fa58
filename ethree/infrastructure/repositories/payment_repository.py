# ethree/infrastructure/repositories/payment_repository.py

from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ethree.domain.exceptions import StorageError
from ethree.domain.locations import Location
from ethree.infrastructure.db.models import PAYMENT_MODELS, PaymentColumns


class PaymentRepository:

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        location: Location,
        txnid: str,
        payment_id: str | None,
        amount: Decimal | None,
        status: str,
        method: str,
        user_id: str | None,
        raw_response: dict,
    ) -> PaymentColumns:
        entry = PAYMENT_MODELS[location](
            txnid=txnid,
            payment_id=payment_id,
            amount=amount,
            status=status,
            method=method,
            user_id=user_id,
            location=location.value,
            raw_response=raw_response,
        )

        self.db.add(entry)
        try:
            self.db.flush()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to record payment for {txnid}") from exc
        return entry
