import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping
from urllib.parse import urlencode

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ethree.config import Settings
from ethree.domain.exceptions import (
    AuthenticationFailureError,
    InvalidInputError,
    InvalidStateTransitionError,
    OrderNotFoundError,
    StorageError,
)
from ethree.domain.locations import Location
from ethree.domain.state_machine import OrderStateMachine, OrderStatus
from ethree.infrastructure.db.models import OrderColumns
from ethree.infrastructure.gateway.easebuzz import EasebuzzClient
from ethree.infrastructure.repositories.order_repository import OrderRepository
from ethree.infrastructure.repositories.payment_repository import PaymentRepository

logger = logging.getLogger(__name__)

# Definitive non-success outcomes reported by the gateway.
FAILURE_STATUSES = frozenset({"failure", "userCancelled", "dropped", "bounced"})


@dataclass(frozen=True)
class CallbackOutcome:
    txnid: str
    location: Location
    status: OrderStatus | None
    ledger_recorded: bool
    redirect_url: str | None = None


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class ReconciliationService:
    """
    Terminal step of the order lifecycle: the only writer of success/failed.

    Order update and ledger insert share one transaction; the ledger insert
    runs in a savepoint so its failure never undoes the status change.
    """

    def __init__(self, db: Session, gateway: EasebuzzClient, settings: Settings):
        self.db = db
        self.gateway = gateway
        self.settings = settings
        self.order_repository = OrderRepository(db)
        self.payment_repository = PaymentRepository(db)

    def handle_success(self, payload: Mapping[str, Any]) -> CallbackOutcome:
        location, txnid = self._route(payload)
        self._authenticate(payload, txnid, location, entry="success")

        reported = str(payload.get("status") or "")
        if reported != "success":
            # A genuine signature over a non-success status is still not a payment.
            logger.warning(
                "Success entry received status=%r, settling as failed. txnid=%s location=%s",
                reported,
                txnid,
                location.value,
            )
            return self._fail(location, txnid, payload)

        order = self._settle(
            location,
            txnid,
            OrderStatus.SUCCESS,
            payment_id=payload.get("easepayid"),
        )
        recorded = self._record_ledger(location, txnid, order.user_id, payload, default_status="success")
        self._commit(txnid)

        return CallbackOutcome(
            txnid=txnid,
            location=location,
            status=order.status,
            ledger_recorded=recorded,
            redirect_url=self._landing_url("success", txnid, location),
        )

    def handle_failure(self, payload: Mapping[str, Any]) -> CallbackOutcome:
        # Unauthenticated path: it can only ever move an order to failed.
        location, txnid = self._route(payload)
        return self._fail(location, txnid, payload)

    def handle_webhook(self, payload: Mapping[str, Any]) -> CallbackOutcome:
        """
        Server-to-server notification; hash-checked like the success entry.
        Only a definitive status settles the order. Interim statuses such as
        pending or initiated are appended to the ledger and nothing else.
        """
        location, txnid = self._route(payload)
        self._authenticate(payload, txnid, location, entry="webhook")

        reported = str(payload.get("status") or "")
        if reported == "success":
            target = OrderStatus.SUCCESS
        elif reported in FAILURE_STATUSES:
            target = OrderStatus.FAILED
        else:
            target = None

        if target is None:
            order = self._require_order(location, txnid)
            logger.info(
                "Interim webhook status=%r, order left %s. txnid=%s location=%s",
                reported,
                order.status.value,
                txnid,
                location.value,
            )
        else:
            order = self._settle(
                location,
                txnid,
                target,
                payment_id=payload.get("easepayid"),
            )
        recorded = self._record_ledger(
            location,
            txnid,
            order.user_id,
            payload,
            default_status=reported or order.status.value,
        )
        self._commit(txnid)

        return CallbackOutcome(
            txnid=txnid,
            location=location,
            status=order.status,
            ledger_recorded=recorded,
        )

    def _fail(
        self,
        location: Location,
        txnid: str,
        payload: Mapping[str, Any],
    ) -> CallbackOutcome:
        """Moves the order to failed where it can, records the callback, lands on /failed."""
        status: OrderStatus | None
        owner: str | None
        try:
            order = self._settle(location, txnid, OrderStatus.FAILED)
            status, owner = order.status, order.user_id
        except InvalidStateTransitionError:
            order = self.order_repository.get_by_txnid(location, txnid)
            status, owner = order.status, order.user_id
            logger.warning(
                "Ignoring failure callback for settled order. txnid=%s location=%s status=%s",
                txnid,
                location.value,
                status.value,
            )
        except OrderNotFoundError:
            # The customer still gets the failure page; udf2 is unverified here.
            status, owner = None, None

        recorded = self._record_ledger(location, txnid, owner, payload, default_status="failed")
        self._commit(txnid)

        return CallbackOutcome(
            txnid=txnid,
            location=location,
            status=status,
            ledger_recorded=recorded,
            redirect_url=self._landing_url("failed", txnid, location),
        )

    def _route(self, payload: Mapping[str, Any]) -> tuple[Location, str]:
        txnid = str(payload.get("txnid") or "").strip()
        if not txnid:
            raise InvalidInputError("Callback is missing txnid")

        location = Location.from_callback(payload.get("udf1"))
        prefix = txnid.split("-", 1)[0].upper()
        if prefix in Location.__members__ and prefix != location.value:
            logger.warning(
                "Callback udf1 disagrees with txnid prefix. txnid=%s udf1=%r routed_to=%s",
                txnid,
                payload.get("udf1"),
                location.value,
            )
        return location, txnid

    def _authenticate(
        self,
        payload: Mapping[str, Any],
        txnid: str,
        location: Location,
        entry: str,
    ) -> None:
        if self.gateway.verify_callback(payload):
            return
        logger.error(
            "callback authentication failed. entry=%s txnid=%s location=%s",
            entry,
            txnid,
            location.value,
        )
        raise AuthenticationFailureError(f"Hash mismatch for {txnid}")

    def _require_order(self, location: Location, txnid: str) -> OrderColumns:
        order = self.order_repository.get_by_txnid(location, txnid)
        if not order:
            logger.error("Callback for unknown order. txnid=%s location=%s", txnid, location.value)
            raise OrderNotFoundError(f"Order {txnid} not found")
        return order

    def _settle(
        self,
        location: Location,
        txnid: str,
        to_status: OrderStatus,
        payment_id: str | None = None,
    ) -> OrderColumns:
        order = self._require_order(location, txnid)

        if OrderStateMachine.is_redelivery(order.status, to_status):
            logger.info(
                "Duplicate callback, order already %s. txnid=%s location=%s",
                order.status.value,
                txnid,
                location.value,
            )
            return order

        OrderStateMachine.validate_transition(order.status, to_status)
        self.order_repository.update_status(order, to_status, payment_id=payment_id)
        logger.info(
            "Order %s. txnid=%s location=%s payment_id=%s",
            to_status.value,
            txnid,
            location.value,
            payment_id,
        )
        return order

    def _record_ledger(
        self,
        location: Location,
        txnid: str,
        owner: str | None,
        payload: Mapping[str, Any],
        default_status: str,
    ) -> bool:
        claimed_user = payload.get("udf2")
        if owner and claimed_user and claimed_user != owner:
            logger.warning(
                "Callback udf2 does not match order owner. txnid=%s udf2=%r",
                txnid,
                claimed_user,
            )

        try:
            with self.db.begin_nested():
                self.payment_repository.record(
                    location=location,
                    txnid=txnid,
                    payment_id=payload.get("easepayid") or None,
                    amount=_to_decimal(payload.get("amount")),
                    status=str(payload.get("status") or default_status)[:32],
                    method=str(payload.get("mode") or "easebuzz")[:32],
                    user_id=owner,
                    raw_response=dict(payload),
                )
        except StorageError:
            logger.exception(
                "Ledger write failed, order status kept. txnid=%s location=%s",
                txnid,
                location.value,
            )
            return False

        logger.info("Ledger entry recorded. txnid=%s location=%s", txnid, location.value)
        return True

    def _commit(self, txnid: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Commit failed while reconciling txnid=%s", txnid)
            raise StorageError(f"Failed to commit reconciliation for {txnid}") from exc

    def _landing_url(self, page: str, txnid: str, location: Location) -> str:
        query = urlencode({"orderId": txnid, "location": location.value})
        return f"{self.settings.frontend_url}/{page}?{query}"
