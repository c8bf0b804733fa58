import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from sqlalchemy.orm import Session

from ethree.api.identity import Identity, get_identity, require_admin
from ethree.api.schemas.schemas import (
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
    AvailabilityResponse,
    CheckoutRequest,
    CheckoutResponse,
    EventBookingResponse,
    OrderResponse,
    SlotResponse,
    WebhookResponse,
)
from ethree.application.checkout_service import CartLine, CheckoutService
from ethree.application.order_service import OrderQueryService
from ethree.application.reconciliation_service import ReconciliationService
from ethree.application.slot_service import SlotAvailabilityService
from ethree.config import Settings
from ethree.domain.exceptions import (
    AuthenticationFailureError,
    EthreeError,
    InvalidStateTransitionError,
)
from ethree.domain.locations import Location
from ethree.infrastructure.db.models import OrderColumns
from ethree.infrastructure.db.session import SessionLocal
from ethree.infrastructure.gateway.easebuzz import EasebuzzClient
from ethree.infrastructure.repositories.order_repository import OrderRepository


router = APIRouter()
logger = logging.getLogger(__name__)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_gateway(request: Request) -> EasebuzzClient:
    return request.app.state.gateway


async def get_callback_payload(request: Request) -> dict[str, Any]:
    """Gateway callbacks arrive form-encoded; JSON is accepted as well."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            body = None
        return body if isinstance(body, dict) else {}
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


def _order_response(location: Location, order: OrderColumns) -> OrderResponse:
    return OrderResponse(
        txnid=order.txnid,
        location=location.value,
        user_id=order.user_id,
        items=order.items or [],
        total_amount=float(order.total_amount),
        status=order.status.value,
        payment_id=order.payment_id,
        created_at=order.created_at.isoformat() if order.created_at else None,
    )


def _run_checkout(
    location: Location,
    request: CheckoutRequest,
    identity: Identity,
    db: Session,
    gateway: EasebuzzClient,
    settings: Settings,
) -> CheckoutResponse:
    lines = [
        CartLine(
            product_id=item.id,
            name=item.name,
            price=item.price,
            quantity=item.quantity,
            details=(
                item.details.model_dump(by_alias=True, exclude_none=True)
                if item.details
                else None
            ),
        )
        for item in request.items
    ]

    result = CheckoutService(db, gateway, settings).checkout(
        user_id=identity.user_id,
        location=location,
        lines=lines,
    )

    return CheckoutResponse(
        payment_url=result.payment_url,
        access_key=result.access_key,
        txnid=result.txnid,
        mode=result.mode,
        key=result.merchant_key,
        env=result.env,
    )


@router.get("/health")
def health():
    return {"message": "Ethree order engine is running"}


@router.post("/api/orders/checkout", response_model=CheckoutResponse)
def checkout(
    request: CheckoutRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
    gateway: EasebuzzClient = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    location = Location.parse(request.location or identity.location_hint)
    return _run_checkout(location, request, identity, db, gateway, settings)


@router.post("/api/orders/{location}/checkout", response_model=CheckoutResponse)
def checkout_at_location(
    location: str,
    request: CheckoutRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
    gateway: EasebuzzClient = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    return _run_checkout(Location.parse(location), request, identity, db, gateway, settings)


@router.get("/api/orders", response_model=list[OrderResponse])
def list_my_orders(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    tagged = OrderQueryService(db).orders_for_user(identity.user_id)
    return [_order_response(location, order) for location, order in tagged]


@router.get("/api/orders/all", response_model=list[OrderResponse])
def list_all_orders(
    location: str | None = None,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
):
    resolved = Location.parse(location)
    orders = OrderQueryService(db).orders_at(resolved)
    return [_order_response(resolved, order) for order in orders]


@router.get("/api/slots", response_model=AvailabilityResponse)
def list_slots(
    date: str,
    location: str | None = None,
    db: Session = Depends(get_db),
):
    availability = SlotAvailabilityService(OrderRepository(db)).get_availability(
        date=date,
        location=location,
    )
    return AvailabilityResponse(
        date=availability.date,
        location=availability.location.value,
        price_per_hour=availability.price_per_hour,
        degraded=availability.degraded,
        slots=[
            SlotResponse(
                hour=slot.hour,
                start_time=slot.start_time,
                end_time=slot.end_time,
                label=slot.label,
                status=slot.status.value,
                price=slot.price,
            )
            for slot in availability.slots
        ],
    )


@router.post("/api/bookings/check-availability", response_model=AvailabilityCheckResponse)
def check_availability(request: AvailabilityCheckRequest):
    available = SlotAvailabilityService.check_slot(
        date=request.date,
        start_time=request.start_time,
        location=request.location,
    )
    return AvailabilityCheckResponse(available=available)


@router.get("/api/bookings", response_model=list[EventBookingResponse])
def list_event_bookings(
    location: str | None = None,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rows = OrderQueryService(db).event_bookings(Location.parse(location))
    logger.info("Found %s event bookings", len(rows))
    return [EventBookingResponse(**row) for row in rows]


@router.post("/api/payment/success")
def payment_success(
    payload: dict[str, Any] = Depends(get_callback_payload),
    db: Session = Depends(get_db),
    gateway: EasebuzzClient = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    service = ReconciliationService(db, gateway, settings)
    try:
        outcome = service.handle_success(payload)
    except AuthenticationFailureError:
        return PlainTextResponse("Hash Validation Failed", status_code=status.HTTP_400_BAD_REQUEST)
    except InvalidStateTransitionError as exc:
        logger.warning("Success callback rejected: %s", exc)
        return PlainTextResponse("Order already finalized", status_code=status.HTTP_409_CONFLICT)
    except EthreeError as exc:
        if exc.status_code >= 500:
            db.rollback()
            logger.exception("Payment success handler error")
            return PlainTextResponse("Internal Error", status_code=exc.status_code)
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    return RedirectResponse(outcome.redirect_url, status_code=status.HTTP_303_SEE_OTHER)


@router.post("/api/payment/failure")
def payment_failure(
    payload: dict[str, Any] = Depends(get_callback_payload),
    db: Session = Depends(get_db),
    gateway: EasebuzzClient = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    service = ReconciliationService(db, gateway, settings)
    try:
        outcome = service.handle_failure(payload)
    except EthreeError as exc:
        if exc.status_code >= 500:
            db.rollback()
            logger.exception("Payment failure handler error")
            return PlainTextResponse("Internal Error", status_code=exc.status_code)
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    return RedirectResponse(outcome.redirect_url, status_code=status.HTTP_303_SEE_OTHER)


@router.post("/api/payment/response", response_model=WebhookResponse)
def payment_webhook(
    payload: dict[str, Any] = Depends(get_callback_payload),
    db: Session = Depends(get_db),
    gateway: EasebuzzClient = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    service = ReconciliationService(db, gateway, settings)
    try:
        service.handle_webhook(payload)
    except AuthenticationFailureError:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": 0, "data": "Hash Mismatch"},
        )
    except EthreeError as exc:
        if exc.status_code >= 500:
            db.rollback()
            logger.exception("Webhook error")
            message = "Internal Error"
        else:
            message = exc.message
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": 0, "data": message},
        )

    return WebhookResponse(status=1, data="Terminated")
