from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class BookingDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: str | None = None
    start_time: str | None = Field(default=None, alias="startTime")
    end_time: str | None = Field(default=None, alias="endTime")
    guests: int | str | None = None


class CheckoutItem(BaseModel):
    id: str
    name: str
    price: Decimal = Field(ge=0, decimal_places=2)
    quantity: int = Field(gt=0)
    details: BookingDetails | None = None


class CheckoutRequest(BaseModel):
    items: list[CheckoutItem] = Field(min_length=1)
    location: str | None = None


class CheckoutResponse(BaseModel):
    success: bool = True
    payment_url: str
    access_key: str
    txnid: str
    mode: Literal["iframe", "hosted"]
    key: str
    env: str


class SlotResponse(BaseModel):
    hour: int
    start_time: str
    end_time: str
    label: str
    status: Literal["available", "booked", "past"]
    price: int


class AvailabilityResponse(BaseModel):
    date: str
    location: str
    price_per_hour: int
    degraded: bool = False
    slots: list[SlotResponse]


class AvailabilityCheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: str
    start_time: str = Field(alias="startTime")
    end_time: str | None = Field(default=None, alias="endTime")
    location: str | None = None


class AvailabilityCheckResponse(BaseModel):
    available: bool


class OrderResponse(BaseModel):
    txnid: str
    location: str
    user_id: str
    items: list[dict]
    total_amount: float
    status: str
    payment_id: str | None = None
    created_at: str | None = None


class EventBookingResponse(BaseModel):
    id: str
    booking_id: str
    user_id: str
    facility: str
    date: str
    time: str
    status: str
    price: float | None = None
    quantity: int | None = None


class WebhookResponse(BaseModel):
    status: int
    data: str
