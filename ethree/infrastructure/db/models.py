# ethree/infrastructure/db/models.py

from sqlalchemy import (
    JSON,
    String,
    Numeric,
    DateTime,
    Enum,
    CheckConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from ethree.infrastructure.db.session import Base
from ethree.domain.locations import Location
from ethree.domain.state_machine import OrderStatus


class UserProfile(Base):
    """
    Read-only for the order engine; profiles are owned by the
    identity service.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    mobile: Mapped[str | None] = mapped_column(String(20), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="customer")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class OrderColumns:
    """
    Shared shape of the per-location order tables.
    Domain controls transitions.
    DB stores current state safely.
    """

    txnid: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    items: Mapped[list] = mapped_column(JSON, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    status: Mapped[OrderStatus] = mapped_column(
        Enum(
            OrderStatus,
            name="order_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=OrderStatus.PLACED,
    )
    payment_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class E3Order(OrderColumns, Base):
    __tablename__ = "e3orders"

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_e3order_total_nonnegative"),
    )


class E4Order(OrderColumns, Base):
    __tablename__ = "e4orders"

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_e4order_total_nonnegative"),
    )


class PaymentColumns:
    """
    Append-only ledger of gateway observations.
    No uniqueness on txnid: redelivered callbacks produce extra rows.
    """

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    payment_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    txnid: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    method: Mapped[str] = mapped_column(String(32), nullable=False, default="easebuzz")
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    location: Mapped[str] = mapped_column(String(8), nullable=False)
    raw_response: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class E3Payment(PaymentColumns, Base):
    __tablename__ = "e3payments"


class E4Payment(PaymentColumns, Base):
    __tablename__ = "e4payments"


ORDER_MODELS: dict[Location, type[OrderColumns]] = {
    Location.E3: E3Order,
    Location.E4: E4Order,
}

PAYMENT_MODELS: dict[Location, type[PaymentColumns]] = {
    Location.E3: E3Payment,
    Location.E4: E4Payment,
}
