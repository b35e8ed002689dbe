"""Reservation database models.

`reservations` is the source of truth for customer requests and their payment
state; `reservation_timeline` keeps an immutable trail of status changes.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from storeflight.common.db import Base


class Reservation(Base):
    """One customer reservation request."""

    __tablename__ = "reservations"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(Text)
    phone: Mapped[str] = mapped_column(Text)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    service_type: Mapped[str] = mapped_column(Text)
    from_city: Mapped[str | None] = mapped_column(Text, nullable=True)
    to_city: Mapped[str | None] = mapped_column(Text, nullable=True)
    check_in: Mapped[date | None] = mapped_column(Date, nullable=True)
    check_out: Mapped[date | None] = mapped_column(Date, nullable=True)
    travelers: Mapped[int] = mapped_column(Integer, default=1)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("15"))
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    payment_method: Mapped[str] = mapped_column(String, default="paypal")
    paypal_order_id: Mapped[str | None] = mapped_column(String, nullable=True)
    paypal_capture_id: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, default="pending", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ReservationTimeline(Base):
    """Immutable audit trail of every status change."""

    __tablename__ = "reservation_timeline"

    timeline_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    reservation_id: Mapped[int] = mapped_column(ForeignKey("reservations.id"), index=True)
    from_state: Mapped[str | None] = mapped_column(String, nullable=True)
    to_state: Mapped[str] = mapped_column(String)
    reason: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), server_default=func.now()
    )
