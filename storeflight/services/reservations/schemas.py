"""API request/response schemas for reservation endpoints.

Request models are deliberately loose: the reservation service owns field
validation so that every rejection comes back as one `{ok:false,error}` shape.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict


class ReservationInput(BaseModel):
    """Reservation form payload as posted by the booking page."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    full_name: str | None = None
    phone: str | None = None
    email: str | None = None
    service_type: str | None = None
    from_city: str | None = None
    to_city: str | None = None
    check_in: str | None = None
    check_out: str | None = None
    travelers: str | None = None
    notes: str | None = None
    deposit_amount: str | None = None
    currency: str | None = None
    payment_method: str | None = None
    paypal_order_id: str | None = None
    paypal_capture_id: str | None = None


class FinalizeRequest(BaseModel):
    """Payment confirmation posted after a successful PayPal capture."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    reservation_id: str | None = None
    paypal_order_id: str | None = None
    paypal_capture_id: str | None = None


class ReservationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    phone: str
    email: str | None
    service_type: str
    from_city: str | None
    to_city: str | None
    check_in: date | None
    check_out: date | None
    travelers: int
    notes: str | None
    deposit_amount: float
    currency: str
    payment_method: str
    paypal_order_id: str | None
    paypal_capture_id: str | None
    status: str
    created_at: datetime | None


class TimelineEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_state: str | None
    to_state: str
    reason: str
    created_at: datetime | None
