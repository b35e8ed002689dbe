"""Reservation saga logic.

Two-step choreography: `create_pending` stores the request before the customer
pays, `finalize` marks it paid once the browser has captured the PayPal order.
`create_and_pay` is the one-step variant for callers that already hold both
PayPal ids; it goes through the same `pending -> paid` transition so the
timeline looks the same either way.

A capture that never gets finalized leaves the reservation `pending`; there
is no failed or cancelled state.
"""

import re
from collections.abc import Mapping
from datetime import date
from decimal import Decimal, InvalidOperation

from storeflight.common.errors import ValidationError
from storeflight.common.logging import logger, reservation_id_ctx
from storeflight.common.metrics import reservations_created_total, reservations_paid_total
from storeflight.common.state_machine import PAID, PENDING
from storeflight.services.reservations.models import Reservation, ReservationTimeline
from storeflight.services.reservations.store import ReservationStore


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
CURRENCY_RE = re.compile(r"^[A-Z]{3}$")
DEFAULT_DEPOSIT = Decimal("15")
MAX_DEPOSIT = Decimal("99999999.99")
MAX_TRAVELERS = 999
TRAVELERS_RE = re.compile(r"^\d{1,9}(\.\d{0,9})?$")
DEFAULT_CURRENCY = "EUR"
DEFAULT_PAYMENT_METHOD = "paypal"


def pick_string(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def is_valid_email(email: str) -> bool:
    """Empty means "not provided" and is valid."""

    if not email:
        return True
    return EMAIL_RE.match(email) is not None


def _parse_date(value, field: str) -> date | None:
    text = pick_string(value)
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"{field}_invalid") from exc


def _parse_travelers(value) -> int:
    text = pick_string(value)
    if not TRAVELERS_RE.match(text):
        return 1
    travelers = int(Decimal(text))
    return min(max(travelers, 1), MAX_TRAVELERS)


def _parse_deposit(value) -> Decimal:
    try:
        amount = Decimal(pick_string(value))
    except InvalidOperation:
        return DEFAULT_DEPOSIT
    if not amount.is_finite() or amount <= 0:
        return DEFAULT_DEPOSIT
    # deposit_amount is Numeric(10, 2)
    if amount > MAX_DEPOSIT:
        raise ValidationError("deposit_amount_invalid")
    amount = amount.quantize(Decimal("0.01"))
    return amount if amount > 0 else DEFAULT_DEPOSIT


def validate_reservation_input(data: Mapping) -> dict:
    """Check and normalise a submitted form into column values.

    Raises `ValidationError` naming the first offending field; nothing is
    written when this raises.
    """

    full_name = pick_string(data.get("full_name"))
    phone = pick_string(data.get("phone"))
    email = pick_string(data.get("email"))
    service_type = pick_string(data.get("service_type"))

    if not full_name:
        raise ValidationError("full_name_required")
    if not phone:
        raise ValidationError("phone_required")
    if not service_type:
        raise ValidationError("service_type_required")
    if not is_valid_email(email):
        raise ValidationError("email_invalid")

    currency = pick_string(data.get("currency")).upper() or DEFAULT_CURRENCY
    if not CURRENCY_RE.match(currency):
        raise ValidationError("currency_invalid")

    return {
        "full_name": full_name,
        "phone": phone,
        "email": email or None,
        "service_type": service_type,
        "from_city": pick_string(data.get("from_city")) or None,
        "to_city": pick_string(data.get("to_city")) or None,
        "check_in": _parse_date(data.get("check_in"), "check_in"),
        "check_out": _parse_date(data.get("check_out"), "check_out"),
        "travelers": _parse_travelers(data.get("travelers")),
        "notes": pick_string(data.get("notes")) or None,
        "deposit_amount": _parse_deposit(data.get("deposit_amount")),
        "currency": currency,
        "payment_method": pick_string(data.get("payment_method")) or DEFAULT_PAYMENT_METHOD,
    }


def _parse_reservation_id(value) -> int:
    text = pick_string(value)
    try:
        return int(text)
    except ValueError as exc:
        raise ValidationError("reservation_id_required") from exc


def _require_provider_ids(order_id, capture_id) -> tuple[str, str]:
    order_id = pick_string(order_id)
    capture_id = pick_string(capture_id)
    if not order_id:
        raise ValidationError("paypal_order_id_required")
    if not capture_id:
        raise ValidationError("paypal_capture_id_required")
    return order_id, capture_id


def _as_mapping(data) -> Mapping:
    if isinstance(data, Mapping):
        return data
    return data.model_dump()


class ReservationService:
    """Owns reservation creation, payment finalisation and the notices they trigger."""

    def __init__(self, session_factory, notifier, service_name: str = "storeflight-api") -> None:
        self.session_factory = session_factory
        self.notifier = notifier
        self.service_name = service_name

    def create_pending(self, data) -> Reservation:
        """Validate a submission and store it as `pending`. Touches neither PayPal nor e-mail."""

        fields = validate_reservation_input(_as_mapping(data))
        with self.session_factory() as db:
            reservation = ReservationStore(db).insert(fields, status=PENDING)
            db.commit()
        reservation_id_ctx.set(str(reservation.id))
        reservations_created_total.labels(service=self.service_name, status=PENDING).inc()
        logger.info("reservation created id=%s service_type=%s", reservation.id, reservation.service_type)
        return reservation

    async def finalize(self, reservation_id, provider_order_id, provider_capture_id) -> Reservation:
        """Mark a reservation paid after a PayPal capture and notify.

        The status change and the notification outbox rows commit together;
        delivery is attempted afterwards and cannot undo the change.
        """

        rid = _parse_reservation_id(reservation_id)
        order_id, capture_id = _require_provider_ids(provider_order_id, provider_capture_id)
        with self.session_factory() as db:
            reservation = ReservationStore(db).update_on_capture(rid, order_id, capture_id)
            event_ids = self.notifier.enqueue_payment_notices(db, reservation)
            db.commit()
        reservation_id_ctx.set(str(reservation.id))
        reservations_paid_total.labels(service=self.service_name).inc()
        logger.info("reservation paid id=%s paypal_order_id=%s", reservation.id, order_id)
        await self._notify(event_ids)
        return reservation

    async def create_and_pay(self, data) -> Reservation:
        """One-step variant: store a reservation that is already paid."""

        data = _as_mapping(data)
        fields = validate_reservation_input(data)
        order_id, capture_id = _require_provider_ids(data.get("paypal_order_id"), data.get("paypal_capture_id"))
        with self.session_factory() as db:
            store = ReservationStore(db)
            reservation = store.insert(fields, status=PENDING)
            reservation = store.update_on_capture(reservation.id, order_id, capture_id, reason="paid_at_creation")
            event_ids = self.notifier.enqueue_payment_notices(db, reservation)
            db.commit()
        reservation_id_ctx.set(str(reservation.id))
        reservations_created_total.labels(service=self.service_name, status=PAID).inc()
        reservations_paid_total.labels(service=self.service_name).inc()
        logger.info("reservation created paid id=%s paypal_order_id=%s", reservation.id, order_id)
        await self._notify(event_ids)
        return reservation

    async def _notify(self, event_ids: list[str]) -> None:
        try:
            await self.notifier.deliver(event_ids)
        except Exception as exc:
            # Rows stay in the outbox for the relay.
            logger.exception("inline notification delivery failed: %s", exc)

    def list_reservations(self) -> list[Reservation]:
        with self.session_factory() as db:
            return ReservationStore(db).list_all()

    def get_reservation(self, reservation_id) -> tuple[Reservation, list[ReservationTimeline]]:
        rid = _parse_reservation_id(reservation_id)
        with self.session_factory() as db:
            store = ReservationStore(db)
            return store.get_by_id(rid), store.timeline(rid)
