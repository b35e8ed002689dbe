"""Reservation saga: validation, pending creation, finalize and one-step paid creation."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from storeflight.common.errors import NotFound, ValidationError
from storeflight.services.notification.models import NotificationLog, OutboxEvent
from storeflight.services.reservations.store import ReservationStore


VALID = {"full_name": "Jane Doe", "phone": "123", "service_type": "vol"}


def _row_count(session_factory) -> int:
    with session_factory() as db:
        return ReservationStore(db).count()


def _logs(session_factory) -> list[NotificationLog]:
    with session_factory() as db:
        return list(db.execute(select(NotificationLog)).scalars())


def test_create_pending_defaults(reservation_service):
    reservation = reservation_service.create_pending(dict(VALID))

    assert reservation.status == "pending"
    assert reservation.deposit_amount == Decimal("15")
    assert reservation.currency == "EUR"
    assert reservation.payment_method == "paypal"
    assert reservation.travelers == 1
    assert reservation.email is None


def test_create_pending_ids_increase(reservation_service):
    first = reservation_service.create_pending(dict(VALID))
    second = reservation_service.create_pending(dict(VALID))

    assert second.id > first.id


def test_create_pending_normalises_optional_fields(reservation_service):
    reservation = reservation_service.create_pending(
        {
            **VALID,
            "full_name": "  Jane Doe  ",
            "email": "jane@example.com",
            "from_city": "Casablanca",
            "to_city": "Dakar",
            "check_in": "2026-12-01",
            "check_out": "2026-12-10",
            "travelers": "3",
            "deposit_amount": "20.5",
            "currency": "mad",
            "notes": "",
        }
    )

    assert reservation.full_name == "Jane Doe"
    assert reservation.check_in == date(2026, 12, 1)
    assert reservation.check_out == date(2026, 12, 10)
    assert reservation.travelers == 3
    assert reservation.deposit_amount == Decimal("20.50")
    assert reservation.currency == "MAD"
    assert reservation.notes is None


@pytest.mark.parametrize(
    "travelers,deposit,expected_travelers,expected_deposit",
    [
        ("abc", "abc", 1, Decimal("15")),
        ("0", "0", 1, Decimal("15")),
        ("", "", 1, Decimal("15")),
        ("-2", "0.001", 1, Decimal("15")),
        ("1e100000000", "1e-100000000", 1, Decimal("15")),
        ("1e30", "Infinity", 1, Decimal("15")),
    ],
)
def test_unusable_numbers_fall_back_to_defaults(
    reservation_service, travelers, deposit, expected_travelers, expected_deposit
):
    reservation = reservation_service.create_pending({**VALID, "travelers": travelers, "deposit_amount": deposit})

    assert reservation.travelers == expected_travelers
    assert reservation.deposit_amount == expected_deposit


@pytest.mark.parametrize("travelers,expected", [("2.0", 2), ("999", 999), ("5000", 999), ("99999999999999999999", 1)])
def test_travelers_are_clamped(reservation_service, travelers, expected):
    reservation = reservation_service.create_pending({**VALID, "travelers": travelers})

    assert reservation.travelers == expected


@pytest.mark.parametrize("deposit", ["100000000", "1e30", "1e100000000"])
def test_deposit_too_large_for_column_rejected_without_write(reservation_service, session_factory, deposit):
    with pytest.raises(ValidationError) as excinfo:
        reservation_service.create_pending({**VALID, "deposit_amount": deposit})

    assert excinfo.value.code == "deposit_amount_invalid"
    assert _row_count(session_factory) == 0


def test_largest_deposit_fits_column(reservation_service):
    reservation = reservation_service.create_pending({**VALID, "deposit_amount": "99999999.99"})

    assert reservation.deposit_amount == Decimal("99999999.99")


@pytest.mark.parametrize(
    "missing,code",
    [("full_name", "full_name_required"), ("phone", "phone_required"), ("service_type", "service_type_required")],
)
def test_missing_required_field_rejected_without_write(reservation_service, session_factory, missing, code):
    """A rejected submission must leave the table untouched."""

    before = _row_count(session_factory)
    data = {**VALID, missing: "   "}

    with pytest.raises(ValidationError) as excinfo:
        reservation_service.create_pending(data)

    assert excinfo.value.code == code
    assert _row_count(session_factory) == before


@pytest.mark.parametrize("email", ["not-an-email", "a@b", "a b@c.com", "@b.com"])
def test_malformed_email_rejected(reservation_service, session_factory, email):
    with pytest.raises(ValidationError) as excinfo:
        reservation_service.create_pending({**VALID, "email": email})

    assert excinfo.value.code == "email_invalid"
    assert _row_count(session_factory) == 0


@pytest.mark.parametrize("email", ["a@b.com", ""])
def test_well_formed_or_empty_email_accepted(reservation_service, email):
    reservation = reservation_service.create_pending({**VALID, "email": email})

    assert reservation.email == (email or None)


def test_bad_date_rejected(reservation_service):
    with pytest.raises(ValidationError) as excinfo:
        reservation_service.create_pending({**VALID, "check_out": "31/12/2026"})

    assert excinfo.value.code == "check_out_invalid"


def test_create_pending_sends_nothing(reservation_service, mailer, session_factory):
    reservation_service.create_pending({**VALID, "email": "jane@example.com"})

    assert mailer.attempts == []
    with session_factory() as db:
        assert db.execute(select(OutboxEvent)).first() is None


def test_finalize_marks_paid_and_notifies_admin_and_customer(reservation_service, mailer, session_factory):
    pending = reservation_service.create_pending({**VALID, "email": "jane@example.com"})

    paid = asyncio.run(reservation_service.finalize(pending.id, "ORDER-1", "CAPTURE-1"))

    assert paid.status == "paid"
    assert paid.paypal_order_id == "ORDER-1"
    assert paid.paypal_capture_id == "CAPTURE-1"
    assert sorted(mailer.recipients) == sorted(["ops@storeflight.test", "jane@example.com"])
    assert {log.status for log in _logs(session_factory)} == {"SENT"}


def test_finalize_without_customer_email_only_notifies_admin(reservation_service, mailer):
    pending = reservation_service.create_pending(dict(VALID))

    asyncio.run(reservation_service.finalize(pending.id, "ORDER-1", "CAPTURE-1"))

    assert mailer.recipients == ["ops@storeflight.test"]


def test_finalize_unknown_id_raises_not_found_and_changes_nothing(reservation_service, session_factory, mailer):
    reservation_service.create_pending(dict(VALID))

    with pytest.raises(NotFound):
        asyncio.run(reservation_service.finalize(999, "ORDER-1", "CAPTURE-1"))

    with session_factory() as db:
        rows = ReservationStore(db).list_all()
        assert [r.status for r in rows] == ["pending"]
        assert db.execute(select(OutboxEvent)).first() is None
    assert mailer.attempts == []


@pytest.mark.parametrize(
    "args,code",
    [
        (("", "ORDER-1", "CAPTURE-1"), "reservation_id_required"),
        (("abc", "ORDER-1", "CAPTURE-1"), "reservation_id_required"),
        (("1", "", "CAPTURE-1"), "paypal_order_id_required"),
        (("1", "ORDER-1", None), "paypal_capture_id_required"),
    ],
)
def test_finalize_requires_all_inputs(reservation_service, args, code):
    reservation_service.create_pending(dict(VALID))

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(reservation_service.finalize(*args))

    assert excinfo.value.code == code


def test_finalize_twice_stays_paid_even_if_second_email_fails(reservation_service, mailer, session_factory):
    """Email failure on a repeated finalize must not undo the committed status."""

    pending = reservation_service.create_pending({**VALID, "email": "jane@example.com"})
    asyncio.run(reservation_service.finalize(pending.id, "ORDER-1", "CAPTURE-1"))

    mailer.fail = True
    again = asyncio.run(reservation_service.finalize(pending.id, "ORDER-1", "CAPTURE-1"))

    assert again.status == "paid"
    with session_factory() as db:
        stored = ReservationStore(db).get_by_id(pending.id)
        assert stored.status == "paid"
        assert stored.paypal_capture_id == "CAPTURE-1"
    statuses = sorted(log.status for log in _logs(session_factory))
    assert statuses == ["FAILED", "FAILED", "SENT", "SENT"]


def test_create_and_pay_stores_paid_with_recorded_transition(reservation_service, session_factory, mailer):
    reservation = asyncio.run(
        reservation_service.create_and_pay({**VALID, "paypal_order_id": "ORDER-9", "paypal_capture_id": "CAPTURE-9"})
    )

    assert reservation.status == "paid"
    assert reservation.paypal_capture_id == "CAPTURE-9"
    assert mailer.recipients == ["ops@storeflight.test"]
    _, timeline = reservation_service.get_reservation(reservation.id)
    assert [(t.from_state, t.to_state, t.reason) for t in timeline] == [
        (None, "pending", "reservation_created"),
        ("pending", "paid", "paid_at_creation"),
    ]


def test_create_and_pay_needs_both_provider_ids(reservation_service, session_factory):
    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(reservation_service.create_and_pay({**VALID, "paypal_capture_id": "CAPTURE-9"}))

    assert excinfo.value.code == "paypal_order_id_required"
    assert _row_count(session_factory) == 0
