"""Persistence operations on the `reservations` table.

A `ReservationStore` wraps one open session; callers own the transaction and
decide when to commit, so a status change and its outbox rows land together.
"""

from sqlalchemy import func, select

from storeflight.common.errors import NotFound
from storeflight.common.state_machine import PAID, PENDING, validate_transition
from storeflight.services.reservations.models import Reservation, ReservationTimeline


class ReservationStore:
    def __init__(self, db) -> None:
        self.db = db

    def insert(self, fields: dict, status: str = PENDING, reason: str = "reservation_created") -> Reservation:
        """Insert one reservation and record its initial state."""

        reservation = Reservation(status=status, **fields)
        self.db.add(reservation)
        self.db.flush()
        self.db.add(
            ReservationTimeline(
                reservation_id=reservation.id,
                from_state=None,
                to_state=status,
                reason=reason,
            )
        )
        self.db.flush()
        # Pull server-assigned columns (created_at) while the session is open.
        self.db.refresh(reservation)
        return reservation

    def list_all(self) -> list[Reservation]:
        """All reservations, most recent id first."""

        return list(self.db.execute(select(Reservation).order_by(Reservation.id.desc())).scalars())

    def get_by_id(self, reservation_id: int) -> Reservation:
        reservation = self.db.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFound(f"reservation {reservation_id} not found")
        return reservation

    def count(self) -> int:
        return self.db.execute(select(func.count()).select_from(Reservation)).scalar_one()

    def timeline(self, reservation_id: int) -> list[ReservationTimeline]:
        return list(
            self.db.execute(
                select(ReservationTimeline)
                .where(ReservationTimeline.reservation_id == reservation_id)
                .order_by(ReservationTimeline.created_at, ReservationTimeline.timeline_id)
            ).scalars()
        )

    def update_on_capture(
        self,
        reservation_id: int,
        provider_order_id: str,
        provider_capture_id: str,
        reason: str = "paypal_capture_confirmed",
    ) -> Reservation:
        """Attach PayPal references and mark the reservation paid."""

        reservation = self.get_by_id(reservation_id)
        from_status = reservation.status
        validate_transition(from_status, PAID)
        reservation.paypal_order_id = provider_order_id
        reservation.paypal_capture_id = provider_capture_id
        reservation.status = PAID
        self.db.add(
            ReservationTimeline(
                reservation_id=reservation.id,
                from_state=from_status,
                to_state=PAID,
                reason=reason,
            )
        )
        self.db.flush()
        return reservation
