"""Transactional e-mail delivery through Resend, fed by the outbox.

Payment notices are written as outbox rows in the same transaction that marks
a reservation paid. Delivery happens afterwards: once inline, right after the
commit, and again from the background relay for anything left pending. A
delivery failure is logged and recorded; it never fails the reservation.
"""

import asyncio

import httpx

from storeflight.common.errors import EmailError
from storeflight.common.logging import logger
from storeflight.common.metrics import emails_failed_total, emails_sent_total
from storeflight.common.outbox import (
    claim_outbox_batch,
    mark_outbox_sent,
    requeue_outbox_event,
    update_outbox_backlog_metrics,
)
from storeflight.services.notification.models import NotificationLog, OutboxEvent
from storeflight.services.notification.templates import (
    admin_subject,
    client_subject,
    render_admin_email,
    render_client_email,
)
from storeflight.services.reservations.models import Reservation


ADMIN_NOTICE = "admin_notice"
CUSTOMER_CONFIRMATION = "customer_confirmation"
EVENT_PREFIX = "reservation.paid."


def _response_body(resp: httpx.Response):
    try:
        return resp.json()
    except ValueError:
        return resp.text


class ResendMailer:
    """Thin client for Resend's `POST /emails` endpoint."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        api_url: str = "https://api.resend.com/emails",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, to: str, subject: str, html: str) -> dict:
        """Send one HTML message; raise `EmailError` unless Resend accepts it."""

        if not self.api_key:
            raise EmailError(None, "RESEND_API_KEY not configured")
        async with httpx.AsyncClient(transport=self.transport) as client:
            resp = await client.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"from": self.sender, "to": [to], "subject": subject, "html": html},
            )
        body = _response_body(resp)
        if resp.status_code >= 400:
            raise EmailError(resp.status_code, body)
        return body


class NotificationService:
    """Queues and delivers the operator and customer payment e-mails."""

    def __init__(
        self,
        session_factory,
        mailer,
        admin_email: str,
        max_attempts: int = 5,
        poll_seconds: float = 5.0,
        service_name: str = "storeflight-api",
    ) -> None:
        self.session_factory = session_factory
        self.mailer = mailer
        self.admin_email = admin_email
        self.max_attempts = max_attempts
        self.poll_seconds = poll_seconds
        self.service_name = service_name
        # Without an API key nothing could ever be delivered, so nothing is queued.
        self.enabled = getattr(mailer, "configured", True)

    def _outbox_row(self, reservation: Reservation, kind: str, to: str, subject: str, html: str) -> OutboxEvent:
        return OutboxEvent(
            aggregate_type="reservation",
            aggregate_id=str(reservation.id),
            event_type=EVENT_PREFIX + kind,
            payload={"to": to, "subject": subject, "html": html},
        )

    def enqueue_payment_notices(self, db, reservation: Reservation) -> list[str]:
        """Add the payment e-mails for `reservation` to the caller's transaction.

        The operator notice is always queued (when an operator address is
        configured); the customer confirmation only when the reservation
        carries an e-mail address. Nothing is queued while e-mail is disabled.
        """

        if not self.enabled:
            logger.debug("e-mail disabled, payment notices skipped reservation_id=%s", reservation.id)
            return []
        rows = []
        if self.admin_email:
            rows.append(
                self._outbox_row(
                    reservation,
                    ADMIN_NOTICE,
                    self.admin_email,
                    admin_subject(reservation),
                    render_admin_email(reservation),
                )
            )
        else:
            logger.debug("ADMIN_EMAIL not configured, operator notice skipped reservation_id=%s", reservation.id)
        if reservation.email:
            rows.append(
                self._outbox_row(
                    reservation,
                    CUSTOMER_CONFIRMATION,
                    reservation.email,
                    client_subject(reservation),
                    render_client_email(reservation),
                )
            )
        for row in rows:
            db.add(row)
        db.flush()
        return [row.id for row in rows]

    async def deliver(self, event_ids: list[str]) -> int:
        """Deliver exactly these outbox rows now. Returns how many were sent."""

        if not event_ids:
            return 0
        with self.session_factory() as db:
            rows = claim_outbox_batch(db, OutboxEvent, limit=len(event_ids), ids=event_ids)
            db.commit()
        return await self._deliver_rows(rows)

    async def relay_once(self, limit: int = 100) -> int:
        """Deliver one batch of pending or stale rows. Returns how many were sent."""

        with self.session_factory() as db:
            rows = claim_outbox_batch(db, OutboxEvent, limit=limit)
            update_outbox_backlog_metrics(db, OutboxEvent, self.service_name)
            db.commit()
        return await self._deliver_rows(rows)

    async def _deliver_rows(self, rows: list[dict]) -> int:
        sent = 0
        for row in rows:
            payload = row["payload"]
            kind = row["event_type"].removeprefix(EVENT_PREFIX)
            try:
                await self.mailer.send(payload["to"], payload["subject"], payload["html"])
            except Exception as exc:
                if isinstance(exc, EmailError):
                    logger.warning(
                        "email delivery failed kind=%s reservation_id=%s status=%s body=%s",
                        kind,
                        row["aggregate_id"],
                        exc.provider_status,
                        exc.body,
                    )
                else:
                    logger.exception("email delivery failed kind=%s reservation_id=%s", kind, row["aggregate_id"])
                emails_failed_total.labels(kind=kind).inc()
                self._record(row, kind, payload["to"], "FAILED", str(exc))
                continue
            emails_sent_total.labels(kind=kind).inc()
            self._record(row, kind, payload["to"], "SENT", None)
            sent += 1
        return sent

    def _record(self, row: dict, kind: str, recipient: str, status: str, error: str | None) -> None:
        with self.session_factory() as db:
            if status == "SENT":
                mark_outbox_sent(db, OutboxEvent, row["id"])
            else:
                requeue_outbox_event(db, OutboxEvent, row["id"], self.max_attempts)
            db.add(
                NotificationLog(
                    reservation_id=row["aggregate_id"],
                    outbox_event_id=row["id"],
                    kind=kind,
                    recipient=recipient,
                    status=status,
                    error=error,
                )
            )
            update_outbox_backlog_metrics(db, OutboxEvent, self.service_name)
            db.commit()

    async def outbox_relay(self) -> None:
        """Continuously retry pending and stale outbox rows."""

        while True:
            try:
                await self.relay_once()
            except Exception as exc:
                logger.exception("outbox relay pass failed: %s", exc)
            await asyncio.sleep(self.poll_seconds)
