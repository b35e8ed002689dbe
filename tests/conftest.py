"""Shared fixtures: in-memory SQLite, a recording mailer and a fake PayPal."""

import json

import httpx
import pytest

from storeflight.common.config import Settings
from storeflight.common.db import init_db, make_engine, make_session_factory
from storeflight.common.errors import EmailError
from storeflight.services.notification.service import NotificationService
from storeflight.services.reservations.service import ReservationService


ADMIN_EMAIL = "ops@storeflight.test"


class RecordingMailer:
    """Stands in for Resend; remembers every attempt and can be told to fail."""

    def __init__(self) -> None:
        self.attempts: list[dict] = []
        self.fail = False

    @property
    def recipients(self) -> list[str]:
        return [a["to"] for a in self.attempts]

    async def send(self, to: str, subject: str, html: str) -> dict:
        self.attempts.append({"to": to, "subject": subject, "html": html})
        if self.fail:
            raise EmailError(503, {"message": "resend unavailable"})
        return {"id": f"email-{len(self.attempts)}"}


def paypal_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/v1/oauth2/token":
        return httpx.Response(200, json={"access_token": "A21-token", "expires_in": 32400})
    if path == "/v2/checkout/orders":
        order = json.loads(request.content)
        return httpx.Response(
            201,
            json={
                "id": "ORDER-1",
                "status": "CREATED",
                "echo": order,
                "links": [{"rel": "approve", "href": "https://www.sandbox.paypal.com/checkoutnow?token=ORDER-1"}],
            },
        )
    if path.endswith("/capture"):
        order_id = path.split("/")[-2]
        return httpx.Response(
            201,
            json={
                "id": order_id,
                "status": "COMPLETED",
                "purchase_units": [{"payments": {"captures": [{"id": "CAPTURE-1", "status": "COMPLETED"}]}}],
            },
        )
    return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})


@pytest.fixture
def paypal_transport():
    return httpx.MockTransport(paypal_handler)


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def notifier(session_factory, mailer):
    return NotificationService(session_factory, mailer, admin_email=ADMIN_EMAIL, max_attempts=3)


@pytest.fixture
def reservation_service(session_factory, notifier):
    return ReservationService(session_factory, notifier)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        admin_email=ADMIN_EMAIL,
        resend_api_key="re_test",
        paypal_client_id="client-id",
        paypal_client_secret="client-secret",
        jwt_secret="test-signing-secret",
        admin_user="admin",
        admin_pass="correct horse",
        outbox_relay_enabled=False,
    )
