"""PayPal adapter against a mocked PayPal API."""

import asyncio
import json

import httpx
import pytest

from storeflight.common.config import Settings
from storeflight.common.errors import AuthError, GatewayError, ValidationError
from storeflight.services.payment_gateway.service import PayPalGateway, normalize_amount, parse_capture_id


BASE_URL = "https://api-m.sandbox.paypal.com"


def _gateway(transport, client_id="client-id", client_secret="client-secret") -> PayPalGateway:
    return PayPalGateway(client_id, client_secret, BASE_URL, transport=transport)


def test_parse_capture_id_expected_shape():
    response = {"purchase_units": [{"payments": {"captures": [{"id": "CAP-1"}, {"id": "CAP-2"}]}}]}

    assert parse_capture_id(response) == "CAP-1"


@pytest.mark.parametrize(
    "response",
    [
        None,
        "COMPLETED",
        [],
        {},
        {"purchase_units": []},
        {"purchase_units": "nope"},
        {"purchase_units": [{}]},
        {"purchase_units": [{"payments": None}]},
        {"purchase_units": [{"payments": {"captures": []}}]},
        {"purchase_units": [{"payments": {"captures": [{}]}}]},
        {"purchase_units": [{"payments": {"captures": [{"id": 42}]}}]},
        {"purchase_units": [{"payments": {"captures": [{"id": ""}]}}]},
    ],
)
def test_parse_capture_id_tolerates_other_shapes(response):
    assert parse_capture_id(response) is None


@pytest.mark.parametrize("raw,expected", [(None, "15.00"), ("", "15.00"), ("15", "15.00"), (20.5, "20.50")])
def test_normalize_amount(raw, expected):
    assert normalize_amount(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "-1", "0", "NaN", "0.001", "1e30", "1e100000000", "100000000"])
def test_normalize_amount_rejects_garbage(raw):
    with pytest.raises(ValidationError):
        normalize_amount(raw)


def test_base_url_follows_environment():
    assert Settings(_env_file=None, paypal_env="sandbox").paypal_base_url == BASE_URL
    assert Settings(_env_file=None, paypal_env="live").paypal_base_url == "https://api-m.paypal.com"


def test_authenticate_uses_client_credentials():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["authorization"]
        seen["body"] = request.content.decode()
        return httpx.Response(200, json={"access_token": "A21-token"})

    token = asyncio.run(_gateway(httpx.MockTransport(handler)).authenticate())

    assert token == "A21-token"
    assert seen["auth"].startswith("Basic ")
    assert seen["body"] == "grant_type=client_credentials"


def test_authenticate_without_credentials_raises(paypal_transport):
    with pytest.raises(AuthError):
        asyncio.run(_gateway(paypal_transport, client_id="").authenticate())


def test_authenticate_rejected_raises():
    transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "invalid_client"}))

    with pytest.raises(AuthError):
        asyncio.run(_gateway(transport).authenticate())


def test_create_order_posts_single_purchase_unit(paypal_transport):
    order = asyncio.run(_gateway(paypal_transport).create_order("15", "eur"))

    assert order.order_id == "ORDER-1"
    assert order.approve_url.endswith("token=ORDER-1")
    assert order.raw["echo"] == {
        "intent": "CAPTURE",
        "purchase_units": [{"amount": {"currency_code": "EUR", "value": "15.00"}}],
    }


def test_create_order_failure_carries_provider_body():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21-token"})
        return httpx.Response(422, json={"name": "UNPROCESSABLE_ENTITY"})

    with pytest.raises(GatewayError) as excinfo:
        asyncio.run(_gateway(httpx.MockTransport(handler)).create_order("15", "EUR"))

    assert excinfo.value.code == "paypal_create_failed"
    assert excinfo.value.provider_status == 422
    assert excinfo.value.body == {"name": "UNPROCESSABLE_ENTITY"}


def test_capture_order_extracts_capture_id(paypal_transport):
    captured = asyncio.run(_gateway(paypal_transport).capture_order("ORDER-1"))

    assert captured.order_id == "ORDER-1"
    assert captured.capture_id == "CAPTURE-1"
    assert captured.status == "COMPLETED"


def test_capture_order_without_capture_record_returns_none():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21-token"})
        return httpx.Response(201, content=json.dumps({"id": "ORDER-1", "status": "COMPLETED"}))

    captured = asyncio.run(_gateway(httpx.MockTransport(handler)).capture_order("ORDER-1"))

    assert captured.capture_id is None


def test_capture_order_requires_order_id(paypal_transport):
    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(_gateway(paypal_transport).capture_order("  "))

    assert excinfo.value.code == "orderID_required"


def test_capture_order_failure_raises_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21-token"})
        return httpx.Response(422, json={"name": "ORDER_NOT_APPROVED"})

    with pytest.raises(GatewayError) as excinfo:
        asyncio.run(_gateway(httpx.MockTransport(handler)).capture_order("ORDER-1"))

    assert excinfo.value.code == "paypal_capture_failed"
