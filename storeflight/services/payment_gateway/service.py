"""PayPal Orders v2 client: OAuth token, order creation and capture.

Every call fetches a fresh client-credentials token; PayPal tokens are short
lived and nothing here caches them.
"""

from decimal import Decimal, InvalidOperation
from time import perf_counter
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from storeflight.common.errors import AuthError, GatewayError, ValidationError
from storeflight.common.logging import logger
from storeflight.common.metrics import paypal_latency_seconds, paypal_requests_total


DEFAULT_AMOUNT = "15.00"
MAX_AMOUNT = Decimal("99999999.99")
DEFAULT_CURRENCY = "EUR"


class CreatedOrder(BaseModel):
    order_id: str
    status: str | None = None
    approve_url: str | None = None
    raw: dict


class CapturedOrder(BaseModel):
    order_id: str
    capture_id: str | None = None
    status: str | None = None
    raw: dict


def parse_capture_id(response) -> str | None:
    """Return `purchase_units[0].payments.captures[0].id` from a capture response.

    Any other shape (not a dict, missing keys, empty lists, a non-string or
    empty id) yields `None` rather than an error.
    """

    if not isinstance(response, dict):
        return None
    units = response.get("purchase_units")
    if not isinstance(units, list) or not units or not isinstance(units[0], dict):
        return None
    payments = units[0].get("payments")
    if not isinstance(payments, dict):
        return None
    captures = payments.get("captures")
    if not isinstance(captures, list) or not captures or not isinstance(captures[0], dict):
        return None
    capture_id = captures[0].get("id")
    if not isinstance(capture_id, str) or not capture_id:
        return None
    return capture_id


def parse_approve_url(response: dict) -> str | None:
    for link in response.get("links") or []:
        if isinstance(link, dict) and link.get("rel") in ("approve", "payer-action"):
            return link.get("href")
    return None


def normalize_amount(amount) -> str:
    """Format an order amount as PayPal expects it (`"15.00"`)."""

    if amount is None or str(amount).strip() == "":
        return DEFAULT_AMOUNT
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as exc:
        raise ValidationError("amount_invalid") from exc
    if not value.is_finite() or value <= 0 or value > MAX_AMOUNT:
        raise ValidationError("amount_invalid")
    value = value.quantize(Decimal("0.01"))
    if value <= 0:
        raise ValidationError("amount_invalid")
    return str(value)


def normalize_currency(currency) -> str:
    value = str(currency or "").strip().upper()
    return value or DEFAULT_CURRENCY


def _response_body(resp: httpx.Response):
    try:
        return resp.json()
    except ValueError:
        return {"raw": resp.text}


class PayPalGateway:
    """Talks to the sandbox or live PayPal REST API."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, transport=self.transport)

    async def authenticate(self) -> str:
        """Exchange client credentials for a bearer token."""

        if not self.client_id or not self.client_secret:
            raise AuthError("PAYPAL_CLIENT_ID / PAYPAL_CLIENT_SECRET not configured")
        start = perf_counter()
        async with self._client() as client:
            resp = await client.post(
                "/v1/oauth2/token",
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials"},
            )
        paypal_latency_seconds.labels(operation="token").observe(perf_counter() - start)
        body = _response_body(resp)
        if resp.status_code >= 400 or not isinstance(body, dict) or not body.get("access_token"):
            paypal_requests_total.labels(operation="token", outcome="error").inc()
            logger.error("paypal token request failed status=%s body=%s", resp.status_code, body)
            raise AuthError(f"PayPal token error: {resp.status_code}")
        paypal_requests_total.labels(operation="token", outcome="ok").inc()
        return body["access_token"]

    async def _post(self, operation: str, path: str, error_code: str, json: dict | None = None) -> dict:
        token = await self.authenticate()
        start = perf_counter()
        async with self._client() as client:
            resp = await client.post(
                path,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                json=json,
            )
        paypal_latency_seconds.labels(operation=operation).observe(perf_counter() - start)
        body = _response_body(resp)
        if resp.status_code >= 400:
            paypal_requests_total.labels(operation=operation, outcome="error").inc()
            logger.warning("paypal %s failed status=%s body=%s", operation, resp.status_code, body)
            raise GatewayError(error_code, resp.status_code, body)
        paypal_requests_total.labels(operation=operation, outcome="ok").inc()
        return body if isinstance(body, dict) else {"raw": body}

    async def create_order(self, amount, currency) -> CreatedOrder:
        """Create a CAPTURE-intent order with a single purchase unit."""

        value = normalize_amount(amount)
        currency_code = normalize_currency(currency)
        body = await self._post(
            "create_order",
            "/v2/checkout/orders",
            "paypal_create_failed",
            json={
                "intent": "CAPTURE",
                "purchase_units": [{"amount": {"currency_code": currency_code, "value": value}}],
            },
        )
        logger.info("paypal order created order_id=%s amount=%s %s", body.get("id"), value, currency_code)
        return CreatedOrder(
            order_id=str(body.get("id") or ""),
            status=body.get("status"),
            approve_url=parse_approve_url(body),
            raw=body,
        )

    async def capture_order(self, order_id: str) -> CapturedOrder:
        """Capture an approved order; the capture id may legitimately be absent."""

        order_id = str(order_id or "").strip()
        if not order_id:
            raise ValidationError("orderID_required")
        body = await self._post(
            "capture_order",
            f"/v2/checkout/orders/{quote(order_id, safe='')}/capture",
            "paypal_capture_failed",
        )
        capture_id = parse_capture_id(body)
        if capture_id is None:
            logger.warning("paypal capture without capture id order_id=%s", order_id)
        return CapturedOrder(order_id=order_id, capture_id=capture_id, status=body.get("status"), raw=body)
