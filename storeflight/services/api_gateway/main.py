"""Public HTTP surface of the StoreFlight API.

`create_app` wires settings, storage, PayPal, Resend and admin auth into one
FastAPI app. Run with `storeflight-api` or
`uvicorn storeflight.services.api_gateway.main:create_app --factory`.
"""

import asyncio
from contextlib import asynccontextmanager, suppress
from datetime import timedelta
from time import perf_counter
from uuid import uuid4

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from storeflight.common.config import Settings
from storeflight.common.db import init_db, make_engine, make_session_factory
from storeflight.common.errors import GatewayError, StoreFlightError
from storeflight.common.logging import configure_logging, logger, request_id_ctx
from storeflight.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from storeflight.common.startup import check_notification_config, log_startup_config
from storeflight.common.tracing import instrument_app, setup_tracing
from storeflight.services.admin.service import AdminAuth, require_admin
from storeflight.services.notification.service import NotificationService, ResendMailer
from storeflight.services.payment_gateway.service import PayPalGateway
from storeflight.services.reservations.schemas import (
    FinalizeRequest,
    ReservationInput,
    ReservationOut,
    TimelineEntryOut,
)
from storeflight.services.reservations.service import ReservationService


STARTUP_KEYS = [
    "service_name",
    "port",
    "database_url",
    "cors_origin",
    "paypal_env",
    "paypal_client_id",
    "paypal_client_secret",
    "resend_api_key",
    "email_from",
    "admin_email",
    "jwt_secret",
    "admin_user",
    "public_reservation_listing",
    "outbox_relay_enabled",
]


class AdminLoginRequest(BaseModel):
    """Payload accepted by `POST /api/admin/login`."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True, populate_by_name=True)

    user: str | None = None
    password: str | None = Field(default=None, alias="pass")


class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    amount: str | None = None
    currency: str | None = None


class CaptureOrderRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    orderID: str | None = None


def _reservation_out(reservation) -> dict:
    return ReservationOut.model_validate(reservation).model_dump(mode="json")


def _reservations(request: Request) -> ReservationService:
    return request.app.state.reservations


router = APIRouter()


@router.get("/api/health")
def health():
    """Liveness probe."""

    return {"ok": True, "message": "StoreFlight API running"}


@router.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@router.get("/api/reservations")
def list_reservations(request: Request):
    """All reservations, newest first. Admin-only unless public listing is enabled."""

    if not request.app.state.settings.public_reservation_listing:
        require_admin(request)
    return [_reservation_out(r) for r in _reservations(request).list_reservations()]


@router.post("/api/reservations", status_code=201)
async def create_reservation(request: Request, req: ReservationInput | None = None):
    """One-step create: pending, or already paid when PayPal ids come with the form."""

    req = req or ReservationInput()
    service = _reservations(request)
    if req.paypal_order_id or req.paypal_capture_id:
        reservation = await service.create_and_pay(req)
    else:
        reservation = service.create_pending(req)
    return {"ok": True, "reservation": _reservation_out(reservation)}


@router.post("/api/reservations/create", status_code=201)
def create_pending_reservation(request: Request, req: ReservationInput | None = None):
    """Step 1: store the request as pending before the customer pays."""

    reservation = _reservations(request).create_pending(req or ReservationInput())
    return {"ok": True, "reservation": _reservation_out(reservation)}


@router.post("/api/reservations/finalize")
async def finalize_reservation(request: Request, req: FinalizeRequest | None = None):
    """Step 2: mark the reservation paid after PayPal capture and send the e-mails."""

    req = req or FinalizeRequest()
    reservation = await _reservations(request).finalize(
        req.reservation_id, req.paypal_order_id, req.paypal_capture_id
    )
    return {"ok": True, "reservation": _reservation_out(reservation)}


@router.post("/api/admin/login")
def admin_login(request: Request, req: AdminLoginRequest | None = None):
    req = req or AdminLoginRequest()
    token = request.app.state.admin_auth.login(req.user, req.password)
    return {"ok": True, "token": token}


@router.get("/api/admin/reservations")
def admin_list_reservations(request: Request, _admin: dict = Depends(require_admin)):
    reservations = _reservations(request).list_reservations()
    return {"ok": True, "reservations": [_reservation_out(r) for r in reservations]}


@router.get("/api/admin/reservations/{reservation_id}")
def admin_get_reservation(reservation_id: str, request: Request, _admin: dict = Depends(require_admin)):
    reservation, timeline = _reservations(request).get_reservation(reservation_id)
    return {
        "ok": True,
        "reservation": _reservation_out(reservation),
        "timeline": [TimelineEntryOut.model_validate(t).model_dump(mode="json") for t in timeline],
    }


@router.post("/api/paypal/create-order")
async def paypal_create_order(request: Request, req: CreateOrderRequest | None = None):
    req = req or CreateOrderRequest()
    order = await request.app.state.paypal.create_order(req.amount, req.currency)
    return {"ok": True, "orderID": order.order_id, "approveUrl": order.approve_url, "order": order.raw}


@router.post("/api/paypal/capture-order")
async def paypal_capture_order(request: Request, req: CaptureOrderRequest | None = None):
    req = req or CaptureOrderRequest()
    captured = await request.app.state.paypal.capture_order(req.orderID)
    return {"ok": True, "captureId": captured.capture_id, "capture": captured.raw}


def _error_response(exc: StoreFlightError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request failed error=%s detail=%s", type(exc).__name__, exc)
        return JSONResponse(status_code=500, content={"ok": False, "error": "server_error"})
    content = {"ok": False, "error": exc.code}
    if isinstance(exc, GatewayError):
        content["details"] = exc.body
    return JSONResponse(status_code=exc.status_code, content=content)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StoreFlightError)
    async def storeflight_error(_: Request, exc: StoreFlightError):
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def invalid_body(_: Request, exc: RequestValidationError):
        logger.info("invalid request body errors=%s", exc.errors())
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid_body"})

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        # Wrong method on a known path is treated as an unknown route.
        if exc.status_code in (404, 405):
            return JSONResponse(
                status_code=404,
                content={"ok": False, "error": "not_found", "path": request.url.path},
            )
        return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": str(exc.detail)})


def create_app(
    settings: Settings | None = None,
    mailer=None,
    paypal_transport=None,
) -> FastAPI:
    """Build the API with every component wired from `settings`."""

    settings = settings or Settings()
    configure_logging(settings)
    setup_tracing(settings.service_name, settings.otel_exporter_otlp_endpoint)
    log_startup_config(settings, STARTUP_KEYS)
    check_notification_config(settings)

    engine = make_engine(settings.database_url)
    init_db(engine)
    session_factory = make_session_factory(engine)
    notifier = NotificationService(
        session_factory,
        mailer or ResendMailer(settings.resend_api_key, settings.email_from, settings.resend_api_url),
        admin_email=settings.admin_email,
        max_attempts=settings.outbox_max_attempts,
        poll_seconds=settings.outbox_poll_seconds,
        service_name=settings.service_name,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run the notification outbox relay with the app lifecycle."""

        relay_task = None
        if settings.outbox_relay_enabled:
            relay_task = asyncio.create_task(notifier.outbox_relay())
        app.state.relay_task = relay_task
        logger.info("server ready port=%s paypal_env=%s", settings.port, settings.paypal_env)
        yield
        if relay_task is not None:
            relay_task.cancel()
            with suppress(asyncio.CancelledError):
                await relay_task
        engine.dispose()

    app = FastAPI(title="StoreFlight API", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.notifier = notifier
    app.state.reservations = ReservationService(session_factory, notifier, service_name=settings.service_name)
    app.state.paypal = PayPalGateway(
        settings.paypal_client_id,
        settings.paypal_client_secret,
        settings.paypal_base_url,
        transport=paypal_transport,
    )
    app.state.admin_auth = AdminAuth(
        settings.jwt_secret,
        settings.admin_user,
        settings.admin_pass,
        ttl=timedelta(days=settings.admin_token_ttl_days),
    )

    @app.middleware("http")
    async def observe_requests(request: Request, call_next):
        """Tag the request, record metrics, and turn unexpected errors into a generic 500."""

        start = perf_counter()
        route = "unmatched"
        method = request.method
        status_code = 500
        token = request_id_ctx.set(request.headers.get("x-request-id") or str(uuid4()))
        try:
            try:
                response = await call_next(request)
            except Exception:
                logger.exception("unhandled error method=%s path=%s", method, request.url.path)
                response = JSONResponse(status_code=500, content={"ok": False, "error": "server_error"})
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()
            request_id_ctx.reset(token)

    origins = ["*"] if settings.cors_origin == "*" else [o.strip() for o in settings.cors_origin.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    app.include_router(router)
    instrument_app(app)
    return app


def main() -> None:
    """Console entrypoint: serve the API on `PORT`."""

    settings = Settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
