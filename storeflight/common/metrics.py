"""Prometheus metric definitions."""

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response


reservations_created_total = Counter(
    "reservations_created_total",
    "Reservations inserted",
    ["service", "status"],
)
reservations_paid_total = Counter("reservations_paid_total", "Reservations marked paid", ["service"])
paypal_requests_total = Counter(
    "paypal_requests_total",
    "Calls made to PayPal",
    ["operation", "outcome"],
)
paypal_latency_seconds = Histogram("paypal_latency_seconds", "PayPal call latency seconds", ["operation"])
emails_sent_total = Counter("emails_sent_total", "E-mails accepted by the provider", ["kind"])
emails_failed_total = Counter("emails_failed_total", "E-mail delivery attempts that failed", ["kind"])
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
outbox_pending_total = Gauge(
    "outbox_pending_total",
    "Current count of outbox events not yet sent",
    ["service"],
)
outbox_oldest_pending_age_seconds = Gauge(
    "outbox_oldest_pending_age_seconds",
    "Age in seconds of the oldest pending outbox event",
    ["service"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
