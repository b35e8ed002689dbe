"""Startup-time helpers for safe config logging."""

from sqlalchemy.engine import make_url

from storeflight.common.config import Settings
from storeflight.common.logging import logger


SECRET_MARKERS = ("KEY", "SECRET", "PASSWORD", "PASS", "TOKEN")


def _safe_value(name: str, value) -> str:
    """Return a printable value with simple redaction for secret-like names."""

    if value is None or value == "":
        return "<unset>"
    if any(marker in name.upper() for marker in SECRET_MARKERS):
        return "<redacted>"
    if name == "database_url":
        return make_url(value).render_as_string(hide_password=True)
    return str(value)


def log_startup_config(settings: Settings, keys: list[str]) -> None:
    """Log selected settings for quick troubleshooting."""

    config = {"service": settings.service_name}
    for key in keys:
        config[key.upper()] = _safe_value(key, getattr(settings, key, None))
    logger.info("startup_config=%s", config)


def check_notification_config(settings: Settings) -> list[str]:
    """Log, once at startup, every missing setting that disables payment e-mails."""

    problems = []
    if not settings.resend_api_key:
        problems.append("RESEND_API_KEY not configured, payment e-mails are disabled")
    if not settings.admin_email:
        problems.append("ADMIN_EMAIL not configured, operator payment notices are disabled")
    for problem in problems:
        logger.error(problem)
    return problems
