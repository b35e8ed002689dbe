"""Environment-driven settings for the StoreFlight API.

The process entrypoint builds one `Settings` instance at startup and passes it
to every component. Business code never reads the environment directly.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


PAYPAL_BASE_URLS = {
    "sandbox": "https://api-m.sandbox.paypal.com",
    "live": "https://api-m.paypal.com",
}


class Settings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "storeflight-api"
    log_level: str = "INFO"
    port: int = 10000
    database_url: str = "sqlite:///./storeflight.db"
    cors_origin: str = "*"

    paypal_client_id: str = ""
    paypal_client_secret: str = ""
    paypal_env: Literal["sandbox", "live"] = "sandbox"

    resend_api_key: str = ""
    resend_api_url: str = "https://api.resend.com/emails"
    email_from: str = "StoreFlight <onboarding@resend.dev>"
    admin_email: str = ""

    jwt_secret: str = ""
    admin_user: str = ""
    admin_pass: str = ""
    admin_token_ttl_days: int = 7

    public_reservation_listing: bool = True
    outbox_relay_enabled: bool = True
    outbox_poll_seconds: float = 5.0
    outbox_max_attempts: int = 5

    otel_exporter_otlp_endpoint: str | None = None
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def paypal_base_url(self) -> str:
        return PAYPAL_BASE_URLS[self.paypal_env]
