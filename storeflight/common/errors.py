"""Error taxonomy shared by the services and mapped to HTTP by the API layer."""

from typing import Any


class StoreFlightError(Exception):
    """Base class for every error the API knows how to translate."""

    status_code = 500
    code = "server_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)


class ValidationError(StoreFlightError):
    """A required field is missing or malformed. `code` names the field."""

    status_code = 400

    def __init__(self, code: str) -> None:
        super().__init__(code)
        self.code = code


class NotFound(StoreFlightError):
    status_code = 404
    code = "reservation_not_found"


class InvalidCredentials(StoreFlightError):
    status_code = 401
    code = "invalid_credentials"


class Unauthorized(StoreFlightError):
    status_code = 401
    code = "unauthorized"


class MisconfiguredServer(StoreFlightError):
    """A secret or credential needed to serve the request is not configured."""


class AuthError(StoreFlightError):
    """PayPal refused (or could not be asked for) an access token."""


class GatewayError(StoreFlightError):
    """PayPal answered with a non-success status. `body` is surfaced to the caller."""

    status_code = 400

    def __init__(self, code: str, status_code: int, body: Any) -> None:
        super().__init__(f"{code}: {status_code}")
        self.code = code
        self.provider_status = status_code
        self.body = body


class EmailError(StoreFlightError):
    """Resend rejected a message or is not configured. Never reaches a client."""

    def __init__(self, status_code: int | None, body: Any) -> None:
        super().__init__(f"email send failed: {status_code} {body}")
        self.provider_status = status_code
        self.body = body
