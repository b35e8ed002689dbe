"""Single-operator admin login backed by signed, expiring JWTs.

Tokens are not stored anywhere: a token is valid as long as its signature
checks out and it has not expired. There is no revocation; rotating
`JWT_SECRET` invalidates every outstanding token at once.
"""

import hmac
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Request

from storeflight.common.errors import InvalidCredentials, MisconfiguredServer, Unauthorized
from storeflight.common.logging import logger


ALGORITHM = "HS256"


class AdminAuth:
    """Issues and verifies admin tokens for the configured operator account."""

    def __init__(self, secret: str, username: str, password: str, ttl: timedelta = timedelta(days=7)) -> None:
        self.secret = secret
        self.username = username
        self.password = password
        self.ttl = ttl

    def login(self, username: str | None, password: str | None, now: datetime | None = None) -> str:
        """Return a signed token when the credentials match the operator's."""

        if not self.secret or not self.username or not self.password:
            raise MisconfiguredServer("JWT_SECRET / ADMIN_USER / ADMIN_PASS not configured")
        user_ok = hmac.compare_digest((username or "").encode(), self.username.encode())
        pass_ok = hmac.compare_digest((password or "").encode(), self.password.encode())
        if not (user_ok and pass_ok):
            logger.warning("admin login rejected")
            raise InvalidCredentials()

        issued_at = now or datetime.now(timezone.utc)
        claims = {"sub": self.username, "role": "admin", "iat": issued_at, "exp": issued_at + self.ttl}
        logger.info("admin login accepted")
        return jwt.encode(claims, self.secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> dict:
        """Return the token's claims, or raise `Unauthorized`."""

        if not self.secret:
            raise MisconfiguredServer("JWT_SECRET not configured")
        try:
            claims = jwt.decode(token, self.secret, algorithms=[ALGORITHM], options={"require": ["exp", "sub"]})
        except jwt.InvalidTokenError as exc:
            raise Unauthorized() from exc
        if claims.get("role") != "admin":
            raise Unauthorized()
        return claims


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_admin(request: Request) -> dict:
    """FastAPI dependency: verify the bearer token and attach its claims."""

    token = bearer_token(request)
    if token is None:
        raise Unauthorized()
    claims = request.app.state.admin_auth.verify(token)
    request.state.admin = claims
    return claims
