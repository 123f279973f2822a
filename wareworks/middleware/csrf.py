from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Literal

from fastapi import Request
from starlette.responses import Response

from wareworks.core.config import Settings
from wareworks.core.store import ExpiringStore
from wareworks.middleware.rate_limit import client_ip

logger = logging.getLogger("ww.security")

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
ERROR_MISSING = "CSRF token or secret missing"
ERROR_INVALID = "CSRF token invalid or expired"


@dataclass(frozen=True)
class CSRFConfig:
    token_name: str = "csrfToken"
    header_name: str = "x-csrf-token"
    cookie_name: str = "csrf-secret"
    secret_length: int = 32
    max_age_seconds: int = 60 * 60
    same_site: Literal["strict", "lax", "none"] = "strict"
    secure: bool = True
    http_only: bool = True

    def __post_init__(self) -> None:
        if self.secret_length < 16:
            raise ValueError("secret_length must be at least 16 bytes")
        if self.max_age_seconds <= 0:
            raise ValueError("max_age_seconds must be positive")

    @classmethod
    def from_settings(cls, settings: Settings) -> "CSRFConfig":
        return cls(
            token_name=settings.csrf_token_name,
            header_name=settings.csrf_header_name,
            cookie_name=settings.csrf_cookie_name,
            max_age_seconds=settings.csrf_max_age_seconds,
            secure=settings.csrf_secure_cookie,
        )


@dataclass(frozen=True)
class CSRFTokenRecord:
    token: str
    secret: str
    created_at: float
    expires_at: float

    def expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class CSRFCheck:
    valid: bool
    error: str | None = None


class CSRFRejected(Exception):
    def __init__(self, error: str) -> None:
        super().__init__(error)
        self.error = error


class CSRFGuard:
    """
    Issues token/secret pairs and validates them on state-changing requests.

    The token goes to the client in the JSON body; the secret only travels in an
    HTTP-only cookie. A request is accepted when the token is known, unexpired
    and was issued together with the cookie's secret.
    """

    def __init__(self, config: CSRFConfig, *, store: ExpiringStore[CSRFTokenRecord]) -> None:
        self.config = config
        self.store = store

    @staticmethod
    def derive_token(secret: str, issued_at_ms: int) -> str:
        return hashlib.sha256(f"{secret}:{issued_at_ms}".encode("utf-8")).hexdigest()

    def issue_token(self) -> tuple[str, str]:
        now = self.store.clock()
        secret = secrets.token_hex(self.config.secret_length)
        token = self.derive_token(secret, int(now * 1000))
        self.store.put(
            token,
            CSRFTokenRecord(
                token=token,
                secret=secret,
                created_at=now,
                expires_at=now + self.config.max_age_seconds,
            ),
        )
        return token, secret

    def validate_token(self, token: str | None, secret: str | None) -> bool:
        if not token or not secret:
            return False
        record = self.store.get(token)
        if record is None:
            return False
        if record.expired(self.store.clock()):
            self.store.delete(token)
            return False
        return hmac.compare_digest(record.secret.encode("utf-8"), secret.encode("utf-8"))

    def validate_request(self, request: Request) -> CSRFCheck:
        if request.method.upper() in SAFE_METHODS:
            return CSRFCheck(valid=True)
        token = request.headers.get(self.config.header_name)
        secret = request.cookies.get(self.config.cookie_name)
        if not token or not secret:
            return CSRFCheck(valid=False, error=ERROR_MISSING)
        if not self.validate_token(token, secret):
            return CSRFCheck(valid=False, error=ERROR_INVALID)
        return CSRFCheck(valid=True)

    def enforce(self, request: Request) -> None:
        check = self.validate_request(request)
        if check.valid:
            return
        logger.warning(
            "csrf_rejected",
            extra={
                "reason": check.error,
                "ip": client_ip(request),
                "user_agent": request.headers.get("user-agent"),
                "path": request.url.path,
            },
        )
        raise CSRFRejected(check.error or ERROR_INVALID)

    def set_secret_cookie(self, response: Response, secret: str) -> None:
        response.set_cookie(
            key=self.config.cookie_name,
            value=secret,
            max_age=self.config.max_age_seconds,
            path="/",
            secure=self.config.secure,
            httponly=self.config.http_only,
            samesite=self.config.same_site,
        )

    def token_response_body(self, token: str) -> dict[str, object]:
        return {
            "success": True,
            "token": token,
            "tokenName": self.config.token_name,
            "headerName": self.config.header_name,
        }

    def sweep(self) -> int:
        return self.store.sweep(lambda record, now: record.expired(now))
