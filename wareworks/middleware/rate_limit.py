from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from wareworks.core.config import Settings
from wareworks.core.store import ExpiringStore

logger = logging.getLogger("ww.security")

SUBMISSION = "submission"
API = "api"
UPLOAD = "upload"
DOWNLOAD = "download"


def client_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip() or "unknown"
    xrip = request.headers.get("x-real-ip")
    if xrip:
        return xrip.strip()
    return "unknown"


@dataclass(frozen=True)
class RateLimitConfig:
    window_seconds: int
    max_requests: int
    message: str = "Too many requests. Please try again later."

    def __post_init__(self) -> None:
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if self.max_requests <= 0:
            raise ValueError("max_requests must be positive")


@dataclass(frozen=True)
class RateLimitEntry:
    key: str
    count: int
    window_start: float
    window_seconds: float
    max_requests: int

    @property
    def reset_time(self) -> float:
        return self.window_start + self.window_seconds

    def expired(self, now: float) -> bool:
        return now >= self.reset_time


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_time: float
    retry_after: int | None = None

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_time)),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimitExceeded(Exception):
    def __init__(self, result: RateLimitResult, message: str) -> None:
        super().__init__(message)
        self.result = result
        self.message = message


class RateLimiter:
    """Fixed-window request counter; each limiter owns its own key namespace."""

    def __init__(self, name: str, config: RateLimitConfig, *, store: ExpiringStore[RateLimitEntry]) -> None:
        self.name = name
        self.config = config
        self.store = store

    def _key(self, client_key: str) -> str:
        return f"{self.name}:ratelimit:{client_key}"

    def check_limit(self, client_key: str) -> RateLimitResult:
        now = self.store.clock()
        key = self._key(client_key)

        def _bump(entry: RateLimitEntry | None) -> RateLimitEntry:
            if entry is None or entry.expired(now):
                entry = RateLimitEntry(
                    key=key,
                    count=0,
                    window_start=now,
                    window_seconds=self.config.window_seconds,
                    max_requests=self.config.max_requests,
                )
            return replace(entry, count=entry.count + 1)

        entry = self.store.update(key, _bump)
        limit = self.config.max_requests
        allowed = entry.count <= limit
        return RateLimitResult(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - entry.count),
            reset_time=entry.reset_time,
            retry_after=None if allowed else max(1, math.ceil(entry.reset_time - now)),
        )

    def release(self, client_key: str) -> None:
        now = self.store.clock()

        def _undo(entry: RateLimitEntry | None) -> RateLimitEntry | None:
            if entry is None or entry.expired(now):
                return entry
            return replace(entry, count=max(0, entry.count - 1))

        self.store.update(self._key(client_key), _undo)

    def enforce(self, request: Request) -> RateLimitResult:
        """Counts the request and raises RateLimitExceeded when it is over the limit."""
        ip = client_ip(request)
        result = self.check_limit(ip)
        request.state.rate_limit = result
        if not result.allowed:
            logger.warning(
                "rate_limit_exceeded",
                extra={
                    "limiter": self.name,
                    "ip": ip,
                    "user_agent": request.headers.get("user-agent"),
                    "path": request.url.path,
                },
            )
            raise RateLimitExceeded(result, self.config.message)
        return result


def sweep_rate_limits(store: ExpiringStore[RateLimitEntry]) -> int:
    return store.sweep(lambda entry, now: entry.expired(now))


def build_rate_limiters(settings: Settings, *, store: ExpiringStore[RateLimitEntry]) -> dict[str, RateLimiter]:
    configs = {
        SUBMISSION: RateLimitConfig(
            window_seconds=settings.rate_limit_submission_window_seconds,
            max_requests=settings.rate_limit_submission_max,
            message="Too many application submissions. Please wait before submitting again.",
        ),
        API: RateLimitConfig(
            window_seconds=settings.rate_limit_api_window_seconds,
            max_requests=settings.rate_limit_api_max,
            message="Too many API requests. Please slow down.",
        ),
        UPLOAD: RateLimitConfig(
            window_seconds=settings.rate_limit_upload_window_seconds,
            max_requests=settings.rate_limit_upload_max,
            message="Too many file uploads. Please wait before uploading more files.",
        ),
        DOWNLOAD: RateLimitConfig(
            window_seconds=settings.rate_limit_download_window_seconds,
            max_requests=settings.rate_limit_download_max,
            message="Too many download requests. Please wait before downloading again.",
        ),
    }
    return {name: RateLimiter(name, config, store=store) for name, config in configs.items()}


class RateLimitHeadersMiddleware(BaseHTTPMiddleware):
    """Copies the X-RateLimit-* headers of a counted request onto its response."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        result = getattr(request.state, "rate_limit", None)
        if isinstance(result, RateLimitResult):
            for name, value in result.headers().items():
                if name not in response.headers:
                    response.headers[name] = value
        return response
