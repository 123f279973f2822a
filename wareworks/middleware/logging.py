from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from wareworks.middleware.rate_limit import client_ip

logger = logging.getLogger("ww.request")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One `request_completed` line per request; server errors log at WARNING."""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "request_completed",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "client_ip": client_ip(request),
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "elapsed_ms": elapsed_ms,
            },
        )
        return response
