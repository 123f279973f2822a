from __future__ import annotations

import uuid
from dataclasses import dataclass

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from wareworks.middleware.rate_limit import client_ip

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass(frozen=True)
class RequestContext:
    request_id: str
    ip: str
    user_agent: str
    referer: str
    method: str
    path: str


def get_request_context(request: Request) -> RequestContext:
    request_id = getattr(request.state, "request_id", None) or "unknown"
    return RequestContext(
        request_id=request_id,
        ip=client_ip(request),
        user_agent=request.headers.get("user-agent") or "unknown",
        referer=request.headers.get("referer") or "direct",
        method=request.method,
        path=request.url.path,
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
