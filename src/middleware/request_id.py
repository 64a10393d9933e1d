"""Request ID tracing middleware — adds X-Request-ID to every response."""
from __future__ import annotations

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Read by the logging filter so attribution log lines carry the visit's trace id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request ID to every storefront call.

    The client's X-Request-ID is honored when present, otherwise a UUID4 is
    generated. Click-logging tasks spawned during the request copy the
    context, so their log lines keep the ID after the response is sent.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        token = request_id_var.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = rid
        return response
