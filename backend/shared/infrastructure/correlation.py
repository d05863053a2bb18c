"""
Request correlation IDs.

Each request gets an ID (the caller's X-Request-ID, or a fresh UUID) that is
echoed in the response and stamped on every log record emitted while the
request is served, so an operator action can be traced through its logs.
"""

import uuid
from contextvars import ContextVar
from logging import LogRecord

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class CorrelationIdFilter:
    """Logging filter setting ``record.request_id`` ("-" outside requests)."""

    def filter(self, record: LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True
