# propdesk/middleware/structured_logging.py
from __future__ import annotations

import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

log = logging.getLogger("propdesk.request")


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """One `http_request` line per request; 5xx responses log at WARNING."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            log.log(
                logging.WARNING if status_code >= 500 else logging.INFO,
                "http_request",
                extra={
                    "request_id": getattr(request.state, "request_id", None),
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    "latency_ms": round((time.perf_counter() - started) * 1000, 1),
                    "user_ref": request.headers.get(settings.dev_header_user_ref),
                },
            )
