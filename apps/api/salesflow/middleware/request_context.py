from __future__ import annotations

import logging
import time

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from salesflow.context import correlation_scope, new_correlation_id
from salesflow.metrics import observe_http_request, route_label


CORRELATION_HEADER = "x-correlation-id"

logger = logging.getLogger("salesflow.request")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds the correlation id for the request, then logs and measures it.

    An inbound ``X-Correlation-Id`` is honoured; otherwise a fresh id is
    generated. The id is echoed on the response header.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or new_correlation_id()
        request.state.correlation_id = correlation_id
        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("correlation_id", correlation_id)

        started = time.perf_counter()
        with correlation_scope(correlation_id):
            try:
                response = await call_next(request)
            except Exception:
                self._observe(request, 500, started, failed=True)
                raise
            # The matched route is only in scope once the router has run.
            self._observe(request, response.status_code, started)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    @staticmethod
    def _observe(request: Request, status_code: int, started: float, *, failed: bool = False) -> None:
        elapsed = time.perf_counter() - started
        path = route_label(request)
        observe_http_request(method=request.method, path=path, status=status_code, duration=elapsed)
        extra = {
            "method": request.method,
            "path": path,
            "status_code": status_code,
            "duration_ms": round(elapsed * 1000, 2),
        }
        if failed:
            logger.error("http.error", exc_info=True, extra=extra)
        else:
            logger.info("http.request", extra=extra)
