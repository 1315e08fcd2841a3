"""HTTP request metrics.

Series are labelled with the route template that served the request
(``/v1/quizzes/{quiz_id}``), so quiz ids never multiply the series count.
Paths no route matched share the ``unmatched`` label.  Scrapes of
/metrics are left out.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.metrics import ACTIVE_REQUESTS, REQUEST_COUNT, REQUEST_DURATION

UNMATCHED = "unmatched"


def route_template(request: Request) -> str:
    # The router stores the matched route in the scope while dispatching
    return getattr(request.scope.get("route"), "path", None) or UNMATCHED


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        started = time.perf_counter()
        outcome = "500"
        with ACTIVE_REQUESTS.track_inprogress():
            try:
                response = await call_next(request)
                outcome = str(response.status_code)
                return response
            finally:
                endpoint = route_template(request)
                REQUEST_DURATION.labels(request.method, endpoint).observe(
                    time.perf_counter() - started
                )
                REQUEST_COUNT.labels(request.method, endpoint, outcome).inc()
