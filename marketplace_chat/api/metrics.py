"""
Prometheus-style metrics endpoint and request instrumentation.
"""
import time
from typing import Callable

from fastapi import APIRouter, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from marketplace_chat.core.config import get_settings
from marketplace_chat.core.metrics import metrics

router = APIRouter(tags=["Metrics"])


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect request metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        # Route template rather than raw path keeps label cardinality bounded
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)

        metrics.record_request(
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration=duration,
        )
        return response


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Returns metrics in Prometheus exposition format.",
    response_class=Response,
)
async def metrics_endpoint() -> Response:
    """Prometheus-style metrics endpoint."""
    return Response(
        content=metrics.render(get_settings().app_version),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
