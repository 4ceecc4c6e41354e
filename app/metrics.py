from __future__ import annotations

import time
from typing import Callable, Optional

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Info, generate_latest

from app.core.settings import S

METRICS_ENABLED = S.metrics_enabled

HTTP_REQUESTS = Counter(
    "orchestrator_http_requests_total",
    "Inbound HTTP requests",
    ["method", "route", "status"],
)
HTTP_FAILURES = Counter(
    "orchestrator_http_failures_total",
    "Inbound HTTP requests answered with an error envelope",
    ["route", "status_class"],
)
HTTP_LATENCY = Histogram(
    "orchestrator_http_duration_seconds",
    "Inbound request latency in seconds",
    ["method", "route"],
    # imports and validations make one upstream round trip per address
    buckets=(0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120, 300),
)
HTTP_IN_FLIGHT = Gauge(
    "orchestrator_http_in_flight",
    "Inbound requests being processed",
)
UPLOAD_BYTES = Histogram(
    "orchestrator_upload_bytes",
    "Size of multipart upload bodies in bytes",
    ["route"],
    buckets=(1_000, 10_000, 100_000, 1_000_000, 5_000_000, 15_000_000),
)
UPSTREAM_CALLS = Counter(
    "pressero_calls_total",
    "Calls made to the Pressero admin API",
    ["operation", "status"],
)
UPSTREAM_LATENCY = Histogram(
    "pressero_call_duration_seconds",
    "Pressero admin API call latency in seconds",
    ["operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30),
)
ADDRESS_OUTCOMES = Counter(
    "address_import_outcomes_total",
    "Address records processed by imports",
    ["outcome"],
)
CART_LINES = Counter(
    "cart_distribution_lines_total",
    "Distribution lines posted to carts",
    ["result"],
)
UPTIME_SECONDS = Gauge(
    "app_uptime_seconds",
    "Application uptime in seconds",
)
APP_INFO = Info(
    "app",
    "Application metadata",
)

_START_TIME = time.monotonic()


def _route_template(request: Request) -> str:
    # Templated path keeps label cardinality bounded.
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _upload_size(request: Request) -> Optional[int]:
    if not request.headers.get("content-type", "").startswith("multipart/"):
        return None
    try:
        return int(request.headers.get("content-length") or "")
    except ValueError:
        return None


def record_upstream_call(operation: str, status: str, elapsed: float) -> None:
    UPSTREAM_CALLS.labels(operation=operation, status=status).inc()
    UPSTREAM_LATENCY.labels(operation=operation).observe(elapsed)


def record_address_outcome(outcome: str) -> None:
    ADDRESS_OUTCOMES.labels(outcome=outcome).inc()


def record_cart_line(result: str) -> None:
    CART_LINES.labels(result=result).inc()


async def metrics_middleware(request: Request, call_next: Callable[[Request], Response]) -> Response:
    started = time.perf_counter()
    status = 500
    HTTP_IN_FLIGHT.inc()
    try:
        response = await call_next(request)
        status = response.status_code
        return response
    finally:
        HTTP_IN_FLIGHT.dec()
        # scope["route"] is only set once routing has run
        route = _route_template(request)
        HTTP_LATENCY.labels(method=request.method, route=route).observe(time.perf_counter() - started)
        HTTP_REQUESTS.labels(method=request.method, route=route, status=str(status)).inc()
        if status >= 400:
            HTTP_FAILURES.labels(route=route, status_class=f"{status // 100}xx").inc()
        size = _upload_size(request)
        if size is not None:
            UPLOAD_BYTES.labels(route=route).observe(size)


def set_app_info(name: str, version: str) -> None:
    APP_INFO.info({"name": name, "version": version})


def metrics_endpoint() -> Response:
    UPTIME_SECONDS.set(time.monotonic() - _START_TIME)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
