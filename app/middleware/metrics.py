import re
import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_COUNT = Counter(
    "gateway_http_requests_total",
    "Total HTTP requests served by the API gateway",
    ["method", "path", "status"],
)

REQUEST_LATENCY = Histogram(
    "gateway_http_request_duration_seconds",
    "API gateway request latency, upstream calls included",
    ["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Collapse ids so label cardinality stays bounded.
_PATH_PATTERNS = [
    (re.compile(r"/orders/[^/]+"), "/orders/{order_id}"),
    (re.compile(r"/products/[^/]+"), "/products/{product_id}"),
]


def normalise_path(path: str) -> str:
    for pattern, replacement in _PATH_PATTERNS:
        path = pattern.sub(replacement, path)
    return path


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path.startswith("/metrics"):
            return await call_next(request)

        path = normalise_path(request.url.path)
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        REQUEST_COUNT.labels(
            method=request.method,
            path=path,
            status=str(response.status_code),
        ).inc()
        REQUEST_LATENCY.labels(method=request.method, path=path).observe(elapsed)

        return response
