"""
ASGI middleware for tracking HTTP request metrics.
Records request count, duration, and errors.
"""
import re
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from tododiary.utils.metrics import http_requests_total, http_request_duration_seconds, errors_total

UUID_PATTERN = re.compile(
    r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
    re.IGNORECASE
)
NUMERIC_SEGMENT_PATTERN = re.compile(r'/\d+(?=/|$)')
# /api/uploads/<prefix>/presign -> one series per endpoint, not per prefix typo
PRESIGN_PATTERN = re.compile(r'^/api/uploads/[^/]+/presign$')

SKIP_PATHS = {"/metrics"}


def normalize_path(path: str) -> str:
    """
    Normalize path to reduce label cardinality.
    Replaces UUIDs, numeric IDs and free-form prefixes with placeholders.
    """
    if PRESIGN_PATTERN.match(path):
        return "/api/uploads/{prefix}/presign"
    path = UUID_PATTERN.sub('{id}', path)
    return NUMERIC_SEGMENT_PATTERN.sub('/{id}', path)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to track HTTP metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next):
        """Process request and record metrics."""
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        method = request.method
        path = normalize_path(request.url.path)

        try:
            response = await call_next(request)
        except Exception:
            errors_total.labels(error_type="exception").inc()
            raise

        status_code = response.status_code
        http_requests_total.labels(method=method, path=path, status=status_code).inc()
        http_request_duration_seconds.labels(method=method, path=path).observe(
            time.perf_counter() - start_time
        )

        # Track errors (4xx and 5xx)
        if status_code >= 400:
            errors_total.labels(error_type=f"{status_code // 100}xx").inc()

        return response
