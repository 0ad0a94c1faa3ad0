r"""backend\app\core\observability.py

Request middleware (bearer token, per-client rate limit, JSON access log) and
the Prometheus metrics shared by the API and the batch pipelines."""

from __future__ import annotations

import json
import logging
import os
import re
import threading
import time
import uuid
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

ACCESS_LOGGER = logging.getLogger("stockpilot.access")

_REQUEST_COUNTER = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "path", "status"]
)
_LATENCY_HISTOGRAM = Histogram(
    "http_request_latency_seconds", "Request latency", ["method", "path"]
)

# Per-product outcomes of the batch pipelines ("forecast", "reorder").
PIPELINE_ITEMS = Counter(
    "pipeline_items_total",
    "Products processed by batch pipelines",
    ["pipeline", "outcome"],
)

_PRODUCT_PATH = re.compile(r"^/api/v1/forecasts/(?P<product_id>[^/]+)/latest$")
_SUGGESTION_PATH = re.compile(r"^/api/v1/reorder/suggestions/(?P<suggestion_id>[^/]+)/status$")


def record_pipeline_item(pipeline: str, outcome: str) -> None:
    """Increment the batch pipeline counter; metrics never break a batch."""

    try:
        PIPELINE_ITEMS.labels(pipeline, outcome).inc()
    except Exception:
        pass


def request_context(request: Request) -> Dict[str, Optional[str]]:
    """Identifiers worth correlating in the access log for ``request``."""

    path = request.url.path
    product_id = request.query_params.get("product_id")
    suggestion_id = None

    match = _PRODUCT_PATH.match(path)
    if match:
        product_id = match.group("product_id")
    match = _SUGGESTION_PATH.match(path)
    if match:
        suggestion_id = match.group("suggestion_id")

    return {
        "request_id": request.headers.get("x-request-id") or str(uuid.uuid4()),
        "client_ip": request.client.host if request.client else "unknown",
        "user_id": request.headers.get("x-user-id"),
        "product_id": product_id,
        "suggestion_id": suggestion_id,
    }


def _observe(request: Request, response: Response, started: float, context: Dict[str, Any]) -> Response:
    latency = time.perf_counter() - started
    method, path = request.method, request.url.path
    status_code = getattr(response, "status_code", 500)

    try:
        _REQUEST_COUNTER.labels(method, path, str(status_code)).inc()
        _LATENCY_HISTOGRAM.labels(method, path).observe(latency)
    except Exception:
        pass

    ACCESS_LOGGER.info(
        json.dumps(
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "method": method,
                "path": path,
                "status": status_code,
                "latency_ms": int(latency * 1000),
                **context,
            }
        )
    )
    return response


class TokenAndRateLimitMiddleware(BaseHTTPMiddleware):
    """Bearer-token check and sliding one-minute rate limit per client IP."""

    _lock: threading.Lock = threading.Lock()
    _buckets: dict[str, deque[float]] = defaultdict(deque)
    _per_minute: int = int(os.getenv("RATE_LIMIT_PER_MIN", "60"))
    # Disabled under pytest even if the shell exports API_TOKEN; auth tests
    # set this attribute explicitly.
    _token: str | None = None if os.getenv("PYTEST_CURRENT_TEST") else os.getenv("API_TOKEN")
    _exempt_prefixes: tuple[str, ...] = (
        "/api/v1/health",
        "/metrics",
        "/docs",
        "/redoc",
        "/openapi.json",
    )

    def _authorized(self, request: Request) -> bool:
        if not self._token or request.url.path.startswith(self._exempt_prefixes):
            return True
        return request.headers.get("authorization", "") == f"Bearer {self._token}"

    def _within_rate(self, client_ip: str) -> bool:
        if self._per_minute <= 0:
            return True
        now = time.time()
        with self._lock:
            window = self._buckets[client_ip]
            while window and now - window[0] > 60.0:
                window.popleft()
            if len(window) >= self._per_minute:
                return False
            window.append(now)
            return True

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        context = request_context(request)

        if not self._authorized(request):
            return _observe(request, PlainTextResponse("Unauthorized", status_code=401), started, context)
        if not self._within_rate(context["client_ip"] or "unknown"):
            return _observe(
                request, PlainTextResponse("Too Many Requests", status_code=429), started, context
            )

        try:
            response = await call_next(request)
        except Exception:
            _observe(request, PlainTextResponse("Internal Server Error", status_code=500), started, context)
            raise
        return _observe(request, response, started, context)


def metrics_endpoint() -> Response:
    """Return Prometheus metrics payload."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
