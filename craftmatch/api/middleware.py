"""
Request latency middleware.

Logs method/path/status/elapsed_ms for every request and records
Prometheus observations. Adds ``X-Response-Time-Ms`` and ``X-Request-Id``
headers.
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from craftmatch.api.metrics import observe_duration, record_request
from craftmatch.config import get_logger

logger = get_logger(__name__)

# Paths excluded from per-request logging (still measured by Prometheus)
_QUIET_PATHS = {"/metrics", "/health"}

# Known route patterns. Raw paths map to these labels so path parameters
# and scanner traffic do not blow up Prometheus cardinality.
_KNOWN_ROUTES = [
    (re.compile(r"^/health$"), "/health"),
    (re.compile(r"^/metrics$"), "/metrics"),
    (re.compile(r"^/policy$"), "/policy"),
    (re.compile(r"^/seekers$"), "/seekers"),
    (re.compile(r"^/providers$"), "/providers"),
    (re.compile(r"^/outcomes$"), "/outcomes"),
    (re.compile(r"^/bookings$"), "/bookings"),
    (re.compile(r"^/recommendations/[^/]+/interactions$"), "/recommendations/{id}/interactions"),
    (re.compile(r"^/recommendations/[^/]+$"), "/recommendations/{seeker_id}"),
]


def _normalize_path(path: str) -> str:
    """Map a raw URL path to a known route label, or 'unknown'."""
    clean = path.rstrip("/") or "/"
    for pattern, label in _KNOWN_ROUTES:
        if pattern.match(clean):
            return label
    return "unknown"


class LatencyMiddleware:
    """Pure ASGI middleware for latency measurement."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = _normalize_path(scope["path"])
        method = scope["method"]
        start = time.perf_counter()
        request_id = uuid.uuid4().hex[:12]
        status = 500  # default until we see http.response.start

        async def send_wrapper(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
                elapsed_ms = (time.perf_counter() - start) * 1000
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", f"{elapsed_ms:.1f}".encode()))
                headers.append((b"x-request-id", request_id.encode()))
                message = {**message, "headers": headers}
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            logger.exception("%s %s [%s] failed", method, path, request_id)
            raise
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            record_request(path, method, status)
            observe_duration(path, elapsed_ms)
            if path not in _QUIET_PATHS:
                logger.info(
                    "%s %s %d %.1fms [%s]",
                    method,
                    path,
                    status,
                    elapsed_ms,
                    request_id,
                )
