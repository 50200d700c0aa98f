"""
Prometheus metrics for the HTTP surface, the learning loop and the
persistence gateway.
"""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQUEST_COUNT = Counter(
    "craftmatch_requests_total",
    "Total HTTP requests",
    ["endpoint", "method", "status"],
)

REQUEST_DURATION = Histogram(
    "craftmatch_request_duration_ms",
    "Request latency in milliseconds",
    ["endpoint"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)

RECOMMENDATION_EVENTS = Counter(
    "craftmatch_recommendations_served_total",
    "Recommendation lookups by source",
    ["source"],  # cached, generated, empty
)

RECOMMENDATION_DURATION = Histogram(
    "craftmatch_recommendation_generation_seconds",
    "Time spent scoring providers for one seeker",
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)

POLICY_UPDATES = Counter(
    "craftmatch_policy_updates_total",
    "Batched policy updates",
    ["agent_type"],
)

POLICY_UPDATE_DURATION = Histogram(
    "craftmatch_policy_update_seconds",
    "Time spent in one bounded policy update",
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
)

GATEWAY_EVENTS = Counter(
    "craftmatch_gateway_events_total",
    "Persistence gateway failures and mode changes",
    ["event"],  # degraded, backend_error, validation_error
)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def record_request(endpoint: str, method: str, status: int) -> None:
    """Increment the request counter."""
    REQUEST_COUNT.labels(endpoint=endpoint, method=method, status=str(status)).inc()


def observe_duration(endpoint: str, duration_ms: float) -> None:
    """Record request duration."""
    REQUEST_DURATION.labels(endpoint=endpoint).observe(duration_ms)


def record_recommendation_event(source: str) -> None:
    """``source`` is one of ``cached``, ``generated``, ``empty``."""
    RECOMMENDATION_EVENTS.labels(source=source).inc()


def observe_recommendation_duration(seconds: float) -> None:
    RECOMMENDATION_DURATION.observe(seconds)


def record_policy_update(agent_type: str) -> None:
    POLICY_UPDATES.labels(agent_type=agent_type).inc()


def observe_policy_update_duration(seconds: float) -> None:
    POLICY_UPDATE_DURATION.observe(seconds)


def record_gateway_event(event: str) -> None:
    GATEWAY_EVENTS.labels(event=event).inc()


def metrics_response() -> tuple[bytes, str]:
    """Return (body, content_type) for the /metrics endpoint."""
    return generate_latest(), CONTENT_TYPE_LATEST
