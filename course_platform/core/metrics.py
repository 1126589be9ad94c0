"""Application metrics using the Prometheus client library.

Every metric the service exposes is declared here, in one inventory.
Other modules import the metric they need and increment or observe it
at the point of action.

  COUNTER   only goes up; useful for rates via rate() in PromQL
  GAUGE     goes up and down; a snapshot of current state
  HISTOGRAM buckets observations so Prometheus can derive percentiles

Prometheus pulls these from GET /metrics on its own schedule.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP layer (fed by MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["key_type"],  # "ip"
)

# ---------------------------------------------------------------------------
# Learning domain
# ---------------------------------------------------------------------------

ENROLLMENT_EVENTS = Counter(
    "enrollment_events_total",
    "Enrollment lifecycle events",
    ["event"],  # "enrolled" or "unenrolled"
)

LESSON_COMPLETIONS = Counter(
    "lesson_completions_total",
    "Lesson completion calls that were applied",
)

CERTIFICATES_ISSUED = Counter(
    "certificates_issued_total",
    "Certificates created (idempotent re-reads are not counted)",
)
