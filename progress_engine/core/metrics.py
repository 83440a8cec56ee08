"""Application metrics using the Prometheus client library.

One inventory of everything the service measures.  Other modules import
specific metrics and increment/observe them at the point of action.
Prometheus scrapes the current values from GET /metrics.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
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

# ---------------------------------------------------------------------------
# Progress and achievement metrics
# ---------------------------------------------------------------------------

SECTION_COMPLETIONS = Counter(
    "section_completions_total",
    "completeSection calls by outcome",
    ["transition"],  # "completed" (first time) or "unchanged" (already complete)
)

BADGE_GRANTS = Counter(
    "badge_grants_total",
    "Badge grants created",
    ["source"],  # "system" (reconciliation) or "manual" (administrative)
)

BADGE_GRANT_CONFLICTS = Counter(
    "badge_grant_conflicts_total",
    "Automatic grants that lost the insert race and became no-ops",
)

AGGREGATION_DEGRADED = Counter(
    "aggregation_degraded_total",
    "Hierarchy nodes counted as empty during aggregation",
    ["kind"],  # "league", "week", "section"
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)
