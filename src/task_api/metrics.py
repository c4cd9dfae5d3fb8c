"""Prometheus metrics shared across the application."""

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "task_api_requests_total",
    "Total HTTP requests",
    ["endpoint", "method", "status"],
)
REQUEST_LATENCY = Histogram(
    "task_api_request_latency_seconds",
    "Request latency in seconds",
    ["endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
RATE_LIMIT_DECISIONS = Counter(
    "task_api_rate_limit_decisions_total",
    "Rate limiter outcomes",
    ["outcome"],
)
CACHE_LOOKUPS = Counter(
    "task_api_cache_lookups_total",
    "Task listing cache lookups",
    ["result"],
)
CACHE_INVALIDATIONS = Counter(
    "task_api_cache_invalidations_total",
    "Task listing cache invalidations",
    ["status"],
)
