"""
Prometheus metrics for the concept graph.

All collectors live on a dedicated registry so tests and multiple app
instances never collide with the process-global default registry.
"""

from prometheus_client import CollectorRegistry, Counter, Histogram

metrics_registry = CollectorRegistry()

# HTTP Metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
    registry=metrics_registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    registry=metrics_registry,
)

# Graph growth
branch_generations_total = Counter(
    "branch_generations_total",
    "Branch generation requests by outcome",
    ["outcome"],  # resolved | rate_limited | failed
    registry=metrics_registry,
)

concepts_created_total = Counter(
    "concepts_created_total",
    "Concepts inserted into the shared graph",
    registry=metrics_registry,
)

concepts_reused_total = Counter(
    "concepts_reused_total",
    "Branch candidates resolved to an existing concept",
    ["method"],  # slug | similarity | race
    registry=metrics_registry,
)

rate_limit_denials_total = Counter(
    "rate_limit_denials_total",
    "Generation requests denied by the per-user rate limit",
    registry=metrics_registry,
)
