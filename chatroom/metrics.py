"""
Prometheus metrics for the chat room API.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Chat operation outcome counter (operation, result)
- Presence eviction counters for the background sweeper

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

# HTTP request counter with labels for method, path, and status code
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Request latency histogram in seconds
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# operation: join, heartbeat, post, edit, delete
# result: ok, validation_error, name_conflict, not_found, forbidden
chat_operations_total = Counter(
    "chat_operations_total",
    "Total chat operations by outcome",
    labelnames=["operation", "result"]
)

# result: evicted, skipped, failed
presence_evictions_total = Counter(
    "presence_evictions_total",
    "Stale participants processed by the eviction sweeper",
    labelnames=["result"]
)

sweeps_total = Counter(
    "sweeps_total",
    "Completed eviction sweeps"
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Route template (e.g. /messages/{message_id}) or raw path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_chat_operation(operation: str, result: str) -> None:
    """Record the outcome of a gateway operation."""
    chat_operations_total.labels(operation=operation, result=result).inc()


def record_eviction(result: str) -> None:
    """Record the outcome of evicting one stale participant."""
    presence_evictions_total.labels(result=result).inc()


def record_sweep() -> None:
    sweeps_total.inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    """
    Get the content type for Prometheus metrics.

    Returns:
        Content type string for Prometheus exposition format
    """
    return CONTENT_TYPE_LATEST
