"""
Prometheus Metrics for Nova.

Provides metrics collection for database latency, connection usage and
HTTP request latency, plus the debug endpoint that exposes them.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    start_http_server,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Core Metrics Definitions
# =============================================================================

DB_QUERIES_TOTAL = Counter(
    "nova_db_queries_total",
    "Total database operations",
    ["op", "status"],  # op: exec/query, status: success/error
)

DB_QUERY_LATENCY = Histogram(
    "nova_db_query_latency_seconds",
    "Database operation latency in seconds",
    ["op"],
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0],
)

DB_CONNECTIONS_IN_USE = Gauge(
    "nova_db_connections_in_use",
    "Database connections currently checked out of the pool",
)

REQUEST_LATENCY = Histogram(
    "nova_request_latency_seconds",
    "HTTP request latency in seconds",
    ["endpoint", "method", "status"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

APP_INFO = Info(
    "nova_app",
    "Nova application information",
)


# =============================================================================
# Metrics Helpers
# =============================================================================


def track_db_operation(op: str, latency_seconds: float, success: bool) -> None:
    """Track a single database exec/query."""
    status = "success" if success else "error"
    DB_QUERIES_TOTAL.labels(op=op, status=status).inc()
    DB_QUERY_LATENCY.labels(op=op).observe(latency_seconds)


def set_connections_in_use(count: int) -> None:
    """Publish the sampled in-use connection count."""
    DB_CONNECTIONS_IN_USE.set(count)


@contextmanager
def track_request_latency(
    endpoint: str,
    method: str,
) -> Generator[dict[str, int], None, None]:
    """Context manager to track request latency.

    Yields a mutable dict; set ``"status"`` to record the response code.
    """
    start = time.perf_counter()
    outcome = {"status": 200}
    try:
        yield outcome
    except Exception:
        outcome["status"] = 500
        raise
    finally:
        latency = time.perf_counter() - start
        REQUEST_LATENCY.labels(
            endpoint=endpoint,
            method=method,
            status=str(outcome["status"]),
        ).observe(latency)


# =============================================================================
# Metrics Endpoint
# =============================================================================


def get_metrics() -> bytes:
    """
    Generate Prometheus metrics in the standard exposition format.

    Returns:
        Prometheus-formatted metrics as bytes
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Set application info labels."""
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })


def start_debug_server(port: int, addr: str = "0.0.0.0") -> None:
    """Serve the metrics registry on a separate debug listener."""
    start_http_server(port, addr=addr)
    logger.info(f"Debug metrics endpoint listening on {addr}:{port}")


__all__ = [
    "DB_QUERIES_TOTAL",
    "DB_QUERY_LATENCY",
    "DB_CONNECTIONS_IN_USE",
    "REQUEST_LATENCY",
    "track_db_operation",
    "set_connections_in_use",
    "track_request_latency",
    "get_metrics",
    "get_metrics_content_type",
    "set_app_info",
    "start_debug_server",
]
