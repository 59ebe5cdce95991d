"""
Nova Observability Package.

Components:
- logs: logging configuration (stdout and rotating file)
- metrics: Prometheus series for the database and HTTP layers
"""

from nova.observability.logs import configure_logging
from nova.observability.metrics import (
    get_metrics,
    get_metrics_content_type,
    set_app_info,
    start_debug_server,
    track_request_latency,
)

__all__ = [
    "configure_logging",
    "get_metrics",
    "get_metrics_content_type",
    "set_app_info",
    "start_debug_server",
    "track_request_latency",
]
