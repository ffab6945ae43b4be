"""HTTP observability surface: health check and Prometheus metrics."""

from .server import MetricsServer, MetricsServerConfig

__all__ = [
    "MetricsServer",
    "MetricsServerConfig",
]
