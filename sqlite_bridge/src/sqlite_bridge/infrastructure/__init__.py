"""Infrastructure layer - cross-cutting concerns."""

from sqlite_bridge.infrastructure.config import Config, get_config
from sqlite_bridge.infrastructure.logging import get_logger, setup_logging
from sqlite_bridge.infrastructure.metrics import MetricsRegistry, setup_metrics
from sqlite_bridge.infrastructure.tracing import get_tracer, setup_tracing

__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "get_logger",
    "setup_metrics",
    "MetricsRegistry",
    "setup_tracing",
    "get_tracer",
]
