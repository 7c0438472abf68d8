"""Prometheus metrics for the SQLite binding."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
)


class MetricsRegistry:
    """Registry of all binding metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Connection metrics
        self.connections_open = Gauge(
            "sqlite_bridge_connections_open",
            "Number of open database connections",
            registry=self._registry,
        )

        # Statement metrics
        self.statements_prepared_total = Counter(
            "sqlite_bridge_statements_prepared_total",
            "Total number of prepared statements",
            registry=self._registry,
        )

        self.statement_executions_total = Counter(
            "sqlite_bridge_statement_executions_total",
            "Total statement executions",
            ["operation", "status"],  # operation: run, get, all, iterate, exec
            registry=self._registry,
        )

        self.statement_latency_seconds = Histogram(
            "sqlite_bridge_statement_latency_seconds",
            "Statement execution latency in seconds",
            ["operation"],
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
            registry=self._registry,
        )

        # User callback metrics
        self.callback_invocations_total = Counter(
            "sqlite_bridge_callback_invocations_total",
            "User callable invocations from engine callbacks",
            ["kind", "status"],  # kind: scalar, aggregate, filter, conflict
            registry=self._registry,
        )

        # Session metrics
        self.sessions_active = Gauge(
            "sqlite_bridge_sessions_active",
            "Number of live change-tracking sessions",
            registry=self._registry,
        )

        self.changesets_applied_total = Counter(
            "sqlite_bridge_changesets_applied_total",
            "Total changeset applications",
            ["outcome"],  # applied, aborted, failed
            registry=self._registry,
        )

        # Backup metrics
        self.backups_active = Gauge(
            "sqlite_bridge_backups_active",
            "Number of running backup jobs",
            registry=self._registry,
        )

        self.backups_total = Counter(
            "sqlite_bridge_backups_total",
            "Total finished backup jobs",
            ["status"],  # completed, failed
            registry=self._registry,
        )

        self.backup_pages_copied_total = Counter(
            "sqlite_bridge_backup_pages_copied_total",
            "Total pages copied by backup jobs",
            registry=self._registry,
        )

        self.info = Info(
            "sqlite_bridge",
            "SQLite binding information",
            registry=self._registry,
        )


# Global metrics registry
_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8001, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Set up Prometheus metrics server.

    Args:
        port: Port for the metrics HTTP server
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics
    _metrics = MetricsRegistry(registry)

    from sqlite_bridge import __version__
    _metrics.info.info({"version": __version__})

    start_http_server(port, registry=registry or REGISTRY)

    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics


@contextmanager
def track_execution(metrics: MetricsRegistry, operation: str) -> Generator[None, None, None]:
    """
    Count one statement execution and observe its latency.

    Args:
        metrics: Registry to record into
        operation: Execution kind (run, get, all, iterate, exec)
    """
    started = time.perf_counter()
    status = "error"
    try:
        yield
        status = "success"
    finally:
        metrics.statement_executions_total.labels(operation=operation, status=status).inc()
        metrics.statement_latency_seconds.labels(operation=operation).observe(
            time.perf_counter() - started
        )
