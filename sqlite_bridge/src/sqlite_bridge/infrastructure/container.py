"""Binding context: the per-context registry shared by connections.

A context owns the loaded engine library (and the C callbacks bound to it),
the configuration, the metrics registry and the set of live connections.
Independent contexts never share registrations, so tests and embedding
applications can run isolated instances side by side.
"""

from __future__ import annotations

import threading
import weakref
from typing import TYPE_CHECKING

from sqlite_bridge.adapters.outbound.engine import load_engine
from sqlite_bridge.infrastructure.config import Config, get_config
from sqlite_bridge.infrastructure.logging import get_logger, setup_logging
from sqlite_bridge.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from sqlite_bridge.infrastructure.tracing import setup_tracing
from sqlite_bridge.ports.outbound import SqliteEngine

if TYPE_CHECKING:
    from sqlite_bridge.application.connection import Connection

logger = get_logger(__name__)


class BindingContext:
    """
    Shared state for a group of connections.

    The engine library is loaded on first use. Connections register
    themselves when they open and unregister when they close; the context
    only holds weak references, so an abandoned connection can still be
    collected.
    """

    def __init__(
        self,
        config: Config | None = None,
        metrics: MetricsRegistry | None = None,
        engine: SqliteEngine | None = None,
    ) -> None:
        """
        Initialize the context.

        Args:
            config: Configuration (global configuration when omitted)
            metrics: Metrics registry (global registry when omitted)
            engine: Already loaded engine (any SqliteEngine implementation)
        """
        self.config = config or get_config()
        self.metrics = metrics or get_metrics()
        self._engine = engine
        self._lock = threading.RLock()
        self._connections: weakref.WeakSet[Connection] = weakref.WeakSet()

    @property
    def engine(self) -> SqliteEngine:
        """The loaded engine library."""
        with self._lock:
            if self._engine is None:
                self._engine = load_engine(self.config.engine.library_path)
            return self._engine

    @property
    def connections(self) -> list[Connection]:
        """Connections of this context that are currently open."""
        with self._lock:
            return [conn for conn in self._connections if conn.is_open]

    def register(self, connection: Connection) -> None:
        with self._lock:
            self._connections.add(connection)
        self.metrics.connections_open.inc()

    def unregister(self, connection: Connection) -> None:
        with self._lock:
            self._connections.discard(connection)
        self.metrics.connections_open.dec()

    def close_all(self) -> int:
        """
        Close every open connection created on the calling thread.

        Connections belong to the thread that created them, so the ones
        owned by other threads are left for those threads to close.

        Returns:
            Number of connections closed
        """
        closed = 0
        for connection in self.connections:
            if connection.owned_by_current_thread:
                connection.close()
                closed += 1
        if closed:
            logger.info("context_connections_closed", count=closed)
        return closed


# Global default context
_context: BindingContext | None = None
_context_lock = threading.Lock()


def get_default_context() -> BindingContext:
    """Get the context used by connections created without one."""
    global _context
    with _context_lock:
        if _context is None:
            _context = BindingContext()
        return _context


def reset_default_context() -> None:
    """Close the default context's connections and drop it (useful for testing)."""
    global _context
    with _context_lock:
        context, _context = _context, None
    if context is not None:
        context.close_all()


def setup_observability(config: Config | None = None, serve_metrics: bool = False) -> None:
    """
    Configure logging, tracing and optionally the metrics endpoint.

    Args:
        config: Configuration (global configuration when omitted)
        serve_metrics: Start the Prometheus HTTP exporter on the configured port
    """
    config = config or get_config()
    observability = config.observability
    setup_logging(observability.log_level, observability.log_format)
    setup_tracing(observability.otel_service_name, observability.otel_endpoint)
    if serve_metrics:
        setup_metrics(observability.metrics_port)
