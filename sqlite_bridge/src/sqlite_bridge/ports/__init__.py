"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are protocols that the application layer depends on. Adapters
implement them with concrete functionality.
"""

from sqlite_bridge.ports.outbound import SqliteEngine

__all__ = [
    # Outbound ports
    "SqliteEngine",
]
