"""Outbound ports - interfaces for external dependencies.

The binding depends on one external system: the SQLite C library.
"""

from sqlite_bridge.ports.outbound.sqlite_engine import SqliteEngine

__all__ = [
    "SqliteEngine",
]
