"""Application layer: the objects callers work with.

Exports:
    - Connection: owns an engine handle and everything created from it
    - Statement: a prepared statement
    - StatementIterator: lazy, single-pass row cursor
    - Session: change tracking for changesets and patchsets
"""

from sqlite_bridge.application.connection import Connection
from sqlite_bridge.application.iterator import StatementIterator
from sqlite_bridge.application.session import Session
from sqlite_bridge.application.statement import Statement

__all__ = [
    "Connection",
    "Session",
    "Statement",
    "StatementIterator",
]
