"""
sqlite_bridge - Python binding for the embedded SQLite engine

Drives the SQLite C library in-process through cffi: connections,
prepared statements, user-defined scalar, aggregate and window functions,
change-tracking sessions and online backups on a background thread.
"""

__version__ = "0.1.0"

from sqlite_bridge.application import (
    Connection,
    Session,
    Statement,
    StatementIterator,
)
from sqlite_bridge.domain.errors import (
    ArgumentError,
    BackupError,
    BridgeError,
    CallbackError,
    EngineError,
    IntegerRangeError,
    InvalidStateError,
    OpenError,
    ThreadAffinityError,
)
from sqlite_bridge.domain.value_objects import (
    BackupProgress,
    ColumnInfo,
    ConflictKind,
    ConflictResolution,
    DatabaseOpenConfiguration,
    IteratorResult,
    RunResult,
    constants,
)
from sqlite_bridge.infrastructure.container import (
    BindingContext,
    get_default_context,
    reset_default_context,
)

__all__ = [
    "ArgumentError",
    "BackupError",
    "BackupProgress",
    "BindingContext",
    "BridgeError",
    "CallbackError",
    "ColumnInfo",
    "ConflictKind",
    "ConflictResolution",
    "Connection",
    "DatabaseOpenConfiguration",
    "EngineError",
    "IntegerRangeError",
    "InvalidStateError",
    "IteratorResult",
    "OpenError",
    "RunResult",
    "Session",
    "Statement",
    "StatementIterator",
    "ThreadAffinityError",
    "constants",
    "get_default_context",
    "reset_default_context",
]
