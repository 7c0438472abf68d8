"""Value objects: immutable data exchanged across the public API."""

from sqlite_bridge.domain.value_objects import constants
from sqlite_bridge.domain.value_objects.cells import NULL_CELL, Cell, CellKind
from sqlite_bridge.domain.value_objects.constants import ConflictKind, ConflictResolution
from sqlite_bridge.domain.value_objects.options import (
    AggregateOptions,
    BackupOptions,
    BackupProgress,
    ChangesetApplyOptions,
    ColumnInfo,
    DatabaseOpenConfiguration,
    FunctionOptions,
    IteratorResult,
    RunResult,
    SessionOptions,
    StatementOptions,
    parse_options,
)

__all__ = [
    "AggregateOptions",
    "BackupOptions",
    "BackupProgress",
    "Cell",
    "CellKind",
    "ChangesetApplyOptions",
    "ColumnInfo",
    "ConflictKind",
    "ConflictResolution",
    "DatabaseOpenConfiguration",
    "FunctionOptions",
    "IteratorResult",
    "NULL_CELL",
    "RunResult",
    "SessionOptions",
    "StatementOptions",
    "constants",
    "parse_options",
]
