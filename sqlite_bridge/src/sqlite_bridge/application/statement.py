"""Prepared statements."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sqlite_bridge.adapters.outbound.cells import bind_cell, read_column
from sqlite_bridge.adapters.outbound.engine import ffi, to_bytes, to_str
from sqlite_bridge.application.iterator import StatementIterator
from sqlite_bridge.domain.errors import ArgumentError, InvalidStateError
from sqlite_bridge.domain.services.marshaller import to_engine, to_host
from sqlite_bridge.domain.services.parameters import build_bare_name_map
from sqlite_bridge.domain.value_objects.constants import (
    SQLITE_DONE,
    SQLITE_NOMEM,
    SQLITE_OK,
    SQLITE_ROW,
)
from sqlite_bridge.domain.value_objects.options import ColumnInfo, RunResult, StatementOptions
from sqlite_bridge.infrastructure.metrics import track_execution

if TYPE_CHECKING:
    from sqlite_bridge.application.connection import Connection

Row = dict[str, Any] | list[Any]


class Statement:
    """
    A prepared statement owned by a connection.

    Parameters are given positionally (bound 1-indexed in order) or by name,
    either as a single mapping or as keyword arguments. Named keys include
    their marker (``":id"``, ``"@id"``, ``"$id"``); with bare named
    parameters allowed, ``"id"`` works as well.

    Every call resets the statement and clears previous bindings first, so a
    statement can be reused freely. Rows are dicts keyed by column name, or
    lists when ``return_arrays`` is set.
    """

    def __init__(
        self,
        connection: Connection,
        handle: Any,
        options: StatementOptions,
        statement_id: int = 0,
    ) -> None:
        self.id = statement_id
        self._connection = connection
        self._handle = handle
        self._read_bigints = options.read_bigints
        self._return_arrays = options.return_arrays
        self._allow_bare_named_parameters = options.allow_bare_named_parameters
        self._bare_names: dict[str, str] | None = None
        # Bumped whenever the handle is reset for a new execution; an
        # iterator from an older generation no longer owns the handle.
        self._generation = 0
        self._source_sql = to_str(connection._lib.sqlite3_sql(handle)) or ""

    def __repr__(self) -> str:
        state = "finalized" if self._handle is None else "prepared"
        return f"Statement({self._source_sql!r}, {state})"

    def __enter__(self) -> Statement:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.finalize()

    # Properties

    @property
    def source_sql(self) -> str:
        """The SQL text the statement was prepared from."""
        return self._source_sql

    @property
    def expanded_sql(self) -> str:
        """The SQL text with current parameter bindings substituted."""
        self._ensure_usable()
        lib = self._connection._lib
        pointer = lib.sqlite3_expanded_sql(self._handle)
        if pointer == ffi.NULL:
            raise self._connection._error(
                SQLITE_NOMEM, message="Expanded SQL text would exceed configured limits"
            )
        try:
            return to_str(pointer) or ""
        finally:
            lib.sqlite3_free(pointer)

    @property
    def is_finalized(self) -> bool:
        return self._handle is None

    # Configuration

    def set_read_bigints(self, enabled: bool) -> None:
        """Return integers outside the safe range instead of raising."""
        self._ensure_usable()
        self._read_bigints = _require_bool(enabled, "read_bigints")

    def set_return_arrays(self, enabled: bool) -> None:
        """Return rows as lists instead of dicts."""
        self._ensure_usable()
        self._return_arrays = _require_bool(enabled, "return_arrays")

    def set_allow_bare_named_parameters(self, enabled: bool) -> None:
        """Accept named parameters without their ``:``/``@``/``$`` marker."""
        self._ensure_usable()
        self._allow_bare_named_parameters = _require_bool(enabled, "allow_bare_named_parameters")

    # Execution

    def run(self, *params: Any, **named: Any) -> RunResult:
        """
        Execute the statement to completion.

        Returns:
            Rows changed and the last inserted rowid of the connection
        """
        self._ensure_usable()
        lib = self._connection._lib
        with self._measure("run"):
            self._begin(params, named)
            try:
                while self._step() == SQLITE_ROW:
                    pass
            finally:
                lib.sqlite3_reset(self._handle)
            db = self._connection._handle
            return RunResult(
                changes=int(lib.sqlite3_changes(db)),
                last_insert_rowid=int(lib.sqlite3_last_insert_rowid(db)),
            )

    def get(self, *params: Any, **named: Any) -> Row | None:
        """Execute and return the first row, or None if there is none."""
        self._ensure_usable()
        with self._measure("get"):
            self._begin(params, named)
            try:
                if self._step() == SQLITE_DONE:
                    return None
                return self._read_row(self._column_names())
            finally:
                self._connection._lib.sqlite3_reset(self._handle)

    def all(self, *params: Any, **named: Any) -> list[Row]:
        """Execute and return every row."""
        self._ensure_usable()
        with self._measure("all"):
            self._begin(params, named)
            rows: list[Row] = []
            try:
                names: list[str] | None = None
                while self._step() == SQLITE_ROW:
                    if names is None:
                        names = self._column_names()
                    rows.append(self._read_row(names))
            finally:
                self._connection._lib.sqlite3_reset(self._handle)
            return rows

    def iterate(self, *params: Any, **named: Any) -> StatementIterator:
        """
        Execute lazily, one row per step.

        Starting another execution of this statement (iterate, run, get or
        all) takes the handle over; older iterators then report exhaustion.
        """
        self._ensure_usable()
        with self._measure("iterate"):
            self._begin(params, named)
        return StatementIterator(self, self._generation)

    def columns(self) -> list[ColumnInfo]:
        """Describe the result columns."""
        self._ensure_usable()
        lib = self._connection._lib
        handle = self._handle
        with_metadata = self._connection.engine.has_column_metadata
        columns = []
        for index in range(lib.sqlite3_column_count(handle)):
            columns.append(
                ColumnInfo(
                    column=(
                        to_str(lib.sqlite3_column_origin_name(handle, index))
                        if with_metadata
                        else None
                    ),
                    database=(
                        to_str(lib.sqlite3_column_database_name(handle, index))
                        if with_metadata
                        else None
                    ),
                    name=to_str(lib.sqlite3_column_name(handle, index)) or "",
                    table=(
                        to_str(lib.sqlite3_column_table_name(handle, index))
                        if with_metadata
                        else None
                    ),
                    type=to_str(lib.sqlite3_column_decltype(handle, index)),
                )
            )
        return columns

    def finalize(self) -> None:
        """Release the statement; later calls raise InvalidStateError."""
        self._connection._ensure_thread()
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        self._connection._forget_statement(self)
        self._connection._lib.sqlite3_finalize(handle)

    # Internals used by the iterator and the connection

    def _ensure_usable(self) -> None:
        self._connection._ensure_open()
        if self._handle is None:
            raise InvalidStateError("statement has been finalized")

    def _invalidate(self) -> None:
        """Finalize on connection teardown."""
        if self._handle is not None:
            handle, self._handle = self._handle, None
            self._connection._lib.sqlite3_finalize(handle)

    def _owns_handle(self, generation: int) -> bool:
        return self._handle is not None and generation == self._generation

    def _reset(self) -> None:
        self._connection._lib.sqlite3_reset(self._handle)

    def _step(self) -> int:
        rc = self._connection._lib.sqlite3_step(self._handle)
        if rc != SQLITE_ROW and rc != SQLITE_DONE:
            raise self._connection._error(rc)
        return rc

    def _column_names(self) -> list[str]:
        lib = self._connection._lib
        return [
            to_str(lib.sqlite3_column_name(self._handle, index)) or ""
            for index in range(lib.sqlite3_column_count(self._handle))
        ]

    def _read_row(self, names: list[str]) -> Row:
        lib = self._connection._lib
        values = [
            to_host(
                read_column(lib, self._handle, index),
                read_bigints=self._read_bigints,
                max_safe_integer=self._connection.max_safe_integer,
            )
            for index in range(len(names))
        ]
        if self._return_arrays:
            return values
        return dict(zip(names, values))

    def _begin(self, params: tuple[Any, ...], named: dict[str, Any]) -> None:
        lib = self._connection._lib
        self._generation += 1
        self._connection._clear_callback_error()
        lib.sqlite3_reset(self._handle)
        lib.sqlite3_clear_bindings(self._handle)
        if named:
            if params:
                raise ArgumentError("Cannot mix positional and named parameters")
            self._bind_named(named)
        elif len(params) == 1 and isinstance(params[0], Mapping):
            self._bind_named(params[0])
        else:
            for index, value in enumerate(params, start=1):
                self._bind(index, value, str(index))

    def _bind_named(self, values: Mapping[Any, Any]) -> None:
        lib = self._connection._lib
        # Ambiguous bare names fail even when every key carries its prefix.
        bare_names = self._bare_name_map() if self._allow_bare_named_parameters else {}
        for key, value in values.items():
            if not isinstance(key, str):
                raise ArgumentError(f"Named parameter keys must be strings, got {key!r}")
            index = lib.sqlite3_bind_parameter_index(self._handle, to_bytes(key))
            if index == 0 and self._allow_bare_named_parameters:
                full_name = bare_names.get(key)
                if full_name is not None:
                    index = lib.sqlite3_bind_parameter_index(self._handle, to_bytes(full_name))
            if index == 0:
                raise ArgumentError(f"Unknown named parameter '{key}'")
            self._bind(index, value, key)

    def _bare_name_map(self) -> dict[str, str]:
        if self._bare_names is None:
            lib = self._connection._lib
            names = [
                to_str(lib.sqlite3_bind_parameter_name(self._handle, index))
                for index in range(1, lib.sqlite3_bind_parameter_count(self._handle) + 1)
            ]
            self._bare_names = build_bare_name_map(names)
        return self._bare_names

    def _bind(self, index: int, value: Any, label: str) -> None:
        rc = bind_cell(self._connection._lib, self._handle, index, to_engine(value))
        if rc != SQLITE_OK:
            reason = self._connection.engine.errstr(rc)
            raise ArgumentError(f"Error binding parameter {label}: {reason}")

    def _measure(self, operation: str) -> Any:
        return track_execution(self._connection.metrics, operation)


def _require_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ArgumentError(f'The "{name}" argument must be a boolean')
    return value
