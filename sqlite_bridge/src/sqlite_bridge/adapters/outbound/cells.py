"""Moving cells in and out of the engine.

Text and blob contents are copied out immediately: the engine's buffers are
only valid until the next call on the same statement or value.
"""

from __future__ import annotations

from typing import Any

from sqlite_bridge.adapters.outbound.engine import SQLITE_TRANSIENT, ffi, to_bytes
from sqlite_bridge.domain.value_objects.cells import NULL_CELL, Cell, CellKind


def _copy_text(pointer: Any, size: int) -> str:
    if pointer == ffi.NULL:
        return ""
    return ffi.buffer(pointer, size)[:].decode("utf-8", "replace")


def _copy_blob(pointer: Any, size: int) -> bytes:
    if pointer == ffi.NULL or size == 0:
        return b""
    return ffi.buffer(pointer, size)[:]


def read_column(lib: Any, stmt: Any, index: int) -> Cell:
    """Read result column ``index`` of the current row."""
    kind = lib.sqlite3_column_type(stmt, index)
    if kind == CellKind.INTEGER:
        return Cell(CellKind.INTEGER, int(lib.sqlite3_column_int64(stmt, index)))
    if kind == CellKind.FLOAT:
        return Cell(CellKind.FLOAT, float(lib.sqlite3_column_double(stmt, index)))
    if kind == CellKind.TEXT:
        # Fetch the pointer before the size so the size matches the UTF-8 form.
        pointer = lib.sqlite3_column_text(stmt, index)
        return Cell(CellKind.TEXT, _copy_text(pointer, lib.sqlite3_column_bytes(stmt, index)))
    if kind == CellKind.BLOB:
        pointer = lib.sqlite3_column_blob(stmt, index)
        return Cell(CellKind.BLOB, _copy_blob(pointer, lib.sqlite3_column_bytes(stmt, index)))
    return NULL_CELL


def read_value(lib: Any, value: Any) -> Cell:
    """Read a ``sqlite3_value`` handed to a user function."""
    kind = lib.sqlite3_value_type(value)
    if kind == CellKind.INTEGER:
        return Cell(CellKind.INTEGER, int(lib.sqlite3_value_int64(value)))
    if kind == CellKind.FLOAT:
        return Cell(CellKind.FLOAT, float(lib.sqlite3_value_double(value)))
    if kind == CellKind.TEXT:
        pointer = lib.sqlite3_value_text(value)
        return Cell(CellKind.TEXT, _copy_text(pointer, lib.sqlite3_value_bytes(value)))
    if kind == CellKind.BLOB:
        pointer = lib.sqlite3_value_blob(value)
        return Cell(CellKind.BLOB, _copy_blob(pointer, lib.sqlite3_value_bytes(value)))
    return NULL_CELL


def bind_cell(lib: Any, stmt: Any, index: int, cell: Cell) -> int:
    """Bind a cell to 1-based parameter ``index``; returns the engine status."""
    if cell.kind is CellKind.INTEGER:
        return lib.sqlite3_bind_int64(stmt, index, cell.value)
    if cell.kind is CellKind.FLOAT:
        return lib.sqlite3_bind_double(stmt, index, cell.value)
    if cell.kind is CellKind.TEXT:
        data = to_bytes(cell.value)
        return lib.sqlite3_bind_text(stmt, index, data, len(data), SQLITE_TRANSIENT)
    if cell.kind is CellKind.BLOB:
        if not cell.value:
            # A NULL data pointer would bind SQL NULL instead of an empty blob.
            return lib.sqlite3_bind_zeroblob(stmt, index, 0)
        return lib.sqlite3_bind_blob(
            stmt, index, ffi.from_buffer(cell.value), len(cell.value), SQLITE_TRANSIENT
        )
    return lib.sqlite3_bind_null(stmt, index)


def result_cell(lib: Any, context: Any, cell: Cell) -> None:
    """Report a cell as the result of a user function call."""
    if cell.kind is CellKind.INTEGER:
        lib.sqlite3_result_int64(context, cell.value)
    elif cell.kind is CellKind.FLOAT:
        lib.sqlite3_result_double(context, cell.value)
    elif cell.kind is CellKind.TEXT:
        data = to_bytes(cell.value)
        lib.sqlite3_result_text(context, data, len(data), SQLITE_TRANSIENT)
    elif cell.kind is CellKind.BLOB:
        if not cell.value:
            lib.sqlite3_result_zeroblob(context, 0)
        else:
            lib.sqlite3_result_blob(
                context, ffi.from_buffer(cell.value), len(cell.value), SQLITE_TRANSIENT
            )
    else:
        lib.sqlite3_result_null(context)


def result_error(lib: Any, context: Any, message: str) -> None:
    """Fail the current user function call with ``message``."""
    data = to_bytes(message)
    lib.sqlite3_result_error(context, data, len(data))
