"""Conversion between Python values and engine cells.

Both directions are total: every Python value maps to some cell and every
cell maps back to a Python value or a typed error. The functions here are
pure; reading and writing cells through the C API lives in
``adapters.outbound.cells``.
"""

from __future__ import annotations

from typing import Any

from sqlite_bridge.domain.errors import IntegerRangeError
from sqlite_bridge.domain.value_objects.cells import NULL_CELL, Cell, CellKind

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
# Largest integer a double represents exactly.
MAX_SAFE_INTEGER = 2**53 - 1


def to_engine(value: Any) -> Cell:
    """
    Convert a Python value to the cell the engine will store.

    Integers wider than 64 bits are stored as their decimal text, which
    loses their integer affinity. Callables bind as NULL; any other
    unsupported object is stored as ``str(value)``.
    """
    if value is None:
        return NULL_CELL
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return Cell(CellKind.INTEGER, int(value))
    if isinstance(value, int):
        if INT64_MIN <= value <= INT64_MAX:
            return Cell(CellKind.INTEGER, int(value))
        return Cell(CellKind.TEXT, str(value))
    if isinstance(value, float):
        return Cell(CellKind.FLOAT, value)
    if isinstance(value, str):
        return Cell(CellKind.TEXT, value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return Cell(CellKind.BLOB, bytes(value))
    if callable(value):
        return NULL_CELL
    return Cell(CellKind.TEXT, str(value))


def integer_to_host(
    value: int,
    *,
    read_bigints: bool = False,
    max_safe_integer: int = MAX_SAFE_INTEGER,
) -> int:
    """
    Apply the integer precision policy to an engine integer.

    Raises:
        IntegerRangeError: If the value is outside the native 32-bit range,
            exceeds ``max_safe_integer`` and wide integers were not requested
    """
    if read_bigints or INT32_MIN <= value <= INT32_MAX:
        return value
    if -max_safe_integer <= value <= max_safe_integer:
        return value
    raise IntegerRangeError(value, max_safe_integer)


def to_host(
    cell: Cell,
    *,
    read_bigints: bool = False,
    max_safe_integer: int = MAX_SAFE_INTEGER,
) -> Any:
    """Convert an engine cell to a Python value."""
    if cell.kind is CellKind.INTEGER:
        return integer_to_host(
            cell.value, read_bigints=read_bigints, max_safe_integer=max_safe_integer
        )
    if cell.kind is CellKind.NULL:
        return None
    return cell.value
