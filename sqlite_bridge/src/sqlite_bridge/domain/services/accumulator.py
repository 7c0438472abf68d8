"""Aggregate accumulator storage.

The per-group accumulator lives in memory the engine owns (the block handed
out by ``sqlite3_aggregate_context``), so it must be plain data. Values that
fit are stored inline as a tagged union; everything else is parked in an
arena owned by the function registration and referenced by slot number.

The store works on any object exposing the ``initialized``, ``tag``,
``integer``, ``number`` and ``slot`` attributes: the cffi struct in
production, a simple namespace in tests. A zeroed block reads as
uninitialized.
"""

from __future__ import annotations

import itertools
from enum import IntEnum
from typing import Any, Protocol

from sqlite_bridge.domain.services.marshaller import INT64_MAX, INT64_MIN


class AccumulatorTag(IntEnum):
    """Which union member holds the accumulator value."""

    NONE = 0
    NULL = 1
    BOOLEAN = 2
    NUMBER = 3
    BIGINT = 4
    STRING = 5
    REFERENCE = 6


class AccumulatorCell(Protocol):
    """Shape of the engine-owned accumulator struct."""

    initialized: int
    tag: int
    integer: int
    number: float
    slot: int


class AccumulatorStore:
    """
    Reads and writes accumulator cells for one function registration.

    Strings, integers wider than 64 bits and arbitrary objects are kept in
    an arena keyed by slot number. A slot is released before its cell is
    overwritten and when the cell is destroyed, so the arena only holds
    values of groups that are still accumulating.
    """

    def __init__(self) -> None:
        self._arena: dict[int, Any] = {}
        self._slot_ids = itertools.count(1)

    @property
    def live_slots(self) -> int:
        """Number of arena values currently referenced by some cell."""
        return len(self._arena)

    @staticmethod
    def is_initialized(cell: AccumulatorCell) -> bool:
        return bool(cell.initialized)

    def initialize(self, cell: AccumulatorCell, start: Any) -> None:
        """Seed a fresh cell with the registration's start value."""
        cell.initialized = 1
        cell.tag = AccumulatorTag.NONE
        self.write(cell, start)

    def write(self, cell: AccumulatorCell, value: Any) -> None:
        """Store ``value`` in the cell, releasing whatever it referenced."""
        self._release(cell)
        if value is None:
            cell.tag = AccumulatorTag.NULL
        elif isinstance(value, bool):
            cell.tag = AccumulatorTag.BOOLEAN
            cell.integer = int(value)
        elif isinstance(value, float):
            cell.tag = AccumulatorTag.NUMBER
            cell.number = value
        elif isinstance(value, int) and INT64_MIN <= value <= INT64_MAX:
            cell.tag = AccumulatorTag.BIGINT
            cell.integer = value
        elif isinstance(value, str):
            cell.tag = AccumulatorTag.STRING
            cell.slot = self._park(value)
        else:
            cell.tag = AccumulatorTag.REFERENCE
            cell.slot = self._park(value)

    def read(self, cell: AccumulatorCell) -> Any:
        """Return the Python value held by the cell."""
        tag = AccumulatorTag(cell.tag)
        if tag is AccumulatorTag.BOOLEAN:
            return bool(cell.integer)
        if tag is AccumulatorTag.NUMBER:
            return float(cell.number)
        if tag is AccumulatorTag.BIGINT:
            return int(cell.integer)
        if tag in (AccumulatorTag.STRING, AccumulatorTag.REFERENCE):
            return self._arena[cell.slot]
        return None

    def destroy(self, cell: AccumulatorCell) -> None:
        """Release the cell's arena slot and zero it in place."""
        self._release(cell)
        cell.initialized = 0
        cell.tag = AccumulatorTag.NONE
        cell.integer = 0
        cell.number = 0.0
        cell.slot = 0

    def clear(self) -> None:
        """Drop every parked value; used when the registration is destroyed."""
        self._arena.clear()

    def _park(self, value: Any) -> int:
        slot = next(self._slot_ids)
        self._arena[slot] = value
        return slot

    def _release(self, cell: AccumulatorCell) -> None:
        if cell.tag in (AccumulatorTag.STRING, AccumulatorTag.REFERENCE):
            self._arena.pop(cell.slot, None)
            cell.slot = 0
