"""Engine-side value representation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class CellKind(IntEnum):
    """Fundamental engine storage classes (same codes as the engine)."""

    INTEGER = 1
    FLOAT = 2
    TEXT = 3
    BLOB = 4
    NULL = 5


@dataclass(frozen=True, slots=True)
class Cell:
    """A single engine value, tagged with its storage class.

    Attributes:
        kind: Storage class
        value: int for INTEGER, float for FLOAT, str for TEXT, bytes for BLOB,
            None for NULL
    """

    kind: CellKind
    value: int | float | str | bytes | None = None

    def __repr__(self) -> str:
        return f"Cell({self.kind.name}, {self.value!r})"


NULL_CELL = Cell(CellKind.NULL)
