"""Lazy row iteration over a prepared statement."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlite_bridge.domain.value_objects.constants import SQLITE_DONE
from sqlite_bridge.domain.value_objects.options import IteratorResult

if TYPE_CHECKING:
    from sqlite_bridge.application.statement import Statement

_DONE = IteratorResult(done=True)


class StatementIterator:
    """
    Single-pass, forward-only cursor over a statement's rows.

    ``advance`` steps once and reports ``IteratorResult(done, value)``;
    ``close`` abandons the iteration and resets the statement. The usual
    Python iterator and context-manager protocols are built on the two.
    """

    def __init__(self, statement: Statement, generation: int) -> None:
        self._statement = statement
        self._generation = generation
        self._names: list[str] | None = None
        self._done = False

    def __iter__(self) -> StatementIterator:
        return self

    def __next__(self) -> Any:
        result = self.advance()
        if result.done:
            raise StopIteration
        return result.value

    def __enter__(self) -> StatementIterator:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def done(self) -> bool:
        return self._done

    def advance(self) -> IteratorResult:
        """Step once; the first completion resets the statement."""
        statement = self._statement
        statement._ensure_usable()
        if self._done or not statement._owns_handle(self._generation):
            self._done = True
            return _DONE
        try:
            rc = statement._step()
        except Exception:
            self._finish()
            raise
        if rc == SQLITE_DONE:
            self._finish()
            return _DONE
        if self._names is None:
            self._names = statement._column_names()
        return IteratorResult(done=False, value=statement._read_row(self._names))

    def close(self) -> IteratorResult:
        """Stop early; the statement is reset for its next use."""
        self._statement._ensure_usable()
        if not self._done:
            self._finish()
        return _DONE

    def _finish(self) -> None:
        if self._statement._owns_handle(self._generation):
            self._statement._reset()
        self._done = True
