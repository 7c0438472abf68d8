"""Change tracking sessions and changeset application.

References:
    - https://sqlite.org/sessionintro.html
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from sqlite_bridge.adapters.outbound.engine import ffi
from sqlite_bridge.domain.errors import ArgumentError, BridgeError, CallbackError, InvalidStateError
from sqlite_bridge.domain.value_objects.constants import (
    SQLITE_CHANGESET_ABORT,
    SQLITE_CHANGESET_OMIT,
    SQLITE_OK,
    ConflictKind,
)
from sqlite_bridge.domain.value_objects.options import ChangesetApplyOptions, SessionOptions
from sqlite_bridge.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from sqlite_bridge.application.connection import Connection

logger = get_logger(__name__)


class Session:
    """
    Records changes made through its connection to one table or all tables.

    The session is deleted by ``close()`` or, at the latest, when its
    connection closes.
    """

    def __init__(self, connection: Connection, pointer: Any, options: SessionOptions) -> None:
        self._connection = connection
        self._pointer = pointer
        self.table = options.table
        self.db = options.db

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"Session(table={self.table!r}, db={self.db!r}, {state})"

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self.is_open:
            self.close()

    @property
    def is_open(self) -> bool:
        return self._pointer is not None

    def changeset(self) -> bytes:
        """Changes recorded so far, with original values for updates and deletes."""
        self._ensure_open()
        return self._collect(self._connection._lib.sqlite3session_changeset)

    def patchset(self) -> bytes:
        """Changes recorded so far, without original values."""
        self._ensure_open()
        return self._collect(self._connection._lib.sqlite3session_patchset)

    def close(self) -> None:
        """Delete the session."""
        self._ensure_open()
        self._connection._forget_session(self)
        self._delete()
        logger.debug("session_closed", table=self.table, db=self.db)

    def _ensure_open(self) -> None:
        self._connection._ensure_thread()
        if self._pointer is None:
            raise InvalidStateError("session is not open")
        self._connection._ensure_open()

    def _delete(self) -> None:
        if self._pointer is None:
            return
        pointer, self._pointer = self._pointer, None
        self._connection._lib.sqlite3session_delete(pointer)
        self._connection.metrics.sessions_active.dec()

    def _collect(self, producer: Callable[..., int]) -> bytes:
        lib = self._connection._lib
        size = ffi.new("int *")
        buffer = ffi.new("void **")
        rc = producer(self._pointer, size, buffer)
        try:
            if rc != SQLITE_OK:
                raise self._connection._error(rc, message=self._connection.engine.errstr(rc))
            if size[0] == 0:
                return b""
            return ffi.buffer(buffer[0], size[0])[:]
        finally:
            lib.sqlite3_free(buffer[0])


class ChangesetApplication:
    """
    Callback target for one ``sqlite3changeset_apply`` call.

    User exceptions cannot unwind through the engine, so the first one is
    parked here and re-raised once the engine returns. A failing conflict
    handler aborts the apply; a failing filter excludes its table.
    """

    def __init__(self, connection: Connection, options: ChangesetApplyOptions) -> None:
        self._connection = connection
        self._on_conflict = options.on_conflict
        self._filter = options.filter
        self.error: BridgeError | None = None

    @property
    def has_filter(self) -> bool:
        return self._filter is not None

    def filter(self, table: str) -> int:
        if self.error is not None:
            return 0
        try:
            include = bool(self._filter(table))
        except Exception as exc:
            self._record("filter", exc)
            return 0
        self._count("filter", "success")
        return 1 if include else 0

    def conflict(self, kind: int) -> int:
        if self.error is not None:
            return SQLITE_CHANGESET_ABORT
        if self._on_conflict is None:
            return SQLITE_CHANGESET_OMIT
        try:
            resolution = self._on_conflict(ConflictKind(kind))
        except Exception as exc:
            self._record("conflict", exc)
            return SQLITE_CHANGESET_ABORT
        if isinstance(resolution, bool) or not isinstance(resolution, int):
            self.error = ArgumentError(
                f"The on_conflict callback must return an integer resolution, got {resolution!r}"
            )
            self._count("conflict", "error")
            return SQLITE_CHANGESET_ABORT
        self._count("conflict", "success")
        return int(resolution)

    def raise_pending(self) -> None:
        if self.error is not None:
            raise self.error

    def _record(self, kind: str, exc: Exception) -> None:
        name = "on_conflict" if kind == "conflict" else "filter"
        error = CallbackError(kind, name, str(exc) or type(exc).__name__)
        error.__cause__ = exc
        self.error = error
        self._count(kind, "error")

    def _count(self, kind: str, status: str) -> None:
        self._connection.metrics.callback_invocations_total.labels(kind=kind, status=status).inc()
