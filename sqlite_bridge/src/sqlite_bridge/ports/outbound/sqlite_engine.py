"""SQLite engine port.

This outbound port defines what the application layer needs from a loaded
SQLite library: the raw C entry points, feature probes, the C callbacks
bound to that library and the error helpers. The cffi adapter in
``adapters/outbound/engine.py`` implements it.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Protocol

from sqlite_bridge.domain.errors import EngineError


class SqliteEngine(Protocol):
    """Protocol for a loaded SQLite library.

    One engine is shared by every connection of a binding context, so
    implementations must tolerate calls from several threads; each
    connection handle is still only used from its owning thread.
    """

    lib: Any
    path: str
    has_sessions: bool
    has_column_metadata: bool

    @property
    @abstractmethod
    def version(self) -> str:
        """Return the library version string, e.g. ``"3.40.1"``."""
        ...

    @property
    @abstractmethod
    def version_number(self) -> int:
        """Return the library version as an integer, e.g. ``3040001``."""
        ...

    @property
    @abstractmethod
    def trampolines(self) -> Any:
        """Return the C callbacks bound to this library."""
        ...

    @abstractmethod
    def errstr(self, code: int) -> str:
        """Return the English description of a result code."""
        ...

    @abstractmethod
    def error(
        self,
        db: Any,
        code: int | None = None,
        *,
        message: str | None = None,
        error_class: type[EngineError] = EngineError,
    ) -> EngineError:
        """Build an error from a connection's current error state.

        Args:
            db: Connection handle, or NULL when none is available.
            code: Result code; read from the connection when omitted.
            message: Message override.
            error_class: EngineError subclass to instantiate.

        Returns:
            The error, ready to raise.
        """
        ...

    @abstractmethod
    def db_config_flag(self, db: Any, op: int, enabled: bool) -> int:
        """Set an on/off connection configuration verb and return the status."""
        ...
