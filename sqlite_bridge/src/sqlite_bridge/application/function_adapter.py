"""Common machinery for user-defined SQL functions.

An adapter object is created per registration. Its cffi handle is stored in
the engine's user-data slot and the connection keeps the adapter alive
until the engine calls xDestroy (function replaced or connection closed),
which releases it exactly once.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlite_bridge.adapters.outbound.cells import read_value, result_error
from sqlite_bridge.adapters.outbound.engine import ffi, to_bytes
from sqlite_bridge.domain.errors import CallbackError
from sqlite_bridge.domain.services.marshaller import to_host
from sqlite_bridge.domain.value_objects.constants import (
    SQLITE_DETERMINISTIC,
    SQLITE_DIRECTONLY,
    SQLITE_OK,
    SQLITE_UTF8,
)
from sqlite_bridge.domain.value_objects.options import FunctionOptions
from sqlite_bridge.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from sqlite_bridge.application.connection import Connection

logger = get_logger(__name__)


def function_flags(options: FunctionOptions) -> int:
    """Text encoding and behaviour flags for a registration."""
    flags = SQLITE_UTF8
    if options.deterministic:
        flags |= SQLITE_DETERMINISTIC
    if options.direct_only:
        flags |= SQLITE_DIRECTONLY
    return flags


class FunctionAdapter:
    """Base class for scalar and aggregate function adapters."""

    kind = "function"
    arity: int

    def __init__(self, connection: Connection, name: str, options: FunctionOptions) -> None:
        self.name = name
        self.flags = function_flags(options)
        self._connection = connection
        self._use_bigint_arguments = options.use_bigint_arguments
        self._max_safe_integer = connection.max_safe_integer
        self._released = False
        self.handle = ffi.new_handle(self)

    @property
    def released(self) -> bool:
        return self._released

    def register(self) -> None:
        """Register with the engine; raises EngineError on failure."""
        connection = self._connection
        connection._retain_function(self)
        rc = self._create(connection._lib, connection._handle, to_bytes(self.name))
        if rc != SQLITE_OK:
            # The engine has already called xDestroy for the failed registration.
            self.destroy()
            raise connection._error(rc)
        logger.debug(
            "function_registered", name=self.name, kind=self.kind, arity=self.arity
        )

    def destroy(self) -> None:
        """xDestroy: drop everything the registration holds."""
        if self._released:
            return
        self._released = True
        self._connection._release_function(self)

    def _create(self, lib: Any, db: Any, name: bytes) -> int:
        raise NotImplementedError

    def _arguments(self, argc: int, argv: Any) -> list[Any]:
        lib = self._connection._lib
        return [
            to_host(
                read_value(lib, argv[i]),
                read_bigints=self._use_bigint_arguments,
                max_safe_integer=self._max_safe_integer,
            )
            for i in range(argc)
        ]

    def _fail(self, context: Any, exc: Exception) -> None:
        """Report a user exception to the engine and park it on the connection."""
        message = str(exc) or type(exc).__name__
        error = CallbackError(self.kind, self.name, message)
        error.__cause__ = exc
        self._connection._record_callback_error(error)
        self._connection.metrics.callback_invocations_total.labels(
            kind=self.kind, status="error"
        ).inc()
        logger.debug("callback_failed", name=self.name, kind=self.kind, error=message)
        result_error(self._connection._lib, context, message)

    def _succeeded(self) -> None:
        self._connection.metrics.callback_invocations_total.labels(
            kind=self.kind, status="success"
        ).inc()
