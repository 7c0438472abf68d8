"""Scalar SQL functions backed by Python callables."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from sqlite_bridge.adapters.outbound.cells import result_cell
from sqlite_bridge.adapters.outbound.engine import ffi
from sqlite_bridge.application.function_adapter import FunctionAdapter
from sqlite_bridge.domain.services.marshaller import to_engine
from sqlite_bridge.domain.services.signatures import scalar_arity
from sqlite_bridge.domain.value_objects.options import FunctionOptions

if TYPE_CHECKING:
    from sqlite_bridge.application.connection import Connection


class ScalarFunction(FunctionAdapter):
    """
    Adapter for one scalar function registration.

    Each call converts the engine arguments, invokes the callable and
    converts its return value. Exceptions never cross into the engine:
    they become the call's SQL error and are re-raised (chained) by the
    statement operation that triggered them.
    """

    kind = "scalar"

    def __init__(
        self,
        connection: Connection,
        name: str,
        fn: Callable[..., Any],
        options: FunctionOptions,
    ) -> None:
        super().__init__(connection, name, options)
        self._fn = fn
        self.arity = scalar_arity(fn, options.varargs)

    def _create(self, lib: Any, db: Any, name: bytes) -> int:
        trampolines = self._connection.engine.trampolines
        return lib.sqlite3_create_function_v2(
            db,
            name,
            self.arity,
            self.flags,
            self.handle,
            trampolines.x_func,
            ffi.NULL,
            ffi.NULL,
            trampolines.x_destroy,
        )

    def invoke(self, context: Any, argc: int, argv: Any) -> None:
        """xFunc entry point."""
        try:
            result = to_engine(self._fn(*self._arguments(argc, argv)))
        except Exception as exc:
            self._fail(context, exc)
            return
        result_cell(self._connection._lib, context, result)
        self._succeeded()

    def destroy(self) -> None:
        super().destroy()
        self._fn = None
