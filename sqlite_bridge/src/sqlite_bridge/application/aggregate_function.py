"""Aggregate and window SQL functions backed by Python callables.

Per-group state lives in the engine's aggregate context as a
``bridge_accumulator`` struct; see ``domain.services.accumulator`` for the
encoding. Every registration goes through
``sqlite3_create_window_function``, so an aggregate with an ``inverse`` can
also be used with OVER clauses.

References:
    - https://sqlite.org/c3ref/aggregate_context.html
    - https://sqlite.org/windowfunctions.html#udfwinfunc
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlite_bridge.adapters.outbound.cells import result_cell
from sqlite_bridge.adapters.outbound.engine import ACCUMULATOR_SIZE, ffi
from sqlite_bridge.application.function_adapter import FunctionAdapter
from sqlite_bridge.domain.services.accumulator import AccumulatorStore
from sqlite_bridge.domain.services.marshaller import to_engine
from sqlite_bridge.domain.services.signatures import aggregate_arity
from sqlite_bridge.domain.value_objects.options import AggregateOptions

if TYPE_CHECKING:
    from sqlite_bridge.application.connection import Connection


class AggregateFunction(FunctionAdapter):
    """
    Adapter for one aggregate registration.

    Group lifecycle: the first step, inverse, value or final call seeds the
    accumulator with ``start``; step/inverse replace it with the callable's
    return value; final reads it, optionally maps it through ``result`` and
    destroys it in place.
    """

    kind = "aggregate"

    def __init__(self, connection: Connection, name: str, options: AggregateOptions) -> None:
        super().__init__(connection, name, options)
        self._start = options.start
        self._step = options.step
        self._inverse = options.inverse
        self._result = options.result
        self.arity = aggregate_arity(options.step, options.inverse, options.varargs)
        self.accumulators = AccumulatorStore()

    @property
    def is_window(self) -> bool:
        return self._inverse is not None

    def _create(self, lib: Any, db: Any, name: bytes) -> int:
        trampolines = self._connection.engine.trampolines
        return lib.sqlite3_create_window_function(
            db,
            name,
            self.arity,
            self.flags,
            self.handle,
            trampolines.x_step,
            trampolines.x_final,
            trampolines.x_value if self.is_window else ffi.NULL,
            trampolines.x_inverse if self.is_window else ffi.NULL,
            trampolines.x_destroy,
        )

    def _accumulator(self, context: Any) -> Any:
        lib = self._connection._lib
        pointer = lib.sqlite3_aggregate_context(context, ACCUMULATOR_SIZE)
        if pointer == ffi.NULL:
            lib.sqlite3_result_error_nomem(context)
            return None
        cell = ffi.cast("bridge_accumulator *", pointer)
        if not self.accumulators.is_initialized(cell):
            self.accumulators.initialize(cell, self._start)
        return cell

    def step(self, context: Any, argc: int, argv: Any, inverse: bool = False) -> None:
        """xStep / xInverse entry point."""
        cell = self._accumulator(context)
        if cell is None:
            return
        fn = self._inverse if inverse else self._step
        try:
            value = fn(self.accumulators.read(cell), *self._arguments(argc, argv))
        except Exception as exc:
            self._fail(context, exc)
            return
        self.accumulators.write(cell, value)
        self._succeeded()

    def value(self, context: Any, finalize: bool = False) -> None:
        """xValue / xFinal entry point."""
        cell = self._accumulator(context)
        if cell is None:
            return
        try:
            current = self.accumulators.read(cell)
            if self._result is not None:
                current = self._result(current)
            result = to_engine(current)
        except Exception as exc:
            self._fail(context, exc)
            return
        finally:
            if finalize:
                self.accumulators.destroy(cell)
        result_cell(self._connection._lib, context, result)
        self._succeeded()

    def destroy(self) -> None:
        super().destroy()
        self.accumulators.clear()
