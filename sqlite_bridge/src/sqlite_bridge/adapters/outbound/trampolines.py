"""C entry points the engine calls back into.

Each trampoline recovers the adapter object registered for the call (from
the function's user-data slot or the changeset context pointer) and hands
the raw arguments to it. Adapters convert values and contain user
exceptions themselves; nothing may propagate through the C frames.

One set of trampolines is built per loaded library and shared by all
registrations in that binding context.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlite_bridge.adapters.outbound.engine import ffi
from sqlite_bridge.domain.value_objects.constants import SQLITE_CHANGESET_ABORT


@dataclass(frozen=True)
class Trampolines:
    """The C callbacks handed to registration calls."""

    x_func: Any
    x_step: Any
    x_inverse: Any
    x_value: Any
    x_final: Any
    x_destroy: Any
    x_filter: Any
    x_conflict: Any


def build_trampolines(lib: Any) -> Trampolines:
    """Create the callbacks for a loaded library."""

    def adapter_for(context: Any) -> Any:
        return ffi.from_handle(lib.sqlite3_user_data(context))

    @ffi.callback("void(sqlite3_context *, int, sqlite3_value **)")
    def x_func(context, argc, argv):
        adapter_for(context).invoke(context, argc, argv)

    @ffi.callback("void(sqlite3_context *, int, sqlite3_value **)")
    def x_step(context, argc, argv):
        adapter_for(context).step(context, argc, argv, inverse=False)

    @ffi.callback("void(sqlite3_context *, int, sqlite3_value **)")
    def x_inverse(context, argc, argv):
        adapter_for(context).step(context, argc, argv, inverse=True)

    @ffi.callback("void(sqlite3_context *)")
    def x_value(context):
        adapter_for(context).value(context, finalize=False)

    @ffi.callback("void(sqlite3_context *)")
    def x_final(context):
        adapter_for(context).value(context, finalize=True)

    @ffi.callback("void(void *)")
    def x_destroy(user_data):
        ffi.from_handle(user_data).destroy()

    @ffi.callback("int(void *, const char *)", error=0)
    def x_filter(context, table):
        return ffi.from_handle(context).filter(ffi.string(table).decode("utf-8", "replace"))

    @ffi.callback("int(void *, int, sqlite3_changeset_iter *)", error=SQLITE_CHANGESET_ABORT)
    def x_conflict(context, kind, iterator):
        return ffi.from_handle(context).conflict(kind)

    return Trampolines(
        x_func=x_func,
        x_step=x_step,
        x_inverse=x_inverse,
        x_value=x_value,
        x_final=x_final,
        x_destroy=x_destroy,
        x_filter=x_filter,
        x_conflict=x_conflict,
    )
