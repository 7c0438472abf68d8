"""SQLite C library access through cffi (ABI mode).

The library is located at runtime and opened with ``ffi.dlopen``; nothing is
compiled. Only the part of the C API the binding uses is declared. Optional
entry points (session extension, column metadata) are probed at load time
because ABI mode only reports missing symbols when they are first touched.

References:
    - https://sqlite.org/c3ref/intro.html
    - https://cffi.readthedocs.io/en/stable/overview.html#abi-level-in-line
"""

from __future__ import annotations

import ctypes.util
import threading
from typing import Any

from cffi import FFI

from sqlite_bridge.domain.errors import EngineError
from sqlite_bridge.infrastructure.logging import get_logger

logger = get_logger(__name__)

ffi = FFI()

ffi.cdef(
    r"""
    typedef struct sqlite3 sqlite3;
    typedef struct sqlite3_stmt sqlite3_stmt;
    typedef struct sqlite3_context sqlite3_context;
    typedef struct sqlite3_value sqlite3_value;
    typedef struct sqlite3_backup sqlite3_backup;
    typedef struct sqlite3_session sqlite3_session;
    typedef struct sqlite3_changeset_iter sqlite3_changeset_iter;
    typedef long long sqlite3_int64;

    const char *sqlite3_libversion(void);
    int sqlite3_libversion_number(void);
    int sqlite3_threadsafe(void);
    void sqlite3_free(void *);

    int sqlite3_open_v2(const char *filename, sqlite3 **ppDb, int flags, const char *zVfs);
    int sqlite3_close(sqlite3 *);
    int sqlite3_close_v2(sqlite3 *);
    int sqlite3_exec(sqlite3 *, const char *sql,
                     int (*callback)(void *, int, char **, char **),
                     void *, char **errmsg);
    int sqlite3_errcode(sqlite3 *db);
    int sqlite3_extended_errcode(sqlite3 *db);
    const char *sqlite3_errmsg(sqlite3 *);
    const char *sqlite3_errstr(int);
    int sqlite3_system_errno(sqlite3 *);
    int sqlite3_busy_timeout(sqlite3 *, int ms);
    int sqlite3_db_config(sqlite3 *, int op, ...);
    int sqlite3_get_autocommit(sqlite3 *);
    const char *sqlite3_db_filename(sqlite3 *db, const char *zDbName);
    int sqlite3_changes(sqlite3 *);
    sqlite3_int64 sqlite3_last_insert_rowid(sqlite3 *);
    int sqlite3_load_extension(sqlite3 *db, const char *zFile, const char *zProc,
                               char **pzErrMsg);

    int sqlite3_prepare_v2(sqlite3 *db, const char *zSql, int nByte,
                           sqlite3_stmt **ppStmt, const char **pzTail);
    int sqlite3_step(sqlite3_stmt *);
    int sqlite3_reset(sqlite3_stmt *);
    int sqlite3_finalize(sqlite3_stmt *);
    int sqlite3_clear_bindings(sqlite3_stmt *);
    const char *sqlite3_sql(sqlite3_stmt *);
    char *sqlite3_expanded_sql(sqlite3_stmt *);
    int sqlite3_bind_parameter_count(sqlite3_stmt *);
    const char *sqlite3_bind_parameter_name(sqlite3_stmt *, int);
    int sqlite3_bind_parameter_index(sqlite3_stmt *, const char *zName);
    int sqlite3_bind_null(sqlite3_stmt *, int);
    int sqlite3_bind_int64(sqlite3_stmt *, int, sqlite3_int64);
    int sqlite3_bind_double(sqlite3_stmt *, int, double);
    int sqlite3_bind_text(sqlite3_stmt *, int, const char *, int, void (*)(void *));
    int sqlite3_bind_blob(sqlite3_stmt *, int, const void *, int, void (*)(void *));
    int sqlite3_bind_zeroblob(sqlite3_stmt *, int, int n);

    int sqlite3_column_count(sqlite3_stmt *);
    int sqlite3_column_type(sqlite3_stmt *, int iCol);
    sqlite3_int64 sqlite3_column_int64(sqlite3_stmt *, int iCol);
    double sqlite3_column_double(sqlite3_stmt *, int iCol);
    const unsigned char *sqlite3_column_text(sqlite3_stmt *, int iCol);
    const void *sqlite3_column_blob(sqlite3_stmt *, int iCol);
    int sqlite3_column_bytes(sqlite3_stmt *, int iCol);
    const char *sqlite3_column_name(sqlite3_stmt *, int N);
    const char *sqlite3_column_decltype(sqlite3_stmt *, int);
    const char *sqlite3_column_database_name(sqlite3_stmt *, int);
    const char *sqlite3_column_table_name(sqlite3_stmt *, int);
    const char *sqlite3_column_origin_name(sqlite3_stmt *, int);

    int sqlite3_create_function_v2(
        sqlite3 *db, const char *zFunctionName, int nArg, int eTextRep, void *pApp,
        void (*xFunc)(sqlite3_context *, int, sqlite3_value **),
        void (*xStep)(sqlite3_context *, int, sqlite3_value **),
        void (*xFinal)(sqlite3_context *),
        void (*xDestroy)(void *));
    int sqlite3_create_window_function(
        sqlite3 *db, const char *zFunctionName, int nArg, int eTextRep, void *pApp,
        void (*xStep)(sqlite3_context *, int, sqlite3_value **),
        void (*xFinal)(sqlite3_context *),
        void (*xValue)(sqlite3_context *),
        void (*xInverse)(sqlite3_context *, int, sqlite3_value **),
        void (*xDestroy)(void *));
    void *sqlite3_user_data(sqlite3_context *);
    void *sqlite3_aggregate_context(sqlite3_context *, int nBytes);

    int sqlite3_value_type(sqlite3_value *);
    sqlite3_int64 sqlite3_value_int64(sqlite3_value *);
    double sqlite3_value_double(sqlite3_value *);
    const unsigned char *sqlite3_value_text(sqlite3_value *);
    const void *sqlite3_value_blob(sqlite3_value *);
    int sqlite3_value_bytes(sqlite3_value *);

    void sqlite3_result_null(sqlite3_context *);
    void sqlite3_result_int64(sqlite3_context *, sqlite3_int64);
    void sqlite3_result_double(sqlite3_context *, double);
    void sqlite3_result_text(sqlite3_context *, const char *, int, void (*)(void *));
    void sqlite3_result_blob(sqlite3_context *, const void *, int, void (*)(void *));
    void sqlite3_result_zeroblob(sqlite3_context *, int n);
    void sqlite3_result_error(sqlite3_context *, const char *, int);
    void sqlite3_result_error_nomem(sqlite3_context *);

    sqlite3_backup *sqlite3_backup_init(sqlite3 *pDest, const char *zDestName,
                                        sqlite3 *pSource, const char *zSourceName);
    int sqlite3_backup_step(sqlite3_backup *p, int nPage);
    int sqlite3_backup_finish(sqlite3_backup *p);
    int sqlite3_backup_remaining(sqlite3_backup *p);
    int sqlite3_backup_pagecount(sqlite3_backup *p);

    int sqlite3session_create(sqlite3 *db, const char *zDb, sqlite3_session **ppSession);
    void sqlite3session_delete(sqlite3_session *pSession);
    int sqlite3session_attach(sqlite3_session *pSession, const char *zTab);
    int sqlite3session_changeset(sqlite3_session *pSession, int *pnChangeset,
                                 void **ppChangeset);
    int sqlite3session_patchset(sqlite3_session *pSession, int *pnPatchset,
                                void **ppPatchset);
    int sqlite3changeset_apply(
        sqlite3 *db, int nChangeset, void *pChangeset,
        int (*xFilter)(void *pCtx, const char *zTab),
        int (*xConflict)(void *pCtx, int eConflict, sqlite3_changeset_iter *p),
        void *pCtx);

    typedef struct {
        int initialized;
        int tag;
        sqlite3_int64 integer;
        double number;
        sqlite3_int64 slot;
    } bridge_accumulator;
    """
)

# SQLITE_TRANSIENT: the engine copies the buffer before the call returns.
SQLITE_TRANSIENT = ffi.cast("void (*)(void *)", -1)

ACCUMULATOR_SIZE = ffi.sizeof("bridge_accumulator")

_CANDIDATE_NAMES = (
    "libsqlite3.so.0",
    "libsqlite3.so",
    "libsqlite3.dylib",
    "sqlite3.dll",
)

_SESSION_SYMBOLS = (
    "sqlite3session_create",
    "sqlite3session_attach",
    "sqlite3session_changeset",
    "sqlite3session_patchset",
    "sqlite3session_delete",
    "sqlite3changeset_apply",
)

_METADATA_SYMBOLS = (
    "sqlite3_column_database_name",
    "sqlite3_column_table_name",
    "sqlite3_column_origin_name",
)


class EngineLoadError(RuntimeError):
    """The SQLite shared library could not be loaded."""

    pass


def to_bytes(text: str) -> bytes:
    """
    Encode text for a ``const char *`` argument.

    Surrogate pairs split across two code points are joined; unpaired
    surrogates become U+FFFD.
    """
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError:
        units = text.encode("utf-16-le", "surrogatepass")
        return units.decode("utf-16-le", "replace").encode("utf-8")


def to_str(pointer: Any) -> str | None:
    """Decode a NUL-terminated C string; None for NULL."""
    if pointer == ffi.NULL:
        return None
    return ffi.string(pointer).decode("utf-8", "replace")


class EngineLibrary:
    """
    A loaded SQLite library.

    Wraps the cffi library object with feature probes and the error
    helpers every layer above needs. One instance is shared by all
    connections of a binding context.
    """

    def __init__(self, lib: Any, path: str) -> None:
        self.lib = lib
        self.path = path
        self.has_sessions = all(hasattr(lib, name) for name in _SESSION_SYMBOLS)
        self.has_column_metadata = all(hasattr(lib, name) for name in _METADATA_SYMBOLS)
        self._trampolines: Any = None
        self._trampoline_lock = threading.Lock()

    @property
    def version(self) -> str:
        return ffi.string(self.lib.sqlite3_libversion()).decode("ascii")

    @property
    def version_number(self) -> int:
        return int(self.lib.sqlite3_libversion_number())

    @property
    def threadsafe(self) -> bool:
        return bool(self.lib.sqlite3_threadsafe())

    @property
    def trampolines(self) -> Any:
        """C callbacks bound to this library, built on first use."""
        with self._trampoline_lock:
            if self._trampolines is None:
                from sqlite_bridge.adapters.outbound.trampolines import build_trampolines

                self._trampolines = build_trampolines(self.lib)
            return self._trampolines

    def errstr(self, code: int) -> str:
        return to_str(self.lib.sqlite3_errstr(code)) or ""

    def error(
        self,
        db: Any,
        code: int | None = None,
        *,
        message: str | None = None,
        error_class: type[EngineError] = EngineError,
    ) -> EngineError:
        """
        Build an EngineError from a connection's current error state.

        Args:
            db: Connection handle, or NULL when none is available
            code: Result code; read from the connection when omitted
            message: Message override; the connection's errmsg otherwise
            error_class: EngineError subclass to instantiate
        """
        lib = self.lib
        has_db = db is not None and db != ffi.NULL
        if code is None:
            code = lib.sqlite3_errcode(db) if has_db else 0
        if message is None:
            message = to_str(lib.sqlite3_errmsg(db)) if has_db else None
        errstr = self.errstr(code)
        return error_class(
            message or errstr,
            code & 0xFF,
            extended_code=lib.sqlite3_extended_errcode(db) if has_db else code,
            errstr=errstr,
            system_errno=lib.sqlite3_system_errno(db) if has_db else 0,
        )

    def db_config_flag(self, db: Any, op: int, enabled: bool) -> int:
        """Set an on/off ``sqlite3_db_config`` verb."""
        # Variadic arguments must be cdata of the exact C type.
        return self.lib.sqlite3_db_config(
            db, op, ffi.cast("int", 1 if enabled else 0), ffi.cast("int *", ffi.NULL)
        )


def _candidates(library_path: str | None) -> list[str]:
    candidates: list[str] = []
    if library_path:
        candidates.append(library_path)
    found = ctypes.util.find_library("sqlite3")
    if found:
        candidates.append(found)
    candidates.extend(_CANDIDATE_NAMES)
    return candidates


def load_engine(library_path: str | None = None) -> EngineLibrary:
    """
    Locate and open the SQLite shared library.

    Args:
        library_path: Explicit library path tried before the search list

    Returns:
        The loaded library

    Raises:
        EngineLoadError: If no candidate could be opened
    """
    failures: list[str] = []
    for candidate in _candidates(library_path):
        try:
            lib = ffi.dlopen(candidate)
        except OSError as exc:
            failures.append(f"{candidate}: {exc}")
            continue
        engine = EngineLibrary(lib, candidate)
        logger.debug(
            "engine_loaded",
            path=candidate,
            version=engine.version,
            sessions=engine.has_sessions,
        )
        return engine
    raise EngineLoadError("Could not load the SQLite library (" + "; ".join(failures) + ")")
