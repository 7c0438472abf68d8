"""Database connections.

A Connection owns one engine handle and everything created from it:
prepared statements, change-tracking sessions, registered functions and
running backups. It belongs to the thread that created it; every
operation checks the calling thread before the handle is touched.

References:
    - https://sqlite.org/c3ref/open.html
    - https://sqlite.org/threadsafe.html
"""

from __future__ import annotations

import asyncio
import itertools
import threading
from typing import Any, Callable

from sqlite_bridge.adapters.outbound.engine import ffi, to_bytes, to_str
from sqlite_bridge.application.aggregate_function import AggregateFunction
from sqlite_bridge.application.backup import BackupJob
from sqlite_bridge.application.function_adapter import FunctionAdapter
from sqlite_bridge.application.scalar_function import ScalarFunction
from sqlite_bridge.application.session import ChangesetApplication, Session
from sqlite_bridge.application.statement import Statement
from sqlite_bridge.domain.errors import (
    ArgumentError,
    CallbackError,
    EngineError,
    InvalidStateError,
    OpenError,
    ThreadAffinityError,
)
from sqlite_bridge.domain.services.paths import is_uri, validate_database_path
from sqlite_bridge.domain.value_objects.constants import (
    SQLITE_ABORT,
    SQLITE_DBCONFIG_DQS_DDL,
    SQLITE_DBCONFIG_DQS_DML,
    SQLITE_DBCONFIG_ENABLE_LOAD_EXTENSION,
    SQLITE_OK,
    SQLITE_OPEN_CREATE,
    SQLITE_OPEN_FULLMUTEX,
    SQLITE_OPEN_READONLY,
    SQLITE_OPEN_READWRITE,
    SQLITE_OPEN_URI,
)
from sqlite_bridge.domain.value_objects.options import (
    AggregateOptions,
    BackupOptions,
    ChangesetApplyOptions,
    DatabaseOpenConfiguration,
    FunctionOptions,
    SessionOptions,
    StatementOptions,
    parse_options,
)
from sqlite_bridge.infrastructure.container import BindingContext, get_default_context
from sqlite_bridge.infrastructure.logging import get_logger
from sqlite_bridge.infrastructure.metrics import MetricsRegistry, track_execution
from sqlite_bridge.infrastructure.tracing import trace_span
from sqlite_bridge.ports.outbound import SqliteEngine

logger = get_logger(__name__)


class Connection:
    """
    A connection to one database.

    Passing a path opens the database immediately; without one the
    connection stays unopened until ``open()``. Open options:

        read_only, enable_foreign_keys, enable_double_quoted_string_literals,
        timeout (busy timeout in ms), allow_extension

    Defaults come from the context configuration.

    Example:
        with Connection(":memory:") as db:
            db.exec("CREATE TABLE t (x)")
            db.prepare("INSERT INTO t VALUES (?)").run(1)
    """

    def __init__(
        self,
        path: Any = None,
        *,
        context: BindingContext | None = None,
        **options: Any,
    ) -> None:
        """
        Initialize the connection.

        Args:
            path: Database location (path, ``file:`` URI or ``":memory:"``)
            context: Binding context (the default context when omitted)
            **options: Open options, used now or by a later ``open()``
        """
        self._thread_id = threading.get_ident()
        self._context = context or get_default_context()
        self._engine = self._context.engine
        self._lib = self._engine.lib
        self._handle: Any = None
        self._closed = False
        self._config: DatabaseOpenConfiguration | None = None
        self._default_options = options
        self._extensions_enabled = False
        self._callback_error: CallbackError | None = None

        self._statement_ids = itertools.count(1)
        self._statements: dict[int, Statement] = {}
        self._functions: set[FunctionAdapter] = set()
        self._sessions: set[Session] = set()
        self._sessions_lock = threading.Lock()
        self._backups: set[BackupJob] = set()
        self._backups_lock = threading.Lock()

        if path is not None:
            self.open(path)

    def __repr__(self) -> str:
        if self._handle is not None:
            state = "open"
        elif self._closed:
            state = "closed"
        else:
            state = "unopened"
        location = self._config.location if self._config else None
        return f"Connection({location!r}, {state})"

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self.is_open:
            self.close()

    def __del__(self) -> None:
        if getattr(self, "_handle", None) is not None:
            self._teardown()

    # Properties

    @property
    def context(self) -> BindingContext:
        return self._context

    @property
    def engine(self) -> SqliteEngine:
        return self._engine

    @property
    def metrics(self) -> MetricsRegistry:
        return self._context.metrics

    @property
    def max_safe_integer(self) -> int:
        return self._context.config.marshal.max_safe_integer

    @property
    def configuration(self) -> DatabaseOpenConfiguration | None:
        """Options the database was opened with."""
        return self._config

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    @property
    def owned_by_current_thread(self) -> bool:
        return threading.get_ident() == self._thread_id

    @property
    def in_transaction(self) -> bool:
        """Whether an explicit transaction is active."""
        self._ensure_open()
        return not self._lib.sqlite3_get_autocommit(self._handle)

    # Lifecycle

    def open(self, path: Any = None, **options: Any) -> None:
        """
        Open the database.

        Args:
            path: Database location; falls back to the ``location`` option
            **options: Open options overriding the constructor's

        Raises:
            InvalidStateError: If the connection is open or was closed
            OpenError: If the engine cannot open or configure the database
        """
        self._ensure_thread()
        if self._handle is not None:
            raise InvalidStateError("Database is already open")
        if self._closed:
            raise InvalidStateError("Database has been closed")

        config = self._open_configuration(path, {**self._default_options, **options})
        flags = SQLITE_OPEN_READONLY if config.read_only else SQLITE_OPEN_READWRITE | SQLITE_OPEN_CREATE
        flags |= SQLITE_OPEN_FULLMUTEX
        if is_uri(config.location):
            flags |= SQLITE_OPEN_URI

        lib = self._lib
        out = ffi.new("sqlite3 **")
        rc = lib.sqlite3_open_v2(to_bytes(config.location), out, flags, ffi.NULL)
        handle = out[0]
        if rc != SQLITE_OK:
            error = self._engine.error(handle, rc, error_class=OpenError)
            if handle != ffi.NULL:
                lib.sqlite3_close_v2(handle)
            logger.warning("connection_open_failed", location=config.location, error=error)
            raise error

        try:
            self._configure(handle, config)
        except EngineError:
            lib.sqlite3_close_v2(handle)
            raise

        self._handle = handle
        self._config = config
        self._context.register(self)
        logger.info(
            "connection_opened",
            location=config.location,
            read_only=config.read_only,
            foreign_keys=config.enable_foreign_keys,
        )

    def close(self) -> None:
        """
        Close the database.

        Running backups are waited for; statements are finalized and
        sessions deleted before the handle is closed.
        """
        self._ensure_open()
        self._teardown()

    def exec(self, sql: str) -> None:
        """Execute one or more SQL statements without returning rows."""
        self._ensure_open()
        _require_str(sql, "sql")
        self._clear_callback_error()
        message = ffi.new("char **")
        with track_execution(self.metrics, "exec"):
            rc = self._lib.sqlite3_exec(self._handle, to_bytes(sql), ffi.NULL, ffi.NULL, message)
            if rc != SQLITE_OK:
                text = to_str(message[0])
                self._lib.sqlite3_free(message[0])
                raise self._error(rc, message=text)

    def prepare(self, sql: str, **options: Any) -> Statement:
        """
        Compile the first statement in ``sql``.

        Args:
            sql: SQL text
            **options: read_bigints, return_arrays, allow_bare_named_parameters

        Returns:
            The prepared statement
        """
        self._ensure_open()
        _require_str(sql, "sql")
        defaults = self._context.config.connection
        statement_options = parse_options(
            StatementOptions,
            **{
                "read_bigints": defaults.read_bigints,
                "return_arrays": defaults.return_arrays,
                "allow_bare_named_parameters": defaults.allow_bare_named_parameters,
                **options,
            },
        )
        data = to_bytes(sql)
        out = ffi.new("sqlite3_stmt **")
        rc = self._lib.sqlite3_prepare_v2(self._handle, data, len(data), out, ffi.NULL)
        if rc != SQLITE_OK:
            raise self._error(rc)
        if out[0] == ffi.NULL:
            raise ArgumentError('The "sql" argument must contain an SQL statement')

        statement = Statement(self, out[0], statement_options, next(self._statement_ids))
        self._statements[statement.id] = statement
        self.metrics.statements_prepared_total.inc()
        logger.debug("statement_prepared", sql=statement.source_sql)
        return statement

    def location(self, db_name: str = "main") -> str | None:
        """File name of an attached database; None for in-memory or temporary ones."""
        self._ensure_open()
        _require_str(db_name, "db_name")
        return to_str(self._lib.sqlite3_db_filename(self._handle, to_bytes(db_name))) or None

    # User functions

    def register_scalar_function(
        self, name: str, fn: Callable[..., Any], **options: Any
    ) -> None:
        """
        Make ``fn`` callable from SQL as ``name``.

        Args:
            name: SQL function name
            fn: Callable receiving the SQL arguments
            **options: deterministic, direct_only, use_bigint_arguments, varargs
        """
        self._ensure_open()
        _require_str(name, "name")
        if not callable(fn):
            raise ArgumentError('The "fn" argument must be callable')
        ScalarFunction(self, name, fn, parse_options(FunctionOptions, **options)).register()

    def register_aggregate_function(self, name: str, **options: Any) -> None:
        """
        Define an aggregate, or a window function when ``inverse`` is given.

        Args:
            name: SQL function name
            **options: step (required), start, inverse, result, deterministic,
                direct_only, use_bigint_arguments, varargs
        """
        self._ensure_open()
        _require_str(name, "name")
        AggregateFunction(self, name, parse_options(AggregateOptions, **options)).register()

    # Extensions

    def enable_load_extension(self, allow: bool) -> None:
        """Turn extension loading on or off for this connection."""
        self._ensure_open()
        if not isinstance(allow, bool):
            raise ArgumentError('The "allow" argument must be a boolean')
        if allow and not self._config.allow_extension:
            raise InvalidStateError(
                "Cannot enable extension loading because it was disabled at database creation"
            )
        rc = self._engine.db_config_flag(self._handle, SQLITE_DBCONFIG_ENABLE_LOAD_EXTENSION, allow)
        if rc != SQLITE_OK:
            raise self._error(rc)
        self._extensions_enabled = allow

    def load_extension(self, path: str, entry_point: str | None = None) -> None:
        """Load a shared-library extension into this connection."""
        self._ensure_open()
        _require_str(path, "path")
        if entry_point is not None:
            _require_str(entry_point, "entry_point")
        if not (self._config.allow_extension and self._extensions_enabled):
            raise InvalidStateError("extension loading is not allowed")
        message = ffi.new("char **")
        rc = self._lib.sqlite3_load_extension(
            self._handle,
            to_bytes(path),
            to_bytes(entry_point) if entry_point is not None else ffi.NULL,
            message,
        )
        if rc != SQLITE_OK:
            text = to_str(message[0])
            self._lib.sqlite3_free(message[0])
            raise self._error(rc, message=text)

    # Sessions

    def create_session(self, *, table: str | None = None, db: str = "main") -> Session:
        """
        Start recording changes.

        Args:
            table: Table to watch; every table when omitted
            db: Schema name

        Returns:
            The new session
        """
        self._ensure_open()
        self._require_sessions()
        options = parse_options(SessionOptions, table=table, db=db)
        lib = self._lib
        out = ffi.new("sqlite3_session **")
        rc = lib.sqlite3session_create(self._handle, to_bytes(options.db), out)
        if rc != SQLITE_OK:
            raise self._error(rc)
        pointer = out[0]
        rc = lib.sqlite3session_attach(
            pointer, to_bytes(options.table) if options.table is not None else ffi.NULL
        )
        if rc != SQLITE_OK:
            lib.sqlite3session_delete(pointer)
            raise self._error(rc)

        session = Session(self, pointer, options)
        with self._sessions_lock:
            self._sessions.add(session)
        self.metrics.sessions_active.inc()
        logger.debug("session_created", table=options.table, db=options.db)
        return session

    def apply_changeset(
        self,
        changeset: bytes,
        *,
        on_conflict: Callable[[int], Any] | None = None,
        filter: Callable[[str], Any] | None = None,
    ) -> bool:
        """
        Apply a changeset produced by a session.

        Args:
            changeset: Changeset bytes
            on_conflict: Receives a ConflictKind, returns a ConflictResolution;
                conflicting changes are omitted when not given
            filter: Receives a table name, returns whether to apply its changes

        Returns:
            True if everything was applied, False if the apply was aborted

        Raises:
            CallbackError: If a callback raised (re-raised after the engine returns)
            EngineError: On any other engine failure
        """
        self._ensure_open()
        self._require_sessions()
        if not isinstance(changeset, (bytes, bytearray, memoryview)):
            raise ArgumentError('The "changeset" argument must be a bytes-like object')
        options = parse_options(ChangesetApplyOptions, on_conflict=on_conflict, filter=filter)
        application = ChangesetApplication(self, options)
        trampolines = self._engine.trampolines
        data = bytes(changeset)
        handle = ffi.new_handle(application)

        with trace_span("sqlite_bridge.apply_changeset", {"changeset.bytes": len(data)}):
            rc = self._lib.sqlite3changeset_apply(
                self._handle,
                len(data),
                ffi.from_buffer(data),
                trampolines.x_filter if application.has_filter else ffi.NULL,
                trampolines.x_conflict,
                handle,
            )

        outcome = "applied" if rc == SQLITE_OK else "aborted" if rc == SQLITE_ABORT else "failed"
        self.metrics.changesets_applied_total.labels(outcome=outcome).inc()
        logger.info("changeset_applied", bytes=len(data), outcome=outcome)
        application.raise_pending()
        if rc == SQLITE_OK:
            return True
        if rc == SQLITE_ABORT:
            return False
        raise self._error(rc)

    # Backup

    async def backup(
        self,
        destination: Any,
        *,
        rate: int | None = None,
        source: str | None = None,
        target: str | None = None,
        progress: Callable[..., Any] | None = None,
    ) -> int:
        """
        Copy the database to ``destination`` without blocking the event loop.

        Args:
            destination: Destination path
            rate: Pages per step; zero or negative copies everything at once
            source: Schema to copy from
            target: Schema to copy into
            progress: Called on this thread with a BackupProgress after each step

        Returns:
            Total number of pages copied

        Raises:
            BackupError: If the engine reports a failure
        """
        loop = asyncio.get_running_loop()
        self._ensure_open()
        path = validate_database_path(destination, "destination")
        defaults = self._context.config.backup
        options = parse_options(
            BackupOptions,
            rate=defaults.rate if rate is None else rate,
            source=source or defaults.source_db,
            target=target or defaults.target_db,
            progress=progress,
        )
        job = BackupJob(self, path, options, loop, defaults.busy_retry_delay_seconds)
        with self._backups_lock:
            self._backups.add(job)
        try:
            with trace_span(
                "sqlite_bridge.backup",
                {"backup.destination": path, "backup.rate": options.rate},
            ):
                job.start()
                return await job.future
        finally:
            job.join()
            with self._backups_lock:
                self._backups.discard(job)

    # Internals shared with statements, sessions and function adapters

    def _ensure_thread(self) -> None:
        if threading.get_ident() != self._thread_id:
            raise ThreadAffinityError()

    def _ensure_open(self) -> None:
        self._ensure_thread()
        if self._handle is None:
            raise InvalidStateError("Database is not open")

    def _require_sessions(self) -> None:
        if not self._engine.has_sessions:
            raise InvalidStateError("The SQLite library was built without the session extension")

    def _error(self, code: int | None = None, *, message: str | None = None) -> EngineError:
        """EngineError for the current failure, chained to a pending callback error."""
        error = self._engine.error(self._handle, code, message=message)
        if self._callback_error is not None:
            error.__cause__ = self._callback_error
            self._callback_error = None
        return error

    def _record_callback_error(self, error: CallbackError) -> None:
        if self._callback_error is None:
            self._callback_error = error

    def _clear_callback_error(self) -> None:
        self._callback_error = None

    def _retain_function(self, adapter: FunctionAdapter) -> None:
        self._functions.add(adapter)

    def _release_function(self, adapter: FunctionAdapter) -> None:
        self._functions.discard(adapter)

    def _forget_statement(self, statement: Statement) -> None:
        self._statements.pop(statement.id, None)

    def _forget_session(self, session: Session) -> None:
        with self._sessions_lock:
            self._sessions.discard(session)

    def _open_configuration(self, path: Any, options: dict[str, Any]) -> DatabaseOpenConfiguration:
        if path is not None:
            options = {**options, "location": path}
        config = parse_options(DatabaseOpenConfiguration, **options)
        if config.location is None:
            raise ArgumentError('The "path" argument must be a string, bytes or path-like object')
        defaults = self._context.config.connection
        fallback = {
            "enable_foreign_keys": defaults.enable_foreign_keys,
            "enable_double_quoted_string_literals": defaults.enable_double_quoted_string_literals,
            "timeout": defaults.timeout_ms,
            "allow_extension": defaults.allow_extension,
        }
        unset = {key: value for key, value in fallback.items() if key not in config.model_fields_set}
        return config.model_copy(update=unset)

    def _configure(self, handle: Any, config: DatabaseOpenConfiguration) -> None:
        lib = self._lib
        pragma = "PRAGMA foreign_keys = " + ("ON" if config.enable_foreign_keys else "OFF")
        rc = lib.sqlite3_exec(handle, to_bytes(pragma), ffi.NULL, ffi.NULL, ffi.NULL)
        if rc != SQLITE_OK:
            raise self._engine.error(handle, rc, error_class=OpenError)
        if config.timeout > 0:
            lib.sqlite3_busy_timeout(handle, config.timeout)
        for verb in (SQLITE_DBCONFIG_DQS_DML, SQLITE_DBCONFIG_DQS_DDL):
            rc = self._engine.db_config_flag(
                handle, verb, config.enable_double_quoted_string_literals
            )
            if rc != SQLITE_OK:
                raise self._engine.error(handle, rc, error_class=OpenError)

    def _teardown(self) -> None:
        with self._backups_lock:
            backups = list(self._backups)
        for job in backups:
            job.join()

        for statement in list(self._statements.values()):
            statement._invalidate()
        self._statements.clear()

        with self._sessions_lock:
            sessions = list(self._sessions)
            self._sessions.clear()
        for session in sessions:
            session._delete()

        handle, self._handle = self._handle, None
        self._closed = True
        # Closing runs xDestroy for every registered function.
        if self._lib.sqlite3_close(handle) != SQLITE_OK:
            self._lib.sqlite3_close_v2(handle)
        self._context.unregister(self)
        logger.info("connection_closed", location=self._config.location if self._config else None)


def _require_str(value: Any, name: str) -> None:
    if not isinstance(value, str):
        raise ArgumentError(f'The "{name}" argument must be a string')
