"""Online backup on a background thread.

The copy runs on a dedicated, joinable worker thread that owns its own
destination connection and only reads the source handle (opened in
serialized mode, so the engine's own mutex guards it). Progress and the
final outcome are posted to the event loop of the thread that started the
backup; user callbacks therefore always run on the connection's thread.

References:
    - https://sqlite.org/backup.html
    - https://sqlite.org/c3ref/backup_finish.html
"""

from __future__ import annotations

import asyncio
import itertools
import threading
import time
from typing import TYPE_CHECKING, Any

from sqlite_bridge.adapters.outbound.engine import ffi, to_bytes, to_str
from sqlite_bridge.domain.errors import BackupError
from sqlite_bridge.domain.value_objects.constants import (
    SQLITE_BUSY,
    SQLITE_DONE,
    SQLITE_LOCKED,
    SQLITE_OK,
    SQLITE_OPEN_CREATE,
    SQLITE_OPEN_FULLMUTEX,
    SQLITE_OPEN_READWRITE,
    SQLITE_OPEN_URI,
)
from sqlite_bridge.domain.value_objects.options import BackupOptions, BackupProgress
from sqlite_bridge.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from sqlite_bridge.application.connection import Connection

logger = get_logger(__name__)

DESTINATION_FLAGS = (
    SQLITE_OPEN_READWRITE | SQLITE_OPEN_CREATE | SQLITE_OPEN_URI | SQLITE_OPEN_FULLMUTEX
)


class BackupJob:
    """
    One backup from a source connection to a destination file.

    The future settles with the total page count, or with a BackupError
    carrying the engine status, only after the backup cursor and the
    destination handle have been released.
    """

    _ids = itertools.count(1)

    def __init__(
        self,
        source: Connection,
        destination: str,
        options: BackupOptions,
        loop: asyncio.AbstractEventLoop,
        retry_delay: float = 0.005,
    ) -> None:
        self.id = next(self._ids)
        self.destination = destination
        self.options = options
        self.future: asyncio.Future[int] = loop.create_future()
        self._source = source
        self._source_handle = source._handle
        self._engine = source.engine
        self._metrics = source.metrics
        self._loop = loop
        self._retry_delay = retry_delay
        self._pages_reported = 0
        self._log = logger.bind(backup_id=self.id, destination=destination)
        self._thread = threading.Thread(
            target=self._run, name=f"sqlite-bridge-backup-{self.id}"
        )

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        self._metrics.backups_active.inc()
        self._log.info(
            "backup_started",
            source=self.options.source,
            target=self.options.target,
            rate=self.options.rate,
        )
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout)

    # Worker thread

    def _run(self) -> None:
        lib = self._engine.lib
        out = ffi.new("sqlite3 **")
        backup = ffi.NULL
        dest = ffi.NULL
        total = 0
        outcome: int | BaseException
        try:
            status = lib.sqlite3_open_v2(
                to_bytes(self.destination), out, DESTINATION_FLAGS, ffi.NULL
            )
            dest = out[0]
            if status == SQLITE_OK:
                backup = lib.sqlite3_backup_init(
                    dest,
                    to_bytes(self.options.target),
                    self._source_handle,
                    to_bytes(self.options.source),
                )
                if backup == ffi.NULL:
                    status = lib.sqlite3_errcode(dest)
                else:
                    status, total = self._copy(lib, backup)
            outcome = total
            if status not in (SQLITE_OK, SQLITE_DONE):
                # Read the message before finish/close can replace it.
                message = to_str(lib.sqlite3_errmsg(dest)) if dest != ffi.NULL else None
                outcome = self._release(lib, backup, dest, status, message)
                backup = dest = ffi.NULL
        except Exception as exc:
            outcome = exc
        finally:
            if backup != ffi.NULL:
                lib.sqlite3_backup_finish(backup)
            if dest != ffi.NULL:
                lib.sqlite3_close_v2(dest)
        self._complete(outcome)

    def _copy(self, lib: Any, backup: Any) -> tuple[int, int]:
        pages = self.options.rate if self.options.rate > 0 else -1
        total = 0
        while True:
            status = lib.sqlite3_backup_step(backup, pages)
            if total == 0:
                total = lib.sqlite3_backup_pagecount(backup)
            if status == SQLITE_OK or status == SQLITE_DONE:
                self._report(total, lib.sqlite3_backup_remaining(backup))
                if status == SQLITE_DONE:
                    return status, total
            elif status == SQLITE_BUSY or status == SQLITE_LOCKED:
                time.sleep(self._retry_delay)
            else:
                return status, total

    def _release(self, lib: Any, backup: Any, dest: Any, status: int, message: str | None) -> BackupError:
        """Finish the cursor, build the error from the destination, close it."""
        if backup != ffi.NULL:
            lib.sqlite3_backup_finish(backup)
        error = self._engine.error(dest, status, message=message, error_class=BackupError)
        if dest != ffi.NULL:
            lib.sqlite3_close_v2(dest)
        return error

    def _report(self, total: int, remaining: int) -> None:
        copied = total - remaining
        if copied > self._pages_reported:
            self._metrics.backup_pages_copied_total.inc(copied - self._pages_reported)
            self._pages_reported = copied
        progress = BackupProgress(total_pages=total, remaining_pages=remaining)
        self._log.debug("backup_progress", total_pages=total, remaining_pages=remaining)
        if self.options.progress is not None:
            self._post(self._deliver_progress, progress)

    def _complete(self, outcome: int | BaseException) -> None:
        self._metrics.backups_active.dec()
        if isinstance(outcome, BaseException):
            self._metrics.backups_total.labels(status="failed").inc()
            self._log.warning("backup_failed", error=outcome)
        else:
            self._metrics.backups_total.labels(status="completed").inc()
            self._log.info("backup_completed", total_pages=outcome)
        self._post(self._settle, outcome)

    def _post(self, callback: Any, *args: Any) -> None:
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            self._log.warning("backup_event_dropped", reason="event loop is closed")

    # Event loop thread

    def _deliver_progress(self, progress: BackupProgress) -> None:
        try:
            self.options.progress(progress)
        except Exception:
            self._log.warning("backup_progress_callback_failed", exc_info=True)

    def _settle(self, outcome: int | BaseException) -> None:
        if self.future.done():
            return
        if isinstance(outcome, BaseException):
            self.future.set_exception(outcome)
        else:
            self.future.set_result(outcome)
