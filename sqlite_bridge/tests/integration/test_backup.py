"""Integration tests for online backup."""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

from sqlite_bridge import BackupProgress, Connection, constants
from sqlite_bridge.domain.errors import BackupError, InvalidStateError
from sqlite_bridge.infrastructure.container import BindingContext


@pytest.fixture
def populated(file_db: Connection) -> Connection:
    """A database spanning a few dozen pages."""
    file_db.exec("CREATE TABLE blobs (id INTEGER PRIMARY KEY, payload TEXT)")
    insert = file_db.prepare("INSERT INTO blobs (payload) VALUES (?)")
    file_db.exec("BEGIN")
    for index in range(200):
        insert.run(f"{index:04d}" * 128)
    file_db.exec("COMMIT")
    return file_db


def count_rows(context: BindingContext, path: Path) -> int:
    with Connection(path, context=context, read_only=True) as copy:
        return copy.prepare("SELECT count(*) AS n FROM blobs").get()["n"]


@pytest.mark.integration
class TestBackup:
    """Tests for Connection.backup."""

    def test_copies_database(
        self, populated: Connection, binding_context: BindingContext, temp_dir: Path
    ) -> None:
        destination = temp_dir / "copy.db"

        total = asyncio.run(populated.backup(destination))

        page_count = populated.prepare("PRAGMA page_count").get()["page_count"]
        assert total == page_count
        assert count_rows(binding_context, destination) == 200

    def test_progress_reported_on_calling_thread(self, populated: Connection, temp_dir: Path) -> None:
        events: list[BackupProgress] = []
        threads: set[int] = set()

        def progress(event: BackupProgress) -> None:
            events.append(event)
            threads.add(threading.get_ident())

        total = asyncio.run(populated.backup(temp_dir / "copy.db", rate=5, progress=progress))

        assert len(events) >= 2
        assert threads == {threading.get_ident()}
        assert all(event.total_pages == total for event in events)
        remaining = [event.remaining_pages for event in events]
        assert remaining == sorted(remaining, reverse=True)
        assert remaining[-1] == 0
        assert events[-1].current_page == total

    def test_copy_everything_in_one_step(self, populated: Connection, temp_dir: Path) -> None:
        events: list[BackupProgress] = []

        total = asyncio.run(populated.backup(temp_dir / "copy.db", rate=0, progress=events.append))

        assert events == [BackupProgress(total_pages=total, remaining_pages=0)]

    def test_in_memory_source(self, db: Connection, binding_context: BindingContext, temp_dir: Path) -> None:
        db.exec("CREATE TABLE blobs (payload); INSERT INTO blobs VALUES ('x');")
        destination = temp_dir / "memory-copy.db"

        assert asyncio.run(db.backup(destination)) > 0
        assert count_rows(binding_context, destination) == 1

    def test_progress_callback_failure_does_not_abort(self, populated: Connection, temp_dir: Path) -> None:
        def progress(event: BackupProgress) -> None:
            raise RuntimeError("ignored")

        assert asyncio.run(populated.backup(temp_dir / "copy.db", rate=10, progress=progress)) > 0

    def test_unknown_source_schema(self, populated: Connection, temp_dir: Path) -> None:
        with pytest.raises(BackupError) as excinfo:
            asyncio.run(populated.backup(temp_dir / "copy.db", source="nope"))

        assert excinfo.value.errcode == constants.SQLITE_ERROR
        assert "nope" in excinfo.value.message

    def test_unwritable_destination(self, populated: Connection, temp_dir: Path) -> None:
        with pytest.raises(BackupError) as excinfo:
            asyncio.run(populated.backup(temp_dir / "missing" / "copy.db"))

        assert excinfo.value.errcode == constants.SQLITE_CANTOPEN

    def test_closed_connection(self, db: Connection, temp_dir: Path) -> None:
        db.close()
        pending = db.backup(temp_dir / "copy.db")

        with pytest.raises(InvalidStateError):
            asyncio.run(pending)

    def test_metrics(
        self, populated: Connection, temp_dir: Path, collector_registry: CollectorRegistry
    ) -> None:
        total = asyncio.run(populated.backup(temp_dir / "copy.db"))
        with pytest.raises(BackupError):
            asyncio.run(populated.backup(temp_dir / "copy.db", source="nope"))

        assert collector_registry.get_sample_value("sqlite_bridge_backups_active") == 0
        assert collector_registry.get_sample_value(
            "sqlite_bridge_backups_total", {"status": "completed"}
        ) == 1
        assert collector_registry.get_sample_value(
            "sqlite_bridge_backups_total", {"status": "failed"}
        ) == 1
        assert collector_registry.get_sample_value("sqlite_bridge_backup_pages_copied_total") == total

    def test_connection_usable_while_awaiting(self, populated: Connection, temp_dir: Path) -> None:
        async def scenario() -> tuple[int, int]:
            task = asyncio.ensure_future(populated.backup(temp_dir / "copy.db", rate=1))
            await asyncio.sleep(0)
            row = populated.prepare("SELECT count(*) AS n FROM blobs").get()
            return await task, row["n"]

        total, rows = asyncio.run(scenario())

        assert total > 0
        assert rows == 200
