"""Integration tests for change-tracking sessions and changesets."""

from __future__ import annotations

from typing import Generator

import pytest
from prometheus_client import CollectorRegistry

from sqlite_bridge import ConflictKind, ConflictResolution, Connection
from sqlite_bridge.domain.errors import ArgumentError, CallbackError, InvalidStateError
from sqlite_bridge.infrastructure.container import BindingContext

SCHEMA = (
    "CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT);"
    "CREATE TABLE tags (id INTEGER PRIMARY KEY, label TEXT);"
)


@pytest.fixture
def source(db: Connection, session_support: None) -> Connection:
    db.exec(SCHEMA)
    return db


@pytest.fixture
def replica(binding_context: BindingContext, session_support: None) -> Generator[Connection, None, None]:
    connection = Connection(":memory:", context=binding_context)
    connection.exec(SCHEMA)
    yield connection
    if connection.is_open:
        connection.close()


def names(connection: Connection) -> list[str]:
    return [row["name"] for row in connection.prepare("SELECT name FROM items ORDER BY id").all()]


@pytest.mark.integration
class TestSession:
    """Recording changes."""

    def test_changeset_round_trip(self, source: Connection, replica: Connection) -> None:
        session = source.create_session()
        source.exec("INSERT INTO items VALUES (1, 'apple'), (2, 'pear')")

        changeset = session.changeset()

        assert changeset
        assert replica.apply_changeset(changeset) is True
        assert names(replica) == ["apple", "pear"]

    def test_no_changes_gives_empty_changeset(self, source: Connection) -> None:
        session = source.create_session()

        assert session.changeset() == b""

    def test_table_filter(self, source: Connection) -> None:
        session = source.create_session(table="items")
        source.exec("INSERT INTO tags VALUES (1, 'fruit')")

        assert session.changeset() == b""

        source.exec("INSERT INTO items VALUES (1, 'apple')")

        assert session.changeset() != b""

    def test_patchset(self, source: Connection, replica: Connection) -> None:
        replica.exec("INSERT INTO items VALUES (1, 'apple')")
        source.exec("INSERT INTO items VALUES (1, 'apple')")
        session = source.create_session()
        source.exec("UPDATE items SET name = 'apricot' WHERE id = 1")

        patchset = session.patchset()

        assert patchset
        assert len(patchset) <= len(session.changeset())
        assert replica.apply_changeset(patchset) is True
        assert names(replica) == ["apricot"]

    def test_close(self, source: Connection, collector_registry: CollectorRegistry) -> None:
        session = source.create_session()
        assert collector_registry.get_sample_value("sqlite_bridge_sessions_active") == 1

        session.close()

        assert not session.is_open
        assert collector_registry.get_sample_value("sqlite_bridge_sessions_active") == 0
        with pytest.raises(InvalidStateError, match="session is not open"):
            session.close()
        with pytest.raises(InvalidStateError):
            session.changeset()

    def test_connection_close_deletes_sessions(self, source: Connection) -> None:
        session = source.create_session()

        source.close()

        assert not session.is_open

    def test_context_manager(self, source: Connection) -> None:
        with source.create_session() as session:
            source.exec("INSERT INTO items VALUES (1, 'apple')")
            assert session.changeset()

        assert not session.is_open


@pytest.mark.integration
class TestApplyChangeset:
    """Applying changesets and resolving conflicts."""

    @pytest.fixture
    def changeset(self, source: Connection) -> bytes:
        session = source.create_session()
        source.exec("INSERT INTO items VALUES (1, 'apple')")
        return session.changeset()

    def test_conflicts_omitted_by_default(self, replica: Connection, changeset: bytes) -> None:
        assert replica.apply_changeset(changeset) is True
        assert replica.apply_changeset(changeset) is True
        assert names(replica) == ["apple"]

    def test_conflict_handler_receives_kind(self, replica: Connection, changeset: bytes) -> None:
        replica.exec("INSERT INTO items VALUES (1, 'banana')")
        kinds = []

        def on_conflict(kind):
            kinds.append(kind)
            return ConflictResolution.REPLACE

        assert replica.apply_changeset(changeset, on_conflict=on_conflict) is True
        assert kinds == [ConflictKind.CONFLICT]
        assert names(replica) == ["apple"]

    def test_abort(self, replica: Connection, changeset: bytes) -> None:
        replica.exec("INSERT INTO items VALUES (1, 'banana')")

        result = replica.apply_changeset(changeset, on_conflict=lambda kind: ConflictResolution.ABORT)

        assert result is False
        assert names(replica) == ["banana"]

    def test_conflict_handler_exception(self, replica: Connection, changeset: bytes) -> None:
        replica.exec("INSERT INTO items VALUES (1, 'banana')")

        def on_conflict(kind):
            raise LookupError("cannot decide")

        with pytest.raises(CallbackError) as excinfo:
            replica.apply_changeset(changeset, on_conflict=on_conflict)

        assert isinstance(excinfo.value.__cause__, LookupError)
        assert names(replica) == ["banana"]

    def test_conflict_handler_bad_return(self, replica: Connection, changeset: bytes) -> None:
        replica.exec("INSERT INTO items VALUES (1, 'banana')")

        with pytest.raises(ArgumentError):
            replica.apply_changeset(changeset, on_conflict=lambda kind: "omit")

    def test_filter_excludes_tables(self, replica: Connection, changeset: bytes) -> None:
        seen = []

        def keep(table):
            seen.append(table)
            return table != "items"

        assert replica.apply_changeset(changeset, filter=keep) is True
        assert seen == ["items"]
        assert names(replica) == []

    def test_filter_exception(self, replica: Connection, changeset: bytes) -> None:
        def keep(table):
            raise RuntimeError("no filter today")

        with pytest.raises(CallbackError):
            replica.apply_changeset(changeset, filter=keep)
        assert names(replica) == []

    def test_changeset_must_be_bytes(self, replica: Connection) -> None:
        with pytest.raises(ArgumentError):
            replica.apply_changeset("not bytes")

    def test_outcome_metrics(
        self, replica: Connection, changeset: bytes, collector_registry: CollectorRegistry
    ) -> None:
        replica.apply_changeset(changeset)

        assert collector_registry.get_sample_value(
            "sqlite_bridge_changesets_applied_total", {"outcome": "applied"}
        ) == 1
