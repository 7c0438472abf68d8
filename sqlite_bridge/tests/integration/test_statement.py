"""Integration tests for prepared statements and value conversion."""

from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from sqlite_bridge import ColumnInfo, Connection, RunResult
from sqlite_bridge.domain.errors import (
    ArgumentError,
    EngineError,
    IntegerRangeError,
    InvalidStateError,
)
from sqlite_bridge.domain.services.marshaller import INT64_MAX, MAX_SAFE_INTEGER


@pytest.fixture
def people(db: Connection) -> Connection:
    """Connection with a small people table."""
    db.exec(
        "CREATE TABLE people (id INTEGER PRIMARY KEY, name TEXT NOT NULL, age INTEGER);"
        "INSERT INTO people (name, age) VALUES ('ada', 36), ('alan', 41), ('grace', 85);"
    )
    return db


@pytest.mark.integration
class TestExecution:
    """run, get and all."""

    def test_run_reports_changes_and_rowid(self, people: Connection) -> None:
        insert = people.prepare("INSERT INTO people (name, age) VALUES (?, ?)")

        result = insert.run("edsger", 72)

        assert result == RunResult(changes=1, last_insert_rowid=4)

    def test_run_update_counts_rows(self, people: Connection) -> None:
        result = people.prepare("UPDATE people SET age = age + 1 WHERE age > ?").run(40)

        assert result.changes == 2

    def test_get_returns_first_row(self, people: Connection) -> None:
        statement = people.prepare("SELECT name, age FROM people ORDER BY id")

        assert statement.get() == {"name": "ada", "age": 36}

    def test_get_without_rows(self, people: Connection) -> None:
        assert people.prepare("SELECT * FROM people WHERE id = ?").get(99) is None

    def test_all(self, people: Connection) -> None:
        rows = people.prepare("SELECT name FROM people ORDER BY id").all()

        assert rows == [{"name": "ada"}, {"name": "alan"}, {"name": "grace"}]

    def test_statement_is_reusable(self, people: Connection) -> None:
        statement = people.prepare("SELECT name FROM people WHERE id = ?")

        assert statement.get(1) == {"name": "ada"}
        assert statement.get(2) == {"name": "alan"}
        assert statement.all(3) == [{"name": "grace"}]

    def test_return_arrays(self, people: Connection) -> None:
        statement = people.prepare("SELECT id, name FROM people ORDER BY id", return_arrays=True)

        assert statement.get() == [1, "ada"]

        statement.set_return_arrays(False)

        assert statement.get() == {"id": 1, "name": "ada"}

    def test_constraint_violation(self, people: Connection) -> None:
        insert = people.prepare("INSERT INTO people (name) VALUES (?)")

        with pytest.raises(EngineError, match="NOT NULL"):
            insert.run(None)

    def test_metrics_recorded(self, people: Connection, collector_registry: CollectorRegistry) -> None:
        people.prepare("SELECT 1").get()

        assert collector_registry.get_sample_value(
            "sqlite_bridge_statement_executions_total", {"operation": "get", "status": "success"}
        ) == 1
        assert collector_registry.get_sample_value("sqlite_bridge_statements_prepared_total") >= 1


@pytest.mark.integration
class TestPrepare:
    """Compilation errors and statement metadata."""

    def test_syntax_error(self, db: Connection) -> None:
        with pytest.raises(EngineError, match="syntax error"):
            db.prepare("SELEKT 1")

    def test_empty_sql(self, db: Connection) -> None:
        with pytest.raises(ArgumentError):
            db.prepare("   ")

    def test_only_first_statement_is_prepared(self, db: Connection) -> None:
        statement = db.prepare("SELECT 1 AS a; SELECT 2 AS b")

        assert statement.source_sql.startswith("SELECT 1 AS a")
        assert "SELECT 2" not in statement.source_sql
        assert statement.get() == {"a": 1}

    def test_expanded_sql(self, db: Connection) -> None:
        statement = db.prepare("SELECT ? AS a, ? AS b")
        statement.get(42, "x")

        assert statement.expanded_sql == "SELECT 42 AS a, 'x' AS b"

    def test_columns(self, people: Connection) -> None:
        columns = people.prepare("SELECT name AS who, 1 + 1 AS two FROM people").columns()

        assert [column.name for column in columns] == ["who", "two"]
        assert columns[0].type == "TEXT"
        assert columns[1].type is None
        if people.engine.has_column_metadata:
            assert columns[0] == ColumnInfo(
                column="name", database="main", name="who", table="people", type="TEXT"
            )
            assert columns[1].table is None
        else:
            assert columns[0].table is None

    def test_finalize(self, db: Connection) -> None:
        statement = db.prepare("SELECT 1")
        statement.finalize()
        statement.finalize()

        assert statement.is_finalized
        with pytest.raises(InvalidStateError, match="finalized"):
            statement.run()

    def test_option_types_checked(self, db: Connection) -> None:
        with pytest.raises(ArgumentError):
            db.prepare("SELECT 1", return_arrays="yes")
        with pytest.raises(ArgumentError):
            db.prepare("SELECT 1").set_read_bigints(1)


@pytest.mark.integration
class TestParameters:
    """Positional and named binding."""

    def test_named_parameters_with_each_prefix(self, db: Connection) -> None:
        statement = db.prepare("SELECT :a AS a, @b AS b, $c AS c")

        assert statement.get({":a": 1, "@b": 2, "$c": 3}) == {"a": 1, "b": 2, "c": 3}

    def test_named_parameters_as_keywords(self, db: Connection) -> None:
        statement = db.prepare("SELECT :a AS a")

        assert statement.get(**{":a": "kw"}) == {"a": "kw"}

    def test_bare_names_rejected_by_default(self, db: Connection) -> None:
        statement = db.prepare("SELECT :a AS a")

        with pytest.raises(ArgumentError, match="Unknown named parameter 'a'"):
            statement.get({"a": 1})

    def test_bare_names_when_allowed(self, db: Connection) -> None:
        statement = db.prepare("SELECT :a AS a, $b AS b", allow_bare_named_parameters=True)

        assert statement.get(a=1, b=2) == {"a": 1, "b": 2}

    def test_conflicting_bare_names(self, db: Connection) -> None:
        statement = db.prepare("SELECT :a, $a", allow_bare_named_parameters=True)

        with pytest.raises(InvalidStateError, match="conflicting names"):
            statement.get(a=1)

    def test_conflicting_bare_names_with_prefixed_keys(self, db: Connection) -> None:
        statement = db.prepare("SELECT :a AS x, $a AS y", allow_bare_named_parameters=True)

        with pytest.raises(InvalidStateError, match="conflicting names ':a' and '\\$a'"):
            statement.get({":a": 1, "$a": 2})

    def test_prefixed_keys_ignore_bare_conflicts_when_disallowed(self, db: Connection) -> None:
        statement = db.prepare("SELECT :a AS x, $a AS y")

        assert statement.get({":a": 1, "$a": 2}) == {"x": 1, "y": 2}

    def test_mixing_positional_and_named(self, db: Connection) -> None:
        with pytest.raises(ArgumentError):
            db.prepare("SELECT ?, :a").get(1, **{":a": 2})

    def test_too_many_positional(self, db: Connection) -> None:
        with pytest.raises(ArgumentError, match="Error binding parameter 2"):
            db.prepare("SELECT ?").get(1, 2)

    def test_unbound_parameters_are_null(self, db: Connection) -> None:
        statement = db.prepare("SELECT ? AS a, ? AS b")
        statement.get(1, 2)

        assert statement.get(1) == {"a": 1, "b": None}


@pytest.mark.integration
class TestValueConversion:
    """Values survive the trip through the engine."""

    @pytest.mark.parametrize(
        ("value", "expected", "affinity"),
        [
            (None, None, "null"),
            (7, 7, "integer"),
            (True, 1, "integer"),
            (1.5, 1.5, "real"),
            (3.0, 3.0, "real"),
            ("héllo wörld", "héllo wörld", "text"),
            (b"\x00\xff\x10", b"\x00\xff\x10", "blob"),
            (b"", b"", "blob"),
            (bytearray(b"ab"), b"ab", "blob"),
        ],
    )
    def test_round_trip(self, db: Connection, value: object, expected: object, affinity: str) -> None:
        row = db.prepare("SELECT ? AS v, typeof(?1) AS t").get(value)

        assert row == {"v": expected, "t": affinity}

    def test_text_with_embedded_null(self, db: Connection) -> None:
        assert db.prepare("SELECT ? AS v").get("a\0b") == {"v": "a\0b"}

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("\ud800", "\ufffd"),
            ("a\udc00b", "a\ufffdb"),
            ("x\ud83d\ude00y", "x\U0001f600y"),
        ],
    )
    def test_unpaired_surrogates_are_replaced(
        self, db: Connection, value: str, expected: str
    ) -> None:
        assert db.prepare("SELECT ? AS v").get(value) == {"v": expected}

    def test_unpaired_surrogate_in_function_result(self, db: Connection) -> None:
        db.register_scalar_function("broken", lambda: "\udfff!")

        assert db.prepare("SELECT broken() AS v").get() == {"v": "\ufffd!"}

    def test_callable_binds_null(self, db: Connection) -> None:
        assert db.prepare("SELECT ? IS NULL AS n").get(len) == {"n": 1}

    def test_unsafe_integer_raises(self, db: Connection) -> None:
        statement = db.prepare("SELECT ? AS v")

        assert statement.get(MAX_SAFE_INTEGER) == {"v": MAX_SAFE_INTEGER}
        with pytest.raises(IntegerRangeError):
            statement.get(MAX_SAFE_INTEGER + 1)

    def test_read_bigints(self, db: Connection) -> None:
        statement = db.prepare("SELECT ? AS v", read_bigints=True)

        assert statement.get(INT64_MAX) == {"v": INT64_MAX}

    def test_statement_usable_after_range_error(self, db: Connection) -> None:
        statement = db.prepare("SELECT ? AS v")
        with pytest.raises(IntegerRangeError):
            statement.get(2**60)

        statement.set_read_bigints(True)

        assert statement.get(2**60) == {"v": 2**60}

    def test_wider_than_64_bits_stored_as_text(self, db: Connection) -> None:
        row = db.prepare("SELECT ? AS v, typeof(?1) AS t").get(INT64_MAX + 1)

        assert row == {"v": str(INT64_MAX + 1), "t": "text"}
