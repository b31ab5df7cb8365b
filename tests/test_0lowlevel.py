"""
Tests the low-level API.
"""
import pytest

from recordql import BaseTransaction, DatabaseInterface, DatabaseRegistry
from recordql.backends.sqlite3 import Sqlite3Dialect
from recordql.exc import ConfigurationError, IntegrityError, MissingTableError, \
    QueryExecutionError


def test_db_connected(db: DatabaseInterface):
    assert db.connected
    assert db.connector is not None
    assert isinstance(db.dialect, Sqlite3Dialect)


def test_acquire_transaction(db: DatabaseInterface):
    tr = db.get_transaction()

    assert isinstance(tr, BaseTransaction)


def test_transaction_use(db: DatabaseInterface):
    tr = db.get_transaction()
    tr.begin()

    # this just ensures the connection doesn't error
    tr.execute("SELECT 1 + 1;")
    tr.rollback()
    tr.close()


def test_transaction_fetch_one(db: DatabaseInterface):
    with db.get_transaction() as tr:
        with tr.cursor("SELECT 1 + 1;") as cursor:
            row = cursor.fetch_row()

    # rowdict
    assert row[0] == 2


def test_transaction_fetch_multiple(db: DatabaseInterface):
    with db.get_transaction() as tr:
        previous = 0
        with tr.cursor("SELECT 1 AS result UNION ALL SELECT 2;") as cursor:
            for row in cursor:
                assert row["result"] > previous
                previous = row["result"]

    assert previous == 2


def test_transaction_fetch_many(db: DatabaseInterface):
    with db.get_transaction() as tr:
        with tr.cursor("SELECT 1 AS result UNION ALL SELECT 2;") as cursor:
            rows = cursor.fetch_many(n=2)

    assert rows[0]["result"] == 1
    assert rows[1]["result"] == 2


def test_missing_table_error(db: DatabaseInterface):
    with db.get_transaction() as tr:
        with pytest.raises(MissingTableError) as e:
            tr.execute("SELECT * FROM nowhere;")

    assert e.value.code == "42S02"


def test_integrity_error(db: DatabaseInterface):
    with db.get_transaction() as tr:
        tr.execute("CREATE TABLE unique_test (name TEXT UNIQUE);")
        tr.execute("INSERT INTO unique_test (name) VALUES (?);", ["a"])
        with pytest.raises(IntegrityError) as e:
            tr.execute("INSERT INTO unique_test (name) VALUES (?);", ["a"])

    assert isinstance(e.value, QueryExecutionError)
    assert isinstance(e.value.__cause__, Exception)


def test_session_run(db: DatabaseInterface):
    with db.get_session() as sess:
        sess.execute("CREATE TABLE numbers (value INTEGER);")
        result = sess.run("INSERT INTO numbers (value) VALUES (?), (?);", [1, 2])
        assert result.rowcount == 2
        assert result.last_row_id == 2

        result = sess.run("SELECT value FROM numbers ORDER BY value;")
        assert [row["value"] for row in result.rows] == [1, 2]


def test_session_rollback(db: DatabaseInterface):
    with db.get_session() as sess:
        sess.execute("CREATE TABLE numbers (value INTEGER);")

    sess = db.get_session().start()
    sess.execute("INSERT INTO numbers (value) VALUES (1);")
    sess.rollback()
    sess.close()

    with db.get_session() as sess:
        assert sess.fetch("SELECT COUNT(*) AS count FROM numbers;")["count"] == 0


def test_closed_session(db: DatabaseInterface):
    sess = db.get_session()
    with pytest.raises(RuntimeError):
        sess.execute("SELECT 1;")


def test_connect_without_dsn():
    with pytest.raises(ConfigurationError):
        DatabaseInterface().connect()


def test_connect_unknown_backend():
    with pytest.raises(ConfigurationError):
        DatabaseInterface("nosuchdb:///test").connect()


def test_memory_database():
    with DatabaseInterface("sqlite3:///:memory:") as iface:
        assert iface.connector.max_size == 1
        with iface.get_session() as sess:
            assert sess.fetch("SELECT 2 AS two;")["two"] == 2

    assert not iface.connected


def test_registry(tmp_path):
    registry = DatabaseRegistry({"main": "sqlite3:///{}".format(tmp_path / "main.db")})
    registry.register("memory", "sqlite3:///:memory:")

    main = registry.get("main")
    assert main.connected
    assert registry.get("main") is main
    assert "memory" in registry

    with pytest.raises(ConfigurationError):
        registry.get("other")

    with pytest.raises(ConfigurationError):
        registry.register("main", "sqlite3:///:memory:")

    registry.close()
    assert not main.connected


def test_session_checkpoint(db: DatabaseInterface):
    with db.get_session() as sess:
        sess.execute("CREATE TABLE numbers (value INTEGER);")
        sess.execute("INSERT INTO numbers (value) VALUES (1);")
        sess.checkpoint("before_two")
        sess.execute("INSERT INTO numbers (value) VALUES (2);")
        sess.rollback(checkpoint="before_two")
        sess.uncheckpoint("before_two")

        assert sess.fetch("SELECT COUNT(*) AS count FROM numbers;")["count"] == 1
