"""DatabaseManager поверх psycopg2 с подмененным подключением"""

from unittest.mock import MagicMock

import psycopg2
import pytest

from config.settings import DatabaseConfig
from core import database
from core.database import DatabaseManager
from core.exceptions import (
    ConstraintViolationError,
    DatabaseConnectionError,
    DatabaseQueryError,
    QuerySyntaxError,
)

DB_CONFIG = DatabaseConfig(host="db", database="app", user="app", password="secret", port=5432)


@pytest.fixture
def connection(monkeypatch):
    conn = MagicMock()
    conn.closed = 0
    cursor = conn.cursor.return_value
    cursor.description = [("id",)]
    cursor.fetchall.return_value = [{"id": 1}, {"id": 2}]
    cursor.fetchone.return_value = {"id": 7}
    cursor.rowcount = 3

    connect = MagicMock(return_value=conn)
    monkeypatch.setattr(database.psycopg2, "connect", connect)
    conn.connect_mock = connect
    return conn


@pytest.fixture
def manager(connection):
    DatabaseManager.reset_instance()
    instance = DatabaseManager(DB_CONFIG)
    yield instance
    DatabaseManager.reset_instance()


def test_singleton(manager):
    assert DatabaseManager() is manager
    assert DatabaseManager.get_instance() is manager
    assert manager.db_config == DB_CONFIG


def test_connection_is_lazy(manager, connection):
    connection.connect_mock.assert_not_called()

    manager.execute_query("SELECT 1")

    connection.connect_mock.assert_called_once()
    assert connection.connect_mock.call_args.kwargs["database"] == "app"


def test_execute_query_commits_outside_transaction(manager, connection):
    rows = manager.execute_query('SELECT * FROM "users" WHERE "id" > %s', [0])

    assert rows == [{"id": 1}, {"id": 2}]
    connection.cursor.return_value.execute.assert_called_once_with('SELECT * FROM "users" WHERE "id" > %s', (0,))
    connection.commit.assert_called_once()
    connection.cursor.return_value.close.assert_called_once()


def test_statement_without_result_set(manager, connection):
    connection.cursor.return_value.description = None

    assert manager.execute_query('DELETE FROM "users"') == []
    assert manager.execute_update('DELETE FROM "users"') == 3


def test_execute_insert_appends_returning(manager, connection):
    key = manager.execute_insert('INSERT INTO "users" ("name") VALUES (%s)', ["Jonas"])

    assert key == 7
    sql, _ = connection.cursor.return_value.execute.call_args.args
    assert sql.endswith('RETURNING "id"')


def test_execute_single_value(manager, connection):
    connection.cursor.return_value.fetchall.return_value = [{"aggregate": 42}]

    assert manager.execute_single_value("SELECT COUNT(*) AS aggregate FROM users") == 42


def test_queries_inside_transaction_are_not_committed(manager, connection):
    manager.begin()
    manager.execute_update('UPDATE "users" SET "name" = %s', ["x"])

    connection.commit.assert_not_called()
    assert manager.in_transaction()

    manager.commit()

    connection.commit.assert_called_once()
    assert not manager.in_transaction()


@pytest.mark.parametrize("driver_error, expected", [
    (psycopg2.IntegrityError("duplicate key"), ConstraintViolationError),
    (psycopg2.ProgrammingError("syntax error"), QuerySyntaxError),
    (psycopg2.OperationalError("server closed the connection"), DatabaseConnectionError),
    (psycopg2.DataError("invalid input"), DatabaseQueryError),
])
def test_driver_errors_are_classified_and_rolled_back(manager, connection, driver_error, expected):
    connection.cursor.return_value.execute.side_effect = driver_error
    manager.begin()

    with pytest.raises(expected) as exc_info:
        manager.execute_query("SELECT 1")

    assert exc_info.value.original_error is driver_error
    connection.rollback.assert_called_once()
    assert not manager.in_transaction()


def test_connect_failure(manager, connection):
    connection.connect_mock.side_effect = psycopg2.OperationalError("could not connect")

    with pytest.raises(DatabaseConnectionError):
        manager.connect()


def test_missing_config_fails_on_connect(connection):
    DatabaseManager.reset_instance()
    try:
        with pytest.raises(DatabaseConnectionError):
            DatabaseManager().connect()
    finally:
        DatabaseManager.reset_instance()


def test_close_resets_state(manager, connection):
    manager.begin()
    manager.close()

    connection.close.assert_called_once()
    assert not manager.is_connected()
    assert not manager.in_transaction()
