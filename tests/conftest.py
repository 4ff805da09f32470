"""
Общие фикстуры тестов

SQLiteDatabaseManager подменяет psycopg2 на sqlite3 в памяти, сохраняя
остальной код DatabaseManager (транзакции, классификация ошибок, логирование).
"""

import sqlite3
from datetime import datetime

import pytest

from core.database import DatabaseManager
from core.events import EventRegistry
from core.exceptions import QuerySyntaxError
from core.model import Model

sqlite3.register_adapter(datetime, lambda value: value.isoformat(" "))

SCHEMA = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    created_at TEXT,
    updated_at TEXT,
    deleted_at TEXT
);
CREATE TABLE posts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    title TEXT NOT NULL,
    views INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE teams (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    deleted_at TEXT
);
"""


def _dict_row(cursor, row):
    return {column[0]: row[index] for index, column in enumerate(cursor.description)}


class SQLiteDatabaseManager(DatabaseManager):
    """DatabaseManager поверх sqlite3 (:memory:)"""

    _instance = None
    driver = sqlite3

    def _open_connection(self):
        connection = sqlite3.connect(":memory:")
        connection.row_factory = _dict_row
        return connection

    def is_connected(self) -> bool:
        return self._connection is not None

    def _prepare(self, query: str) -> str:
        # sqlite не поддерживает FOR UPDATE и использует ? вместо %s
        return query.replace(" FOR UPDATE", "").replace("%s", "?")

    def _classify_error(self, error):
        message = str(error)
        if isinstance(error, sqlite3.OperationalError) and ("syntax error" in message or "no such" in message):
            return QuerySyntaxError
        return super()._classify_error(error)


class Post(Model):
    """Сущность без меток времени и мягкого удаления"""
    table = "posts"
    fillable = ("user_id", "title", "views")


@pytest.fixture
def db():
    manager = SQLiteDatabaseManager()
    manager.connection.executescript(SCHEMA)
    yield manager
    SQLiteDatabaseManager.reset_instance()


@pytest.fixture
def events():
    return EventRegistry()


@pytest.fixture
def bound(db, events):
    """Модели работают с тестовой БД и изолированным реестром событий"""
    Model.bind(db, events)
    yield db
    Model.bind(None, None)


@pytest.fixture
def post_model():
    return Post
